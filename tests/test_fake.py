#!/usr/bin/env python
# -*- coding: utf-8 -*-
#
# Copyright 2025 Confluent Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

import pytest

from kafka_dispatch import (AssertionFailure, CanPublishMessagesToKafka, ConsumedMessage,
                            ConsumerState, Message, MessageBatch, UnknownClusterError)
from kafka_dispatch.testing import KafkaFake, QueueMessageSource


@pytest.fixture
def kafka(settings):
    return KafkaFake(settings)


def test_fake_is_interchangeable(kafka):
    assert isinstance(kafka, CanPublishMessagesToKafka)


def test_ledger_keeps_call_order(kafka):
    for n in range(5):
        kafka.publish().on_topic('orders').with_body_key('n', n).send()

    assert [m.body['n'] for m in kafka.published_messages] == [0, 1, 2, 3, 4]
    assert len(kafka.published()) == 5


def test_assert_nothing_published(kafka):
    kafka.assert_nothing_published()

    kafka.publish().on_topic('orders').send()

    with pytest.raises(AssertionFailure) as e:
        kafka.assert_nothing_published()
    assert e.value.actual == 1


def test_orders_scenario(kafka):
    kafka.publish().on_topic('orders').with_kafka_key('42').with_body_key('id', 42).send()

    kafka.assert_published_on('orders')

    with pytest.raises(AssertionFailure) as e:
        kafka.assert_published_on('payments')
    assert e.value.actual == 0
    assert 'payments' in str(e.value)


def test_published_by_expected_message(kafka):
    kafka.publish().on_topic('orders').with_kafka_key('1').with_body_key('id', 1).send()
    kafka.publish().on_topic('orders').with_kafka_key('2').with_body_key('id', 2).send()

    m1 = Message(topic='orders', key='1', body={'id': 1})
    m2 = Message(topic='orders', key='2', body={'id': 2})

    assert kafka.published(expected_message=m1) == [m1]
    assert kafka.published(expected_message=m2) == [m2]
    assert kafka.published(expected_message=m1.with_header('h', 'v')) == []
    kafka.assert_published(m1)
    kafka.assert_published_times(1, m2)


def test_predicate_wins_over_expected_message(kafka):
    kafka.publish().on_topic('orders').with_body_key('id', 1).send()

    matches = kafka.published(predicate=lambda m: m.body['id'] == 1,
                              expected_message=Message(topic='orders', body={'id': 999}))

    assert len(matches) == 1


def test_published_filters_by_topic_first(kafka):
    kafka.publish().on_topic('orders').with_body_key('id', 1).send()
    kafka.publish().on_topic('payments').with_body_key('id', 1).send()

    assert [m.topic for m in kafka.published(lambda m: m.body['id'] == 1, topic='payments')] == ['payments']
    kafka.assert_published_on_times('orders', 1, predicate=lambda m: m.body['id'] == 1)


def test_assert_published_times(kafka):
    for n in range(3):
        kafka.publish().on_topic('orders').with_body_key('n', n).send()

    kafka.assert_published_times(3)
    kafka.assert_published_times(2, predicate=lambda m: m.body['n'] > 0)

    with pytest.raises(AssertionFailure) as e:
        kafka.assert_published_times(2)
    assert str(e.value) == "Kafka published 3 messages instead of 2."
    assert (e.value.expected, e.value.actual) == (2, 3)


def test_assert_published_fails_on_empty_ledger(kafka):
    with pytest.raises(AssertionFailure):
        kafka.assert_published()

    with pytest.raises(AssertionFailure) as e:
        kafka.assert_published_on_times('orders', 1)
    assert e.value.actual == 0


def test_assertion_failure_is_an_assertion_error(kafka):
    with pytest.raises(AssertionError):
        kafka.assert_published_on('orders')


def test_send_batch_is_recorded(kafka):
    batch = MessageBatch('orders')
    batch.push(Message(body={'n': 1})).push(Message(body={'n': 2})).push(Message(body={'n': 3}))

    builder = kafka.publish()

    assert builder.send_batch(batch) == 3
    assert builder.last_batch_result.error is None
    kafka.assert_published_on_times('orders', 3)


def test_publish_on_cluster(kafka):
    kafka.publish_on('payments').on_topic('payments').send()

    kafka.assert_published_on('payments')

    with pytest.raises(UnknownClusterError):
        kafka.publish_on('nope')


def test_consumer_drains_seeded_messages(kafka):
    a = ConsumedMessage('orders', body={'id': 'a'})
    b = Message(topic='orders', body={'id': 'b'})
    c = ConsumedMessage('orders', body={'id': 'c'})
    kafka.should_receive_messages([a, b])
    kafka.should_receive_messages(c)

    received = []
    stopped = []
    consumer = kafka.create_consumer(['orders']) \
        .with_handler(lambda m: received.append(m.body['id'])) \
        .on_stop_consuming(lambda: stopped.append(True)) \
        .build()

    consumer.consume()

    assert received == ['a', 'b', 'c']
    assert consumer.consumed_messages_count() == 3
    assert consumer.state is ConsumerState.STOPPED
    assert stopped == [True]


def test_consumer_with_nothing_seeded_stops(kafka):
    consumer = kafka.create_consumer(['orders']).build()

    consumer.consume()

    assert consumer.consumed_messages_count() == 0
    assert consumer.state is ConsumerState.STOPPED


def test_each_consumer_gets_the_seeded_messages(kafka):
    kafka.should_receive_messages([ConsumedMessage('orders', body={'n': n}) for n in range(2)])

    first = kafka.create_consumer(['orders']).build()
    second = kafka.create_consumer(['orders']).build()
    first.consume()
    second.consume()

    assert first.consumed_messages_count() == 2
    assert second.consumed_messages_count() == 2


def test_cancelled_stop_keeps_consuming(kafka):
    kafka.should_receive_messages([ConsumedMessage('orders', body={'n': n}) for n in range(3)])

    def handler(message):
        if message.body['n'] == 0:
            consumer.stop_consuming()
            consumer.cancel_stop_consume()

    consumer = kafka.create_consumer(['orders']).with_handler(handler).build()
    consumer.consume()

    assert consumer.consumed_messages_count() == 3


def test_dead_letters_are_recorded(kafka):
    kafka.should_receive_messages(ConsumedMessage('orders', key='k', body={'id': 1}))

    def handler(message):
        raise ValueError("invalid order")

    kafka.create_consumer(['orders']).with_handler(handler).with_dlq().build().consume()

    kafka.assert_published_on('orders-dlq', predicate=lambda m: m.headers['x-error-type'] == 'ValueError')
    assert kafka.published(topic='orders-dlq')[0].key == 'k'


def test_should_receive_messages_type_check(kafka):
    with pytest.raises(TypeError):
        kafka.should_receive_messages({'id': 1})


def test_should_receive_messages_accepts_any_iterable(kafka):
    kafka.should_receive_messages(Message(topic='orders', body={'n': n}) for n in range(3))
    received = []

    kafka.create_consumer(['orders']).with_handler(lambda m: received.append(m.body['n'])).build().consume()

    assert received == [0, 1, 2]


def test_published_with_mixed_body_key_types(kafka):
    kafka.publish().on_topic('orders').with_body_key(1, 'a').with_body_key('b', 2).send()

    matches = kafka.published(expected_message=Message(topic='orders', body={1: 'a', 'b': 2}))

    assert len(matches) == 1
    kafka.assert_published(Message(topic='orders', body={1: 'a', 'b': 2}))
    kafka.assert_published_times(1, Message(topic='orders', body={1: 'a', 'b': 2}))


def test_expected_message_matches_in_key_order(kafka):
    kafka.publish().on_topic('orders').with_body_key('id', 1).with_body_key('total', 10).send()

    assert len(kafka.published(expected_message=Message(topic='orders', body={'id': 1, 'total': 10}))) == 1
    assert kafka.published(expected_message=Message(topic='orders', body={'total': 10, 'id': 1})) == []


def test_recorded_messages_cannot_be_modified(kafka):
    kafka.publish().on_topic('orders').with_body_key('order', {'id': 1}).send()

    with pytest.raises(TypeError):
        kafka.published()[0].body['order']['id'] = 999

    kafka.assert_published(Message(topic='orders', body={'order': {'id': 1}}))


def test_empty_queue_waits_for_the_poll_timeout():
    sleeps = []
    source = QueueMessageSource([], sleep=sleeps.append)

    assert source.receive(0.5) is None
    assert source.receive(0) is None
    assert sleeps == [0.5]


def test_consumer_kept_running_past_last_message_idles(kafka):
    kafka.should_receive_messages(Message(topic='orders', body={'n': 1}))
    consumer = kafka.create_consumer(['orders']) \
        .stop_after_last_message(False) \
        .with_poll_timeout(0.01) \
        .with_max_time(0.05) \
        .build()

    consumer.consume()

    assert consumer.consumed_messages_count() == 1
    assert consumer.state is ConsumerState.STOPPED
