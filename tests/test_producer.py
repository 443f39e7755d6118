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

from confluent_kafka import KafkaError, KafkaException
from confluent_kafka.serialization import SerializationError, Serializer

from kafka_dispatch import (BatchPublishPartialFailureError, ConfigurationError,
                            Configuration, CouldNotPublishMessageError,
                            InvalidTopicError, KafkaSettings, Message,
                            ProducerDispatcher, TransportConnectionError)


def with_backoff(settings, retry_backoff):
    data = dict(settings.data)
    data['retry_backoff'] = retry_backoff
    return KafkaSettings(data)


def make_dispatcher(settings, transport, sleeps=None, **kwargs):
    config = Configuration(brokers='broker-1:9092', topics=['orders'], **kwargs)
    return ProducerDispatcher(config,
                              settings=settings,
                              transport_factory=transport,
                              sleep=sleeps.append if sleeps is not None else (lambda s: None))


def test_produce(settings, stub_producer):
    """ Produced messages are serialized and flushed """
    transport = stub_producer()
    dispatcher = make_dispatcher(settings, transport)

    assert dispatcher.produce(Message(topic='orders', key='order-1',
                                      body={'id': 1}, headers={'trace': 'abc'}))

    assert transport.conf['bootstrap.servers'] == 'broker-1:9092'
    assert transport.produced == [{'topic': 'orders',
                                   'value': b'{"id": 1}',
                                   'key': b'order-1',
                                   'headers': {'trace': 'abc'}}]
    assert transport.flush_calls == 1


def test_produce_without_topic(settings, stub_producer):
    transport = stub_producer()
    dispatcher = make_dispatcher(settings, transport)

    with pytest.raises(InvalidTopicError):
        dispatcher.produce(Message(body={'id': 1}))
    assert transport.produced == []


def test_invalid_transport_configuration(settings):
    def refuse(conf):
        raise KafkaException(KafkaError(KafkaError._INVALID_ARG, 'No such configuration property'))

    with pytest.raises(ConfigurationError):
        make_dispatcher(settings, refuse)


def test_serialization_failure(settings, stub_producer):
    class Broken(Serializer):
        def __call__(self, obj, ctx=None):
            raise SerializationError("boom")

    transport = stub_producer()
    config = Configuration(brokers='broker-1:9092')
    dispatcher = ProducerDispatcher(config, serializer=Broken(), settings=settings,
                                    transport_factory=transport)

    with pytest.raises(CouldNotPublishMessageError) as e:
        dispatcher.produce(Message(topic='orders', body={'id': 1}))
    assert e.value.code == KafkaError._VALUE_SERIALIZATION
    assert transport.produced == []


def test_non_transient_delivery_error(settings, stub_producer):
    transport = stub_producer(errors=[KafkaError(KafkaError.MSG_SIZE_TOO_LARGE)])
    dispatcher = make_dispatcher(settings, transport)
    message = Message(topic='orders', body={'id': 1})

    with pytest.raises(CouldNotPublishMessageError) as e:
        dispatcher.produce(message)

    assert e.value.code == KafkaError.MSG_SIZE_TOO_LARGE
    assert e.value.failed_message is message
    assert len(transport.produced) == 1


def test_transient_error_is_retried(settings, stub_producer):
    transport = stub_producer(errors=[KafkaError(KafkaError._TRANSPORT)])
    sleeps = []
    dispatcher = make_dispatcher(with_backoff(settings, retry_backoff=0.1), transport, sleeps)

    assert dispatcher.produce(Message(topic='orders', body={'id': 1}))
    assert len(transport.produced) == 2
    assert sleeps == [0.1]


def test_transient_errors_exhaust_retries(settings, stub_producer):
    transport = stub_producer(errors=[KafkaError(KafkaError._ALL_BROKERS_DOWN)] * 3)
    sleeps = []
    dispatcher = make_dispatcher(with_backoff(settings, retry_backoff=0.1), transport, sleeps)

    with pytest.raises(TransportConnectionError) as e:
        dispatcher.produce(Message(topic='orders', body={'id': 1}))

    assert e.value.code == KafkaError._ALL_BROKERS_DOWN
    assert e.value.attempts == 3
    assert len(transport.produced) == 3
    assert sleeps == [0.1, 0.2]


def test_fatal_error_is_not_retried(settings, stub_producer):
    transport = stub_producer(raises=[KafkaException(KafkaError(KafkaError._TRANSPORT, fatal=True))])
    dispatcher = make_dispatcher(settings, transport)

    with pytest.raises(CouldNotPublishMessageError):
        dispatcher.produce(Message(topic='orders', body={'id': 1}))
    assert transport.produced == []


def test_local_queue_full_is_retried(settings, stub_producer):
    transport = stub_producer(raises=[BufferError('Local: Queue full')])
    dispatcher = make_dispatcher(settings, transport)

    assert dispatcher.produce(Message(topic='orders', body={'id': 1}))
    assert transport.poll_calls == 1
    assert len(transport.produced) == 1


def test_flush_timeout(settings, stub_producer):
    """ A message still queued after flushing is not produced twice """
    transport = stub_producer(stuck=True)
    dispatcher = make_dispatcher(settings, transport)

    with pytest.raises(CouldNotPublishMessageError) as e:
        dispatcher.produce(Message(topic='orders', body={'id': 1}))

    assert e.value.code == KafkaError._MSG_TIMED_OUT
    assert transport.flush_calls == settings['flush_retries']
    assert len(transport.produced) == 1


def test_delivery_callback_is_chained(settings, stub_producer):
    reports = []
    transport = stub_producer()
    dispatcher = make_dispatcher(settings, transport,
                                 callbacks=[('on_delivery', lambda err, msg: reports.append((err, msg.topic())))])

    dispatcher.produce(Message(topic='orders', body={'id': 1}))

    assert 'on_delivery' not in transport.conf
    assert reports == [(None, 'orders')]


def test_produce_batch(settings, stub_producer):
    transport = stub_producer()
    dispatcher = make_dispatcher(settings, transport)
    messages = [Message(topic='orders', body={'n': n}) for n in range(3)]

    assert dispatcher.produce_batch(messages) == 3

    result = dispatcher.last_batch_result
    assert result.submitted == 3
    assert result.accepted == 3
    assert result.error is None
    assert transport.flush_calls == 1


def test_produce_batch_partial_failure(settings, stub_producer):
    transport = stub_producer(errors=[None, KafkaError(KafkaError.MSG_SIZE_TOO_LARGE), None])
    dispatcher = make_dispatcher(settings, transport)
    messages = [Message(topic='orders', body={'n': n}) for n in range(3)]

    assert dispatcher.produce_batch(messages) == 2

    result = dispatcher.last_batch_result
    assert [r.delivered for r in result] == [True, False, True]
    assert result.failures[0].message is messages[1]
    assert isinstance(result.error, BatchPublishPartialFailureError)
    with pytest.raises(BatchPublishPartialFailureError):
        result.raise_for_failures()
    # failed items are not re-sent
    assert len(transport.produced) == 3


def test_produce_batch_items_without_topic(settings, stub_producer):
    transport = stub_producer()
    dispatcher = make_dispatcher(settings, transport)

    accepted = dispatcher.produce_batch([Message(topic='orders'), Message()])

    assert accepted == 1
    assert dispatcher.last_batch_result.failures[0].error.code() == KafkaError._UNKNOWN_TOPIC


def test_produce_batch_still_queued(settings, stub_producer):
    transport = stub_producer(stuck=True)
    dispatcher = make_dispatcher(settings, transport)

    assert dispatcher.produce_batch([Message(topic='orders'), Message(topic='orders')]) == 0
    assert all(r.error.code() == KafkaError._MSG_TIMED_OUT for r in dispatcher.last_batch_result)
