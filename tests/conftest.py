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

from collections import deque

import pytest

from confluent_kafka import TIMESTAMP_CREATE_TIME

from kafka_dispatch import KafkaSettings


class StubKafkaMessage(object):
    """Mimics the transport message returned by ``Consumer.poll()``."""
    def __init__(self, topic='topic', value=None, key=None, headers=None,
                 partition=0, offset=0, error=None, timestamp=1700000000000):
        self._topic = topic
        self._value = value
        self._key = key
        self._headers = headers
        self._partition = partition
        self._offset = offset
        self._error = error
        self._timestamp = timestamp

    def topic(self):
        return self._topic

    def value(self):
        return self._value

    def key(self):
        return self._key

    def headers(self):
        return self._headers

    def partition(self):
        return self._partition

    def offset(self):
        return self._offset

    def error(self):
        return self._error

    def timestamp(self):
        return TIMESTAMP_CREATE_TIME, self._timestamp


class StubProducer(object):
    """
    Stands in for ``confluent_kafka.Producer``; pass the instance as the
    ``transport_factory``.

    ``errors`` holds the delivery error of each successive produce call and
    ``raises`` the exception raised by it (None meaning success). Delivery
    reports are served on flush, unless ``stuck`` is set.
    """
    def __init__(self, errors=None, raises=None, stuck=False):
        self.conf = None
        self.produced = []
        self.flush_calls = 0
        self.poll_calls = 0
        self.stuck = stuck
        self._errors = list(errors or [])
        self._raises = list(raises or [])
        self._pending = []

    def __call__(self, conf):
        self.conf = conf
        return self

    def produce(self, topic, value=None, key=None, headers=None, on_delivery=None):
        if self._raises:
            exc = self._raises.pop(0)
            if exc is not None:
                raise exc
        self.produced.append({'topic': topic, 'value': value, 'key': key, 'headers': headers})
        error = self._errors.pop(0) if self._errors else None
        self._pending.append((on_delivery, error, StubKafkaMessage(topic, value, key)))

    def poll(self, timeout=None):
        self.poll_calls += 1
        return 0

    def flush(self, timeout=None):
        self.flush_calls += 1
        if self.stuck:
            return len(self._pending)
        pending, self._pending = self._pending, []
        for on_delivery, error, msg in pending:
            if on_delivery is not None:
                on_delivery(error, msg)
        return 0


class StubConsumer(object):
    """
    Stands in for ``confluent_kafka.Consumer``; pass the instance as the
    ``transport_factory``.

    ``polls`` lists what successive ``poll()`` calls return: a
    :py:class:`StubKafkaMessage`, None, or an exception to raise. Once
    exhausted ``poll()`` returns None.
    """
    def __init__(self, polls=None):
        self.conf = None
        self.topics = None
        self.subscribe_kwargs = None
        self.commits = []
        self.closed = False
        self._polls = deque(polls or [])

    def __call__(self, conf):
        self.conf = conf
        return self

    def subscribe(self, topics, **kwargs):
        self.topics = topics
        self.subscribe_kwargs = kwargs

    def poll(self, timeout=None):
        if not self._polls:
            return None
        item = self._polls.popleft()
        if isinstance(item, Exception):
            raise item
        return item

    def commit(self, offsets=None, asynchronous=True):
        self.commits.append((offsets, asynchronous))

    def close(self):
        self.closed = True


@pytest.fixture
def stub_producer():
    return StubProducer


@pytest.fixture
def stub_consumer():
    return StubConsumer


@pytest.fixture
def kafka_message():
    return StubKafkaMessage


@pytest.fixture
def settings():
    return KafkaSettings({
        'brokers': 'broker-1:9092',
        'retry_backoff': 0.0,
        'flush_timeout': 0.0,
        'clusters': {
            'payments': {
                'brokers': 'payments-1:9092,payments-2:9092',
                'debug': True,
                'compression': 'lz4',
                'options': {'acks': 'all'},
            },
        },
    })
