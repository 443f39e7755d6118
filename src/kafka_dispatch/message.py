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

"""
Message value objects handed between builders, dispatchers and consumers.
"""

import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import Optional

from ._types import BodyType, HeadersType, KeyType

__all__ = ['ConsumedMessage', 'Message', 'MessageBatch']


def _canonical(value):
    # Mappings become ordered [key, value] pairs so that keys of any type
    # are kept as-is and insertion order takes part in equality.
    if isinstance(value, Mapping):
        return {'__map__': [[_canonical(k), _canonical(v)] for k, v in value.items()]}
    if isinstance(value, (list, tuple)):
        return [_canonical(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return {'__set__': sorted((_canonical(v) for v in value), key=repr)}
    if isinstance(value, (bytes, bytearray)):
        return {'__bytes__': bytes(value).hex()}
    return value


def _json_default(obj):
    return {'__repr__': repr(obj)}


def _freeze(value):
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, set):
        return frozenset(value)
    if isinstance(value, bytearray):
        return bytes(value)
    return value


def _thaw(value):
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    if isinstance(value, tuple):
        return [_thaw(v) for v in value]
    if isinstance(value, frozenset):
        return set(value)
    return value


def _freeze_body(body):
    if body is None:
        return MappingProxyType({})
    if isinstance(body, (bytes, bytearray)):
        return bytes(body)
    return _freeze(dict(body))


def _thaw_body(body):
    if isinstance(body, bytes):
        return body
    return _thaw(body)


class Message(object):
    """
    An immutable unit of data produced to a Kafka topic.

    Every ``with_*`` method returns a new Message, the receiver is never
    modified. This allows a Message to be handed to a dispatcher (or kept by
    the test fake) without the risk of later edits leaking into it.

    Args:
        topic (str, optional): Topic the message is produced to. Required by
            the time the message is sent.

        key (str or bytes, optional): Message key.

        body (dict or bytes, optional): Ordered field mapping or raw bytes.

        headers (dict, optional): Message headers, insertion order preserved.

    """
    __slots__ = ['_topic', '_key', '_body', '_headers']

    def __init__(self, topic: Optional[str] = None, key: KeyType = None,
                 body: BodyType = None, headers: Optional[HeadersType] = None):
        self._topic = topic
        self._key = key
        self._body = _freeze_body(body)
        self._headers = MappingProxyType(dict(headers or {}))

    @property
    def topic(self):
        return self._topic

    @property
    def key(self):
        return self._key

    @property
    def body(self):
        return self._body

    @property
    def headers(self):
        return self._headers

    def _replace(self, **changes):
        fields = {
            'topic': self._topic,
            'key': self._key,
            'body': _thaw_body(self._body),
            'headers': dict(self._headers),
        }
        fields.update(changes)
        return Message(**fields)

    def with_topic(self, topic):
        return self._replace(topic=topic)

    def with_key(self, key):
        return self._replace(key=key)

    def with_headers(self, headers):
        """Returns a copy whose headers are replaced by ``headers``."""
        return self._replace(headers=dict(headers or {}))

    def with_header(self, name, value):
        headers = dict(self._headers)
        headers[name] = value
        return self._replace(headers=headers)

    def with_body(self, body):
        return self._replace(body=body)

    def with_body_key(self, key, value):
        """
        Returns a copy with ``key`` set to ``value`` in the body mapping.

        Raises:
            TypeError: if the body holds raw bytes.

        """
        if isinstance(self._body, bytes):
            raise TypeError("Cannot set body key {!r} on a raw bytes body".format(key))
        body = _thaw_body(self._body)
        body[key] = value
        return self._replace(body=body)

    def to_dict(self):
        """
        Full structural representation of the message.

        Returns:
            dict: ``topic``, ``key``, ``headers`` and ``body``

        """
        return {
            'topic': self._topic,
            'key': self._key,
            'headers': dict(self._headers),
            'body': _thaw_body(self._body),
        }

    def canonical(self):
        """
        Canonical serialized form, two messages with the same content always
        produce the same string.

        Header and body keys are compared in insertion order and keep their
        type, so ``{1: 'a'}`` and ``{'1': 'a'}`` are different bodies.
        """
        return json.dumps(_canonical(self.to_dict()),
                          separators=(',', ':'), default=_json_default)

    def __eq__(self, other):
        if not isinstance(other, Message):
            return NotImplemented
        return self.canonical() == other.canonical()

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    def __hash__(self):
        return hash(self.canonical())

    def __repr__(self):
        return "Message(topic={!r}, key={!r}, headers={!r}, body={!r})".format(
            self._topic, self._key, dict(self._headers),
            _thaw_body(self._body))


class ConsumedMessage(object):
    """
    A message received by a consumer, after deserialization.

    This class is typically not user instantiated outside of tests.

    :ivar str topic: Topic the message was read from
    :ivar int partition: Partition the message was read from
    :ivar int offset: Offset of the message within its partition
    :ivar key: Deserialized message key
    :ivar body: Deserialized message body
    :ivar dict headers: Message headers
    :ivar int timestamp: Message timestamp in ms since epoch, or None
    """
    __slots__ = ['_topic', '_partition', '_offset', '_key', '_body', '_headers', '_timestamp']

    def __init__(self, topic, body=None, key=None, headers=None,
                 partition=0, offset=None, timestamp=None):
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._key = key
        self._body = _freeze_body(body) if isinstance(body, (Mapping, bytes, bytearray)) else _freeze(body)
        self._headers = MappingProxyType(dict(headers or {}))
        self._timestamp = timestamp

    @classmethod
    def from_message(cls, message, partition=0, offset=None):
        """Builds a ConsumedMessage carrying the content of a produced Message."""
        return cls(message.topic,
                   body=_thaw_body(message.body),
                   key=message.key,
                   headers=dict(message.headers),
                   partition=partition,
                   offset=offset)

    @property
    def topic(self):
        return self._topic

    @property
    def partition(self):
        return self._partition

    @property
    def offset(self):
        return self._offset

    @property
    def key(self):
        return self._key

    @property
    def body(self):
        return self._body

    @property
    def headers(self):
        return self._headers

    @property
    def timestamp(self):
        return self._timestamp

    def to_dict(self):
        body = _thaw(self._body)
        return {
            'topic': self._topic,
            'partition': self._partition,
            'offset': self._offset,
            'key': self._key,
            'headers': dict(self._headers),
            'body': body,
            'timestamp': self._timestamp,
        }

    def __repr__(self):
        return "ConsumedMessage(topic={!r}, partition={!r}, offset={!r}, key={!r})".format(
            self._topic, self._partition, self._offset, self._key)


class MessageBatch(object):
    """
    An ordered collection of Messages sent with a single
    :py:func:`ProducerBuilder.send_batch` call.

    Messages pushed without a topic are produced to the batch topic, or to
    the builder topic when the batch has none.

    Args:
        topic (str, optional): Topic for messages that do not carry one.

    """

    def __init__(self, topic=None):
        self._topic = topic
        self._messages = []

    @property
    def topic(self):
        return self._topic

    @property
    def messages(self):
        return tuple(self._messages)

    def on_topic(self, topic):
        self._topic = topic
        return self

    def push(self, message):
        if not isinstance(message, Message):
            raise TypeError("MessageBatch only accepts Message instances, got {}".format(
                type(message).__name__))
        self._messages.append(message)
        return self

    def is_empty(self):
        return not self._messages

    def resolve(self, default_topic=None):
        """
        Returns the batch messages with their effective topic filled in.

        Messages without a topic take the batch topic, then ``default_topic``.
        A message for which no topic can be resolved keeps ``topic=None``.

        Returns:
            list(Message)

        """
        topic = self._topic or default_topic
        return [m if m.topic is not None else m.with_topic(topic) for m in self._messages]

    def __len__(self):
        return len(self._messages)

    def __iter__(self):
        return iter(self._messages)
