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
Body serializers used by the producer dispatcher and the consume loop.

All serializers follow the ``confluent_kafka.serialization`` calling
convention ``serializer(obj, SerializationContext)`` so any serializer from
that package (Avro, Protobuf, JSON Schema) may be plugged in as well.
"""

import json
from types import MappingProxyType

from confluent_kafka.serialization import (Deserializer,
                                           SerializationError,
                                           Serializer,
                                           StringDeserializer,
                                           StringSerializer)

__all__ = ['JsonDeserializer', 'JsonSerializer', 'KeyDeserializer',
           'KeySerializer', 'RawDeserializer', 'RawSerializer']


def _json_default(obj):
    if isinstance(obj, MappingProxyType):
        return dict(obj)
    raise TypeError("Object of type {} is not JSON serializable".format(type(obj).__name__))


class JsonSerializer(Serializer):
    """
    Serializes a message body mapping to UTF-8 encoded JSON.

    Raw ``bytes`` bodies are passed through untouched.

    Args:
        codec (str, optional): encoding scheme. Defaults to utf_8

    """
    def __init__(self, codec='utf_8'):
        self.codec = codec

    def __call__(self, obj, ctx=None):
        """
        Serializes ``obj`` as JSON bytes.

        Raises:
            SerializationError if ``obj`` can not be represented as JSON.

        Returns:
            bytes if obj is not None, otherwise None

        """
        if obj is None:
            return None
        if isinstance(obj, (bytes, bytearray)):
            return bytes(obj)

        try:
            return json.dumps(obj, default=_json_default).encode(self.codec)
        except (TypeError, ValueError) as e:
            raise SerializationError(str(e))


class JsonDeserializer(Deserializer):
    """
    Deserializes UTF-8 encoded JSON into Python objects.

    Args:
        codec (str, optional): encoding scheme. Defaults to utf_8

    """
    def __init__(self, codec='utf_8'):
        self.codec = codec

    def __call__(self, value, ctx=None):
        if value is None:
            return None

        try:
            return json.loads(value.decode(self.codec))
        except (UnicodeDecodeError, ValueError) as e:
            raise SerializationError(str(e))


class RawSerializer(Serializer):
    """
    Passes bytes through. Use with bodies that are already encoded.
    """
    def __call__(self, obj, ctx=None):
        if obj is None:
            return None
        if not isinstance(obj, (bytes, bytearray)):
            raise SerializationError("RawSerializer: expected bytes, got {}".format(type(obj).__name__))
        return bytes(obj)


class RawDeserializer(Deserializer):
    """
    Returns the received bytes unchanged.
    """
    def __call__(self, value, ctx=None):
        return value


class KeySerializer(Serializer):
    """
    Encodes str keys with :py:class:`StringSerializer`; bytes keys are
    passed through.
    """
    def __init__(self, codec='utf_8'):
        self._string_serializer = StringSerializer(codec)

    def __call__(self, obj, ctx=None):
        if obj is None or isinstance(obj, bytes):
            return obj
        return self._string_serializer(str(obj), ctx)


class KeyDeserializer(Deserializer):
    """
    Decodes keys with :py:class:`StringDeserializer`, falling back to the raw
    bytes when they are not valid text.
    """
    def __init__(self, codec='utf_8'):
        self._string_deserializer = StringDeserializer(codec)

    def __call__(self, value, ctx=None):
        if value is None:
            return None
        try:
            return self._string_deserializer(value, ctx)
        except (SerializationError, UnicodeError):
            return value
