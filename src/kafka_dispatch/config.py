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
Configuration values: the immutable :py:class:`Configuration` handed to
dispatchers and consumers, SASL credentials, and the process-wide
:py:class:`KafkaSettings` that supplies defaults.
"""

import os
from copy import deepcopy
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Optional, Tuple

from ._types import CallbackHook, ClusterSettings
from .error import ConfigurationError, UnknownClusterError
from .serialization import JsonDeserializer, JsonSerializer

__all__ = ['Configuration', 'KafkaSettings', 'Sasl', 'SecurityProtocol',
           'configure', 'get_settings']

# librdkafka syslog level used when debug is enabled
LOG_DEBUG = 7

# Callback hooks passed through the client configuration dict
PRODUCER_CALLBACKS = ('error_cb', 'stats_cb', 'throttle_cb', 'logger', 'on_delivery')
CONSUMER_CALLBACKS = ('error_cb', 'stats_cb', 'throttle_cb', 'logger', 'on_commit')
# Callback hooks passed to Consumer.subscribe() instead
SUBSCRIBE_CALLBACKS = ('on_assign', 'on_revoke')


class SecurityProtocol(Enum):
    """
    Transport security protocols understood by the client.
    """
    PLAINTEXT = "PLAINTEXT"
    SASL_PLAINTEXT = "SASL_PLAINTEXT"
    SASL_SSL = "SASL_SSL"
    SSL = "SSL"

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ConfigurationError("Unknown security protocol {!r}, expected one of {}".format(
                value, [p.value for p in cls]))


class Sasl(object):
    """
    SASL credentials.

    Args:
        username (str): SASL username.

        password (str): SASL password.

        mechanism (str): SASL mechanism, e.g. ``PLAIN`` or ``SCRAM-SHA-256``.

        security_protocol (str or SecurityProtocol, optional): Defaults to
            ``SASL_PLAINTEXT``.

    """
    __slots__ = ['_username', '_password', '_mechanism', '_security_protocol']

    def __init__(self, username, password, mechanism,
                 security_protocol=SecurityProtocol.SASL_PLAINTEXT):
        self._username = username
        self._password = password
        self._mechanism = mechanism
        self._security_protocol = SecurityProtocol.parse(security_protocol)

    @property
    def username(self):
        return self._username

    @property
    def password(self):
        return self._password

    @property
    def mechanism(self):
        return self._mechanism

    @property
    def security_protocol(self):
        return self._security_protocol

    def to_options(self):
        return {
            'sasl.username': self._username,
            'sasl.password': self._password,
            'sasl.mechanism': self._mechanism,
            'security.protocol': self._security_protocol.value,
        }

    def __eq__(self, other):
        if not isinstance(other, Sasl):
            return NotImplemented
        return (self._username, self._password, self._mechanism, self._security_protocol) == \
            (other._username, other._password, other._mechanism, other._security_protocol)

    def __hash__(self):
        return hash((self._username, self._mechanism, self._security_protocol))

    def __repr__(self):
        # never print the password
        return "Sasl(username={!r}, mechanism={!r}, security_protocol={})".format(
            self._username, self._mechanism, self._security_protocol.value)


def _broker_list(brokers):
    if brokers is None:
        return ()
    if isinstance(brokers, str):
        return tuple(b.strip() for b in brokers.split(',') if b.strip())
    return tuple(brokers)


class Configuration(object):
    """
    Immutable snapshot of everything needed to create a producer or a
    consumer.

    Configurations are only created by builders. Option names are unique,
    custom options take precedence over the options derived from the other
    fields when rendered with :py:meth:`producer_options` or
    :py:meth:`consumer_options`.

    Args:
        brokers (str or list(str)): Comma separated ``host:port`` list.

        topics (list(str), optional): Target topics.

        security_protocol (str or SecurityProtocol, optional): Defaults to
            the SASL protocol when ``sasl`` is set, PLAINTEXT otherwise.

        sasl (Sasl, optional): SASL credentials.

        options (dict, optional): Arbitrary client options.

        callbacks (list((str, callable)), optional): Callback hooks.

    Keyword Args:
        group_id (str): Consumer group id.

        auto_commit (bool): Let the client commit offsets.

        offset_reset (str): ``auto.offset.reset`` value.

        max_messages (int): Stop consuming after this many messages.

        max_time (float): Stop consuming after this many seconds.

        dlq_topic (str): Dead letter topic for failed messages.

        stop_after_last_message (bool): Stop when the end of the
            subscribed partitions is reached.

        poll_timeout (float): Seconds to block per poll.

    """
    __slots__ = ['_brokers', '_topics', '_security_protocol', '_sasl',
                 '_options', '_callbacks', '_group_id', '_auto_commit',
                 '_offset_reset', '_max_messages', '_max_time', '_dlq_topic',
                 '_stop_after_last_message', '_poll_timeout']

    def __init__(self, brokers, topics=None, security_protocol=None, sasl=None,
                 options=None, callbacks=None, group_id=None, auto_commit=True,
                 offset_reset=None, max_messages=None, max_time=None,
                 dlq_topic=None, stop_after_last_message=False, poll_timeout=1.0):
        if security_protocol is None:
            security_protocol = sasl.security_protocol if sasl is not None else SecurityProtocol.PLAINTEXT

        self._brokers = _broker_list(brokers)
        self._topics = tuple(topics or ())
        self._security_protocol = SecurityProtocol.parse(security_protocol)
        self._sasl = sasl
        self._options = MappingProxyType(dict(options or {}))
        self._callbacks = tuple(callbacks or ())
        self._group_id = group_id
        self._auto_commit = auto_commit
        self._offset_reset = offset_reset
        self._max_messages = max_messages
        self._max_time = max_time
        self._dlq_topic = dlq_topic
        self._stop_after_last_message = stop_after_last_message
        self._poll_timeout = poll_timeout

    brokers = property(lambda self: self._brokers)
    topics = property(lambda self: self._topics)
    security_protocol = property(lambda self: self._security_protocol)
    sasl = property(lambda self: self._sasl)
    options = property(lambda self: self._options)
    group_id = property(lambda self: self._group_id)
    auto_commit = property(lambda self: self._auto_commit)
    offset_reset = property(lambda self: self._offset_reset)
    max_messages = property(lambda self: self._max_messages)
    max_time = property(lambda self: self._max_time)
    dlq_topic = property(lambda self: self._dlq_topic)
    stop_after_last_message = property(lambda self: self._stop_after_last_message)
    poll_timeout = property(lambda self: self._poll_timeout)

    @property
    def callbacks(self) -> Tuple[CallbackHook, ...]:
        return self._callbacks

    def callback(self, name: str) -> Optional[Callable[..., Any]]:
        """Returns the last hook registered under ``name``, or None."""
        found = None
        for hook_name, fn in self._callbacks:
            if hook_name == name:
                found = fn
        return found

    def _base_options(self, callback_names):
        conf = {
            'bootstrap.servers': ','.join(self._brokers),
            'security.protocol': self._security_protocol.value,
        }
        if self._sasl is not None:
            conf.update(self._sasl.to_options())
            conf['security.protocol'] = self._security_protocol.value

        for name, fn in self._callbacks:
            if name in callback_names:
                conf[name] = fn
        return conf

    def producer_options(self):
        """
        Renders the producer client configuration dict.

        Returns:
            dict

        """
        conf = self._base_options(PRODUCER_CALLBACKS)
        conf.update(self._options)
        return conf

    def consumer_options(self):
        """
        Renders the consumer client configuration dict.

        Returns:
            dict

        """
        conf = self._base_options(CONSUMER_CALLBACKS)
        if self._group_id is not None:
            conf['group.id'] = self._group_id
        conf['enable.auto.commit'] = bool(self._auto_commit)
        if self._offset_reset is not None:
            conf['auto.offset.reset'] = self._offset_reset
        if self._stop_after_last_message:
            conf['enable.partition.eof'] = True
        conf.update(self._options)
        return conf

    def _fields(self):
        return (self._brokers, self._topics, self._security_protocol, self._sasl,
                dict(self._options), self._callbacks, self._group_id,
                self._auto_commit, self._offset_reset, self._max_messages,
                self._max_time, self._dlq_topic, self._stop_after_last_message,
                self._poll_timeout)

    def __eq__(self, other):
        if not isinstance(other, Configuration):
            return NotImplemented
        return self._fields() == other._fields()

    def __ne__(self, other):
        result = self.__eq__(other)
        if result is NotImplemented:
            return result
        return not result

    __hash__ = None

    def __repr__(self):
        return "Configuration(brokers={!r}, topics={!r}, security_protocol={})".format(
            ','.join(self._brokers), list(self._topics), self._security_protocol.value)


def _to_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


# KAFKA_* environment variable -> (property, converter)
ENVIRONMENT = {
    'KAFKA_BROKERS': ('brokers', str),
    'KAFKA_CONSUMER_GROUP_ID': ('consumer_group_id', str),
    'KAFKA_OFFSET_RESET': ('offset_reset', str),
    'KAFKA_AUTO_COMMIT': ('auto_commit', _to_bool),
    'KAFKA_COMPRESSION_TYPE': ('compression', str),
    'KAFKA_DEBUG': ('debug', _to_bool),
    'KAFKA_FLUSH_TIMEOUT': ('flush_timeout', float),
    'KAFKA_FLUSH_RETRIES': ('flush_retries', int),
    'KAFKA_SEND_RETRIES': ('send_retries', int),
    'KAFKA_RETRY_BACKOFF': ('retry_backoff', float),
    'KAFKA_POLL_TIMEOUT': ('poll_timeout', float),
}

OFFSET_RESET_VALUES = ('smallest', 'earliest', 'beginning', 'largest', 'latest', 'end', 'error')


class KafkaSettings(object):
    """
    Process-wide defaults.

    The source dict is copied prior to processing; known properties fall back
    to the defaults declared in :py:attr:`properties` and any unknown property
    results in a ``ValueError``.

    ``clusters`` maps a cluster identifier to its static settings::

        {'payments': {'brokers': 'kafka-1:9092', 'debug': False,
                      'compression': 'lz4', 'options': {'acks': 'all'}}}

    Args:
        data (dict, optional): Source configuration dict.

    Raises:
        ConfigurationError: if there are unrecognized properties or a value
            fails validation.

    """
    properties = {
        'brokers': 'localhost:9092',
        'consumer_group_id': 'group',
        'offset_reset': 'latest',
        'auto_commit': True,
        'compression': 'snappy',
        'debug': False,
        'flush_timeout': 1.0,
        'flush_retries': 10,
        'send_retries': 3,
        'retry_backoff': 0.1,
        'poll_timeout': 1.0,
        'clusters': None,
        'serializer': None,
        'deserializer': None,
    }

    cluster_properties = {
        'brokers': None,
        'debug': False,
        'compression': 'snappy',
        'options': None,
    }

    def __init__(self, data=None):
        self.data = {}

        # shallow copy to keep referenced serializers in tact
        _data = dict(data or {})
        self.update(_data)

        if len(_data) > 0:
            raise ConfigurationError("Unrecognized propert{} {}".format(
                "y" if len(_data) == 1 else "ies",
                [k for k in _data.keys()]))

        self.validate()

    @classmethod
    def from_env(cls, environ=None, **overrides):
        """
        Builds settings from ``KAFKA_*`` environment variables.

        Args:
            environ (dict, optional): Defaults to ``os.environ``.

        Keyword Args:
            Any property, taking precedence over the environment.

        """
        environ = os.environ if environ is None else environ
        data = {}
        for variable, (prop, convert) in ENVIRONMENT.items():
            if variable in environ:
                try:
                    data[prop] = convert(environ[variable])
                except ValueError:
                    raise ConfigurationError("Invalid value {!r} for {}".format(
                        environ[variable], variable))
        data.update(overrides)
        return cls(data)

    def __getitem__(self, key):
        return self.data[key]

    def get(self, key, default=None):
        return self.data.get(key, default)

    def update(self, data):
        """
        Updates only known values from source dict.

        This method intentionally mutates the source dict. If called directly
        be sure to copy the original first.
        """
        for prop, value in self.properties.items():
            self.data[prop] = data.pop(prop, value)

    def validate(self):
        brokers = self.data['brokers']
        if not isinstance(brokers, str) or not brokers.strip():
            raise ConfigurationError("brokers must be a non-empty string, got {!r}".format(brokers))

        if self.data['offset_reset'] not in OFFSET_RESET_VALUES:
            raise ConfigurationError("offset_reset must be one of {}, got {!r}".format(
                list(OFFSET_RESET_VALUES), self.data['offset_reset']))

        if self.data['send_retries'] < 1:
            raise ConfigurationError("send_retries must be at least 1")
        if self.data['flush_retries'] < 1:
            raise ConfigurationError("flush_retries must be at least 1")
        for prop in ('flush_timeout', 'retry_backoff', 'poll_timeout'):
            if self.data[prop] < 0:
                raise ConfigurationError("{} must not be negative".format(prop))

        if self.data['serializer'] is None:
            self.data['serializer'] = JsonSerializer()
        if self.data['deserializer'] is None:
            self.data['deserializer'] = JsonDeserializer()

        clusters = {}
        for name, cluster in (self.data['clusters'] or {}).items():
            clusters[name] = self._cluster(name, cluster)
        self.data['clusters'] = MappingProxyType(clusters)

    def _cluster(self, name, cluster):
        _cluster = dict(cluster)
        defaults = dict(self.cluster_properties,
                        debug=self.data['debug'],
                        compression=self.data['compression'])
        resolved = {}
        for prop, value in defaults.items():
            resolved[prop] = _cluster.pop(prop, value)
        if len(_cluster) > 0:
            raise ConfigurationError("Unrecognized cluster [{}] propert{} {}".format(
                name, "y" if len(_cluster) == 1 else "ies", list(_cluster.keys())))
        if not resolved['brokers']:
            raise ConfigurationError("Cluster [{}] has no brokers".format(name))
        resolved['options'] = deepcopy(dict(resolved['options'] or {}))
        return MappingProxyType(resolved)

    def cluster(self, name: str) -> ClusterSettings:
        """
        Looks up the static settings of a cluster.

        Raises:
            UnknownClusterError: if ``name`` is not defined.

        """
        try:
            return self.data['clusters'][name]
        except KeyError:
            raise UnknownClusterError(name)

    def default_cluster(self, brokers=None):
        """
        Static settings for an ad-hoc cluster: ``brokers``, or the
        ``brokers`` setting, with the default ``debug`` and ``compression``.
        """
        return self._cluster('default', {'brokers': brokers or self.data['brokers']})


_settings = None


def configure(settings=None):
    """
    Installs the process-wide settings.

    Args:
        settings (KafkaSettings or dict, optional): Defaults are used when
            omitted.

    Returns:
        KafkaSettings: the installed settings.

    """
    global _settings
    if not isinstance(settings, KafkaSettings):
        settings = KafkaSettings(settings)
    _settings = settings
    return _settings


def get_settings():
    """Returns the process-wide settings, installing defaults on first use."""
    if _settings is None:
        return configure()
    return _settings
