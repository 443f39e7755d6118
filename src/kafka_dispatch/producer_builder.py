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

import logging
from typing import Any, Callable

from ._types import DeliveryCallback
from .config import LOG_DEBUG, Configuration, Sasl, SecurityProtocol, get_settings
from .error import InvalidTopicError
from .message import Message, MessageBatch
from .producer import ProducerDispatcher

__all__ = ['ProducerBuilder']

log = logging.getLogger(__name__)


class ProducerBuilder(object):
    """
    Fluent builder accumulating everything needed to publish a message.

    Builder state is private and mutable; :py:meth:`build` copies it into an
    immutable :py:class:`Configuration` and a fresh :py:class:`Message`, so
    later builder calls never affect what was already sent. A builder is
    meant to be used by a single flow and is not thread safe.

    Example::

        ProducerBuilder(brokers='localhost:9092') \\
            .on_topic('orders') \\
            .with_kafka_key('42') \\
            .with_body_key('id', 42) \\
            .send()

    Args:
        brokers (str, optional): Comma separated ``host:port`` list. Defaults
            to the ``brokers`` setting.

        settings (KafkaSettings, optional): Defaults to the process-wide
            settings. Resolved once, at construction.

        dispatcher_factory (callable(Configuration, Serializer, KafkaSettings), optional):
            Creates the dispatcher that sends the finalized messages.
            Defaults to :py:class:`ProducerDispatcher`.

    """
    def __init__(self, brokers=None, settings=None, dispatcher_factory=None):
        self._settings = settings if settings is not None else get_settings()
        self._brokers = brokers if brokers is not None else self._settings['brokers']
        self._topic = None
        self._options = {}
        self._callbacks = []
        self._sasl = None
        self._security_protocol = None
        self._message = Message()
        self._serializer = self._settings['serializer']
        self._dispatcher_factory = dispatcher_factory if dispatcher_factory is not None else ProducerDispatcher
        self._dispatcher = None
        self._dispatcher_key = None
        self.last_batch_result = None

    @classmethod
    def create(cls, cluster, settings=None, dispatcher_factory=None):
        """
        Returns a builder pre-populated with the static settings of a
        cluster.

        Args:
            cluster (dict): ``brokers``, ``debug``, ``compression`` and
                ``options`` as found in the ``clusters`` setting.

        """
        return cls(settings=settings, dispatcher_factory=dispatcher_factory) \
            .with_brokers(cluster['brokers']) \
            .with_debug_enabled(bool(cluster.get('debug', False))) \
            .with_config_option('compression.codec', cluster.get('compression', 'snappy')) \
            .with_config_options(cluster.get('options') or {})

    def with_brokers(self, brokers):
        """Sets the brokers to be used."""
        self._brokers = brokers
        return self

    def on_topic(self, topic):
        """Sets the topic to publish the message to."""
        self._topic = topic
        return self

    def with_config_option(self, name, value):
        """Sets a client configuration option, replacing any previous value."""
        self._options[name] = value
        return self

    def with_config_options(self, options):
        for name, value in options.items():
            self.with_config_option(name, value)
        return self

    def with_headers(self, headers=None):
        """Replaces the message headers."""
        self._message = self._message.with_headers(headers or {})
        return self

    def with_kafka_key(self, key):
        self._message = self._message.with_key(key)
        return self

    def with_body_key(self, key, value):
        """Sets a single field of the message body."""
        self._message = self._message.with_body_key(key, value)
        return self

    def with_message(self, message):
        """Replaces the message to be produced."""
        self._message = message
        return self

    def with_debug_enabled(self, enabled=True):
        """
        Turns client debugging on or off.

        Enabling sets the ``log_level`` and ``debug`` options; disabling
        removes both of them.
        """
        if enabled:
            self.with_config_options({
                'log_level': LOG_DEBUG,
                'debug': 'all',
            })
        else:
            self._options.pop('log_level', None)
            self._options.pop('debug', None)
        return self

    def with_debug_disabled(self):
        return self.with_debug_enabled(False)

    def with_sasl(self, username, password, mechanism, security_protocol=SecurityProtocol.SASL_PLAINTEXT):
        """Sets the SASL credentials, replacing any previous ones."""
        self._sasl = Sasl(username, password, mechanism, security_protocol)
        self._security_protocol = None
        return self

    def with_security_protocol(self, security_protocol):
        self._security_protocol = SecurityProtocol.parse(security_protocol)
        return self

    def using_serializer(self, serializer):
        """Sets the serializer turning the message body into bytes."""
        self._serializer = serializer
        return self

    def _add_callback(self, name: str, callback: Callable[..., Any]) -> "ProducerBuilder":
        self._callbacks.append((name, callback))
        return self

    def with_error_cb(self, callback):
        """``callback(KafkaError)`` for global client errors."""
        return self._add_callback('error_cb', callback)

    def with_stats_cb(self, callback):
        """``callback(str)`` receiving JSON statistics every ``statistics.interval.ms``."""
        return self._add_callback('stats_cb', callback)

    def with_throttle_cb(self, callback):
        return self._add_callback('throttle_cb', callback)

    def with_dr_msg_cb(self, callback: DeliveryCallback) -> "ProducerBuilder":
        """``callback(KafkaError, Message)`` called with every delivery report."""
        return self._add_callback('on_delivery', callback)

    def with_log_cb(self, logger):
        """Forwards client logs to ``logger`` (a :py:class:`logging.Logger`)."""
        return self._add_callback('logger', logger)

    def get_topic(self):
        """
        Returns the topic the message will be published to.

        Raises:
            InvalidTopicError: if :py:meth:`on_topic` was never called.

        """
        if self._topic is None:
            raise InvalidTopicError()
        return self._topic

    def _configuration(self, topic):
        return Configuration(brokers=self._brokers,
                             topics=[topic],
                             security_protocol=self._security_protocol,
                             sasl=self._sasl,
                             options=self._options,
                             callbacks=self._callbacks)

    def build(self):
        """
        Finalizes the builder state.

        Returns:
            (Configuration, Message): The configuration and the message to
            send, neither shares state with the builder.

        """
        topic = self.get_topic()
        return self._configuration(topic), self._message.with_topic(topic)

    def _dispatcher_for(self, config):
        key = (config, self._serializer)
        if self._dispatcher is None or self._dispatcher_key[0] != config \
                or self._dispatcher_key[1] is not self._serializer:
            self._dispatcher = self._dispatcher_factory(config, self._serializer, self._settings)
            self._dispatcher_key = key
        return self._dispatcher

    def send(self):
        """
        Produces the message.

        Returns:
            bool: True once the message was accepted.

        Raises:
            InvalidTopicError: if no topic was set.

            CouldNotPublishMessageError: if the message was rejected.

            TransportConnectionError: if the cluster could not be reached.

        """
        config, message = self.build()
        log.debug("Sending message to topic %s", message.topic)
        return self._dispatcher_for(config).produce(message)

    def send_batch(self, batch):
        """
        Produces a batch of messages.

        Messages without a topic go to the batch topic, or to the builder
        topic. The per-item outcome is kept in :py:attr:`last_batch_result`.

        Args:
            batch (MessageBatch or list(Message)): Messages to send.

        Returns:
            int: number of messages accepted.

        Raises:
            InvalidTopicError: if neither the batch nor the builder has a
                topic.

        """
        if not isinstance(batch, MessageBatch):
            batch = _as_batch(batch)

        topic = batch.topic or self._topic
        if topic is None:
            raise InvalidTopicError("No topic was set on the batch or the builder.")

        messages = batch.resolve(topic)
        dispatcher = self._dispatcher_for(self._configuration(topic))
        log.debug("Sending batch of %d messages to topic %s", len(messages), topic)
        accepted = dispatcher.produce_batch(messages)
        self.last_batch_result = getattr(dispatcher, 'last_batch_result', None)
        return accepted


def _as_batch(messages):
    batch = MessageBatch()
    for message in messages:
        batch.push(message)
    return batch
