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

from ._types import MessageHandler, Middleware
from .config import LOG_DEBUG, Configuration, Sasl, SecurityProtocol, get_settings
from .consumer import Consumer, KafkaMessageSource
from .error import ConfigurationError, InvalidTopicError
from .producer import ProducerDispatcher

__all__ = ['ConsumerBuilder']


class ConsumerBuilder(object):
    """
    Fluent builder for :py:class:`Consumer` instances.

    ``brokers`` and ``group_id`` fall back to the ``brokers`` and
    ``consumer_group_id`` settings; defaults are resolved once, here, and
    never looked up again.

    Args:
        brokers (str, optional): Comma separated ``host:port`` list.

        topics (list(str), optional): Topics to subscribe to.

        group_id (str, optional): Consumer group id.

        settings (KafkaSettings, optional): Defaults to the process-wide
            settings.

        source_factory (callable(Configuration, Deserializer), optional):
            Creates the message source. Defaults to
            :py:class:`KafkaMessageSource`.

        dispatcher_factory (callable(Configuration, Serializer, KafkaSettings), optional):
            Creates the dispatcher used for the dead letter topic. Defaults
            to :py:class:`ProducerDispatcher`.

    """
    def __init__(self, brokers=None, topics=None, group_id=None, settings=None,
                 source_factory=None, dispatcher_factory=None):
        self._settings = settings if settings is not None else get_settings()
        self._brokers = brokers if brokers is not None else self._settings['brokers']
        self._group_id = group_id if group_id is not None else self._settings['consumer_group_id']
        self._topics = []
        self.subscribe(topics or [])
        self._options = {}
        self._callbacks = []
        self._sasl = None
        self._security_protocol = None
        self._handler = None
        self._middlewares = []
        self._max_messages = None
        self._max_time = None
        self._auto_commit = self._settings['auto_commit']
        self._offset_reset = self._settings['offset_reset']
        self._dlq_topic = None
        self._stop_after_last_message = False
        self._poll_timeout = self._settings['poll_timeout']
        self._deserializer = self._settings['deserializer']
        self._on_stop = None
        self._source_factory = source_factory if source_factory is not None else KafkaMessageSource
        self._dispatcher_factory = dispatcher_factory if dispatcher_factory is not None else ProducerDispatcher

    @classmethod
    def create(cls, brokers=None, topics=None, group_id=None, settings=None):
        """Creates a new ConsumerBuilder instance."""
        return cls(brokers=brokers, topics=topics, group_id=group_id, settings=settings)

    def subscribe(self, *topics):
        """
        Adds topics to the subscription. Accepts topic names or lists of
        them; duplicates are ignored.
        """
        for topic in topics:
            names = [topic] if isinstance(topic, str) else list(topic)
            for name in names:
                if name not in self._topics:
                    self._topics.append(name)
        return self

    def with_brokers(self, brokers):
        self._brokers = brokers
        return self

    def with_consumer_group_id(self, group_id):
        self._group_id = group_id
        return self

    def with_handler(self, handler: MessageHandler) -> "ConsumerBuilder":
        """Sets the callable receiving every :py:class:`ConsumedMessage`."""
        self._handler = handler
        return self

    def with_middleware(self, middleware: Middleware) -> "ConsumerBuilder":
        """Adds ``middleware(message, next)`` around the handler."""
        self._middlewares.append(middleware)
        return self

    def with_max_messages(self, max_messages):
        if max_messages is not None and max_messages < 1:
            raise ConfigurationError("max_messages must be at least 1")
        self._max_messages = max_messages
        return self

    def with_max_time(self, seconds):
        if seconds is not None and seconds <= 0:
            raise ConfigurationError("max_time must be positive")
        self._max_time = seconds
        return self

    def with_auto_commit(self, enabled=True):
        self._auto_commit = enabled
        return self

    def with_offset_reset(self, offset_reset):
        self._offset_reset = offset_reset
        return self

    def with_dlq(self, topic=None):
        """
        Sends messages whose handler failed to ``topic`` instead of stopping.
        Defaults to ``<first topic>-dlq``.

        Raises:
            InvalidTopicError: if no topic is given and none is subscribed.

        """
        if topic is None:
            if not self._topics:
                raise InvalidTopicError("Subscribe to a topic before enabling the default dead letter topic.")
            topic = "{}-dlq".format(self._topics[0])
        self._dlq_topic = topic
        return self

    def with_sasl(self, username, password, mechanism, security_protocol=SecurityProtocol.SASL_PLAINTEXT):
        self._sasl = Sasl(username, password, mechanism, security_protocol)
        self._security_protocol = None
        return self

    def with_security_protocol(self, security_protocol):
        self._security_protocol = SecurityProtocol.parse(security_protocol)
        return self

    def with_option(self, name, value):
        self._options[name] = value
        return self

    def with_options(self, options):
        for name, value in options.items():
            self.with_option(name, value)
        return self

    def with_debug_enabled(self, enabled=True):
        if enabled:
            self.with_options({
                'log_level': LOG_DEBUG,
                'debug': 'all',
            })
        else:
            self._options.pop('log_level', None)
            self._options.pop('debug', None)
        return self

    def with_debug_disabled(self):
        return self.with_debug_enabled(False)

    def using_deserializer(self, deserializer):
        self._deserializer = deserializer
        return self

    def stop_after_last_message(self, enabled=True):
        """Stops the loop once the end of the subscribed partitions is reached."""
        self._stop_after_last_message = enabled
        return self

    def with_poll_timeout(self, seconds):
        self._poll_timeout = seconds
        return self

    def on_stop_consuming(self, callback):
        self._on_stop = callback
        return self

    def _add_callback(self, name, callback):
        self._callbacks.append((name, callback))
        return self

    def with_error_cb(self, callback):
        return self._add_callback('error_cb', callback)

    def with_stats_cb(self, callback):
        return self._add_callback('stats_cb', callback)

    def with_log_cb(self, logger):
        return self._add_callback('logger', logger)

    def with_offset_commit_cb(self, callback):
        """``callback(KafkaError, list(TopicPartition))`` after offsets are committed."""
        return self._add_callback('on_commit', callback)

    def with_rebalance_cb(self, on_assign=None, on_revoke=None):
        """Callbacks passed to the subscription, called on partition rebalance."""
        if on_assign is not None:
            self._add_callback('on_assign', on_assign)
        if on_revoke is not None:
            self._add_callback('on_revoke', on_revoke)
        return self

    def get_topics(self):
        return list(self._topics)

    def build_configuration(self):
        """
        Finalizes the builder state.

        Raises:
            InvalidTopicError: if no topic was subscribed.

        """
        if not self._topics:
            raise InvalidTopicError("No topic to subscribe to, call subscribe() before consuming.")

        return Configuration(brokers=self._brokers,
                             topics=self._topics,
                             security_protocol=self._security_protocol,
                             sasl=self._sasl,
                             options=self._options,
                             callbacks=self._callbacks,
                             group_id=self._group_id,
                             auto_commit=self._auto_commit,
                             offset_reset=self._offset_reset,
                             max_messages=self._max_messages,
                             max_time=self._max_time,
                             dlq_topic=self._dlq_topic,
                             stop_after_last_message=self._stop_after_last_message,
                             poll_timeout=self._poll_timeout)

    def build(self):
        """
        Returns a consumer bound to a snapshot of the builder state.

        Returns:
            Consumer

        """
        config = self.build_configuration()
        settings = self._settings
        dispatcher_factory = self._dispatcher_factory

        def dlq_dispatcher(dlq_config):
            return dispatcher_factory(dlq_config, settings['serializer'], settings)

        consumer = Consumer(config,
                            self._source_factory(config, self._deserializer),
                            handler=self._handler,
                            middlewares=self._middlewares,
                            dlq_dispatcher_factory=dlq_dispatcher,
                            settings=settings)
        if self._on_stop is not None:
            consumer.on_stop_consuming(self._on_stop)
        return consumer
