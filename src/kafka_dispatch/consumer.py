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
import time
from collections.abc import Mapping
from enum import Enum

from confluent_kafka import (TIMESTAMP_NOT_AVAILABLE,
                             Consumer as _ConsumerImpl,
                             KafkaError,
                             KafkaException,
                             TopicPartition)
from confluent_kafka.error import (ConsumeError,
                                   KeyDeserializationError,
                                   ValueDeserializationError)
from confluent_kafka.serialization import MessageField, SerializationContext

from .config import Configuration, get_settings
from .contracts import CanConsumeMessages
from .error import ConfigurationError, ConsumerError, TransportConnectionError, is_transient
from .message import ConsumedMessage, Message
from .serialization import KeyDeserializer

__all__ = ['Consumer', 'ConsumerState', 'KafkaMessageSource']

log = logging.getLogger(__name__)


class ConsumerState(Enum):
    """
    Lifecycle of a :py:class:`Consumer`.

    IDLE -> RUNNING -> STOP_REQUESTED -> STOPPED, where STOP_REQUESTED may
    go back to RUNNING when the stop request is cancelled.
    """
    IDLE = "idle"
    RUNNING = "running"
    STOP_REQUESTED = "stop_requested"
    STOPPED = "stopped"


def _decode_headers(headers):
    if not headers:
        return {}
    if isinstance(headers, dict):
        headers = headers.items()
    decoded = {}
    for name, value in headers:
        if isinstance(value, bytes):
            value = value.decode('utf_8', 'replace')
        decoded[name] = value
    return decoded


class KafkaMessageSource(object):
    """
    Receives messages from a transport consumer subscribed to the
    configured topics.

    Args:
        config (Configuration): Finalized consumer configuration.

        deserializer (Deserializer): Body deserializer.

        transport_factory (callable(dict), optional): Creates the transport
            consumer. Defaults to :py:class:`confluent_kafka.Consumer`.

    """
    def __init__(self, config, deserializer, transport_factory=None):
        self._config = config
        self._deserializer = deserializer
        self._key_deserializer = KeyDeserializer()
        self._transport_factory = transport_factory if transport_factory is not None else _ConsumerImpl
        self._consumer = None
        self._eof = False

    def open(self):
        try:
            self._consumer = self._transport_factory(self._config.consumer_options())
        except KafkaException as e:
            raise ConfigurationError("Invalid consumer configuration: {}".format(e)) from e

        kwargs = {}
        for name in ('on_assign', 'on_revoke'):
            callback = self._config.callback(name)
            if callback is not None:
                kwargs[name] = callback
        self._consumer.subscribe(list(self._config.topics), **kwargs)

    def receive(self, timeout):
        """
        Polls for the next message.

        Returns:
            ConsumedMessage or None on timeout and end of partition.

        Raises:
            ConsumerError: if the transport reported an error.

            KeyDeserializationError, ValueDeserializationError: if the
            message could not be deserialized.

        """
        msg = self._consumer.poll(timeout)
        if msg is None:
            return None

        error = msg.error()
        if error is not None:
            if error.code() == KafkaError._PARTITION_EOF:
                self._eof = True
                return None
            raise ConsumerError(error, kafka_message=msg)

        self._eof = False
        return self._deserialize(msg)

    def _deserialize(self, msg):
        headers = _decode_headers(msg.headers())
        ctx = SerializationContext(msg.topic(), MessageField.VALUE, headers)
        try:
            body = self._deserializer(msg.value(), ctx)
        except Exception as se:
            raise ValueDeserializationError(exception=se, kafka_message=msg)

        ctx.field = MessageField.KEY
        try:
            key = self._key_deserializer(msg.key(), ctx)
        except Exception as se:
            raise KeyDeserializationError(exception=se, kafka_message=msg)

        timestamp_type, timestamp = msg.timestamp()
        return ConsumedMessage(msg.topic(),
                               body=body,
                               key=key,
                               headers=headers,
                               partition=msg.partition(),
                               offset=msg.offset(),
                               timestamp=None if timestamp_type == TIMESTAMP_NOT_AVAILABLE else timestamp)

    def exhausted(self):
        """True once the end of a partition was reached with nothing newer."""
        return self._eof

    def commit(self, message):
        self._consumer.commit(offsets=[TopicPartition(message.topic, message.partition, message.offset + 1)],
                              asynchronous=False)

    def close(self):
        if self._consumer is not None:
            self._consumer.close()
            self._consumer = None


def _noop(message):
    return None


def _chain(middleware, next_handler):
    def handle(message):
        return middleware(message, next_handler)
    return handle


class Consumer(CanConsumeMessages):
    """
    Blocking consume loop with cooperative shutdown.

    :py:meth:`consume` occupies the calling thread until the loop stops.
    :py:meth:`stop_consuming` only takes effect at the next boundary, after
    the in-flight message has been fully processed; it never interrupts a
    handler. Hooks run synchronously on the consuming thread and must not
    block indefinitely.

    Args:
        config (Configuration): Finalized consumer configuration.

        source: Message source, :py:class:`KafkaMessageSource` or an
            in-memory replacement.

        handler (callable(ConsumedMessage), optional): Message handler.

        middlewares (list(callable(ConsumedMessage, next)), optional): Run
            around the handler, outermost first.

        dlq_dispatcher_factory (callable(Configuration), optional): Creates
            the dispatcher used to dead letter failed messages.

        settings (KafkaSettings, optional): Defaults to the process-wide
            settings.

    """
    def __init__(self, config, source, handler=None, middlewares=None,
                 dlq_dispatcher_factory=None, settings=None,
                 clock=time.monotonic, sleep=time.sleep):
        settings = settings if settings is not None else get_settings()

        self._config = config
        self._source = source
        self._handle = handler if handler is not None else _noop
        for middleware in reversed(list(middlewares or ())):
            self._handle = _chain(middleware, self._handle)
        self._dlq_dispatcher_factory = dlq_dispatcher_factory
        self._dlq_dispatcher = None
        self._max_poll_errors = settings['send_retries']
        self._retry_backoff = settings['retry_backoff']
        self._clock = clock
        self._sleep = sleep
        self._state = ConsumerState.IDLE
        self._consumed = 0
        self._started_at = None
        self._on_stop = None

    @property
    def config(self):
        return self._config

    @property
    def state(self):
        return self._state

    def on_stop_consuming(self, callback=None):
        """Sets a callable run once, when the loop stops."""
        self._on_stop = callback
        return self

    def consumed_messages_count(self):
        return self._consumed

    def stop_consuming(self):
        """
        Requests the loop to stop after the in-flight message. Has no effect
        unless the loop is running.
        """
        if self._state is ConsumerState.RUNNING:
            log.debug("Stop requested")
            self._state = ConsumerState.STOP_REQUESTED

    def cancel_stop_consume(self):
        """
        Cancels a stop request that was not honoured yet. Has no effect
        in any other state.
        """
        if self._state is ConsumerState.STOP_REQUESTED:
            log.debug("Stop request cancelled")
            self._state = ConsumerState.RUNNING

    def consume(self):
        """
        Consumes messages until stopped.

        Raises:
            RuntimeError: if the consumer was already started.

            ConsumerError: for non-transient transport errors.

            TransportConnectionError: if transient errors persist.

            Exception: whatever the handler raised, unless a dead letter
                topic is configured.

        """
        if self._state is not ConsumerState.IDLE:
            raise RuntimeError("Consumer cannot be started in state {}".format(self._state.name))

        self._state = ConsumerState.RUNNING
        self._started_at = self._clock()
        log.info("Consuming from %s", ', '.join(self._config.topics))
        try:
            self._source.open()
            self._run()
        finally:
            try:
                self._source.close()
            finally:
                self._state = ConsumerState.STOPPED
                log.info("Consumer stopped after %d messages", self._consumed)
                if self._on_stop is not None:
                    self._on_stop()

    def _run(self):
        poll_errors = 0
        while not self._at_boundary():
            message = None
            try:
                message = self._source.receive(self._config.poll_timeout)
                poll_errors = 0
            except ConsumeError as e:
                error = e.args[0]
                if not is_transient(error):
                    raise
                poll_errors += 1
                if poll_errors >= self._max_poll_errors:
                    raise TransportConnectionError(error, exception=e, attempts=poll_errors)
                log.warning("Transient consumer error (%d/%d): %s", poll_errors, self._max_poll_errors, error)
                self._sleep(self._retry_backoff * (2 ** (poll_errors - 1)))

            if message is not None:
                self._process(message)
                self._consumed += 1

    def _process(self, message):
        try:
            self._handle(message)
        except Exception as e:
            if self._config.dlq_topic is None:
                raise
            self._dead_letter(message, e)

        if not self._config.auto_commit:
            self._source.commit(message)

    def _dead_letter(self, message, exception):
        if self._dlq_dispatcher is None:
            self._dlq_dispatcher = self._dlq_dispatcher_factory(
                Configuration(brokers=self._config.brokers,
                              topics=[self._config.dlq_topic],
                              security_protocol=self._config.security_protocol,
                              sasl=self._config.sasl))

        body = message.body
        if not isinstance(body, (Mapping, bytes)):
            body = {'value': body}
        headers = dict(message.headers)
        headers.update({
            'x-error-type': type(exception).__name__,
            'x-error-message': str(exception),
            'x-original-topic': message.topic,
            'x-original-partition': str(message.partition),
            'x-original-offset': str(message.offset),
        })
        log.warning("Handler failed for message from %s, sending it to %s: %s",
                    message.topic, self._config.dlq_topic, exception)
        self._dlq_dispatcher.produce(Message(topic=self._config.dlq_topic,
                                             key=message.key,
                                             body=body,
                                             headers=headers))

    def _at_boundary(self):
        reason = None
        if self._state is ConsumerState.STOP_REQUESTED:
            reason = "stop requested"
        elif self._config.max_messages is not None and self._consumed >= self._config.max_messages:
            reason = "max messages reached"
        elif self._config.max_time is not None and self._clock() - self._started_at >= self._config.max_time:
            reason = "max time reached"
        elif self._config.stop_after_last_message and self._source.exhausted():
            reason = "no more messages"

        if reason is not None:
            log.debug("Stopping consumer: %s", reason)
            self._state = ConsumerState.STOPPED
            return True
        return False
