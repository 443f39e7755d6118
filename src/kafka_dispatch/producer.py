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
from functools import partial

from confluent_kafka import KafkaError, KafkaException, Producer
from confluent_kafka.serialization import (MessageField,
                                           SerializationContext,
                                           SerializationError)

from .config import get_settings
from .contracts import CanProduceMessages
from .error import (BatchPublishPartialFailureError,
                    ConfigurationError,
                    CouldNotPublishMessageError,
                    InvalidTopicError,
                    TransportConnectionError,
                    is_transient)
from .serialization import KeySerializer

__all__ = ['BatchResult', 'DeliveryReport', 'ProducerDispatcher']

log = logging.getLogger(__name__)


def _kafka_error(exc):
    if exc.args and isinstance(exc.args[0], KafkaError):
        return exc.args[0]
    return KafkaError(KafkaError._FAIL, str(exc))


class DeliveryReport(object):
    """
    Outcome of one message of a batch.

    :ivar int index: Position of the message in the batch
    :ivar Message message: The message
    :ivar KafkaError error: Why the message was rejected, None on success
    """
    __slots__ = ['index', 'message', 'error']

    def __init__(self, index, message, error=None):
        self.index = index
        self.message = message
        self.error = error

    @property
    def delivered(self):
        return self.error is None

    def __repr__(self):
        return "DeliveryReport(index={}, topic={!r}, error={})".format(
            self.index, self.message.topic, self.error)


class BatchResult(object):
    """
    Per-item outcome of :py:meth:`ProducerDispatcher.produce_batch`.

    Args:
        reports (list(DeliveryReport)): One report per submitted message, in
            submission order.

    """
    def __init__(self, reports):
        self._reports = tuple(reports)

    @property
    def reports(self):
        return self._reports

    @property
    def submitted(self):
        return len(self._reports)

    @property
    def accepted(self):
        return sum(1 for r in self._reports if r.delivered)

    @property
    def failures(self):
        return tuple(r for r in self._reports if not r.delivered)

    @property
    def error(self):
        """
        :py:class:`BatchPublishPartialFailureError` describing the rejected
        items, or None when the whole batch was accepted.
        """
        if not self.failures:
            return None
        return BatchPublishPartialFailureError(self)

    def raise_for_failures(self):
        error = self.error
        if error is not None:
            raise error

    def __len__(self):
        return len(self._reports)

    def __iter__(self):
        return iter(self._reports)


class ProducerDispatcher(CanProduceMessages):
    """
    Sends finalized messages through a single long-lived transport producer.

    Each send waits for the delivery report: the message is produced, then
    the producer is flushed up to ``flush_retries`` times. Transient errors
    (see :py:func:`kafka_dispatch.error.is_transient`) are retried up to
    ``send_retries`` attempts with exponential backoff; other errors are
    raised at once.

    Args:
        config (Configuration): Finalized configuration.

        serializer (Serializer, optional): Body serializer. Defaults to the
            process-wide setting.

        settings (KafkaSettings, optional): Defaults to the process-wide
            settings.

        transport_factory (callable(dict), optional): Creates the transport
            producer from the client configuration dict. Defaults to
            :py:class:`confluent_kafka.Producer`.

    Raises:
        ConfigurationError: if the transport refuses the configuration.

    """
    def __init__(self, config, serializer=None, settings=None, transport_factory=None, sleep=time.sleep):
        settings = settings if settings is not None else get_settings()

        self._config = config
        self._serializer = serializer if serializer is not None else settings['serializer']
        self._key_serializer = KeySerializer()
        self._flush_timeout = settings['flush_timeout']
        self._flush_retries = settings['flush_retries']
        self._send_retries = settings['send_retries']
        self._retry_backoff = settings['retry_backoff']
        self._sleep = sleep
        self.last_batch_result = None

        options = config.producer_options()
        # delivery reports are chained after our own bookkeeping
        self._delivery_cb = options.pop('on_delivery', None)

        factory = transport_factory if transport_factory is not None else Producer
        try:
            self._producer = factory(options)
        except KafkaException as e:
            raise ConfigurationError("Invalid producer configuration: {}".format(e)) from e

    @property
    def config(self):
        return self._config

    def _serialize(self, message):
        ctx = SerializationContext(message.topic, MessageField.KEY, dict(message.headers))
        key = self._key_serializer(message.key, ctx)
        ctx.field = MessageField.VALUE
        value = self._serializer(message.body, ctx)
        return key, value

    def _on_delivery(self, outcome, err, msg):
        outcome['error'] = err
        outcome['delivered'] = True
        if self._delivery_cb is not None:
            self._delivery_cb(err, msg)

    def _enqueue(self, message, key, value, on_delivery):
        self._producer.produce(message.topic, value=value, key=key,
                               headers=dict(message.headers) or None,
                               on_delivery=on_delivery)

    def _flush(self):
        remaining = 0
        for _ in range(self._flush_retries):
            remaining = self._producer.flush(self._flush_timeout)
            if remaining == 0:
                break
        return remaining

    def _backoff(self, attempt):
        self._sleep(self._retry_backoff * (2 ** (attempt - 1)))

    def produce(self, message):
        """
        Produces ``message`` and waits for its delivery report.

        Args:
            message (Message): Message with its topic set.

        Returns:
            bool: True once the broker acknowledged the message.

        Raises:
            InvalidTopicError: if the message has no topic.

            CouldNotPublishMessageError: if the message was rejected, could
                not be serialized or is still queued after flushing.

            TransportConnectionError: if transient errors persisted for
                ``send_retries`` attempts.

        """
        if message.topic is None:
            raise InvalidTopicError()

        try:
            key, value = self._serialize(message)
        except SerializationError as se:
            raise CouldNotPublishMessageError(KafkaError(KafkaError._VALUE_SERIALIZATION, str(se)),
                                              exception=se, message=message)

        error = None
        exception = None
        for attempt in range(1, self._send_retries + 1):
            outcome = {}
            try:
                self._enqueue(message, key, value, partial(self._on_delivery, outcome))
            except BufferError as e:
                error, exception = KafkaError(KafkaError._QUEUE_FULL, str(e)), e
                # serve delivery reports to make room in the local queue
                self._producer.poll(self._retry_backoff)
            except KafkaException as e:
                error, exception = _kafka_error(e), e
            else:
                if self._flush() > 0:
                    # still queued: producing again would duplicate the message
                    raise CouldNotPublishMessageError(
                        KafkaError(KafkaError._MSG_TIMED_OUT,
                                   "Message still queued after {} flush attempts".format(self._flush_retries)),
                        message=message)
                error, exception = outcome.get('error'), None
                if error is None:
                    log.debug("Message delivered to topic %s", message.topic)
                    return True

            if not is_transient(error):
                raise CouldNotPublishMessageError(error, exception=exception, message=message)

            if attempt < self._send_retries:
                log.warning("Transient error producing to %s (attempt %d/%d): %s",
                            message.topic, attempt, self._send_retries, error)
                if not isinstance(exception, BufferError):
                    self._backoff(attempt)

        raise TransportConnectionError(error, exception=exception, attempts=self._send_retries)

    def _record(self, reports, index, message, err, msg):
        reports[index] = DeliveryReport(index, message, err)
        if self._delivery_cb is not None:
            self._delivery_cb(err, msg)

    def _enqueue_batch_item(self, reports, index, message):
        if message.topic is None:
            return KafkaError(KafkaError._UNKNOWN_TOPIC, "Message has no topic")
        try:
            key, value = self._serialize(message)
        except SerializationError as se:
            return KafkaError(KafkaError._VALUE_SERIALIZATION, str(se))

        on_delivery = partial(self._record, reports, index, message)
        for attempt in range(1, self._send_retries + 1):
            try:
                self._enqueue(message, key, value, on_delivery)
                return None
            except BufferError as e:
                log.warning("Local producer queue full (attempt %d/%d): %s",
                            attempt, self._send_retries, e)
                self._producer.poll(self._retry_backoff)
            except KafkaException as e:
                return _kafka_error(e)
        return KafkaError(KafkaError._QUEUE_FULL, "Local producer queue is full")

    def produce_batch(self, batch):
        """
        Produces every message of ``batch`` and waits for their delivery
        reports.

        Items are not re-sent individually; the per-item outcome is kept in
        :py:attr:`last_batch_result`.

        Args:
            batch (iterable(Message)): Messages with their topics set.

        Returns:
            int: number of messages acknowledged by the broker.

        """
        messages = list(batch)
        reports = [None] * len(messages)

        for index, message in enumerate(messages):
            error = self._enqueue_batch_item(reports, index, message)
            if error is not None:
                reports[index] = DeliveryReport(index, message, error)

        remaining = self._flush()

        result = BatchResult(
            report if report is not None else
            DeliveryReport(index, messages[index],
                           KafkaError(KafkaError._MSG_TIMED_OUT, "Message still queued after flush"))
            for index, report in enumerate(reports))
        self.last_batch_result = result

        if result.failures:
            log.error("%d of %d batch messages were not published (%d still queued)",
                      len(result.failures), result.submitted, remaining)
            for report in result.failures:
                log.error("Batch item %d on topic %s failed: %s",
                          report.index, report.message.topic, report.error)
        else:
            log.debug("Batch of %d messages delivered", result.submitted)

        return result.accepted

    def close(self):
        """
        Flushes outstanding messages.

        Returns:
            int: number of messages still queued.

        """
        return self._flush()
