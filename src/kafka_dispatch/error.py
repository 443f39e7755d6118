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

from confluent_kafka import KafkaError, KafkaException
from confluent_kafka.error import ConsumeError, ProduceError

__all__ = ['AssertionFailure', 'BatchPublishPartialFailureError',
           'ConfigurationError', 'ConsumerError',
           'CouldNotPublishMessageError', 'InvalidTopicError',
           'KafkaDispatchError', 'TransportConnectionError',
           'UnknownClusterError', 'is_transient']

# Error codes that indicate a connectivity problem worth retrying, on top of
# whatever the broker flags as retriable.
TRANSIENT_ERROR_CODES = frozenset([
    KafkaError._TRANSPORT,
    KafkaError._ALL_BROKERS_DOWN,
    KafkaError._TIMED_OUT,
    KafkaError._MSG_TIMED_OUT,
    KafkaError._QUEUE_FULL,
    KafkaError.REQUEST_TIMED_OUT,
    KafkaError.NETWORK_EXCEPTION,
])


def is_transient(kafka_error):
    """
    Tells whether a transport error may succeed when retried.

    Fatal errors are never transient, even when flagged as retriable.

    Args:
        kafka_error (KafkaError): Error reported by the transport.

    Returns:
        bool

    """
    if kafka_error is None or kafka_error.fatal():
        return False
    return kafka_error.retriable() or kafka_error.code() in TRANSIENT_ERROR_CODES


class KafkaDispatchError(Exception):
    """
    Base class for errors detected by kafka_dispatch before anything reaches
    the transport.
    """


class ConfigurationError(KafkaDispatchError, ValueError):
    """
    Raised when settings or builder state are invalid. Never retried.
    """


class UnknownClusterError(ConfigurationError):
    """
    Raised when a cluster identifier has no registered settings.

    Args:
        cluster (str): The unknown cluster identifier.

    """
    def __init__(self, cluster):
        super(UnknownClusterError, self).__init__("Cluster [{}] is not defined.".format(cluster))
        self.cluster = cluster


class CouldNotPublishMessageError(ProduceError):
    """
    Raised when a message could not be published.

    Args:
        kafka_error (KafkaError): Error code indicating the type of error.

        exception (Exception, optional): The original exception.

        message (Message, optional): The message that failed.

    """
    def __init__(self, kafka_error, exception=None, message=None):
        super(CouldNotPublishMessageError, self).__init__(kafka_error, exception=exception)
        self.failed_message = message


class InvalidTopicError(CouldNotPublishMessageError):
    """
    Raised when a message is sent, or a consumer built, without a topic.
    Indicates caller misuse and is never retried.
    """
    def __init__(self, reason="No topic was set, call on_topic() before sending."):
        super(InvalidTopicError, self).__init__(KafkaError(KafkaError._UNKNOWN_TOPIC, reason))


class BatchPublishPartialFailureError(CouldNotPublishMessageError):
    """
    Describes a batch that was only partially accepted by the transport.

    The first item failure determines :py:attr:`code`; every per-item
    outcome is available through :py:attr:`result`.

    Args:
        result (BatchResult): Per-item outcome of the batch.

    """
    def __init__(self, result):
        failures = result.failures
        if failures and failures[0].error is not None:
            kafka_error = KafkaError(failures[0].error.code(),
                                     "{} of {} messages were not published".format(
                                         len(failures), result.submitted))
        else:
            kafka_error = KafkaError(KafkaError._FAIL,
                                     "{} of {} messages were not published".format(
                                         len(failures), result.submitted))
        super(BatchPublishPartialFailureError, self).__init__(kafka_error)
        self.result = result

    @property
    def failures(self):
        return self.result.failures


class TransportConnectionError(KafkaException):
    """
    Raised when the transport could not reach the cluster after the bounded
    number of retries.

    Args:
        kafka_error (KafkaError): Last transient error seen.

        exception (Exception, optional): The original exception.

        attempts (int): Number of attempts made.

    """
    def __init__(self, kafka_error, exception=None, attempts=0):
        super(TransportConnectionError, self).__init__(kafka_error)
        self.exception = exception
        self.attempts = attempts

    @property
    def code(self):
        return self.args[0].code()

    @property
    def name(self):
        return self.args[0].name()


class ConsumerError(ConsumeError):
    """
    Raised by the consume loop for poll errors that are not transient.

    Args:
        kafka_error (KafkaError): Error reported by the transport.

        kafka_message (Message, optional): The transport message carrying
            the error.

    """
    def __init__(self, kafka_error, kafka_message=None):
        super(ConsumerError, self).__init__(kafka_error, kafka_message=kafka_message)


class AssertionFailure(AssertionError):
    """
    Raised by the :py:class:`KafkaFake` assertions.

    :ivar str expected: Description of the expected condition
    :ivar int actual: Number of matching messages actually published
    """
    def __init__(self, message, expected=None, actual=None):
        super(AssertionFailure, self).__init__(message)
        self.expected = expected
        self.actual = actual
