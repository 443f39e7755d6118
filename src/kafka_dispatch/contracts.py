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
Capability interfaces. Callers depend on these, the real and the fake
implementations are interchangeable behind them.
"""

from typing import Any, Iterable, List, Optional

from ._types import StopHook

__all__ = ['CanConsumeMessages', 'CanProduceMessages', 'CanPublishMessagesToKafka']


class CanProduceMessages(object):
    """
    Something that sends finalized messages: the transport backed
    :py:class:`ProducerDispatcher` or the recording fake.
    """
    def produce(self, message: Any) -> bool:
        """
        Sends a single message.

        Args:
            message (Message): Message with its topic set.

        Returns:
            bool: True once the message was accepted.

        """
        raise NotImplementedError

    def produce_batch(self, batch: Iterable[Any]) -> int:
        """
        Sends every message of ``batch``.

        Args:
            batch (list(Message)): Messages with their topics set.

        Returns:
            int: number of messages accepted.

        """
        raise NotImplementedError


class CanConsumeMessages(object):
    """
    A blocking, cooperatively cancellable consume loop.
    """
    def consume(self) -> None:
        """Consumes messages in a loop until stopped."""
        raise NotImplementedError

    def stop_consuming(self) -> None:
        """Requests the loop to stop once the in-flight message is processed."""
        raise NotImplementedError

    def cancel_stop_consume(self) -> None:
        """Cancels a pending stop request."""
        raise NotImplementedError

    def consumed_messages_count(self) -> int:
        """Number of messages consumed so far."""
        raise NotImplementedError

    def on_stop_consuming(self, callback: Optional[StopHook] = None) -> Any:
        """Registers a callable run once when the loop stops."""
        raise NotImplementedError


class CanPublishMessagesToKafka(object):
    """
    Entry point handing out producer and consumer builders.
    """
    def publish_on(self, cluster: str) -> Any:
        raise NotImplementedError

    def publish(self, brokers: Optional[List[str]] = None) -> Any:
        raise NotImplementedError

    def create_consumer(self, topics: Optional[List[str]] = None, group_id: Optional[str] = None,
                        brokers: Optional[List[str]] = None) -> Any:
        raise NotImplementedError
