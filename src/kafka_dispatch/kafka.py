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

from .config import get_settings
from .consumer_builder import ConsumerBuilder
from .contracts import CanPublishMessagesToKafka
from .producer_builder import ProducerBuilder

__all__ = ['Kafka']


class Kafka(CanPublishMessagesToKafka):
    """
    Entry point handing out producer and consumer builders configured from
    :py:class:`KafkaSettings`.

    Args:
        settings (KafkaSettings, optional): Defaults to the process-wide
            settings, resolved at construction.

    """
    def __init__(self, settings=None):
        self._settings = settings if settings is not None else get_settings()

    @property
    def settings(self):
        return self._settings

    def publish_on(self, cluster):
        """
        Returns a producer builder for a cluster defined in the ``clusters``
        setting.

        Raises:
            UnknownClusterError: if ``cluster`` is not defined.

        """
        return ProducerBuilder.create(self._settings.cluster(cluster), settings=self._settings)

    def publish(self, brokers=None):
        """Returns a producer builder for ``brokers``, or the default brokers."""
        return ProducerBuilder.create(self._settings.default_cluster(brokers), settings=self._settings)

    def create_consumer(self, topics=None, group_id=None, brokers=None):
        """Returns a consumer builder, see :py:meth:`ConsumerBuilder.create`."""
        return ConsumerBuilder.create(brokers=brokers, topics=topics, group_id=group_id,
                                      settings=self._settings)
