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

from .config import Configuration, KafkaSettings, Sasl, SecurityProtocol, configure, get_settings
from .consumer import Consumer, ConsumerState, KafkaMessageSource
from .consumer_builder import ConsumerBuilder
from .contracts import CanConsumeMessages, CanProduceMessages, CanPublishMessagesToKafka
from .error import (AssertionFailure,
                    BatchPublishPartialFailureError,
                    ConfigurationError,
                    ConsumerError,
                    CouldNotPublishMessageError,
                    InvalidTopicError,
                    KafkaDispatchError,
                    TransportConnectionError,
                    UnknownClusterError)
from .kafka import Kafka
from .message import ConsumedMessage, Message, MessageBatch
from .producer import BatchResult, DeliveryReport, ProducerDispatcher
from .producer_builder import ProducerBuilder
from .serialization import (JsonDeserializer,
                            JsonSerializer,
                            KeyDeserializer,
                            KeySerializer,
                            RawDeserializer,
                            RawSerializer)

__all__ = ['AssertionFailure', 'BatchPublishPartialFailureError', 'BatchResult',
           'CanConsumeMessages', 'CanProduceMessages', 'CanPublishMessagesToKafka',
           'Configuration', 'ConfigurationError', 'ConsumedMessage', 'Consumer',
           'ConsumerBuilder', 'ConsumerError', 'ConsumerState', 'CouldNotPublishMessageError',
           'DeliveryReport', 'InvalidTopicError', 'JsonDeserializer', 'JsonSerializer',
           'Kafka', 'KafkaDispatchError', 'KafkaMessageSource', 'KafkaSettings',
           'KeyDeserializer', 'KeySerializer', 'Message', 'MessageBatch', 'ProducerBuilder',
           'ProducerDispatcher', 'RawDeserializer', 'RawSerializer', 'Sasl', 'SecurityProtocol',
           'TransportConnectionError', 'UnknownClusterError', 'configure', 'get_settings']

__version__ = "1.0.0"
