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
Common type definitions for the kafka_dispatch package.
"""

from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

# Message bodies are either an ordered field mapping or raw bytes
BodyType = Union[Mapping[str, Any], bytes, None]

KeyType = Union[str, bytes, None]

HeadersType = Dict[str, str]

# Process-wide cluster settings as found under the ``clusters`` setting
ClusterSettings = Mapping[str, Any]

# (name, callable) pairs kept in registration order
CallbackHook = Tuple[str, Callable[..., Any]]

MessageHandler = Callable[[Any], Any]  # (ConsumedMessage) -> None
Middleware = Callable[[Any, MessageHandler], Any]  # (ConsumedMessage, next) -> None
StopHook = Callable[[], None]

DeliveryCallback = Callable[[Optional[Any], Any], None]  # (KafkaError, Message) -> None
Predicate = Callable[[Any], bool]  # (Message) -> bool
