"""Ingesta por MQTT.

Componentes:
- topics: formato de topics e InboundMessage
- receiver: cliente paho (callbacks → cola)
- async_processor: colas particionadas por dispositivo
- processor: adaptador al pipeline de ingesta
- receiver_singleton: ciclo de vida dentro de la app
"""

from .async_processor import ShardedMessageProcessor, create_async_processor
from .processor import TelemetryMessageProcessor
from .receiver import MQTTReceiver
from .receiver_singleton import (
    get_async_processor,
    get_receiver,
    start_receiver,
    stop_receiver,
)
from .topics import TOPIC_FILTERS, InboundMessage, device_topics, parse_topic

__all__ = [
    "InboundMessage",
    "MQTTReceiver",
    "ShardedMessageProcessor",
    "TOPIC_FILTERS",
    "TelemetryMessageProcessor",
    "create_async_processor",
    "device_topics",
    "get_async_processor",
    "get_receiver",
    "parse_topic",
    "start_receiver",
    "stop_receiver",
]
