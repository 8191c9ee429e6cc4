"""Singletons del receptor MQTT y su procesador asíncrono."""

from __future__ import annotations

import logging
from typing import Optional

from common.config import Settings

from ..pipeline import IngestionPipeline
from .async_processor import ShardedMessageProcessor, create_async_processor
from .processor import TelemetryMessageProcessor
from .receiver import MQTTReceiver

logger = logging.getLogger(__name__)

_receiver: Optional[MQTTReceiver] = None
_async_processor: Optional[ShardedMessageProcessor] = None


def get_receiver() -> Optional[MQTTReceiver]:
    return _receiver


def get_async_processor() -> Optional[ShardedMessageProcessor]:
    return _async_processor


def start_receiver(pipeline: IngestionPipeline, settings: Settings) -> bool:
    """Crea procesador + receptor y conecta al broker."""
    global _receiver, _async_processor

    if _receiver is not None:
        return _receiver.is_running

    handler = TelemetryMessageProcessor(pipeline)
    _async_processor = create_async_processor(
        handler.process,
        num_workers=settings.mqtt_num_workers,
        max_queue_size=settings.mqtt_queue_size,
    )
    _receiver = MQTTReceiver(
        processor=_async_processor,
        broker_host=settings.mqtt_broker_host,
        broker_port=settings.mqtt_broker_port,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
        client_id=settings.mqtt_client_id,
    )

    started = _receiver.start()
    if not started:
        logger.error("[MQTT] Receiver failed to start")
    return started


def stop_receiver() -> None:
    global _receiver, _async_processor

    if _receiver is not None:
        _receiver.stop()
        _receiver = None
    if _async_processor is not None:
        _async_processor.stop(drain=True)
        _async_processor = None
