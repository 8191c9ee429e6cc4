"""Receptor MQTT de telemetría (paho-mqtt).

Flujo:
  MQTT topic /<deviceId>/health | /<deviceId>/sleep
  → receiver (este archivo): parseo de topic + JSON
  → ShardedMessageProcessor (cola del dispositivo)
  → TelemetryMessageProcessor → IngestionPipeline

La reconexión la maneja el loop de paho; al reconectar se vuelven a
suscribir los topics base y los de dispositivos pedidos en caliente.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

import orjson
import paho.mqtt.client as mqtt

from ..metrics import MESSAGES_TOTAL, MQTT_CONNECTED
from .topics import TOPIC_FILTERS, InboundMessage, device_topics, parse_topic

logger = logging.getLogger(__name__)


class MQTTReceiver:
    """Receptor MQTT que encola mensajes de telemetría por dispositivo."""

    def __init__(
        self,
        processor: Any,
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        client_id: str = "telemetry-ingest",
    ):
        self._processor = processor
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.client_id = f"{client_id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._running = False
        self._connected = False

        self._extra_topics: set[str] = set()
        self._topics_lock = threading.Lock()

        # Stats
        self._messages_received = 0
        self._messages_enqueued = 0
        self._messages_invalid = 0
        self._messages_dropped = 0
        self._last_message_at: float = 0

    def start(self) -> bool:
        """Conecta al broker e inicia el loop de red de paho."""
        try:
            self._client = mqtt.Client(
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            )
            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()
            self._running = True

            for _ in range(50):
                if self._connected:
                    break
                time.sleep(0.1)

            if self._connected:
                logger.info("[MQTT] Started successfully")
            else:
                # loop_start sigue reintentando en segundo plano
                logger.warning("[MQTT] Not connected yet, paho will keep retrying")
            return True

        except (OSError, ValueError) as e:
            logger.error("[MQTT] Start failed: %s", e)
            return False

    def stop(self) -> None:
        self._running = False

        if self._client:
            self._client.loop_stop()
            self._client.disconnect()

        self._connected = False
        MQTT_CONNECTED.set(0)
        logger.info(
            "[MQTT] Stopped. Stats: received=%d enqueued=%d invalid=%d dropped=%d",
            self._messages_received,
            self._messages_enqueued,
            self._messages_invalid,
            self._messages_dropped,
        )

    def subscribe_device(self, device_id: str) -> list[str]:
        """Suscribe los topics de un dispositivo (persisten entre reconexiones)."""
        topics = device_topics(device_id)
        with self._topics_lock:
            self._extra_topics.update(topics)

        if self._client is not None and self._connected:
            for topic in topics:
                self._client.subscribe(topic, qos=1)
            logger.info("[MQTT] Subscribed device topics %s", topics)
        else:
            logger.info("[MQTT] Device topics %s queued until connected", topics)
        return topics

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code.is_failure:
            self._connected = False
            MQTT_CONNECTED.set(0)
            logger.error("[MQTT] Connection failed: %s", reason_code)
            return

        self._connected = True
        MQTT_CONNECTED.set(1)
        logger.info("[MQTT] Connected to broker")

        with self._topics_lock:
            topics = list(TOPIC_FILTERS) + sorted(self._extra_topics)
        for topic in topics:
            client.subscribe(topic, qos=1)
        logger.info("[MQTT] Subscribed to %s", topics)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected = False
        MQTT_CONNECTED.set(0)
        logger.warning("[MQTT] Disconnected (%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        self._messages_received += 1
        self._last_message_at = time.time()

        parsed = parse_topic(msg.topic)
        if parsed is None:
            self._messages_invalid += 1
            logger.warning("[MQTT] Ignoring unexpected topic=%s", msg.topic)
            return
        device_id, kind = parsed

        try:
            payload = orjson.loads(msg.payload)
        except orjson.JSONDecodeError as e:
            self._messages_invalid += 1
            MESSAGES_TOTAL.labels(transport="mqtt", kind=kind, outcome="invalid").inc()
            logger.warning("[MQTT] Invalid JSON: %s (topic=%s)", e, msg.topic)
            return

        if not isinstance(payload, dict):
            self._messages_invalid += 1
            MESSAGES_TOTAL.labels(transport="mqtt", kind=kind, outcome="invalid").inc()
            logger.warning("[MQTT] Payload is not an object (topic=%s)", msg.topic)
            return

        message = InboundMessage(
            device_id=device_id,
            kind=kind,
            payload=payload,
            received_at=self._last_message_at,
        )
        if self._processor.enqueue(message):
            self._messages_enqueued += 1
        else:
            self._messages_dropped += 1

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def stats(self) -> dict:
        with self._topics_lock:
            extra = sorted(self._extra_topics)
        return {
            "running": self._running,
            "connected": self._connected,
            "broker": f"{self.broker_host}:{self.broker_port}",
            "topics": list(TOPIC_FILTERS) + extra,
            "messages_received": self._messages_received,
            "messages_enqueued": self._messages_enqueued,
            "messages_invalid": self._messages_invalid,
            "messages_dropped": self._messages_dropped,
            "last_message_at": self._last_message_at,
        }

    def health_check(self) -> dict:
        return {
            "healthy": self._running and self._connected,
            "running": self._running,
            "connected": self._connected,
            "messages_enqueued": self._messages_enqueued,
            "messages_invalid": self._messages_invalid,
        }
