"""Topics MQTT de telemetría: ``/<deviceId>/health`` y ``/<deviceId>/sleep``."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

KINDS: tuple[str, ...] = ("health", "sleep")

TOPIC_FILTERS: tuple[str, ...] = tuple(f"/+/{kind}" for kind in KINDS)


@dataclass(frozen=True)
class InboundMessage:
    """Mensaje recibido y ya parseado, listo para el pipeline."""
    device_id: str
    kind: str
    payload: Any
    received_at: float


def parse_topic(topic: str) -> Optional[tuple[str, str]]:
    """``/<deviceId>/<kind>`` → (deviceId, kind); None si no coincide."""
    parts = (topic or "").split("/")
    if len(parts) != 3 or parts[0] != "":
        return None
    device_id, kind = parts[1].strip(), parts[2].strip().lower()
    if not device_id or kind not in KINDS:
        return None
    return device_id, kind


def device_topics(device_id: str) -> list[str]:
    return [f"/{device_id}/{kind}" for kind in KINDS]
