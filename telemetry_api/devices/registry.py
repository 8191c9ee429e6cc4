"""Alta y consulta de dispositivos."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.engine import Engine

from ..errors import ConflictError, NotFoundError, ValidationError
from ..persistence import (
    DeviceRepository,
    PrefixRepository,
    TelemetryRepository,
    UserRepository,
)
from .models import (
    DeviceStatus,
    clean_device_id,
    device_to_api,
    normalize_device_id,
    normalize_status,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

HISTORY_DEFAULT_LIMIT = 100
HISTORY_MAX_LIMIT = 1000


def format_prefixed_id(prefix: str, sequence: int) -> str:
    """``<prefix>-<secuencia en 12 dígitos hex>``."""
    return f"{prefix}-{int(sequence):012X}"


def _profile_version(value: Any) -> int:
    if value is None or value == "":
        return 1
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid profileVersion: {value!r}") from None


class DeviceRegistry:
    """Alta (manual o por prefijo), consulta e historial."""

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time):
        self._engine = engine
        self._clock = clock

    def add_device(self, payload: Mapping[str, Any], user_id: Optional[str] = None) -> Dict[str, Any]:
        """Registra un dispositivo.

        Con ``prefixId`` el id se emite del contador del prefijo y el tipo y
        fabricante salen del prefijo. Sin él, ``deviceId``, ``deviceType`` y
        ``manufacturer`` son obligatorios.
        """
        status = normalize_status(payload.get("status") or DeviceStatus.INACTIVE.value)
        prefix_id = payload.get("prefixId")

        with self._engine.begin() as conn:
            devices = DeviceRepository(conn)
            users = UserRepository(conn)

            if prefix_id:
                prefix = PrefixRepository(conn).next_sequence(str(prefix_id))
                if prefix is None:
                    raise NotFoundError(f"Device prefix {prefix_id} not found")
                device_id = format_prefixed_id(prefix["prefix"], prefix["sequence"])
                device_type = prefix["device_name"]
                manufacturer = prefix["manufacturer"]
            else:
                missing = [
                    name for name in ("deviceId", "deviceType", "manufacturer")
                    if not str(payload.get(name) or "").strip()
                ]
                if missing:
                    raise ValidationError(f"Missing required fields: {', '.join(missing)}")
                device_id = normalize_device_id(payload["deviceId"])
                device_type = str(payload["deviceType"]).strip()
                manufacturer = str(payload["manufacturer"]).strip()

            if devices.exists(device_id):
                raise ConflictError(f"Device {device_id} already exists")

            user = None
            if user_id:
                user = users.get(user_id)
                if user is None:
                    raise NotFoundError("User not found")

            now = self._clock()
            devices.insert({
                "device_id": device_id,
                "device_type": device_type,
                "manufacturer": manufacturer,
                "firmware_version": payload.get("firmwareVersion"),
                "location": payload.get("location"),
                "status": status.value,
                "user_id": user_id,
                "account_id": payload.get("accountId"),
                "device_model_id": payload.get("deviceModelId"),
                "profile_version": _profile_version(payload.get("profileVersion")),
                "validity": parse_timestamp(payload.get("validity")),
                "last_active_at": now if status == DeviceStatus.ACTIVE else None,
                "created_at": now,
            })

            if user is not None:
                users.add_owned_device(user_id, device_id)
                if not user.get("active_device_id") and status == DeviceStatus.ACTIVE:
                    users.set_active_device(user_id, device_id)

            created = devices.get(device_id)

        logger.info(
            "[REGISTRY] Device added device=%s type=%s user=%s",
            device_id,
            device_type,
            user_id,
        )
        return device_to_api(created)

    def get(self, device_id: str) -> Dict[str, Any]:
        device_id = clean_device_id(device_id)
        with self._engine.connect() as conn:
            device = DeviceRepository(conn).get(device_id)
        if device is None:
            raise NotFoundError(f"Device {device_id} not found")
        return device_to_api(device)

    def availability(self, device_id: str) -> Dict[str, Any]:
        """Existe / asignado a un usuario / datos del dispositivo."""
        device_id = normalize_device_id(device_id)
        with self._engine.connect() as conn:
            device = DeviceRepository(conn).get(device_id)
        return {
            "exists": device is not None,
            "assigned": bool(device and device.get("user_id")),
            "device": device_to_api(device),
        }

    def history(
        self,
        device_id: str,
        start: Any = None,
        end: Any = None,
        limit: int = HISTORY_DEFAULT_LIMIT,
    ) -> Dict[str, Any]:
        """Registros de salud (más recientes primero) y resumen de heartRate."""
        device_id = clean_device_id(device_id)
        if not device_id:
            raise ValidationError("deviceId is required")
        start_ts = parse_timestamp(start)
        end_ts = parse_timestamp(end)
        limit = max(1, min(int(limit or HISTORY_DEFAULT_LIMIT), HISTORY_MAX_LIMIT))

        with self._engine.connect() as conn:
            if not DeviceRepository(conn).exists(device_id):
                raise NotFoundError(f"Device {device_id} not found")
            telemetry = TelemetryRepository(conn)
            records = telemetry.health_history(device_id, start_ts, end_ts, limit)
            summary = telemetry.heart_rate_summary(device_id, start_ts, end_ts)

        return {
            "deviceId": device_id,
            "from": start_ts,
            "to": end_ts,
            "records": records,
            "summary": summary,
        }
