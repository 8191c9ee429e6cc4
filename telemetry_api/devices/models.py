"""Modelos y normalización de dispositivos."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ..errors import ValidationError

# 4 dígitos, guion, 12 hex (se guarda en mayúsculas)
DEVICE_ID_PATTERN = re.compile(r"^\d{4}-[0-9A-F]{12}$", re.IGNORECASE)


class DeviceStatus(str, Enum):
    """Estados de un dispositivo."""

    INACTIVE = "inactive"
    ACTIVE = "active"
    UNDER_MAINTENANCE = "under maintenance"


def normalize_status(value: Any) -> DeviceStatus:
    """``Under-Maintenance`` / ``under_maintenance`` → ``under maintenance``."""
    cleaned = re.sub(r"[\s_-]+", " ", str(value or "").strip().lower())
    try:
        return DeviceStatus(cleaned)
    except ValueError:
        raise ValidationError(f"Invalid status: {value!r}") from None


def normalize_device_id(value: Any) -> str:
    device_id = str(value or "").strip()
    if not DEVICE_ID_PATTERN.match(device_id):
        raise ValidationError(
            f"Invalid deviceId format: {value!r} (expected 0000-XXXXXXXXXXXX)"
        )
    return device_id.upper()


def clean_device_id(value: Any) -> str:
    """Normalización laxa para búsquedas (sin validar formato)."""
    return str(value or "").strip().upper()


def parse_timestamp(value: Any) -> Optional[float]:
    """Epoch en segundos desde número o fecha ISO-8601."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid date: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    try:
        return float(text)
    except ValueError:
        pass
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        raise ValidationError(f"Invalid date: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


# Campo de la API → columna de devices
UPDATABLE_FIELDS: Dict[str, str] = {
    "deviceId": "device_id",
    "deviceType": "device_type",
    "manufacturer": "manufacturer",
    "firmwareVersion": "firmware_version",
    "location": "location",
    "status": "status",
    "validity": "validity",
    "userId": "user_id",
    "deviceModelId": "device_model_id",
    "profileVersion": "profile_version",
    "lastActiveAt": "last_active_at",
}


def device_to_api(row: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Fila de devices → representación de la API (camelCase)."""
    if row is None:
        return None
    return {
        "deviceId": row["device_id"],
        "deviceType": row["device_type"],
        "manufacturer": row["manufacturer"],
        "firmwareVersion": row.get("firmware_version"),
        "location": row.get("location"),
        "status": row.get("status"),
        "profileId": row.get("profile_id"),
        "userId": row.get("user_id"),
        "accountId": row.get("account_id"),
        "deviceModelId": row.get("device_model_id"),
        "profileVersion": row.get("profile_version"),
        "validity": row.get("validity"),
        "lastActiveAt": row.get("last_active_at"),
        "createdAt": row.get("created_at"),
    }
