"""Dispositivos: modelos, activación y registro."""

from .activation import DeviceActivationManager
from .models import (
    DEVICE_ID_PATTERN,
    UPDATABLE_FIELDS,
    DeviceStatus,
    device_to_api,
    normalize_device_id,
    normalize_status,
    parse_timestamp,
)
from .registry import DeviceRegistry, format_prefixed_id

__all__ = [
    "DEVICE_ID_PATTERN",
    "UPDATABLE_FIELDS",
    "DeviceActivationManager",
    "DeviceRegistry",
    "DeviceStatus",
    "device_to_api",
    "format_prefixed_id",
    "normalize_device_id",
    "normalize_status",
    "parse_timestamp",
]
