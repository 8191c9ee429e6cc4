"""Acceso a BD: esquema y repositorios SQL."""

from .repositories import (
    DEVICE_MUTABLE_COLUMNS,
    HEALTH_FLAT_COLUMNS,
    DeviceRepository,
    PrefixRepository,
    ProfileRepository,
    TelemetryRepository,
    UserRepository,
)
from .schema import ensure_schema

__all__ = [
    "DEVICE_MUTABLE_COLUMNS",
    "HEALTH_FLAT_COLUMNS",
    "DeviceRepository",
    "PrefixRepository",
    "ProfileRepository",
    "TelemetryRepository",
    "UserRepository",
    "ensure_schema",
]
