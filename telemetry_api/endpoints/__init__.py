"""Módulo de endpoints HTTP.

Contiene todos los endpoints de la API organizados por función.
"""

from .devices import router as devices_router
from .health import router as health_router
from .ingest import router as ingest_router
from .mqtt import router as mqtt_router

__all__ = [
    "devices_router",
    "health_router",
    "ingest_router",
    "mqtt_router",
]
