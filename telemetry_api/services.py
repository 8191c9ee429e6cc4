"""Singletons de servicios de dominio.

Los endpoints los obtienen con ``Depends(get_...)``; los tests los
sustituyen con ``app.dependency_overrides`` o llamando a ``reset_services``.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from common.config import get_settings
from common.db import get_engine

from .devices import DeviceActivationManager, DeviceRegistry
from .pipeline import IngestionPipeline
from .rules import RuleTable
from .tracking import KeyedLock, PresenceTracker

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_pipeline: Optional[IngestionPipeline] = None
_activation_manager: Optional[DeviceActivationManager] = None
_registry: Optional[DeviceRegistry] = None


def get_pipeline() -> IngestionPipeline:
    global _pipeline

    with _lock:
        if _pipeline is None:
            settings = get_settings()
            rules = RuleTable.load(settings.metric_spec_file)
            tracker = PresenceTracker(KeyedLock(settings.tracker_lock_stripes))
            _pipeline = IngestionPipeline(
                engine=get_engine(),
                rules=rules,
                tracker=tracker,
                retraction_window_seconds=settings.retraction_window_seconds,
            )
            logger.info(
                "[SERVICES] Pipeline ready device_types=%s window=%.1fs",
                rules.device_types,
                settings.retraction_window_seconds,
            )
        return _pipeline


def get_activation_manager() -> DeviceActivationManager:
    global _activation_manager

    with _lock:
        if _activation_manager is None:
            settings = get_settings()
            _activation_manager = DeviceActivationManager(
                engine=get_engine(),
                locks=KeyedLock(settings.tracker_lock_stripes),
            )
        return _activation_manager


def get_registry() -> DeviceRegistry:
    global _registry

    with _lock:
        if _registry is None:
            _registry = DeviceRegistry(engine=get_engine())
        return _registry


def reset_services() -> None:
    global _pipeline, _activation_manager, _registry

    with _lock:
        _pipeline = None
        _activation_manager = None
        _registry = None
