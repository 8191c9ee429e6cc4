"""Endpoints de administración y activación de dispositivos."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from ..auth import require_user_id
from ..devices import DeviceActivationManager, DeviceRegistry
from ..schemas import (
    ActivationResult,
    ActiveDeviceResult,
    AvailabilityResult,
    Device,
    DeviceCreate,
    DeviceMappingItem,
    DeviceMessage,
    HistoryResult,
)
from ..services import get_activation_manager, get_registry
from .errors import translate_errors

router = APIRouter(prefix="/devices", tags=["devices"])


@router.post("/add", response_model=Device, status_code=201)
def add_device(
    payload: DeviceCreate,
    user_id: str = Depends(require_user_id),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Alta manual o por prefijo; el dueño es el usuario que llama."""
    with translate_errors("/devices/add"):
        return registry.add_device(payload.model_dump(exclude_none=True), user_id=user_id)


@router.put("/activate/{device_id}", response_model=ActivationResult)
def activate_device(
    device_id: str,
    profile_id: Optional[str] = Query(default=None, alias="profileId"),
    manager: DeviceActivationManager = Depends(get_activation_manager),
):
    with translate_errors("/devices/activate"):
        return manager.activate(device_id, profile_id)


@router.put("/{device_id}/inactive", response_model=DeviceMessage)
def set_inactive(
    device_id: str,
    user_id: str = Depends(require_user_id),
    manager: DeviceActivationManager = Depends(get_activation_manager),
):
    with translate_errors("/devices/inactive"):
        return manager.deactivate(device_id, user_id)


@router.put("/{device_id}/active", response_model=DeviceMessage)
def set_active(
    device_id: str,
    user_id: str = Depends(require_user_id),
    manager: DeviceActivationManager = Depends(get_activation_manager),
):
    with translate_errors("/devices/active"):
        return manager.attach_user_active(device_id, user_id)


@router.patch("/{device_id}", response_model=Device)
def update_device(
    device_id: str,
    fields: Dict[str, Any] = Body(...),
    _user_id: str = Depends(require_user_id),
    manager: DeviceActivationManager = Depends(get_activation_manager),
):
    with translate_errors("/devices/update"):
        return manager.update(device_id, fields)


@router.delete("/{device_id}", response_model=DeviceMessage)
def delete_device(
    device_id: str,
    _user_id: str = Depends(require_user_id),
    manager: DeviceActivationManager = Depends(get_activation_manager),
):
    with translate_errors("/devices/delete"):
        return manager.delete(device_id)


@router.get("/mapping/{profile_id}", response_model=List[DeviceMappingItem])
def device_mapping(
    profile_id: str,
    manager: DeviceActivationManager = Depends(get_activation_manager),
):
    with translate_errors("/devices/mapping"):
        return manager.mapping(profile_id)


@router.get("/profiles/{profile_id}/active-device", response_model=ActiveDeviceResult)
def active_device(
    profile_id: str,
    manager: DeviceActivationManager = Depends(get_activation_manager),
):
    with translate_errors("/devices/active-device"):
        return {"profileId": profile_id, "deviceId": manager.active_device(profile_id)}


@router.get("/by-deviceId/{device_id}", response_model=Device)
def get_device(
    device_id: str,
    registry: DeviceRegistry = Depends(get_registry),
):
    with translate_errors("/devices/by-deviceId"):
        return registry.get(device_id)


@router.get("/public/available", response_model=AvailabilityResult)
def device_availability(
    device_id: str = Query(..., alias="deviceId"),
    registry: DeviceRegistry = Depends(get_registry),
):
    """Consulta pública: si el id existe y si ya tiene dueño."""
    with translate_errors("/devices/public/available"):
        return registry.availability(device_id)


@router.get("/history", response_model=HistoryResult)
def device_history(
    device_id: str = Query(..., alias="deviceId"),
    start: Optional[str] = Query(default=None, alias="from"),
    end: Optional[str] = Query(default=None, alias="to"),
    limit: int = Query(default=100, ge=1, le=1000),
    registry: DeviceRegistry = Depends(get_registry),
):
    with translate_errors("/devices/history"):
        return registry.history(device_id, start=start, end=end, limit=limit)
