"""Endpoints de control del receptor MQTT."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..auth import require_api_key
from ..mqtt import get_async_processor, get_receiver
from ..schemas import SubscribeRequest, SubscribeResult

router = APIRouter(prefix="/mqtt", tags=["mqtt"])


@router.post(
    "/subscribe",
    response_model=SubscribeResult,
    dependencies=[Depends(require_api_key)],
)
def subscribe_device(payload: SubscribeRequest):
    """Suscribe en caliente los topics health/sleep de un dispositivo."""
    receiver = get_receiver()
    if receiver is None or not receiver.is_running:
        raise HTTPException(status_code=503, detail="MQTT receiver not running")

    topics = receiver.subscribe_device(payload.deviceId.strip())
    return {"deviceId": payload.deviceId.strip(), "topics": topics}


@router.get("/status")
def mqtt_status():
    receiver = get_receiver()
    processor = get_async_processor()
    return {
        "enabled": receiver is not None,
        "receiver": receiver.health_check() if receiver else None,
        "processor": processor.metrics if processor else None,
    }
