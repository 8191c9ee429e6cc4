"""Health and readiness endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from common.db import get_engine

from ..mqtt import get_async_processor, get_receiver
from ..pipeline import IngestionPipeline
from ..services import get_pipeline

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health")
def health():
    """Liveness: ok mientras el proceso esté vivo."""
    return {"status": "ok"}


@router.get("/ready")
def ready():
    """Readiness: verifica la conexión a la BD."""
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("[DB] Readiness check failed")
        raise HTTPException(status_code=503, detail="not ready")
    return {"status": "ready"}


@router.get("/metrics")
def metrics(pipeline: IngestionPipeline = Depends(get_pipeline)):
    """Stats del pipeline, del receptor MQTT y del procesador asíncrono."""
    receiver = get_receiver()
    processor = get_async_processor()
    return {
        "pipeline": pipeline.get_stats(),
        "mqtt_receiver": receiver.stats if receiver else None,
        "async_processor": processor.metrics if processor else None,
    }
