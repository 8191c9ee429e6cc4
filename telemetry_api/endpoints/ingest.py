"""Endpoint de ingesta por HTTP."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..auth import require_api_key
from ..metrics import MESSAGES_TOTAL
from ..pipeline import IngestionPipeline
from ..schemas import IngestRequest, IngestResult
from ..services import get_pipeline
from .errors import translate_errors

router = APIRouter(tags=["ingest"])
logger = logging.getLogger(__name__)


@router.post(
    "/ingest",
    response_model=IngestResult,
    dependencies=[Depends(require_api_key)],
)
def ingest(
    payload: IngestRequest,
    pipeline: IngestionPipeline = Depends(get_pipeline),
):
    """Ingesta de un mensaje ``{deviceId, type, data}``.

    ``data`` puede traer ``line`` o ``lines`` con líneas crudas del sensor.
    Los descartes (presencia, rango, sin cambios) responden 200 con
    ``status=skipped`` y el motivo.
    """
    kind = payload.type.strip().lower()
    try:
        with translate_errors("/ingest"):
            outcome = pipeline.ingest(payload.deviceId, payload.type, payload.data)
    except HTTPException as e:
        outcome_label = {400: "invalid", 404: "not_found"}.get(e.status_code, "error")
        MESSAGES_TOTAL.labels(transport="http", kind=kind, outcome=outcome_label).inc()
        raise

    MESSAGES_TOTAL.labels(transport="http", kind=kind, outcome=outcome.status.value).inc()
    logger.debug("[INGEST] device=%s kind=%s status=%s", outcome.device_id, kind, outcome.status.value)
    return outcome.to_dict()

