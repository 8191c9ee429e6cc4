"""Procesa mensajes MQTT con el pipeline de ingesta.

MQTT no tiene canal de respuesta: los errores de dominio y de BD se
registran, se cuentan y el mensaje se descarta.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFoundError, TelemetryError
from ..metrics import MESSAGES_TOTAL
from ..pipeline import IngestionPipeline, IngestOutcome
from .topics import InboundMessage

logger = logging.getLogger(__name__)


class TelemetryMessageProcessor:
    """Adaptador mensaje MQTT → ``IngestionPipeline.ingest``."""

    def __init__(self, pipeline: IngestionPipeline):
        self._pipeline = pipeline

    def process(self, message: InboundMessage) -> IngestOutcome | None:
        """Retorna el resultado, o None si el mensaje se descartó por error."""
        labels = {"transport": "mqtt", "kind": message.kind}
        try:
            outcome = self._pipeline.ingest(message.device_id, message.kind, message.payload)
        except NotFoundError:
            MESSAGES_TOTAL.labels(outcome="not_found", **labels).inc()
            logger.warning("[PROCESSOR] Unknown device=%s, dropped", message.device_id)
            return None
        except TelemetryError as e:
            MESSAGES_TOTAL.labels(outcome="invalid", **labels).inc()
            logger.warning("[PROCESSOR] Rejected device=%s: %s", message.device_id, e.message)
            return None
        except SQLAlchemyError as e:
            MESSAGES_TOTAL.labels(outcome="error", **labels).inc()
            logger.error(
                "[PROCESSOR] DB error device=%s kind=%s: %s",
                message.device_id,
                message.kind,
                type(e).__name__,
            )
            return None

        MESSAGES_TOTAL.labels(outcome=outcome.status.value, **labels).inc()
        logger.debug(
            "[PROCESSOR] device=%s kind=%s status=%s reason=%s",
            message.device_id,
            message.kind,
            outcome.status.value,
            outcome.reason,
        )
        return outcome
