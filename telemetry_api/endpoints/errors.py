"""Traducción de errores de dominio y de BD a respuestas HTTP."""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError

from ..errors import InternalError, TelemetryError, to_http_exception

logger = logging.getLogger(__name__)


def db_error_detail(exc: Exception) -> str:
    detail = f"DB error: {type(exc).__name__}"
    if os.getenv("INGEST_DEBUG_ERRORS", "").strip() == "1":
        detail = f"{detail}: {exc}"
    return detail


@contextmanager
def translate_errors(route: str) -> Iterator[None]:
    """TelemetryError → su status; error de BD → 500 ``DB error: <Tipo>``."""
    try:
        yield
    except TelemetryError as e:
        raise to_http_exception(e) from e
    except SQLAlchemyError as e:
        logger.exception("DB error in %s err=%s", route, type(e).__name__)
        raise to_http_exception(InternalError(db_error_detail(e))) from e
