"""Autenticación por API Key compartida.

SECURITY: En producción, INGEST_API_KEY debe estar configurado.
"""

from __future__ import annotations

import logging
import os

from fastapi import Header, HTTPException

logger = logging.getLogger(__name__)


def require_api_key(
    x_api_key: str | None = Header(default=None, alias="X-API-Key")
) -> None:
    """Valida la API key si INGEST_API_KEY está configurado.

    Sin INGEST_API_KEY: en producción es un error de configuración; en
    desarrollo se permite el acceso.
    """
    expected = os.getenv("INGEST_API_KEY")
    is_production = os.getenv("ENVIRONMENT") == "production"

    if not expected:
        if is_production:
            logger.error("CRITICAL: INGEST_API_KEY not configured in production!")
            raise HTTPException(
                status_code=500,
                detail="Server misconfiguration: API key not set",
            )
        logger.debug("[AUTH] INGEST_API_KEY not set, skipping API key check")
        return

    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if x_api_key != expected:
        logger.warning("[AUTH] Invalid API key attempt")
        raise HTTPException(status_code=401, detail="Invalid API key")
