from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url

from .config import get_settings


logger = logging.getLogger(__name__)

# Singleton engine
_engine: Optional[Engine] = None


def build_engine(database_url: str) -> Engine:
    """Crea un engine SQLAlchemy para la URL dada.

    SQLite necesita ``check_same_thread=False`` porque los handlers HTTP y los
    workers MQTT comparten el pool desde distintos threads.
    """
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite":
        return create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30},
            future=True,
        )

    return create_engine(
        url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=300,
        future=True,
    )


def get_engine() -> Engine:
    """Obtiene el engine (singleton), creándolo en el primer uso."""
    global _engine

    if _engine is not None:
        return _engine

    settings = get_settings()
    url = make_url(settings.database_url)

    # Log básico de parámetros de conexión (sin contraseña)
    logger.info(
        "[DB] Creating engine backend=%s host=%s db=%s",
        url.get_backend_name(),
        url.host,
        url.database,
    )

    _engine = build_engine(settings.database_url)

    try:
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("[DB] Connection test OK")
    except Exception:
        logger.exception("[DB] Connection test FAILED")

    return _engine


def reset_engine() -> None:
    """Descarta el engine singleton (tests y recarga de configuración)."""
    global _engine

    if _engine is not None:
        _engine.dispose()
    _engine = None
