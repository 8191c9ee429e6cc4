"""Esquema de tablas (creación idempotente).

Timestamps como epoch en segundos (DOUBLE PRECISION) y bolsas JSON como TEXT
para que el mismo DDL funcione en PostgreSQL y en SQLite.
"""

from __future__ import annotations

import logging

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)


SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS devices (
        device_id VARCHAR(32) PRIMARY KEY,
        device_type VARCHAR(100) NOT NULL,
        manufacturer VARCHAR(200) NOT NULL,
        firmware_version VARCHAR(50),
        location VARCHAR(200),
        status VARCHAR(32) NOT NULL DEFAULT 'inactive',
        profile_id VARCHAR(64),
        user_id VARCHAR(64),
        account_id VARCHAR(64),
        device_model_id VARCHAR(64),
        profile_version INTEGER NOT NULL DEFAULT 1,
        validity DOUBLE PRECISION,
        last_active_at DOUBLE PRECISION,
        created_at DOUBLE PRECISION NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_devices_profile ON devices (profile_id)",
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id VARCHAR(64) PRIMARY KEY,
        email VARCHAR(200),
        active_device_id VARCHAR(32)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_active_devices (
        user_id VARCHAR(64) NOT NULL,
        device_id VARCHAR(32) NOT NULL,
        PRIMARY KEY (user_id, device_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS user_devices (
        user_id VARCHAR(64) NOT NULL,
        device_id VARCHAR(32) NOT NULL,
        PRIMARY KEY (user_id, device_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS profiles (
        profile_id VARCHAR(64) PRIMARY KEY,
        identifier VARCHAR(200)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS device_prefixes (
        prefix_id VARCHAR(64) PRIMARY KEY,
        prefix VARCHAR(4) NOT NULL,
        device_name VARCHAR(100) NOT NULL,
        manufacturer VARCHAR(200) NOT NULL,
        sequence BIGINT NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS health_data (
        device_id VARCHAR(32) NOT NULL,
        ts DOUBLE PRECISION NOT NULL,
        temperature DOUBLE PRECISION,
        humidity DOUBLE PRECISION,
        iaq DOUBLE PRECISION,
        eco2 DOUBLE PRECISION,
        tvoc DOUBLE PRECISION,
        etoh DOUBLE PRECISION,
        hrv DOUBLE PRECISION,
        stress DOUBLE PRECISION,
        respiration DOUBLE PRECISION,
        heart_rate DOUBLE PRECISION,
        presence INTEGER NOT NULL DEFAULT 1,
        metrics TEXT,
        signals TEXT,
        raw TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_health_device_ts ON health_data (device_id, ts)",
    """
    CREATE TABLE IF NOT EXISTS sleep_data (
        device_id VARCHAR(32) NOT NULL,
        ts DOUBLE PRECISION NOT NULL,
        sleep_quality VARCHAR(64) NOT NULL,
        duration DOUBLE PRECISION NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_sleep_device_ts ON sleep_data (device_id, ts)",
)


def ensure_schema(engine: Engine) -> None:
    """Crea tablas e índices si no existen."""
    with engine.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
    logger.info("[DB] Schema ready (%d statements)", len(SCHEMA_STATEMENTS))
