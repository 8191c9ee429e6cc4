"""Fixtures compartidos: BD SQLite por test, reloj controlable y datos semilla."""

from __future__ import annotations

from typing import Any, Optional

import pytest
from sqlalchemy import text
from sqlalchemy.engine import Engine

from common.db import build_engine
from telemetry_api.persistence import DeviceRepository, TelemetryRepository, ensure_schema
from telemetry_api.pipeline import IngestionPipeline
from telemetry_api.rules import RuleTable
from telemetry_api.tracking import KeyedLock, PresenceTracker

DEVICE_A = "1001-0000000000A1"
DEVICE_B = "1001-0000000000B2"
DEVICE_PLAIN = "1001-0000000000C3"

TEST_SPEC = {
    "BED_SENSOR": {
        "params": {
            "heartRate": {"min": 30, "max": 220, "mode": "always"},
            "respiration": {"min": 4, "max": 60, "mode": "onchange"},
        }
    },
}


class FakeClock:
    """Reloj manual para el pipeline (epoch en segundos)."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class Seeder:
    """Inserta filas que en producción escriben otros sistemas."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def user(self, user_id: str, active_device_id: Optional[str] = None) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text("""
                    INSERT INTO users (user_id, email, active_device_id)
                    VALUES (:user_id, :email, :active)
                """),
                {"user_id": user_id, "email": f"{user_id}@example.com", "active": active_device_id},
            )

    def profile(self, profile_id: str, identifier: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text("INSERT INTO profiles (profile_id, identifier) VALUES (:p, :i)"),
                {"p": profile_id, "i": identifier},
            )

    def prefix(self, prefix_id: str, prefix: str, device_name: str, manufacturer: str, sequence: int = 0) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                text("""
                    INSERT INTO device_prefixes (prefix_id, prefix, device_name, manufacturer, sequence)
                    VALUES (:id, :prefix, :name, :manufacturer, :sequence)
                """),
                {
                    "id": prefix_id,
                    "prefix": prefix,
                    "name": device_name,
                    "manufacturer": manufacturer,
                    "sequence": sequence,
                },
            )

    def device(
        self,
        device_id: str,
        device_type: str = "BED_SENSOR",
        status: str = "inactive",
        user_id: Optional[str] = None,
        profile_id: Optional[str] = None,
        last_active_at: Optional[float] = None,
    ) -> None:
        with self.engine.begin() as conn:
            DeviceRepository(conn).insert({
                "device_id": device_id,
                "device_type": device_type,
                "manufacturer": "Acme Health",
                "status": status,
                "user_id": user_id,
                "profile_id": profile_id,
                "last_active_at": last_active_at,
                "created_at": 1_600_000_000.0,
            })
            if user_id:
                conn.execute(
                    text("INSERT INTO user_devices (user_id, device_id) VALUES (:u, :d)"),
                    {"u": user_id, "d": device_id},
                )

    def health(self, device_id: str, ts: float, heart_rate: Optional[float], presence: int = 1) -> None:
        with self.engine.begin() as conn:
            TelemetryRepository(conn).insert_health({
                "deviceId": device_id,
                "ts": ts,
                "heartRate": heart_rate,
                "presence": presence,
            })

    # Lecturas

    def get_device(self, device_id: str) -> Optional[dict[str, Any]]:
        with self.engine.connect() as conn:
            return DeviceRepository(conn).get(device_id)

    def get_user(self, user_id: str) -> Optional[dict[str, Any]]:
        with self.engine.connect() as conn:
            row = conn.execute(
                text("SELECT * FROM users WHERE user_id = :u"), {"u": user_id}
            ).fetchone()
            return dict(row._mapping) if row else None

    def user_active_devices(self, user_id: str) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text("SELECT device_id FROM user_active_devices WHERE user_id = :u ORDER BY device_id"),
                {"u": user_id},
            ).fetchall()
            return [r.device_id for r in rows]

    def user_devices(self, user_id: str) -> list[str]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                text("SELECT device_id FROM user_devices WHERE user_id = :u ORDER BY device_id"),
                {"u": user_id},
            ).fetchall()
            return [r.device_id for r in rows]

    def count_health(self, device_id: str, start: Optional[float] = None, end: Optional[float] = None) -> int:
        with self.engine.connect() as conn:
            return TelemetryRepository(conn).count_health(device_id, start, end)

    def count_sleep(self, device_id: str) -> int:
        with self.engine.connect() as conn:
            return TelemetryRepository(conn).count_sleep(device_id)

    def health_records(self, device_id: str) -> list[dict[str, Any]]:
        with self.engine.connect() as conn:
            return TelemetryRepository(conn).health_history(device_id, limit=1000)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'telemetry.db'}"


@pytest.fixture
def engine(database_url):
    eng = build_engine(database_url)
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def seed(engine) -> Seeder:
    return Seeder(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rules() -> RuleTable:
    return RuleTable(TEST_SPEC)


@pytest.fixture
def pipeline(engine, rules, clock) -> IngestionPipeline:
    return IngestionPipeline(
        engine=engine,
        rules=rules,
        tracker=PresenceTracker(KeyedLock(8)),
        retraction_window_seconds=12.0,
        clock=clock,
    )
