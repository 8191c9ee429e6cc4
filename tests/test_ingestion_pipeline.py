"""Tests del pipeline de ingesta contra SQLite.

Cubre:
1. Marcado de dispositivo activo en cada mensaje
2. Reglas: rango, dedupe onchange, modo always
3. Retracción por caída de presencia
4. Decodificación de líneas y métricas extra
5. Registros de sueño
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from conftest import DEVICE_A, DEVICE_PLAIN
from telemetry_api.errors import NotFoundError, ValidationError
from telemetry_api.pipeline import IngestStatus

HRV_LINE = "HRV_DATA,812,45.1,38.2,12.5,74,9.1,210,27.0,60.3,410,380,1.08,1.6,0.45,0.8,-0.3"


@pytest.fixture(autouse=True)
def devices(seed):
    seed.device(DEVICE_A, device_type="BED_SENSOR")
    seed.device(DEVICE_PLAIN, device_type="PLAIN_SENSOR")


# =============================================================================
# ENTRADA
# =============================================================================

class TestEntryContract:
    def test_unknown_device_not_found(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.ingest("1001-FFFFFFFFFFFF", "health", {"hr": 70})

    def test_unknown_kind_is_validation_error(self, pipeline):
        with pytest.raises(ValidationError):
            pipeline.ingest(DEVICE_A, "steps", {})

    def test_device_id_case_insensitive(self, pipeline, seed):
        outcome = pipeline.ingest(DEVICE_A.lower(), "health", {"hr": 70})
        assert outcome.status == IngestStatus.STORED
        assert seed.count_health(DEVICE_A) == 1

    def test_every_message_marks_device_active(self, pipeline, seed, clock):
        clock.advance(5)
        outcome = pipeline.ingest(DEVICE_A, "health", {"hr": 10})

        assert outcome.status == IngestStatus.SKIPPED
        device = seed.get_device(DEVICE_A)
        assert device["status"] == "active"
        assert device["last_active_at"] == clock.now


# =============================================================================
# REGLAS
# =============================================================================

class TestRules:
    def test_always_mode_scenario(self, pipeline, seed):
        dropped = pipeline.ingest(DEVICE_A, "health", {"heartRate": 25})
        first = pipeline.ingest(DEVICE_A, "health", {"heartRate": 75})
        second = pipeline.ingest(DEVICE_A, "health", {"heartRate": 75})

        assert dropped.status == IngestStatus.SKIPPED
        assert dropped.reason == "out_of_range"
        assert first.stored and second.stored
        assert seed.count_health(DEVICE_A) == 2

    def test_onchange_same_value_stored_once(self, pipeline, seed):
        pipeline.ingest(DEVICE_A, "health", {"resp": 16})
        repeated = pipeline.ingest(DEVICE_A, "health", {"respiration": 16})

        assert repeated.reason == "unchanged"
        assert seed.count_health(DEVICE_A) == 1

    def test_onchange_distinct_values_stored_twice(self, pipeline, seed):
        pipeline.ingest(DEVICE_A, "health", {"respiration": 16})
        pipeline.ingest(DEVICE_A, "health", {"respiration": 18})
        assert seed.count_health(DEVICE_A) == 2

    def test_whole_message_rejected_on_any_violation(self, pipeline, seed):
        outcome = pipeline.ingest(DEVICE_A, "health", {"heartRate": 80, "respiration": 99, "temperature": 36.6})

        assert outcome.reason == "out_of_range"
        assert outcome.violations == ["respiration>max"]
        assert seed.count_health(DEVICE_A) == 0

    def test_rejected_message_keeps_baseline(self, pipeline, seed):
        pipeline.ingest(DEVICE_A, "health", {"respiration": 20, "heartRate": 10})
        accepted = pipeline.ingest(DEVICE_A, "health", {"respiration": 20})

        assert accepted.stored
        assert seed.count_health(DEVICE_A) == 1

    def test_message_without_rule_metrics_is_unchanged(self, pipeline, seed):
        outcome = pipeline.ingest(DEVICE_A, "health", {"temperature": 36.6})
        assert outcome.reason == "unchanged"
        assert seed.count_health(DEVICE_A) == 0

    def test_line_values_checked_against_rules(self, pipeline, seed):
        outcome = pipeline.ingest(DEVICE_A, "health", {"hr": 70, "line": "HR,250"})
        assert outcome.reason == "out_of_range"

    def test_device_without_rules_always_stores(self, pipeline, seed):
        for _ in range(3):
            assert pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70}).stored
        assert seed.count_health(DEVICE_PLAIN) == 3


# =============================================================================
# PRESENCIA Y RETRACCIÓN
# =============================================================================

class TestPresenceRetraction:
    def test_drop_retracts_trailing_window(self, pipeline, seed, clock):
        t0 = clock.now
        seed.health(DEVICE_PLAIN, t0 - 20, 70)

        for offset in (0, 2, 4):
            clock.now = t0 + offset
            pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70 + offset})

        clock.now = t0 + 5
        outcome = pipeline.ingest(DEVICE_PLAIN, "health", {"signals": {"presence": 0}})

        assert outcome.status == IngestStatus.SKIPPED
        assert outcome.reason == "presence_absent"
        assert outcome.retracted == 3
        assert seed.count_health(DEVICE_PLAIN) == 1

    def test_retraction_holds_after_immediate_return(self, pipeline, seed, clock):
        t0 = clock.now
        pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70})
        clock.now = t0 + 3
        pipeline.ingest(DEVICE_PLAIN, "health", {"signals": {"presence": False}})
        drop_time = clock.now

        clock.now = t0 + 4
        resumed = pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 71, "signals": {"presence": 1}})

        assert resumed.stored
        assert seed.count_health(DEVICE_PLAIN, drop_time - 12, drop_time) == 0

    def test_absent_messages_not_persisted_nor_retracted_again(self, pipeline, seed, clock):
        pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70})
        clock.advance(1)
        first = pipeline.ingest(DEVICE_PLAIN, "health", {"line": "PRESENCE,0"})
        clock.advance(1)
        second = pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 72, "line": "PRESENCE,0"})

        assert first.retracted == 1
        assert second.retracted == 0
        assert second.reason == "presence_absent"
        assert seed.count_health(DEVICE_PLAIN) == 0

    def test_presence_checked_before_rules(self, pipeline, seed):
        outcome = pipeline.ingest(DEVICE_A, "health", {"heartRate": 500, "signals": {"presence": 0}})
        assert outcome.reason == "presence_absent"

    def test_window_is_bounded(self, pipeline, seed, clock):
        t0 = clock.now
        pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70})
        clock.now = t0 + 13
        outcome = pipeline.ingest(DEVICE_PLAIN, "health", {"signals": {"presence": 0}})

        assert outcome.retracted == 0
        assert seed.count_health(DEVICE_PLAIN) == 1


# =============================================================================
# REGISTRO PERSISTIDO
# =============================================================================

class TestPersistedRecord:
    def test_absent_vitals_stored_as_null(self, pipeline, seed):
        pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70})
        record = seed.health_records(DEVICE_PLAIN)[0]

        assert record["heartRate"] == 70.0
        assert record["temperature"] is None
        assert record["respiration"] is None

    def test_lines_merged_into_record(self, pipeline, seed):
        pipeline.ingest(
            DEVICE_PLAIN,
            "health",
            {"hr": 60, "lines": [HRV_LINE, "TEMP_HUM,36.4,41", "BAT,87", "FOO,1"]},
        )
        record = seed.health_records(DEVICE_PLAIN)[0]

        assert record["heartRate"] == 74.0
        assert record["hrv"] == 38.2
        assert record["temperature"] == 36.4
        assert record["metrics"]["sdnn"] == 45.1
        assert record["signals"]["battery"] == 87.0
        assert record["raw"].split("\n")[-1] == "FOO,1"

    def test_metric_sources_and_signal_defaults(self, pipeline, seed):
        pipeline.ingest(
            DEVICE_PLAIN,
            "health",
            {
                "metrics": {"sdnn": 10, "custom": 1},
                "line": HRV_LINE,
                "VO2max": 42,
                "Steps": 1000,
                "unknown_key": 5,
                "signals": {"motion": True, "extra": "x"},
            },
        )
        record = seed.health_records(DEVICE_PLAIN)[0]

        assert record["metrics"]["sdnn"] == 45.1
        assert record["metrics"]["custom"] == 1
        assert record["metrics"]["VO2max"] == 42
        assert record["metrics"]["Steps"] == 1000
        assert "unknown_key" not in record["metrics"]
        assert record["signals"]["motion"] is True
        assert record["signals"]["extra"] == "x"
        assert record["signals"]["rrIntervals"] == []
        assert record["signals"]["presence"] is None

    def test_storage_error_propagates_and_keeps_baseline(self, pipeline, engine, seed):
        with engine.begin() as conn:
            conn.execute(text("DROP TABLE health_data"))

        with pytest.raises(SQLAlchemyError):
            pipeline.ingest(DEVICE_A, "health", {"respiration": 16})

        with pipeline.tracker.device(DEVICE_A) as entry:
            assert entry.last_values == {}

    def test_oversized_integer_metric_is_validation_error(self, pipeline, seed):
        with pytest.raises(ValidationError):
            pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70, "Steps": 2**70})

        with pytest.raises(ValidationError):
            pipeline.ingest(DEVICE_PLAIN, "health", {"metrics": {"x": 2**70}})

        assert seed.count_health(DEVICE_PLAIN) == 0

        pipeline.ingest(DEVICE_PLAIN, "health", {"hr": 70, "Steps": 1000})
        assert seed.count_health(DEVICE_PLAIN) == 1


# =============================================================================
# SUEÑO
# =============================================================================

class TestSleep:
    def test_sleep_always_stored_with_defaults(self, pipeline, seed):
        pipeline.ingest(DEVICE_A, "sleep", {})
        outcome = pipeline.ingest(DEVICE_A, "SLEEP", {"sleepQuality": "Good", "duration": 420})

        assert outcome.stored
        assert seed.count_sleep(DEVICE_A) == 2

    def test_sleep_ignores_presence(self, pipeline, seed):
        pipeline.ingest(DEVICE_A, "health", {"signals": {"presence": 0}})
        assert pipeline.ingest(DEVICE_A, "sleep", {"duration": "bad"}).stored

    def test_stats(self, pipeline):
        pipeline.ingest(DEVICE_A, "sleep", {})
        pipeline.ingest(DEVICE_A, "health", {"heartRate": 10})

        stats = pipeline.get_stats()
        assert stats["sleep_stored"] == 1
        assert stats["skipped_out_of_range"] == 1
        assert stats["tracked_devices"] == 1
