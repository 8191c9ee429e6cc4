"""Tests del tracker de presencia/cambios y del lock por clave."""

import threading

import pytest

from telemetry_api.rules import DedupeMode, MetricRule, RuleTable
from telemetry_api.tracking import (
    KeyedLock,
    PresenceTracker,
    PresenceTransition,
    RejectReason,
    presence_of,
)

RULES = {
    "heartRate": MetricRule(min_value=30, max_value=220, mode=DedupeMode.ALWAYS),
    "respiration": MetricRule(min_value=4, max_value=60, mode=DedupeMode.ON_CHANGE),
}


@pytest.fixture
def tracker() -> PresenceTracker:
    return PresenceTracker(KeyedLock(4))


# =============================================================================
# PRESENCIA
# =============================================================================

class TestPresenceOf:
    @pytest.mark.parametrize(
        "signals, expected",
        [
            (None, 1),
            ({}, 1),
            ({"presence": None}, 1),
            ({"presence": True}, 1),
            ({"presence": False}, 0),
            ({"presence": 1}, 1),
            ({"presence": 0}, 0),
            ({"presence": 2}, 0),
            ({"presence": "1"}, 1),
        ],
    )
    def test_presence_reading(self, signals, expected):
        assert presence_of(signals) == expected


class TestPresenceTransitions:
    def test_default_is_present(self, tracker):
        with tracker.device("D1") as entry:
            assert entry.last_presence == 1
            assert tracker.observe_presence(entry, 1) == PresenceTransition.NONE

    def test_drop_and_resume(self, tracker):
        with tracker.device("D1") as entry:
            assert tracker.observe_presence(entry, 0) == PresenceTransition.DROPPED
            assert tracker.observe_presence(entry, 0) == PresenceTransition.NONE
            assert tracker.observe_presence(entry, 1) == PresenceTransition.RESUMED

    def test_devices_are_independent(self, tracker):
        with tracker.device("D1") as entry:
            tracker.observe_presence(entry, 0)
        with tracker.device("D2") as entry:
            assert entry.last_presence == 1

        assert tracker.snapshot("D1").last_presence == 0
        assert tracker.snapshot("unknown") is None


# =============================================================================
# REGLAS Y DEDUPE
# =============================================================================

class TestRuleEvaluation:
    def test_no_rules_always_pass(self, tracker):
        with tracker.device("D1") as entry:
            decision = tracker.evaluate(entry, {}, lambda name: None)
        assert decision.accepted is True

    def test_out_of_range_rejects_whole_message(self, tracker):
        values = {"heartRate": 25, "respiration": 12}
        with tracker.device("D1") as entry:
            decision = tracker.evaluate(entry, RULES, values.get)

        assert decision.accepted is False
        assert decision.reason == RejectReason.OUT_OF_RANGE
        assert decision.violations == ["heartRate<min"]
        assert decision.changed == {}

    def test_above_max_label(self, tracker):
        with tracker.device("D1") as entry:
            decision = tracker.evaluate(entry, RULES, {"respiration": 61}.get)
        assert decision.violations == ["respiration>max"]

    def test_bounds_are_inclusive(self, tracker):
        with tracker.device("D1") as entry:
            decision = tracker.evaluate(entry, RULES, {"heartRate": 30}.get)
        assert decision.accepted is True

    def test_onchange_dedupe(self, tracker):
        with tracker.device("D1") as entry:
            first = tracker.evaluate(entry, RULES, {"respiration": 16}.get)
            tracker.commit(entry, first)
            second = tracker.evaluate(entry, RULES, {"respiration": 16}.get)
            third = tracker.evaluate(entry, RULES, {"respiration": 17}.get)

        assert first.accepted is True
        assert second.accepted is False
        assert second.reason == RejectReason.UNCHANGED
        assert third.accepted is True
        assert third.changed == {"respiration": 17}

    def test_always_mode_never_dedupes(self, tracker):
        with tracker.device("D1") as entry:
            for _ in range(3):
                decision = tracker.evaluate(entry, RULES, {"heartRate": 75}.get)
                assert decision.accepted is True
                tracker.commit(entry, decision)

    def test_rejected_message_does_not_move_baseline(self, tracker):
        with tracker.device("D1") as entry:
            rejected = tracker.evaluate(entry, RULES, {"respiration": 20, "heartRate": 10}.get)
            tracker.commit(entry, rejected)
            assert entry.last_values == {}

            accepted = tracker.evaluate(entry, RULES, {"respiration": 20}.get)
        assert accepted.accepted is True

    def test_unchanged_metric_does_not_restart_baseline(self, tracker):
        with tracker.device("D1") as entry:
            tracker.commit(entry, tracker.evaluate(entry, RULES, {"respiration": 16}.get))
            mixed = tracker.evaluate(entry, RULES, {"respiration": 16, "heartRate": 70}.get)
            tracker.commit(entry, mixed)

        assert mixed.accepted is True
        assert mixed.changed == {"heartRate": 70}
        assert entry.last_values == {"respiration": 16, "heartRate": 70}

    def test_no_rule_metric_present_is_unchanged(self, tracker):
        with tracker.device("D1") as entry:
            decision = tracker.evaluate(entry, RULES, {"temperature": 36.5}.get)
        assert decision.accepted is False
        assert decision.reason == RejectReason.UNCHANGED


class TestRuleTable:
    def test_unknown_type_has_no_rules(self):
        table = RuleTable.default()
        assert dict(table.rules_for("NOPE")) == {}
        assert dict(table.rules_for(None)) == {}

    def test_rules_are_read_only(self):
        rules = RuleTable.default().rules_for("BED_SENSOR")
        with pytest.raises(TypeError):
            rules["heartRate"] = MetricRule()

    def test_load_from_file(self, tmp_path):
        spec_file = tmp_path / "spec.json"
        spec_file.write_text('{"PAD": {"params": {"stress": {"max": 90, "mode": "onchange"}}}}')

        table = RuleTable.load(str(spec_file))
        rule = table.rules_for("PAD")["stress"]

        assert rule.min_value is None
        assert rule.max_value == 90.0
        assert rule.mode == DedupeMode.ON_CHANGE


# =============================================================================
# CONCURRENCIA
# =============================================================================

class TestKeyedLock:
    def test_same_key_same_lock(self):
        locks = KeyedLock(16)
        assert locks.lock_for("1001-0000000000A1") is locks.lock_for("1001-0000000000A1")

    def test_hold_many_same_stripe_does_not_deadlock(self):
        locks = KeyedLock(1)
        with locks.hold_many("profile:X", "device:A"):
            assert locks.lock_for("anything").locked()
        assert not locks.lock_for("anything").locked()

    def test_invalid_stripes(self):
        with pytest.raises(ValueError):
            KeyedLock(0)


class TestTrackerConcurrency:
    def test_per_device_updates_are_not_lost(self, tracker):
        devices = [f"D{i}" for i in range(8)]
        iterations = 200

        def worker(device_id):
            for _ in range(iterations):
                with tracker.device(device_id) as entry:
                    count = entry.last_values.get("count", 0)
                    entry.last_values["count"] = count + 1

        threads = [
            threading.Thread(target=worker, args=(device_id,))
            for device_id in devices
            for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        for device_id in devices:
            assert tracker.snapshot(device_id).last_values["count"] == iterations * 3

    def test_stats_report_injected_lock_stripes(self):
        tracker = PresenceTracker(KeyedLock(4))
        assert tracker.get_stats()["lock_stripes"] == 4
