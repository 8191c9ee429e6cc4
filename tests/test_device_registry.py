"""Tests de alta, consulta e historial de dispositivos."""

import pytest

from conftest import DEVICE_A
from telemetry_api.devices import DeviceRegistry, format_prefixed_id
from telemetry_api.errors import ConflictError, NotFoundError, ValidationError


@pytest.fixture
def registry(engine, clock) -> DeviceRegistry:
    return DeviceRegistry(engine, clock=clock)


@pytest.fixture(autouse=True)
def world(seed):
    seed.user("u1")
    seed.prefix("pfx-1", "2001", "WEARABLE_BAND", "Acme Health", sequence=9)


def manual(**overrides):
    payload = {"deviceId": "3003-00000000abcd", "deviceType": "BED_SENSOR", "manufacturer": "Acme"}
    payload.update(overrides)
    return payload


class TestAddManual:
    def test_defaults_and_ownership(self, registry, seed):
        device = registry.add_device(manual(), user_id="u1")

        assert device["deviceId"] == "3003-00000000ABCD"
        assert device["status"] == "inactive"
        assert device["userId"] == "u1"
        assert device["profileVersion"] == 1
        assert seed.user_devices("u1") == ["3003-00000000ABCD"]
        assert seed.get_user("u1")["active_device_id"] is None

    def test_active_device_sets_pointer_when_empty(self, registry, seed):
        registry.add_device(manual(status="active"), user_id="u1")
        registry.add_device(manual(deviceId="3003-00000000ABCE", status="active"), user_id="u1")

        assert seed.get_user("u1")["active_device_id"] == "3003-00000000ABCD"

    def test_duplicate_conflict(self, registry):
        registry.add_device(manual())
        with pytest.raises(ConflictError):
            registry.add_device(manual(deviceId="3003-00000000ABCD"))

    def test_missing_fields(self, registry):
        with pytest.raises(ValidationError) as exc_info:
            registry.add_device({"deviceId": "3003-00000000ABCD"})
        assert "deviceType" in exc_info.value.message
        assert "manufacturer" in exc_info.value.message

    @pytest.mark.parametrize("bad_id", ["300-00000000ABCD", "3003-00000000ABCG", "3003_00000000ABCD"])
    def test_invalid_id(self, registry, bad_id):
        with pytest.raises(ValidationError):
            registry.add_device(manual(deviceId=bad_id))

    def test_unknown_user(self, registry):
        with pytest.raises(NotFoundError):
            registry.add_device(manual(), user_id="ghost")


class TestAddFromPrefix:
    def test_sequential_ids(self, registry):
        first = registry.add_device({"prefixId": "pfx-1"}, user_id="u1")
        second = registry.add_device({"prefixId": "pfx-1"}, user_id="u1")

        assert first["deviceId"] == "2001-00000000000A"
        assert second["deviceId"] == "2001-00000000000B"
        assert first["deviceType"] == "WEARABLE_BAND"
        assert first["manufacturer"] == "Acme Health"

    def test_unknown_prefix(self, registry):
        with pytest.raises(NotFoundError):
            registry.add_device({"prefixId": "missing"})

    def test_format(self):
        assert format_prefixed_id("1234", 255) == "1234-0000000000FF"


class TestLookup:
    def test_get(self, registry, seed):
        seed.device(DEVICE_A)
        assert registry.get(DEVICE_A.lower())["deviceId"] == DEVICE_A
        with pytest.raises(NotFoundError):
            registry.get("1001-FFFFFFFFFFFF")

    def test_availability(self, registry, seed):
        seed.device(DEVICE_A, user_id="u1")

        assert registry.availability("1001-FFFFFFFFFFFF") == {
            "exists": False,
            "assigned": False,
            "device": None,
        }
        found = registry.availability(DEVICE_A)
        assert found["exists"] is True
        assert found["assigned"] is True
        with pytest.raises(ValidationError):
            registry.availability("nope")


class TestHistory:
    def test_newest_first_with_summary(self, registry, seed):
        seed.device(DEVICE_A)
        seed.health(DEVICE_A, 100.0, 60)
        seed.health(DEVICE_A, 200.0, 80)
        seed.health(DEVICE_A, 300.0, 0)
        seed.health(DEVICE_A, 400.0, 120, presence=0)
        seed.health(DEVICE_A, 500.0, None)

        history = registry.history(DEVICE_A)

        assert [r["ts"] for r in history["records"]] == [500.0, 400.0, 300.0, 200.0, 100.0]
        assert history["summary"] == {"minHR": 60.0, "avgHR": 70.0, "maxHR": 80.0, "count": 2}

    def test_range_and_limit(self, registry, seed):
        seed.device(DEVICE_A)
        for ts in (100.0, 200.0, 300.0, 400.0):
            seed.health(DEVICE_A, ts, 70)

        history = registry.history(DEVICE_A, start="150", end=350.0, limit=1)

        assert [r["ts"] for r in history["records"]] == [300.0]
        assert history["summary"]["count"] == 2

    def test_empty_summary(self, registry, seed):
        seed.device(DEVICE_A)
        summary = registry.history(DEVICE_A)["summary"]
        assert summary == {"minHR": None, "avgHR": None, "maxHR": None, "count": 0}

    def test_unknown_device(self, registry):
        with pytest.raises(NotFoundError):
            registry.history("1001-FFFFFFFFFFFF")
