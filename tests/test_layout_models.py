from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from conftest import floor_payload, location_payload, spot
from parking_sync.layout.fallback import build_fallback_config
from parking_sync.layout.models import (
    DESTINATION_MARKER,
    CacheMetadata,
    FloorConfig,
    LocationConfig,
    ParkingSpotConfig,
    section_from_spot_id,
)
from parking_sync.state.engine import generate_path


@pytest.mark.parametrize(
    ("raw", "expected"),
    [(0, 0), ("90deg", 90), ("-90deg", 270), ("180", 180), (270, 270), ("360deg", 0)],
)
def test_rotation_is_normalized(raw, expected):
    parsed = ParkingSpotConfig.model_validate(spot("A1", 1, rotation=raw))
    assert parsed.rotation == expected


def test_rotation_must_be_quarter_turn():
    with pytest.raises(ValidationError):
        ParkingSpotConfig.model_validate(spot("A1", 1, rotation="45deg"))


def test_section_derived_from_spot_id():
    assert ParkingSpotConfig.model_validate(spot("A1", 1)).section == "A"
    assert ParkingSpotConfig.model_validate(spot("4J12", 2)).section == "J"
    assert ParkingSpotConfig.model_validate(spot("4J12", 2)).index == 12
    assert section_from_spot_id("3b2") == "B"


def test_explicit_section_wins():
    parsed = ParkingSpotConfig.model_validate(spot("A1", 1, section="Z"))
    assert parsed.section == "Z"


def test_duplicate_spot_ids_rejected():
    payload = floor_payload(spots=[spot("A1", 1), spot("A1", 2)])
    with pytest.raises(ValidationError, match="Duplicate spot id"):
        FloorConfig.model_validate(payload)


def test_sensor_shared_by_two_spots_rejected():
    payload = floor_payload(spots=[spot("A1", 7), spot("A2", 7)])
    with pytest.raises(ValidationError, match="more than one spot"):
        FloorConfig.model_validate(payload)


def test_sensor_unique_across_floors():
    payload = location_payload()
    payload["floors"][1]["parking_spots"] = [spot("2A1", 10)]
    with pytest.raises(ValidationError, match="assigned to both"):
        LocationConfig.model_validate(payload)


def test_duplicate_floor_numbers_rejected():
    payload = location_payload()
    payload["floors"][1]["floor_number"] = 1
    with pytest.raises(ValidationError, match="Duplicate floor numbers"):
        LocationConfig.model_validate(payload)


def test_gesture_limits_accept_wire_names():
    payload = floor_payload()
    payload["gesture_limits"] = {"maxTranslateX": 120, "minScale": 0.5}
    parsed = FloorConfig.model_validate(payload)
    assert parsed.gesture_limits.max_translate_x == 120
    assert parsed.gesture_limits.min_scale == 0.5
    assert parsed.gesture_limits.max_scale == 3


def test_cache_metadata_validity(location):
    now = datetime(2026, 10, 17, 12, tzinfo=timezone.utc)
    metadata = CacheMetadata.create(location, now, timedelta(hours=24))

    assert metadata.expires_at - metadata.cached_at == timedelta(hours=24)
    assert metadata.is_valid_for("test_location", now + timedelta(hours=23))
    assert not metadata.is_valid_for("test_location", now + timedelta(hours=24))
    assert not metadata.is_valid_for("other_location", now)


def test_fallback_layout_is_consistent():
    config = build_fallback_config("usjr_quadricentennial")

    assert config.version.endswith("fallback")
    assert [f.floor_number for f in config.floors] == [1, 2, 3, 4]
    floor_two = config.get_floor(2)
    sensors = [s.sensor_id for s in floor_two.parking_spots if s.sensor_id is not None]
    assert min(sensors) == 41
    assert max(sensors) == 80
    assert floor_two.get_spot("2A1").section == "A"


def test_fallback_routes_reach_every_spot():
    floor = build_fallback_config("usjr_quadricentennial").get_floor(1)
    waypoint_ids = {w.id for w in floor.navigation_waypoints}

    for route in floor.navigation_routes:
        assert set(route.waypoints) - {DESTINATION_MARKER} <= waypoint_ids
    for parking_spot in floor.parking_spots:
        assert generate_path(floor, parking_spot.spot_id), parking_spot.spot_id
