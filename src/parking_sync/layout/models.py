"""Data models for parking layout configuration."""

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DESTINATION_MARKER = "destination"

VALID_ROTATIONS = (0, 90, 180, 270)

_SPOT_INDEX_PATTERN = re.compile(r"[A-Za-z](\d+)$")


class ConfigSource(str, Enum):
    """Where a resolved layout came from."""

    MEMORY = "memory"
    CACHE = "cache"
    REMOTE = "remote"
    FALLBACK = "fallback"


class Position(BaseModel):
    """X,Y coordinates on the floor map."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float


class Dimensions(BaseModel):
    """Width and height of a spot on the floor map."""

    model_config = ConfigDict(frozen=True)

    width: float
    height: float


class GestureLimits(BaseModel):
    """Pan/zoom limits for the map view."""

    model_config = ConfigDict(populate_by_name=True)

    max_translate_x: float = Field(300, alias="maxTranslateX")
    min_translate_x: float = Field(-300, alias="minTranslateX")
    max_translate_y: float = Field(200, alias="maxTranslateY")
    min_translate_y: float = Field(-600, alias="minTranslateY")
    min_scale: float = Field(0.7, alias="minScale")
    max_scale: float = Field(3, alias="maxScale")
    clamp_min_scale: float = Field(0.8, alias="clampMinScale")
    clamp_max_scale: float = Field(2.5, alias="clampMaxScale")


class InitialView(BaseModel):
    """Initial map camera position."""

    model_config = ConfigDict(populate_by_name=True)

    translate_x: float = Field(0, alias="translateX")
    translate_y: float = Field(0, alias="translateY")
    scale: float = 1


def section_from_spot_id(spot_id: str) -> str:
    """
    Get the section letter of a spot.

    The section is the first letter of the id, after any floor digits:
    "A1" -> "A", "4A1" -> "A".
    """
    for char in spot_id:
        if char.isalpha():
            return char.upper()
    raise ValueError(f"Spot id '{spot_id}' has no section letter")


def spot_index_from_spot_id(spot_id: str) -> Optional[int]:
    """Get the spot number within its section ("4A12" -> 12)."""
    match = _SPOT_INDEX_PATTERN.search(spot_id)
    return int(match.group(1)) if match else None


class ParkingSpotConfig(BaseModel):
    """Static configuration of a single parking spot."""

    model_config = ConfigDict(frozen=True)

    spot_id: str
    sensor_id: Optional[int] = None  # None if no sensor is installed
    position: Position
    dimensions: Dimensions
    rotation: int = 0
    section: str = ""
    destination_offset: Optional[Position] = None

    @field_validator("rotation", mode="before")
    @classmethod
    def normalize_rotation(cls, v) -> int:
        """Accept 90, "90", "90deg" or "-90deg" and normalize to 0/90/180/270."""
        if isinstance(v, str):
            v = v.strip().lower().removesuffix("deg")
        degrees = int(float(v)) % 360
        if degrees not in VALID_ROTATIONS:
            raise ValueError(f"Rotation must be a multiple of 90 degrees, got {v}")
        return degrees

    @model_validator(mode="before")
    @classmethod
    def derive_section(cls, data):
        if isinstance(data, dict) and not data.get("section") and data.get("spot_id"):
            data = {**data, "section": section_from_spot_id(data["spot_id"])}
        return data

    @property
    def index(self) -> Optional[int]:
        return spot_index_from_spot_id(self.spot_id)


class NavigationWaypoint(BaseModel):
    """A named point on the floor's navigation graph."""

    id: str
    position: Position


class NavigationRoute(BaseModel):
    """Authored route from the entrance to a section (or a single spot)."""

    section: str
    index: Optional[int] = None  # Spot number for per-spot routes
    waypoints: list[str]


class FloorConfig(BaseModel):
    """Layout of one floor."""

    floor_number: int
    floor_name: str
    building_name: str
    map_component: Optional[str] = None
    map_image_url: Optional[str] = None
    entrance_point: Position
    parking_spots: list[ParkingSpotConfig] = []
    navigation_waypoints: list[NavigationWaypoint] = []
    navigation_routes: list[NavigationRoute] = []
    gesture_limits: Optional[GestureLimits] = None
    initial_view: Optional[InitialView] = None

    @model_validator(mode="after")
    def check_unique_spots(self) -> "FloorConfig":
        seen_spots: set[str] = set()
        seen_sensors: set[int] = set()
        for spot in self.parking_spots:
            if spot.spot_id in seen_spots:
                raise ValueError(
                    f"Duplicate spot id '{spot.spot_id}' on floor {self.floor_number}"
                )
            seen_spots.add(spot.spot_id)

            if spot.sensor_id is not None:
                if spot.sensor_id in seen_sensors:
                    raise ValueError(
                        f"Sensor {spot.sensor_id} assigned to more than one spot "
                        f"on floor {self.floor_number}"
                    )
                seen_sensors.add(spot.sensor_id)
        return self

    def get_spot(self, spot_id: str) -> Optional[ParkingSpotConfig]:
        """Get a spot by id."""
        for spot in self.parking_spots:
            if spot.spot_id == spot_id:
                return spot
        return None


class LocationConfig(BaseModel):
    """Parking layout for a whole location."""

    location_id: str
    location_name: str
    floors: list[FloorConfig]
    version: str
    last_updated: str

    @model_validator(mode="after")
    def check_unique_floors(self) -> "LocationConfig":
        floor_numbers = [f.floor_number for f in self.floors]
        if len(floor_numbers) != len(set(floor_numbers)):
            raise ValueError(f"Duplicate floor numbers in location '{self.location_id}'")

        # Sensor ids are unique across the whole location, not just per floor
        sensor_owner: dict[int, str] = {}
        for floor in self.floors:
            for spot in floor.parking_spots:
                if spot.sensor_id is None:
                    continue
                owner = sensor_owner.get(spot.sensor_id)
                if owner is not None:
                    raise ValueError(
                        f"Sensor {spot.sensor_id} assigned to both '{owner}' "
                        f"and '{spot.spot_id}'"
                    )
                sensor_owner[spot.sensor_id] = spot.spot_id
        return self

    def get_floor(self, floor_number: int) -> Optional[FloorConfig]:
        """Get a floor by number."""
        for floor in self.floors:
            if floor.floor_number == floor_number:
                return floor
        return None


class CacheMetadata(BaseModel):
    """Bookkeeping stored next to a persisted layout."""

    location_id: str
    version: str
    cached_at: datetime
    expires_at: datetime

    @classmethod
    def create(
        cls, config: LocationConfig, now: datetime, ttl: timedelta
    ) -> "CacheMetadata":
        return cls(
            location_id=config.location_id,
            version=config.version,
            cached_at=now,
            expires_at=now + ttl,
        )

    def is_valid_for(self, location_id: str, now: datetime) -> bool:
        """Check the entry belongs to the location and has not expired."""
        return self.location_id == location_id and now < self.expires_at


class ConfigEnvelope(BaseModel):
    """Response envelope of the parking-config endpoint."""

    success: bool
    data: Optional[LocationConfig] = None
    message: Optional[str] = None
