"""Data models for the occupancy feed."""

import math
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_FLOOR_LEVEL_PATTERN = re.compile(r"(\d+)(?:st|nd|rd|th)?\s*floor|floor\s*(\d+)", re.IGNORECASE)


class ChannelState(str, Enum):
    """Lifecycle state of the occupancy channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class ConnectionStatus(str, Enum):
    """Status reported to connection-status subscribers."""

    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


def floor_from_level(floor_level: str) -> Optional[int]:
    """Parse a floor number from text such as "2nd Floor" or "Floor 3"."""
    match = _FLOOR_LEVEL_PATTERN.search(floor_level)
    if not match:
        return None
    return int(match.group(1) or match.group(2))


def floor_from_sensor_id(sensor_id: int, sensors_per_floor: int) -> int:
    """Legacy floor estimate: sensor ids are allocated in fixed blocks per floor."""
    return math.ceil(sensor_id / sensors_per_floor)


class OccupancyEvent(BaseModel):
    """A single sensor reading received from the backend."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    sensor_id: int
    is_occupied: bool
    distance_cm: Optional[int] = None
    floor: Optional[int] = None
    slot_name: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("is_occupied", mode="before")
    @classmethod
    def normalize_occupied(cls, v):
        """The wire sends 0/1; accept booleans as well."""
        if isinstance(v, bool):
            return v
        if isinstance(v, (int, float)) and v in (0, 1):
            return bool(v)
        if isinstance(v, str) and v.strip().lower() in ("0", "1", "true", "false"):
            return v.strip().lower() in ("1", "true")
        raise ValueError(f"is_occupied must be 0 or 1, got {v!r}")

    @field_validator("distance_cm", mode="before")
    @classmethod
    def round_distance(cls, v):
        if isinstance(v, float):
            return round(v)
        return v

    @model_validator(mode="before")
    @classmethod
    def extract_floor(cls, data):
        if isinstance(data, dict) and data.get("floor") is None:
            floor_level = data.get("floor_level")
            if isinstance(floor_level, str):
                floor = floor_from_level(floor_level)
                if floor is not None:
                    data = {**data, "floor": floor}
        return data

    def resolve_floor(self, sensors_per_floor: int) -> int:
        """Floor of this event, preferring the explicit field over sensor id arithmetic."""
        if self.floor is not None:
            return self.floor
        return floor_from_sensor_id(self.sensor_id, sensors_per_floor)

    @property
    def dedup_key(self) -> tuple[bool, datetime]:
        return (self.is_occupied, self.timestamp)
