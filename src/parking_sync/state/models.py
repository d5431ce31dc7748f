"""Data models for derived parking state."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..layout.models import Dimensions, Position
from ..sync.models import ConnectionStatus


class ParkingSpotState(BaseModel):
    """Current state of a parking spot on the active floor."""

    spot_id: str
    sensor_id: Optional[int] = None
    section: str
    position: Position
    dimensions: Dimensions
    rotation: int = 0
    has_sensor: bool
    is_occupied: bool = False


class SectionSummary(BaseModel):
    """Availability of one section."""

    id: str
    label: str
    total_slots: int
    available_slots: int
    is_full: bool


class FloorState(BaseModel):
    """Snapshot of the active floor."""

    location_id: Optional[str] = None
    floor_number: Optional[int] = None
    floor_name: Optional[str] = None
    spots: list[ParkingSpotState]
    sections: list[SectionSummary]
    total_slots: int
    available_slots: int
    connection_status: ConnectionStatus
    last_update: Optional[datetime] = None
