"""API request and response schemas."""

from typing import Optional

from pydantic import BaseModel

from ..layout.models import ConfigSource, Position
from ..state.models import SectionSummary
from ..sync.models import ChannelState, ConnectionStatus


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    channel_state: ChannelState
    connection_status: ConnectionStatus
    config_source: Optional[ConfigSource] = None
    using_fallback: bool
    uptime_seconds: float


class SelectFloorRequest(BaseModel):
    """Request to change the active floor."""

    location_id: Optional[str] = None
    floor_number: int


class RefreshResponse(BaseModel):
    """Result of a layout refresh."""

    location_id: str
    version: str
    source: Optional[ConfigSource] = None
    floors: list[int]


class SectionsResponse(BaseModel):
    """Section availability for the active floor."""

    floor_number: Optional[int] = None
    sections: list[SectionSummary]


class PathResponse(BaseModel):
    """Navigation path to a spot."""

    spot_id: str
    route_available: bool
    path: list[Position]


class ForceUpdateResponse(BaseModel):
    """Result of a forced occupancy resync."""

    sensors_received: int
    spots_changed: list[str]
