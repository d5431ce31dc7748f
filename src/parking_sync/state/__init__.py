"""State management module."""

from .engine import (
    apply_occupancy,
    build_mappings,
    build_waypoint_index,
    generate_path,
    summarize_sections,
)
from .models import FloorState, ParkingSpotState, SectionSummary
from .spot_manager import SpotManager

__all__ = [
    "FloorState",
    "ParkingSpotState",
    "SectionSummary",
    "SpotManager",
    "apply_occupancy",
    "build_mappings",
    "build_waypoint_index",
    "generate_path",
    "summarize_sections",
]
