"""Parking layout configuration module."""

from .fallback import build_fallback_config
from .models import (
    CacheMetadata,
    ConfigSource,
    FloorConfig,
    LocationConfig,
    NavigationRoute,
    NavigationWaypoint,
    ParkingSpotConfig,
    Position,
)
from .resolver import ConfigResolver, SingleFlight
from .storage import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    "CacheMetadata",
    "ConfigResolver",
    "ConfigSource",
    "FloorConfig",
    "JsonFileStore",
    "KeyValueStore",
    "LocationConfig",
    "MemoryStore",
    "NavigationRoute",
    "NavigationWaypoint",
    "ParkingSpotConfig",
    "Position",
    "SingleFlight",
    "build_fallback_config",
]
