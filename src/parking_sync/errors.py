"""Exceptions raised by the parking sync core."""


class ParkingSyncError(Exception):
    """Base class for all parking sync errors."""


class ConfigNotFound(ParkingSyncError):
    """No floor matches the requested floor number."""

    def __init__(self, location_id: str, floor_number: int):
        super().__init__(
            f"Floor {floor_number} not found for location '{location_id}'"
        )
        self.location_id = location_id
        self.floor_number = floor_number


class ConfigLoadFailed(ParkingSyncError):
    """Layout could not be loaded from storage or the backend.

    Never escapes the resolver; it always recovers with the fallback layout.
    """


class ConnectionLost(ParkingSyncError):
    """The occupancy connection dropped unexpectedly."""


class ForceUpdateFailed(ParkingSyncError):
    """A user-requested occupancy resync failed."""
