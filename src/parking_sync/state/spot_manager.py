"""Parking spot state management for the active floor."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ..errors import ConfigNotFound
from ..layout.models import FloorConfig, LocationConfig, Position
from ..metrics import update_section_counts, update_spot_status
from ..sync.models import ConnectionStatus, OccupancyEvent
from . import engine
from .models import FloorState, ParkingSpotState, SectionSummary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _FloorSnapshot:
    """Everything derived from one floor layout, swapped in as a unit."""

    floor: Optional[FloorConfig] = None
    location_id: Optional[str] = None
    sensor_to_spot: dict[int, str] = field(default_factory=dict)
    spot_to_sensor: dict[str, int] = field(default_factory=dict)
    seed: list[str] = field(default_factory=list)


class SpotManager:
    """
    Manages spot and section state for the active floor.

    Selecting a floor rebuilds the sensor mapping off to the side and
    replaces the previous one in a single assignment, so event handlers
    never see a half-built mapping.
    """

    def __init__(self, destination_offset: Position = engine.DEFAULT_DESTINATION_OFFSET):
        """
        Initialize the spot manager.

        Args:
            destination_offset: Default margin from a spot's top-left corner
                where navigation paths end
        """
        self.destination_offset = destination_offset
        self._snapshot = _FloorSnapshot()
        self.spots: dict[str, ParkingSpotState] = {}
        self._sections: list[SectionSummary] = []
        self._connection_status = ConnectionStatus.DISCONNECTED
        self._last_update: Optional[datetime] = None

    @property
    def floor(self) -> Optional[FloorConfig]:
        return self._snapshot.floor

    @property
    def sensor_to_spot(self) -> dict[int, str]:
        return self._snapshot.sensor_to_spot

    @property
    def spot_to_sensor(self) -> dict[str, int]:
        return self._snapshot.spot_to_sensor

    def select_floor(self, config: LocationConfig, floor_number: int) -> FloorConfig:
        """
        Make a floor of a location the active floor.

        Raises:
            ConfigNotFound: If the location has no such floor
        """
        floor = config.get_floor(floor_number)
        if floor is None:
            raise ConfigNotFound(config.location_id, floor_number)
        self.load_floor(floor, location_id=config.location_id)
        return floor

    def load_floor(self, floor: FloorConfig, location_id: Optional[str] = None) -> None:
        """Rebuild mappings, spots and sections for a floor layout."""
        sensor_to_spot, spot_to_sensor = engine.build_mappings(floor)
        snapshot = _FloorSnapshot(
            floor=floor,
            location_id=location_id,
            sensor_to_spot=sensor_to_spot,
            spot_to_sensor=spot_to_sensor,
            seed=engine.section_seed(floor),
        )
        spots = engine.initial_spot_states(floor)

        self._snapshot = snapshot
        self.spots = {spot.spot_id: spot for spot in spots}
        self._recompute_sections()

        logger.info(
            f"Loaded floor {floor.floor_number} ({floor.floor_name}) with "
            f"{len(spots)} spots, {len(sensor_to_spot)} with sensors"
        )

    def apply_events(self, events: list[OccupancyEvent]) -> list[str]:
        """
        Update spot states from a batch of sensor readings.

        Args:
            events: Readings in receipt order

        Returns:
            List of spot IDs that changed state
        """
        snapshot = self._snapshot
        if snapshot.floor is None:
            return []

        previous = list(self.spots.values())
        updated = engine.apply_occupancy(previous, events, snapshot.sensor_to_spot)

        changed_spots = [
            new.spot_id for old, new in zip(previous, updated) if old is not new
        ]

        self.spots = {spot.spot_id: spot for spot in updated}
        self._last_update = datetime.now(timezone.utc)

        for spot_id in changed_spots:
            spot = self.spots[spot_id]
            logger.info(
                f"Spot '{spot_id}' changed: "
                f"{'occupied' if spot.is_occupied else 'available'}"
            )
            update_spot_status(snapshot.floor.floor_number, spot_id, spot.is_occupied)

        self._recompute_sections()
        return changed_spots

    def _recompute_sections(self) -> None:
        self._sections = engine.summarize_sections(
            list(self.spots.values()), self._snapshot.seed
        )
        floor = self._snapshot.floor
        if floor is None:
            return
        for section in self._sections:
            update_section_counts(
                floor.floor_number,
                section.id,
                total=section.total_slots,
                available=section.available_slots,
            )

    def get_sections(self) -> list[SectionSummary]:
        return list(self._sections)

    def get_spot(self, spot_id: str) -> Optional[ParkingSpotState]:
        """Get state for a specific spot."""
        return self.spots.get(spot_id)

    def generate_path(self, spot_id: str) -> list[Position]:
        """Navigation path to a spot on the active floor (empty if no route)."""
        floor = self._snapshot.floor
        if floor is None:
            return []
        return engine.generate_path(floor, spot_id, self.destination_offset)

    def set_connection_status(self, status: ConnectionStatus) -> None:
        """Update connection status shown alongside the floor state."""
        self._connection_status = status

    def get_state(self) -> FloorState:
        """Get current floor state."""
        snapshot = self._snapshot
        sections = self._sections
        return FloorState(
            location_id=snapshot.location_id,
            floor_number=snapshot.floor.floor_number if snapshot.floor else None,
            floor_name=snapshot.floor.floor_name if snapshot.floor else None,
            spots=list(self.spots.values()),
            sections=sections,
            total_slots=sum(s.total_slots for s in sections),
            available_slots=sum(s.available_slots for s in sections),
            connection_status=self._connection_status,
            last_update=self._last_update,
        )
