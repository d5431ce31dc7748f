"""Pure derivations from a floor layout and sensor readings."""

import logging
from typing import Iterable, Optional

from ..layout.models import DESTINATION_MARKER, FloorConfig, NavigationRoute, Position
from ..sync.models import OccupancyEvent
from .models import ParkingSpotState, SectionSummary

logger = logging.getLogger(__name__)

DEFAULT_DESTINATION_OFFSET = Position(x=20, y=30)


def build_mappings(floor: FloorConfig) -> tuple[dict[int, str], dict[str, int]]:
    """
    Build sensor -> spot and spot -> sensor lookups for a floor.

    Spots without a sensor get no entry in either direction.

    Returns:
        (sensor_to_spot, spot_to_sensor)
    """
    sensor_to_spot: dict[int, str] = {}
    spot_to_sensor: dict[str, int] = {}
    for spot in floor.parking_spots:
        if spot.sensor_id is None:
            continue
        sensor_to_spot[spot.sensor_id] = spot.spot_id
        spot_to_sensor[spot.spot_id] = spot.sensor_id
    return sensor_to_spot, spot_to_sensor


def build_waypoint_index(floor: FloorConfig) -> dict[str, Position]:
    """Map waypoint ids to their positions."""
    return {waypoint.id: waypoint.position for waypoint in floor.navigation_waypoints}


def initial_spot_states(floor: FloorConfig) -> list[ParkingSpotState]:
    """Spot states for a freshly loaded floor, all available."""
    return [
        ParkingSpotState(
            spot_id=spot.spot_id,
            sensor_id=spot.sensor_id,
            section=spot.section,
            position=spot.position,
            dimensions=spot.dimensions,
            rotation=spot.rotation,
            has_sensor=spot.sensor_id is not None,
            is_occupied=False,
        )
        for spot in floor.parking_spots
    ]


def apply_occupancy(
    spots: list[ParkingSpotState],
    events: Iterable[OccupancyEvent],
    sensor_to_spot: dict[int, str],
) -> list[ParkingSpotState]:
    """
    Fold a batch of sensor readings into spot states.

    Events are applied in order, so the last reading for a sensor wins.
    Readings from unmapped sensors are ignored and spots without a reading
    keep their previous occupancy. The input list is not modified.

    Returns:
        New list of spot states
    """
    occupancy: dict[str, bool] = {}
    for event in events:
        spot_id = sensor_to_spot.get(event.sensor_id)
        if spot_id is None:
            continue
        occupancy[spot_id] = event.is_occupied

    return [
        spot.model_copy(update={"is_occupied": occupancy[spot.spot_id]})
        if spot.spot_id in occupancy and spot.is_occupied != occupancy[spot.spot_id]
        else spot
        for spot in spots
    ]


def section_seed(floor: FloorConfig) -> list[str]:
    """Sorted sections that contain at least one sensor-equipped spot."""
    return sorted(
        {spot.section for spot in floor.parking_spots if spot.sensor_id is not None}
    )


def summarize_sections(
    spots: list[ParkingSpotState], seed: list[str]
) -> list[SectionSummary]:
    """
    Compute per-section availability from scratch.

    Only sensor-equipped spots count towards a section's slots.
    """
    totals = {section: 0 for section in seed}
    available = {section: 0 for section in seed}
    for spot in spots:
        if not spot.has_sensor or spot.section not in totals:
            continue
        totals[spot.section] += 1
        if not spot.is_occupied:
            available[spot.section] += 1

    return [
        SectionSummary(
            id=section,
            label=section,
            total_slots=totals[section],
            available_slots=available[section],
            is_full=available[section] == 0,
        )
        for section in seed
    ]


def find_route(
    floor: FloorConfig, section: str, index: Optional[int]
) -> Optional[NavigationRoute]:
    """
    Pick the authored route for a spot.

    A route for the exact spot (section and index) wins over a section-wide
    route. Routes authored for other spots of the section are never borrowed.
    """
    section_routes = [r for r in floor.navigation_routes if r.section == section]
    if not section_routes:
        return None

    if index is not None:
        for route in section_routes:
            if route.index == index:
                return route

    for route in section_routes:
        if route.index is None:
            return route

    return None


def generate_path(
    floor: FloorConfig,
    spot_id: str,
    default_offset: Position = DEFAULT_DESTINATION_OFFSET,
) -> list[Position]:
    """
    Resolve the navigation path from the entrance to a spot.

    Returns:
        Ordered positions, or an empty list when the spot is unknown or no
        route serves the spot
    """
    spot = floor.get_spot(spot_id)
    if spot is None:
        logger.debug(f"No spot '{spot_id}' on floor {floor.floor_number}")
        return []

    route = find_route(floor, spot.section, spot.index)
    if route is None:
        logger.debug(f"No navigation route for spot '{spot_id}'")
        return []

    waypoints = build_waypoint_index(floor)
    offset = spot.destination_offset or default_offset
    path: list[Position] = []
    for waypoint_id in route.waypoints:
        if waypoint_id == DESTINATION_MARKER:
            path.append(
                Position(x=spot.position.x + offset.x, y=spot.position.y + offset.y)
            )
            continue

        position = waypoints.get(waypoint_id)
        if position is None:
            logger.warning(
                f"Route for section {route.section} references unknown "
                f"waypoint '{waypoint_id}'"
            )
            continue
        path.append(position)

    return path
