"""Built-in layout served when neither the cache nor the backend can provide one."""

import logging
from datetime import datetime, timezone

from .models import (
    Dimensions,
    FloorConfig,
    GestureLimits,
    InitialView,
    LocationConfig,
    NavigationRoute,
    NavigationWaypoint,
    ParkingSpotConfig,
    Position,
)

logger = logging.getLogger(__name__)

FALLBACK_VERSION = "1.0.0-fallback"
BUILDING_NAME = "USJ-R Quadricentennial"
FLOOR_NAMES = {1: "1st Floor", 2: "2nd Floor", 3: "3rd Floor", 4: "4th Floor"}

ENTRANCE_POINT = (650, 250)

# (section, index, x, y, width, height, rotation), shared by every floor
SPOT_LAYOUT = [
    # Section A - near entrance
    ("A", 1, 690, 95, 40, 55, 90),
    # Section B - top row
    ("B", 4, 500, 32, 40, 55, 0),
    ("B", 3, 545, 32, 40, 55, 0),
    ("B", 2, 590, 32, 40, 55, 0),
    ("B", 1, 635, 32, 40, 55, 0),
    # Section C - near elevator 1
    ("C", 1, 450, 95, 40, 55, 270),
    ("C", 2, 450, 140, 40, 55, 270),
    # Section D - upper middle row
    ("D", 7, 130, 200, 40, 55, 0),
    ("D", 6, 175, 200, 40, 55, 0),
    ("D", 5, 220, 200, 40, 55, 0),
    ("D", 4, 265, 200, 40, 55, 0),
    ("D", 3, 310, 200, 40, 55, 0),
    ("D", 2, 355, 200, 40, 55, 0),
    ("D", 1, 400, 200, 40, 55, 0),
    # Section J - middle row
    ("J", 5, 220, 370, 40, 55, 270),
    ("J", 4, 280, 370, 40, 55, 270),
    ("J", 3, 340, 370, 40, 55, 270),
    ("J", 2, 400, 370, 40, 55, 270),
    ("J", 1, 460, 370, 40, 55, 270),
    # Section E - left side
    ("E", 3, 55, 315, 55, 60, 90),
    ("E", 2, 55, 380, 55, 60, 90),
    ("E", 1, 55, 445, 55, 60, 90),
    # Section F - lower middle row
    ("F", 1, 140, 520, 40, 55, 0),
    ("F", 2, 185, 520, 40, 55, 0),
    ("F", 3, 230, 520, 40, 55, 0),
    ("F", 4, 275, 520, 40, 55, 0),
    ("F", 5, 320, 520, 40, 55, 0),
    ("F", 6, 365, 520, 40, 55, 0),
    ("F", 7, 410, 520, 40, 55, 0),
    # Section G - left column bottom
    ("G", 1, 500, 590, 40, 55, 90),
    ("G", 2, 500, 640, 40, 55, 90),
    ("G", 3, 500, 690, 40, 55, 90),
    ("G", 4, 500, 740, 40, 55, 90),
    ("G", 5, 500, 790, 40, 55, 90),
    # Section H - bottom row
    ("H", 1, 550, 870, 40, 55, 180),
    ("H", 2, 595, 870, 40, 55, 180),
    ("H", 3, 640, 870, 40, 55, 180),
    # Section I - right column bottom
    ("I", 5, 680, 590, 40, 55, 270),
    ("I", 4, 680, 640, 40, 55, 270),
    ("I", 3, 680, 690, 40, 55, 270),
    ("I", 2, 680, 740, 40, 55, 270),
    ("I", 1, 680, 790, 40, 55, 270),
]

NAVIGATION_WAYPOINTS = {
    "entrance": (650, 250),
    # Main vertical corridor from entrance
    "corridor1": (650, 130),
    "A1_turn": (690, 130),
    "B2_turn": (610, 130),
    "B3_turn": (565, 130),
    "B4_turn": (520, 130),
    "C_corridor": (540, 130),
    "C1_turn": (500, 130),
    "C2_turn": (540, 170),
    # Main horizontal corridor for D, E, F, J sections
    "corridor2": (650, 300),
    "corridor3": (650, 450),
    "corridor4": (550, 450),
    "corridor5": (200, 450),
    "D_corridor": (200, 260),
    "D1_turn": (420, 260),
    "D2_turn": (375, 260),
    "D3_turn": (330, 260),
    "D4_turn": (285, 260),
    "D5_turn": (240, 260),
    "D6_turn": (195, 260),
    "D7_turn": (150, 260),
    "E_corridor": (120, 450),
    "E1_turn": (120, 475),
    "E2_turn": (120, 410),
    "E3_turn": (120, 345),
    "F_corridor": (200, 580),
    "F1_turn": (160, 580),
    "F2_turn": (205, 580),
    "F3_turn": (250, 580),
    "F4_turn": (295, 580),
    "F5_turn": (340, 580),
    "F6_turn": (385, 580),
    "F7_turn": (430, 580),
    "J_corridor": (500, 430),
    "J1_turn": (480, 430),
    "J2_turn": (420, 430),
    "J3_turn": (360, 430),
    "J4_turn": (300, 430),
    "J5_turn": (240, 430),
    # Bottom section corridor
    "corridor6": (600, 550),
    "corridor7": (600, 830),
    "G_corridor": (560, 550),
    "G1_turn": (560, 610),
    "G2_turn": (560, 660),
    "G3_turn": (560, 710),
    "G4_turn": (560, 760),
    "G5_turn": (560, 810),
    "H_corridor": (600, 920),
    "H1_turn": (570, 920),
    "H2_turn": (615, 920),
    "H3_turn": (660, 920),
    "I_corridor": (720, 830),
    "I1_turn": (720, 810),
    "I2_turn": (720, 760),
    "I3_turn": (720, 710),
    "I4_turn": (720, 660),
    "I5_turn": (720, 610),
}

# Corridor prefix each section's per-spot route follows before its turn point
_SECTION_CORRIDORS = {
    "D": ["entrance", "corridor2", "corridor3", "corridor4", "J_corridor"],
    "E": ["entrance", "corridor2", "corridor3", "corridor4", "corridor5", "E_corridor"],
    "F": ["entrance", "corridor2", "corridor3", "corridor4", "corridor5", "F_corridor"],
    "G": ["entrance", "corridor2", "corridor3", "corridor6", "G_corridor"],
    "H": ["entrance", "corridor2", "corridor3", "corridor6", "corridor7", "H_corridor"],
    "I": ["entrance", "corridor2", "corridor3", "corridor6", "corridor7", "I_corridor"],
    "J": ["entrance", "corridor2", "corridor3", "corridor4", "J_corridor"],
}

_IRREGULAR_ROUTES = [
    ("A", 1, ["entrance", "corridor1", "A1_turn"]),
    ("B", 1, ["entrance", "destination"]),
    ("B", 2, ["entrance", "corridor1", "B2_turn", "destination"]),
    ("B", 3, ["entrance", "corridor1", "B3_turn", "destination"]),
    ("B", 4, ["entrance", "corridor1", "B4_turn", "destination"]),
    ("C", 1, ["entrance", "corridor1", "C_corridor", "C1_turn"]),
    ("C", 2, ["entrance", "corridor1", "C_corridor", "C2_turn", "destination"]),
]

GESTURE_LIMITS = GestureLimits()
INITIAL_VIEW = InitialView(translate_x=-300, translate_y=100, scale=1)


def _navigation_routes() -> list[NavigationRoute]:
    routes = [
        NavigationRoute(section=section, index=index, waypoints=waypoints)
        for section, index, waypoints in _IRREGULAR_ROUTES
    ]
    section_sizes: dict[str, int] = {}
    for section, index, *_ in SPOT_LAYOUT:
        section_sizes[section] = max(section_sizes.get(section, 0), index)

    for section in sorted(_SECTION_CORRIDORS):
        for index in range(1, section_sizes[section] + 1):
            routes.append(
                NavigationRoute(
                    section=section,
                    index=index,
                    waypoints=_SECTION_CORRIDORS[section]
                    + [f"{section}{index}_turn", "destination"],
                )
            )
    return routes


def generate_floor_spots(
    floor_number: int, sensors_per_floor: int = 40
) -> list[ParkingSpotConfig]:
    """
    Build the spot list of a floor from the shared layout template.

    Sensors are numbered in blocks of ``sensors_per_floor`` per floor, in
    template order; spots beyond the block have no sensor installed.
    """
    spots = []
    for slot, (section, index, x, y, width, height, rotation) in enumerate(SPOT_LAYOUT):
        sensor_id = None
        if slot < sensors_per_floor:
            sensor_id = (floor_number - 1) * sensors_per_floor + slot + 1
        spots.append(
            ParkingSpotConfig(
                spot_id=f"{floor_number}{section}{index}",
                sensor_id=sensor_id,
                position=Position(x=x, y=y),
                dimensions=Dimensions(width=width, height=height),
                rotation=rotation,
                section=section,
            )
        )
    return spots


def build_fallback_config(location_id: str, sensors_per_floor: int = 40) -> LocationConfig:
    """
    Build the hardcoded default layout.

    Pure in-memory construction: never touches storage or the network.
    """
    logger.warning(f"Using hardcoded fallback configuration for '{location_id}'")

    waypoints = [
        NavigationWaypoint(id=waypoint_id, position=Position(x=x, y=y))
        for waypoint_id, (x, y) in NAVIGATION_WAYPOINTS.items()
    ]
    routes = _navigation_routes()
    entrance = Position(x=ENTRANCE_POINT[0], y=ENTRANCE_POINT[1])

    floors = [
        FloorConfig(
            floor_number=floor_number,
            floor_name=floor_name,
            building_name=BUILDING_NAME,
            map_component="MapLayout",
            entrance_point=entrance,
            parking_spots=generate_floor_spots(floor_number, sensors_per_floor),
            navigation_waypoints=waypoints,
            navigation_routes=routes,
            gesture_limits=GESTURE_LIMITS,
            initial_view=INITIAL_VIEW,
        )
        for floor_number, floor_name in FLOOR_NAMES.items()
    ]

    return LocationConfig(
        location_id=location_id,
        location_name=BUILDING_NAME,
        floors=floors,
        last_updated=datetime.now(timezone.utc).isoformat(),
        version=FALLBACK_VERSION,
    )
