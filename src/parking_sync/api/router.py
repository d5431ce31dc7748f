"""FastAPI route definitions."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from ..errors import ConfigNotFound, ForceUpdateFailed
from ..layout.models import FloorConfig
from ..metrics import get_metrics
from ..services import ParkingServices
from ..state.models import FloorState, ParkingSpotState
from .schemas import (
    ForceUpdateResponse,
    HealthResponse,
    PathResponse,
    RefreshResponse,
    SectionsResponse,
    SelectFloorRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_services(request: Request) -> ParkingServices:
    """Services are attached to the app by the lifespan handler."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return services


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request, services: ParkingServices = Depends(get_services)
) -> HealthResponse:
    """
    Health check endpoint.

    Reports the occupancy channel state and whether the fallback layout is
    being served.
    """
    started_at: datetime = getattr(request.app.state, "started_at", datetime.now())
    return HealthResponse(
        status="healthy",
        channel_state=services.channel.state,
        connection_status=services.channel.status,
        config_source=services.resolver.last_source,
        using_fallback=services.resolver.is_fallback,
        uptime_seconds=(datetime.now() - started_at).total_seconds(),
    )


@router.get(
    "/locations/{location_id}/floors/{floor_number}", response_model=FloorConfig
)
async def get_floor_config(
    location_id: str,
    floor_number: int,
    services: ParkingServices = Depends(get_services),
) -> FloorConfig:
    """Get the layout of one floor."""
    floor = await services.resolver.get_floor_config(location_id, floor_number)
    if floor is None:
        raise HTTPException(
            status_code=404,
            detail=f"Floor {floor_number} not found for location '{location_id}'",
        )
    return floor


@router.post("/locations/{location_id}/refresh", response_model=RefreshResponse)
async def refresh_config(
    location_id: str, services: ParkingServices = Depends(get_services)
) -> RefreshResponse:
    """Drop cached layouts and resolve the location again."""
    config = await services.resolver.refresh_config(location_id)
    return RefreshResponse(
        location_id=config.location_id,
        version=config.version,
        source=services.resolver.last_source,
        floors=[f.floor_number for f in config.floors],
    )


@router.get("/floor", response_model=FloorState)
async def get_floor_state(services: ParkingServices = Depends(get_services)) -> FloorState:
    """Current spots, sections and connection status of the active floor."""
    return services.spot_manager.get_state()


@router.post("/floor/select", response_model=FloorState)
async def select_floor(
    body: SelectFloorRequest, services: ParkingServices = Depends(get_services)
) -> FloorState:
    """Change the active floor."""
    location_id = body.location_id or services.config.default_location_id
    try:
        await services.select_floor(location_id, body.floor_number)
    except ConfigNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return services.spot_manager.get_state()


@router.get("/floor/sections", response_model=SectionsResponse)
async def get_sections(services: ParkingServices = Depends(get_services)) -> SectionsResponse:
    """Section availability of the active floor."""
    floor = services.spot_manager.floor
    return SectionsResponse(
        floor_number=floor.floor_number if floor else None,
        sections=services.spot_manager.get_sections(),
    )


@router.get("/floor/spots/{spot_id}", response_model=ParkingSpotState)
async def get_spot(
    spot_id: str, services: ParkingServices = Depends(get_services)
) -> ParkingSpotState:
    """
    Get status for a specific parking spot.

    Args:
        spot_id: The ID of the parking spot to query
    """
    spot = services.spot_manager.get_spot(spot_id)
    if spot is None:
        raise HTTPException(status_code=404, detail=f"Spot '{spot_id}' not found")
    return spot


@router.get("/floor/path/{spot_id}", response_model=PathResponse)
async def get_path(
    spot_id: str, services: ParkingServices = Depends(get_services)
) -> PathResponse:
    """
    Navigation path from the entrance to a spot.

    An empty path with route_available=false means no route is authored for
    the spot's section; clients should disable guidance rather than fail.
    """
    if services.spot_manager.get_spot(spot_id) is None:
        raise HTTPException(status_code=404, detail=f"Spot '{spot_id}' not found")

    path = services.spot_manager.generate_path(spot_id)
    return PathResponse(spot_id=spot_id, route_available=bool(path), path=path)


@router.post("/occupancy/force-update", response_model=ForceUpdateResponse)
async def force_update(services: ParkingServices = Depends(get_services)) -> ForceUpdateResponse:
    """Fetch the full sensor table now instead of waiting for live events."""
    before = {s.spot_id: s.is_occupied for s in services.spot_manager.spots.values()}
    try:
        events = await services.channel.force_update()
    except ForceUpdateFailed as e:
        logger.error(f"Forced update failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    changed = [
        spot_id
        for spot_id, spot in services.spot_manager.spots.items()
        if before.get(spot_id) != spot.is_occupied
    ]
    return ForceUpdateResponse(sensors_received=len(events), spots_changed=changed)


@router.get("/metrics")
async def prometheus_metrics() -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format including:
    - parking_config_resolutions_total: Layout resolutions by source
    - parking_occupancy_events_total: Occupancy events delivered
    - parking_occupancy_events_dropped_total: Malformed or duplicate events
    - parking_sync_reconnect_attempts_total: Reconnection attempts
    - parking_sync_connected: Channel connection state
    - parking_spot_occupied: Gauge of current spot status (1=occupied, 0=available)
    - parking_section_total_slots / parking_section_available_slots: Section counts
    """
    return Response(
        content=get_metrics(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
