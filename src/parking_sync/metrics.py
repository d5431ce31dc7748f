"""Prometheus metrics for layout resolution and occupancy sync."""

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

# Layout resolutions by the tier that answered
CONFIG_RESOLUTIONS = Counter(
    "parking_config_resolutions_total",
    "Parking layout resolutions by source",
    ["source"],
    registry=REGISTRY,
)

# Occupancy events received from the wire or a forced resync
OCCUPANCY_EVENTS = Counter(
    "parking_occupancy_events_total",
    "Occupancy events delivered to subscribers",
    ["origin"],
    registry=REGISTRY,
)

# Events dropped before delivery
OCCUPANCY_EVENTS_DROPPED = Counter(
    "parking_occupancy_events_dropped_total",
    "Occupancy events dropped before delivery",
    ["reason"],
    registry=REGISTRY,
)

RECONNECT_ATTEMPTS = Counter(
    "parking_sync_reconnect_attempts_total",
    "Reconnection attempts made by the occupancy channel supervisor",
    registry=REGISTRY,
)

CHANNEL_CONNECTED = Gauge(
    "parking_sync_connected",
    "Occupancy channel connection state (1=connected, 0=not connected)",
    registry=REGISTRY,
)

# Current spot status gauge
SPOT_STATUS = Gauge(
    "parking_spot_occupied",
    "Current status of parking spot (1=occupied, 0=available)",
    ["floor", "spot_id"],
    registry=REGISTRY,
)

SECTION_AVAILABLE = Gauge(
    "parking_section_available_slots",
    "Available sensor-equipped slots per section",
    ["floor", "section"],
    registry=REGISTRY,
)

SECTION_TOTAL = Gauge(
    "parking_section_total_slots",
    "Sensor-equipped slots per section",
    ["floor", "section"],
    registry=REGISTRY,
)


def record_config_resolution(source: str) -> None:
    """Record which tier resolved a layout."""
    CONFIG_RESOLUTIONS.labels(source=source).inc()


def record_occupancy_event(origin: str) -> None:
    """Record a delivered occupancy event ("stream" or "resync")."""
    OCCUPANCY_EVENTS.labels(origin=origin).inc()


def record_dropped_event(reason: str) -> None:
    """Record a dropped occupancy event ("malformed" or "duplicate")."""
    OCCUPANCY_EVENTS_DROPPED.labels(reason=reason).inc()


def increment_reconnect_attempts() -> None:
    RECONNECT_ATTEMPTS.inc()


def set_channel_connected(connected: bool) -> None:
    CHANNEL_CONNECTED.set(1 if connected else 0)


def update_spot_status(floor: int, spot_id: str, is_occupied: bool) -> None:
    """Update current spot status gauge."""
    SPOT_STATUS.labels(floor=str(floor), spot_id=spot_id).set(1 if is_occupied else 0)


def update_section_counts(floor: int, section: str, total: int, available: int) -> None:
    """Update per-section slot gauges."""
    SECTION_TOTAL.labels(floor=str(floor), section=section).set(total)
    SECTION_AVAILABLE.labels(floor=str(floor), section=section).set(available)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)
