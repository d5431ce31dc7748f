from __future__ import annotations

import asyncio
from typing import Any, Callable

import httpx
import pytest

from parking_sync.layout.models import FloorConfig, LocationConfig
from parking_sync.layout.storage import MemoryStore
from parking_sync.sync.channel import OccupancySyncChannel
from parking_sync.sync.transport import SERVER_DISCONNECT, TransportCallbacks

BASE_URL = "https://backend.test/api"


def spot(spot_id: str, sensor_id: int | None, x: float = 0, y: float = 0, **extra) -> dict:
    return {
        "spot_id": spot_id,
        "sensor_id": sensor_id,
        "position": {"x": x, "y": y},
        "dimensions": {"width": 40, "height": 55},
        "rotation": "0deg",
        **extra,
    }


def floor_payload(floor_number: int = 1, spots: list[dict] | None = None, routes=None) -> dict:
    if spots is None:
        spots = [
            spot("A1", 10, x=100, y=50),
            spot("A2", 11, x=150, y=50),
            spot("B1", 12, x=300, y=50),
            spot("C1", None, x=500, y=50),
        ]
    if routes is None:
        routes = [{"section": "A", "waypoints": ["entrance", "corridor", "destination"]}]
    return {
        "floor_number": floor_number,
        "floor_name": f"Floor {floor_number}",
        "building_name": "Test Building",
        "entrance_point": {"x": 0, "y": 0},
        "parking_spots": spots,
        "navigation_waypoints": [
            {"id": "entrance", "position": {"x": 0, "y": 0}},
            {"id": "corridor", "position": {"x": 100, "y": 0}},
        ],
        "navigation_routes": routes,
    }


def location_payload(location_id: str = "test_location", version: str = "2.0.0") -> dict:
    return {
        "location_id": location_id,
        "location_name": "Test Location",
        "floors": [
            floor_payload(1),
            floor_payload(2, spots=[spot("2A1", 41, x=10, y=10)]),
        ],
        "version": version,
        "last_updated": "2026-10-01T00:00:00Z",
    }


@pytest.fixture
def floor() -> FloorConfig:
    return FloorConfig.model_validate(floor_payload())


@pytest.fixture
def location() -> LocationConfig:
    return LocationConfig.model_validate(location_payload())


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


class FakeBackend:
    """Programmable stand-in for the REST backend."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable[[httpx.Request], Any]] = {}

    def route(self, path: str, handler: Callable[[httpx.Request], Any]) -> None:
        self.routes[path] = handler

    def json(self, path: str, payload: Any, status_code: int = 200) -> None:
        self.routes[path] = lambda request: httpx.Response(status_code, json=payload)

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get(request.url.path)
        if handler is None:
            raise httpx.ConnectError("backend unreachable", request=request)
        response = handler(request)
        if not isinstance(response, httpx.Response):
            response = await response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.path == path)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


class FakeTransport:
    """In-memory transport driven by the test."""

    def __init__(
        self, callbacks: TransportCallbacks, fail: bool = False, deferred: bool = False
    ) -> None:
        self.callbacks = callbacks
        self.fail = fail
        self.deferred = deferred
        self.connected = False
        self.closed = False

    async def connect(self) -> None:
        if self.fail:
            raise ConnectionError("connection refused")
        if self.deferred:
            # Like socketio: the connect handler runs in its own task and the
            # client only counts as connected once connect() itself returns
            handled = asyncio.Event()

            async def fire_connect() -> None:
                await self.callbacks.on_connect()
                handled.set()

            asyncio.create_task(fire_connect())
            await handled.wait()
            await asyncio.sleep(0)
        else:
            await self.callbacks.on_connect()
        self.connected = True

    async def disconnect(self) -> None:
        self.connected = False
        self.closed = True

    async def emit(self, event_name: str, payload: Any) -> None:
        await self.callbacks.on_event(event_name, payload)

    async def server_disconnect(self, reason: str = SERVER_DISCONNECT) -> None:
        # A client that never finished connecting does not notice the drop
        if not self.connected:
            return
        self.connected = False
        await self.callbacks.on_disconnect(reason)


class FakeNetwork:
    """Transport factory and reachability probe sharing one switchboard."""

    def __init__(self) -> None:
        self.reachable = True
        self.fail_connects = False
        self.deferred_connects = False
        self.transports: list[FakeTransport] = []
        self.probes = 0

    async def probe(self) -> bool:
        self.probes += 1
        return self.reachable

    def factory(self, callbacks: TransportCallbacks) -> FakeTransport:
        transport = FakeTransport(
            callbacks, fail=self.fail_connects, deferred=self.deferred_connects
        )
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def network() -> FakeNetwork:
    return FakeNetwork()


def make_channel(network: FakeNetwork, backend: FakeBackend, **kwargs) -> OccupancySyncChannel:
    kwargs.setdefault("reconnect_interval", 0.01)
    return OccupancySyncChannel(
        transport_factory=network.factory,
        reachability=network.probe,
        http_client=backend.client(),
        base_url=BASE_URL,
        **kwargs,
    )
