"""Composition of the resolver, occupancy channel and spot manager."""

import logging
from datetime import timedelta
from pathlib import Path
from typing import Callable, Optional

import httpx

from .config import AppConfig
from .layout.models import FloorConfig, Position
from .layout.resolver import ConfigResolver
from .layout.storage import JsonFileStore, KeyValueStore
from .state.spot_manager import SpotManager
from .sync.channel import OccupancySyncChannel
from .sync.models import ConnectionStatus, OccupancyEvent
from .sync.reachability import ReachabilityProbe, TcpReachability
from .sync.transport import SocketIOTransport, TransportCallbacks, TransportFactory

logger = logging.getLogger(__name__)


class ParkingServices:
    """
    Owns the core services and wires them together.

    The occupancy channel feeds the spot manager through a per-floor
    subscription that is replaced whenever another floor is selected.
    """

    def __init__(
        self,
        config: AppConfig,
        resolver: ConfigResolver,
        channel: OccupancySyncChannel,
        spot_manager: SpotManager,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.resolver = resolver
        self.channel = channel
        self.spot_manager = spot_manager
        self._http_client = http_client
        self._unsubscribers: list[Callable[[], None]] = []

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        store: Optional[KeyValueStore] = None,
        transport_factory: Optional[TransportFactory] = None,
        reachability: Optional[ReachabilityProbe] = None,
    ) -> "ParkingServices":
        """Build every service from application configuration."""
        owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(timeout=config.backend.request_timeout_seconds)

        if store is None:
            store = JsonFileStore(Path(config.cache.directory))

        if transport_factory is None:
            def transport_factory(callbacks: TransportCallbacks) -> SocketIOTransport:
                return SocketIOTransport(
                    url=config.backend.socket_url,
                    callbacks=callbacks,
                    event_names=config.sync.event_names,
                    auth_token=config.backend.api_token,
                    connect_timeout=config.sync.connect_timeout_seconds,
                )

        if reachability is None:
            host, port = config.backend.socket_host
            reachability = TcpReachability(
                host, port, timeout=config.sync.reachability_timeout_seconds
            )

        resolver = ConfigResolver(
            http_client=http_client,
            store=store,
            base_url=config.backend.base_url,
            api_token=config.backend.api_token,
            cache_ttl=timedelta(hours=config.cache.ttl_hours),
            sensors_per_floor=config.sync.sensors_per_floor,
        )
        channel = OccupancySyncChannel(
            transport_factory=transport_factory,
            reachability=reachability,
            http_client=http_client,
            base_url=config.backend.base_url,
            api_token=config.backend.api_token,
            reconnect_interval=config.sync.reconnect_interval_seconds,
            sensors_per_floor=config.sync.sensors_per_floor,
        )
        spot_manager = SpotManager(
            destination_offset=Position(
                x=config.navigation.destination_offset_x,
                y=config.navigation.destination_offset_y,
            )
        )
        return cls(
            config,
            resolver,
            channel,
            spot_manager,
            http_client=http_client if owns_client else None,
        )

    async def start(self) -> None:
        """Load the default floor and open the occupancy feed."""
        await self.select_floor(self.config.default_location_id, self.config.default_floor)
        await self.channel.connect()

    async def select_floor(self, location_id: str, floor_number: int) -> FloorConfig:
        """
        Make a floor active and route its occupancy updates to the spot manager.

        Raises:
            ConfigNotFound: If the location has no such floor
        """
        location = await self.resolver.get_config(location_id)
        floor = self.spot_manager.select_floor(location, floor_number)
        self._resubscribe(floor_number)
        return floor

    def _resubscribe(self, floor_number: int) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = [
            self.channel.on_occupancy_update(self._handle_occupancy, floor=floor_number),
            self.channel.on_connection_status(self._handle_status),
        ]
        self.spot_manager.set_connection_status(self.channel.status)

    def _handle_occupancy(self, events: list[OccupancyEvent]) -> None:
        changed = self.spot_manager.apply_events(events)
        if changed:
            logger.debug(f"Occupancy update changed {len(changed)} spot(s)")

    def _handle_status(self, status: ConnectionStatus) -> None:
        self.spot_manager.set_connection_status(status)

    async def aclose(self) -> None:
        """Stop the feed, cancel background work and release the HTTP client."""
        await self.channel.disconnect()
        self._unsubscribers.clear()
        await self.resolver.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()
