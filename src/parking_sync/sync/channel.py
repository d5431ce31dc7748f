"""Real-time occupancy channel with supervised reconnection."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx
from pydantic import ValidationError

from ..errors import ConnectionLost, ForceUpdateFailed
from ..metrics import (
    increment_reconnect_attempts,
    record_dropped_event,
    record_occupancy_event,
    set_channel_connected,
)
from .models import ChannelState, ConnectionStatus, OccupancyEvent
from .reachability import ReachabilityProbe
from .transport import CLIENT_DISCONNECT, OccupancyTransport, TransportCallbacks, TransportFactory

logger = logging.getLogger(__name__)

PARKING_ENDPOINT = "/public/parking"

OccupancyHandler = Callable[[list[OccupancyEvent]], None]
StatusHandler = Callable[[ConnectionStatus], None]


@dataclass
class _Subscription:
    handler: OccupancyHandler
    floor: Optional[int] = None


class OccupancySyncChannel:
    """
    Keeps a live occupancy feed open and fans events out to subscribers.

    State machine::

        DISCONNECTED -> CONNECTING -> CONNECTED -> RECONNECTING -> CONNECTED
                                         |               |
                                         +--> DISCONNECTED (explicit disconnect)

    Transport errors, malformed payloads and reachability failures never
    reach subscribers; they only drive the reconnection supervisor. Only
    force_update() raises.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        reachability: ReachabilityProbe,
        http_client: httpx.AsyncClient,
        base_url: str,
        api_token: str = "",
        reconnect_interval: float = 5.0,
        sensors_per_floor: int = 40,
    ):
        """
        Initialize the channel.

        Args:
            transport_factory: Builds a transport wired to the given callbacks
            reachability: Async probe returning True when the network is up
            http_client: Client used by force_update()
            base_url: Backend API base URL
            api_token: Bearer token for the backend
            reconnect_interval: Seconds between reconnection attempts
            sensors_per_floor: Legacy sensor id block size per floor
        """
        self.transport_factory = transport_factory
        self.reachability = reachability
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.reconnect_interval = reconnect_interval
        self.sensors_per_floor = sensors_per_floor

        self._state = ChannelState.DISCONNECTED
        self._status = ConnectionStatus.DISCONNECTED
        self._transport: Optional[OccupancyTransport] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closing = False
        self._subscriptions: list[_Subscription] = []
        self._status_handlers: list[StatusHandler] = []
        self._last_seen: dict[int, tuple] = {}
        self.last_error: Optional[Exception] = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    def is_connected(self) -> bool:
        return self._state == ChannelState.CONNECTED

    # Subscriptions

    def on_occupancy_update(
        self, handler: OccupancyHandler, floor: Optional[int] = None
    ) -> Callable[[], None]:
        """
        Register an occupancy handler.

        Args:
            handler: Called with each batch of events, in receipt order
            floor: Only deliver events for this floor (None = all floors)

        Returns:
            Function that removes this subscription
        """
        subscription = _Subscription(handler=handler, floor=floor)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def on_connection_status(self, handler: StatusHandler) -> Callable[[], None]:
        """Register a connection-status handler. Returns an unsubscribe function."""
        self._status_handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._status_handlers:
                self._status_handlers.remove(handler)

        return unsubscribe

    # Connection lifecycle

    async def connect(self) -> None:
        """
        Open the feed.

        A no-op unless disconnected, or when the network is unreachable.
        While connecting or reconnecting, the attempt in progress (or the
        reconnection supervisor) already owns the transport.
        """
        if self._state != ChannelState.DISCONNECTED:
            return

        self._closing = False
        if not await self._check_reachable():
            logger.info("No network connection, skipping occupancy feed connection")
            return

        await self._attempt_connect()

    async def disconnect(self) -> None:
        """Close the feed, stop reconnecting and drop every subscription."""
        self._closing = True
        await self._cancel_reconnect()

        transport, self._transport = self._transport, None
        if transport is not None:
            await self._close_transport(transport)

        self._set_state(ChannelState.DISCONNECTED)
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._subscriptions.clear()
        self._status_handlers.clear()
        self._last_seen.clear()
        logger.info("Occupancy feed disconnected")

    async def _attempt_connect(self) -> None:
        reconnecting = self._state == ChannelState.RECONNECTING
        if not reconnecting:
            self._set_state(ChannelState.CONNECTING)

        transport = self.transport_factory(
            TransportCallbacks(
                on_connect=self._handle_connect,
                on_disconnect=self._handle_disconnect,
                on_connect_error=self._handle_connect_error,
                on_event=self._handle_event,
            )
        )
        stale, self._transport = self._transport, transport
        if stale is not None:
            await self._close_transport(stale)

        try:
            await transport.connect()
        except Exception as e:
            logger.error(f"Occupancy feed connection error: {e}")
            self.last_error = e
            if self._transport is transport:
                self._transport = None
            if self._closing:
                return
            self._set_status(ConnectionStatus.ERROR)
            self._start_reconnect()

    async def _close_transport(self, transport: OccupancyTransport) -> None:
        try:
            await transport.disconnect()
        except Exception as e:
            logger.warning(f"Error while closing occupancy feed: {e}")

    async def _handle_connect(self) -> None:
        # Runs while the supervisor may still be inside transport.connect();
        # the supervisor exits by itself once connected
        logger.info("Occupancy feed connected")
        self.last_error = None
        self._set_state(ChannelState.CONNECTED)
        self._set_status(ConnectionStatus.CONNECTED)

    async def _handle_disconnect(self, reason: str) -> None:
        if self._closing or reason == CLIENT_DISCONNECT:
            return

        logger.warning(f"Occupancy feed disconnected: {reason}")
        self.last_error = ConnectionLost(reason)
        self._transport = None
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._start_reconnect()

    async def _handle_connect_error(self, data: Any) -> None:
        logger.error(f"Occupancy feed connection error: {data}")
        if self._closing:
            return
        self._set_status(ConnectionStatus.ERROR)
        self._start_reconnect()

    def _start_reconnect(self) -> None:
        self._set_state(ChannelState.RECONNECTING)
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while not self.is_connected() and not self._closing:
            await asyncio.sleep(self.reconnect_interval)
            if self.is_connected() or self._closing:
                break
            if await self._check_reachable():
                logger.info("Attempting to reconnect occupancy feed...")
                increment_reconnect_attempts()
                await self._attempt_connect()

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _check_reachable(self) -> bool:
        try:
            return await self.reachability()
        except Exception as e:
            logger.warning(f"Reachability check failed: {e}")
            return False

    # Event delivery

    async def _handle_event(self, event_name: str, payload: Any) -> None:
        records = payload if isinstance(payload, list) else [payload]
        events = []
        for record in records:
            event = self._normalize(record, event_name)
            if event is None:
                continue
            if self._last_seen.get(event.sensor_id) == event.dedup_key:
                logger.debug(f"Dropping duplicate update for sensor {event.sensor_id}")
                record_dropped_event("duplicate")
                continue
            self._last_seen[event.sensor_id] = event.dedup_key
            events.append(event)

        if events:
            self._broadcast(events, origin="stream")

    def _normalize(self, record: Any, source: str) -> Optional[OccupancyEvent]:
        try:
            return OccupancyEvent.model_validate(record)
        except ValidationError as e:
            logger.warning(
                f"Dropping malformed occupancy payload from '{source}': "
                f"{e.error_count()} error(s)"
            )
            record_dropped_event("malformed")
            return None

    def _broadcast(self, events: list[OccupancyEvent], origin: str) -> None:
        for _ in events:
            record_occupancy_event(origin)

        for subscription in list(self._subscriptions):
            if subscription.floor is None:
                batch = events
            else:
                batch = [
                    e for e in events
                    if e.resolve_floor(self.sensors_per_floor) == subscription.floor
                ]
            if not batch:
                continue
            try:
                subscription.handler(batch)
            except Exception as e:
                logger.error(f"Error in occupancy handler: {e}", exc_info=True)

    def _set_state(self, state: ChannelState) -> None:
        if state != self._state:
            logger.debug(f"Occupancy channel {self._state.value} -> {state.value}")
            self._state = state
            set_channel_connected(state == ChannelState.CONNECTED)

    def _set_status(self, status: ConnectionStatus) -> None:
        if status == self._status:
            return
        self._status = status
        logger.info(f"Connection status: {status.value}")
        for handler in list(self._status_handlers):
            try:
                handler(status)
            except Exception as e:
                logger.error(f"Error in connection status handler: {e}", exc_info=True)

    # Manual resync

    async def force_update(self) -> list[OccupancyEvent]:
        """
        Fetch the full sensor table from the backend and broadcast it.

        Returns:
            The events delivered to subscribers

        Raises:
            ForceUpdateFailed: If the request or its payload is invalid
        """
        url = f"{self.base_url}{PARKING_ENDPOINT}"
        headers = {"Accept": "application/json", "Cache-Control": "no-cache"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"

        try:
            response = await self.http_client.get(url, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ForceUpdateFailed(f"Failed to fetch parking data: {e}") from e

        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            payload = payload["data"]
        if not isinstance(payload, list):
            raise ForceUpdateFailed("Invalid response format - expected a list of sensors")

        try:
            events = [OccupancyEvent.model_validate(record) for record in payload]
        except ValidationError as e:
            raise ForceUpdateFailed(f"Invalid sensor record in response: {e}") from e

        for event in events:
            self._last_seen[event.sensor_id] = event.dedup_key
        if events:
            self._broadcast(events, origin="resync")

        logger.info(f"Forced occupancy update delivered {len(events)} sensor state(s)")
        return events
