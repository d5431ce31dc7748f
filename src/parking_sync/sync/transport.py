"""Socket.IO transport for the occupancy feed."""

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

import socketio

logger = logging.getLogger(__name__)

SERVER_DISCONNECT = "io server disconnect"
CLIENT_DISCONNECT = "io client disconnect"


@dataclass
class TransportCallbacks:
    """Hooks a transport invokes as the connection changes."""

    on_connect: Callable[[], Awaitable[None]]
    on_disconnect: Callable[[str], Awaitable[None]]
    on_connect_error: Callable[[Any], Awaitable[None]]
    on_event: Callable[[str, Any], Awaitable[None]]


class OccupancyTransport(Protocol):
    """Persistent connection delivering named events."""

    async def connect(self) -> None: ...

    async def disconnect(self) -> None: ...


TransportFactory = Callable[[TransportCallbacks], OccupancyTransport]


class SocketIOTransport:
    """
    Wrapper around python-socketio's AsyncClient.

    The client's own reconnection is disabled; the occupancy channel
    supervises reconnects itself.
    """

    def __init__(
        self,
        url: str,
        callbacks: TransportCallbacks,
        event_names: list[str],
        auth_token: str = "",
        connect_timeout: float = 20.0,
    ):
        """
        Initialize the transport.

        Args:
            url: Socket.IO server URL
            callbacks: Connection and event hooks
            event_names: Inbound event channels to listen on
            auth_token: Optional bearer token sent with the handshake
            connect_timeout: Seconds to wait for the namespace connection
        """
        self.url = url
        self.callbacks = callbacks
        self.event_names = event_names
        self.auth_token = auth_token
        self.connect_timeout = connect_timeout
        self._client: Optional[socketio.AsyncClient] = None

    def _build_client(self) -> socketio.AsyncClient:
        client = socketio.AsyncClient(reconnection=False, logger=False)

        @client.event
        async def connect():
            await self.callbacks.on_connect()

        @client.event
        async def disconnect(reason=None):
            await self.callbacks.on_disconnect(str(reason or SERVER_DISCONNECT))

        @client.event
        async def connect_error(data):
            await self.callbacks.on_connect_error(data)

        for event_name in self.event_names:
            client.on(event_name, self._make_event_handler(event_name))

        return client

    def _make_event_handler(self, event_name: str):
        async def handler(data):
            await self.callbacks.on_event(event_name, data)

        return handler

    async def connect(self) -> None:
        """
        Open the connection.

        Raises:
            socketio.exceptions.ConnectionError: If the server is unreachable
        """
        self._client = self._build_client()
        headers = {}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"

        logger.info(f"Connecting to occupancy feed at {self.url}")
        await self._client.connect(
            self.url,
            headers=headers,
            transports=["websocket", "polling"],
            wait_timeout=self.connect_timeout,
        )

    async def disconnect(self) -> None:
        """Close the connection."""
        if self._client is not None:
            await self._client.disconnect()
            self._client = None
