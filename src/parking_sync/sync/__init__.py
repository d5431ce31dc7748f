"""Real-time occupancy synchronization module."""

from .channel import OccupancySyncChannel
from .models import ChannelState, ConnectionStatus, OccupancyEvent
from .reachability import TcpReachability
from .transport import SocketIOTransport, TransportCallbacks

__all__ = [
    "ChannelState",
    "ConnectionStatus",
    "OccupancyEvent",
    "OccupancySyncChannel",
    "SocketIOTransport",
    "TcpReachability",
    "TransportCallbacks",
]
