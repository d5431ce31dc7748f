"""Network reachability probes."""

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

ReachabilityProbe = Callable[[], Awaitable[bool]]


class TcpReachability:
    """Reports the backend reachable when a TCP connection to it can be opened."""

    def __init__(self, host: str, port: int, timeout: float = 3.0):
        self.host = host
        self.port = port
        self.timeout = timeout

    async def __call__(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port), timeout=self.timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Backend {self.host}:{self.port} unreachable: {e}")
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        return True
