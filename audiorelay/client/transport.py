"""Client transports carrying frames to the relay."""

import asyncio
from abc import ABC, abstractmethod
from typing import Optional, Union
import logging

import aiohttp

logger = logging.getLogger(__name__)


# Errors a transport may raise from open/send/receive
TRANSPORT_ERRORS = (aiohttp.ClientError, OSError, asyncio.TimeoutError)


class Transport(ABC):
    """A persistent bidirectional message connection."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @abstractmethod
    async def open(self, url: str) -> None:
        """Connect to url. Raises one of TRANSPORT_ERRORS on failure."""
        pass

    @abstractmethod
    async def receive(self) -> Optional[Union[str, bytes]]:
        """Return the next text or binary frame, or None once the peer closed.

        Raises one of TRANSPORT_ERRORS when the connection failed.
        """
        pass

    @abstractmethod
    async def send_text(self, data: str) -> None:
        pass

    @abstractmethod
    async def send_bytes(self, data: bytes) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close the connection. Safe to call repeatedly."""
        pass


class AiohttpTransport(Transport):
    """WebSocket transport on top of aiohttp's client."""

    def __init__(self,
                 session: Optional[aiohttp.ClientSession] = None,
                 connect_timeout: float = 10.0,
                 heartbeat: Optional[float] = 30.0):
        """Initialize transport.

        Args:
            session: Shared client session; a private one is created when None
            connect_timeout: Seconds allowed for the WebSocket handshake
            heartbeat: Ping interval in seconds, None to disable
        """
        self._session = session
        self._owns_session = session is None
        self.connect_timeout = connect_timeout
        self.heartbeat = heartbeat
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed

    async def open(self, url: str) -> None:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(url, heartbeat=self.heartbeat),
                self.connect_timeout,
            )
        except TRANSPORT_ERRORS:
            await self._close_session()
            raise
        logger.debug(f"WebSocket opened to {url}")

    async def receive(self) -> Optional[Union[str, bytes]]:
        if self._ws is None:
            return None
        msg = await self._ws.receive()
        if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            return msg.data
        if msg.type == aiohttp.WSMsgType.ERROR:
            error = self._ws.exception()
            raise error if isinstance(error, TRANSPORT_ERRORS) else ConnectionError(str(error))
        # CLOSE, CLOSING, CLOSED
        return None

    async def send_text(self, data: str) -> None:
        if not self.is_open:
            raise ConnectionResetError("WebSocket is not open")
        await self._ws.send_str(data)

    async def send_bytes(self, data: bytes) -> None:
        if not self.is_open:
            raise ConnectionResetError("WebSocket is not open")
        await self._ws.send_bytes(data)

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        await self._close_session()

    async def _close_session(self) -> None:
        if self._owns_session and self._session is not None:
            session, self._session = self._session, None
            await session.close()
