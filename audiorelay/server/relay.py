"""WebSocket relay that persists each connection's audio stream to a file.

Endpoints:
  GET /            -> WebSocket upgrade (audio streaming)
  GET /ws          -> Same as /
  GET /api/status  -> JSON {status, message, connections, stats}
"""

import asyncio
import logging
from typing import Optional

from aiohttp import WSCloseCode, WSMsgType, web

from ..exceptions import ProtocolError, SinkError
from ..models.messages import (
    AudioChunkAck,
    ConnectionMessage,
    ErrorMessage,
    StartAck,
    StartCommand,
    StopAck,
    Message,
    parse_control_command,
)
from ..models.session import Session
from ..storage.file_manager import FileManager
from .events import RelayStats, SessionEventPublisher
from .registry import SessionRegistry

logger = logging.getLogger(__name__)


SINK_CLOSED_MESSAGE = "Recording sink is closed"
SINK_WRITE_FAILED_MESSAGE = "Error processing audio data"
SINK_OPEN_FAILED_MESSAGE = "Could not open recording sink"


@web.middleware
async def cors_middleware(request: web.Request, handler):
    """Let browser pages on other origins query the relay's HTTP endpoints."""
    if request.method == "OPTIONS":
        response = web.Response(status=204)
    else:
        response = await handler(request)

    # Upgraded WebSocket responses have already sent their headers
    if request.headers.get("Origin") and not response.prepared:
        response.headers.setdefault("Access-Control-Allow-Origin", "*")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,OPTIONS")
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type")
    return response


class AudioRelay:
    """Owns the live sessions and routes their frames to sinks and replies."""

    def __init__(self,
                 file_manager: FileManager,
                 registry: Optional[SessionRegistry] = None,
                 event_topic: str = "relay.session"):
        """Initialize the relay.

        Args:
            file_manager: Creates one sink per session
            registry: Live session registry, a fresh one when None
            event_topic: Pub/sub topic for session lifecycle events
        """
        self.file_manager = file_manager
        self.registry = registry or SessionRegistry()
        self.events = SessionEventPublisher(event_topic)
        self.stats = RelayStats(event_topic)

    def create_app(self) -> web.Application:
        """Build the aiohttp application serving this relay."""
        app = web.Application(middlewares=[cors_middleware])
        app.router.add_get('/', self.websocket_handler)
        app.router.add_get('/ws', self.websocket_handler)
        app.router.add_get('/api/status', self.status_handler)
        app.on_shutdown.append(self._on_shutdown)
        app.on_cleanup.append(self._on_cleanup)
        return app

    async def websocket_handler(self, request: web.Request) -> web.StreamResponse:
        ws = web.WebSocketResponse()
        if not ws.can_prepare(request).ok:
            return web.Response(text="Audio streaming WebSocket endpoint\n")
        await ws.prepare(request)

        session = await self.on_connect(ws)
        if session is None:
            return ws

        try:
            # Frames are handled one at a time; while a sink write is pending
            # nothing more is read from this connection.
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self.on_text_frame(session, msg.data)
                elif msg.type == WSMsgType.BINARY:
                    await self.on_binary_frame(session, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    await self.on_error(session, ws.exception())
                    break
        finally:
            await self.on_close(session)
        return ws

    async def status_handler(self, request: web.Request) -> web.Response:
        return web.json_response({
            "status": "ok",
            "message": "Audio streaming server is running",
            "connections": len(self.registry),
            "stats": self.stats.snapshot(),
        })

    async def on_connect(self, ws: web.WebSocketResponse) -> Optional[Session]:
        """Create, register and acknowledge a session for a new connection.

        Returns:
            The new session, or None when its sink could not be opened (the
            connection is closed in that case)
        """
        session_id = self.registry.new_session_id()
        try:
            sink = await self.file_manager.open_sink(session_id)
        except SinkError as e:
            logger.error(f"Rejecting connection {session_id}: {e}")
            self.events.publish(session_id, "open_failed", error=str(e))
            await self._send(ws, ErrorMessage(message=SINK_OPEN_FAILED_MESSAGE))
            await ws.close(code=WSCloseCode.INTERNAL_ERROR, message=b"Sink unavailable")
            return None

        session = Session(
            session_id=session_id,
            file_path=sink.file_path,
            sink=sink,
            transport=ws,
        )
        self.registry.register(session)
        logger.info(f"New connection established: {session_id}")
        self.events.publish(session_id, "opened", file_path=str(sink.file_path))

        await self._send(ws, ConnectionMessage(user_id=session_id))
        return session

    async def on_text_frame(self, session: Session, payload: str) -> None:
        """Handle a start/stop control frame; anything else is logged and dropped."""
        try:
            command = parse_control_command(payload)
        except ProtocolError as e:
            logger.warning(f"Discarding control message from {session.session_id}: {e}")
            self.events.publish(session.session_id, "protocol_error", error=str(e))
            return

        logger.info(f"Received control message: {command.type} from {session.session_id}")

        if isinstance(command, StartCommand):
            if not session.sink_open:
                # One sink per connection: a stopped session cannot restart
                await self._send(session.transport, ErrorMessage(
                    message=f"{SINK_CLOSED_MESSAGE}; reconnect to start a new recording"))
                return
            session.streaming = True
            self.events.publish(session.session_id, "started")
            await self._send(session.transport, StartAck())
        else:
            session.streaming = False
            await self._close_sink(session)
            self.events.publish(session.session_id, "stopped",
                                bytes_written=session.bytes_written)
            await self._send(session.transport, StopAck())

    async def on_binary_frame(self, session: Session, data: bytes) -> None:
        """Append an audio chunk to the session sink and acknowledge it."""
        if not session.sink_open:
            logger.warning(f"Rejecting {len(data)} bytes from {session.session_id}: sink closed")
            self.events.publish(session.session_id, "rejected", size=len(data))
            await self._send(session.transport, ErrorMessage(message=SINK_CLOSED_MESSAGE))
            return

        try:
            await session.sink.write(data)
        except SinkError as e:
            logger.error(f"Error writing audio data for {session.session_id}: {e}")
            self.events.publish(session.session_id, "sink_error", error=str(e))
            await self._send(session.transport, ErrorMessage(message=SINK_WRITE_FAILED_MESSAGE))
            return

        session.chunks_received += 1
        session.bytes_written += len(data)
        self.events.publish(session.session_id, "chunk", size=len(data))
        await self._send(session.transport, AudioChunkAck())

    async def on_error(self, session: Session, error: Optional[BaseException]) -> None:
        logger.error(f"WebSocket error on {session.session_id}: {error}")
        self.events.publish(session.session_id, "error", error=str(error))
        await self.on_close(session)

    async def on_close(self, session: Session) -> None:
        """Close the session's sink and forget the session. Idempotent."""
        if session.closed:
            return
        session.closed = True
        self.registry.remove(session.session_id)
        try:
            # aiohttp may cancel the handler on a client close; the sink
            # close must still finish
            await asyncio.shield(self._close_sink(session))
        finally:
            logger.info(f"Connection closed: {session.session_id}")
            self.events.publish(session.session_id, "closed",
                                chunks=session.chunks_received,
                                bytes_written=session.bytes_written)

    async def _close_sink(self, session: Session) -> None:
        if session.sink is not None:
            await session.sink.close()

    async def _send(self, ws: web.WebSocketResponse, message: Message) -> bool:
        if ws.closed:
            return False
        try:
            await ws.send_str(message.to_json())
        except ConnectionResetError as e:
            logger.debug(f"Could not send {message.type} frame: {e}")
            return False
        return True

    async def _on_shutdown(self, app: web.Application) -> None:
        for session in self.registry:
            await session.transport.close(code=WSCloseCode.GOING_AWAY,
                                          message=b"Server shutdown")

    async def _on_cleanup(self, app: web.Application) -> None:
        for session in self.registry:
            await self.on_close(session)
        self.stats.shutdown()
