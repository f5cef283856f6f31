"""Recording client: streams capture-source chunks to the relay.

All state lives on the asyncio loop that calls ``connect``. Capture callbacks
arrive on the capture thread and are handed to the loop with
``call_soon_threadsafe``; transport events come from the reader task. Nothing
mutates client state from any other thread.
"""

import asyncio
import logging
from typing import Callable, Optional, Set, Union

from ..audio.base import CaptureSource, classify_capture_error
from ..config import RelayConfig
from ..exceptions import CaptureError, NotConnectedError, ProtocolError
from ..models.audio import CaptureConstraints
from ..models.events import AudioEvent
from ..models.messages import (
    AudioChunkAck,
    ConnectionMessage,
    ErrorMessage,
    Message,
    StartAck,
    StartCommand,
    StopAck,
    StopCommand,
    parse_server_message,
)
from ..models.session import ClientStats
from ..models.status import ConnectionStatus, RecordingStatus, StatusSnapshot
from .notifier import StatusListener, StatusNotifier
from .transport import TRANSPORT_ERRORS, AiohttpTransport, Transport

logger = logging.getLogger(__name__)


CaptureFactory = Callable[[CaptureConstraints], CaptureSource]
TransportFactory = Callable[[], Transport]


class RecordingClient:
    """Owns one relay connection and one capture source at a time."""

    def __init__(self,
                 capture_factory: CaptureFactory,
                 transport_factory: TransportFactory = AiohttpTransport,
                 constraints: Optional[CaptureConstraints] = None,
                 chunk_interval_ms: int = 500,
                 max_reconnect_attempts: int = 3,
                 reconnect_base_delay: float = 2.0,
                 reconnect_max_delay: float = 30.0):
        """Initialize recording client.

        Args:
            capture_factory: Acquires a capture source for the given constraints;
                            may block and raise CaptureError
            transport_factory: Creates a fresh transport per connection attempt
            constraints: Capture constraints, all processing enabled by default
            chunk_interval_ms: Duration of audio per binary frame
            max_reconnect_attempts: Automatic reconnects after a drop before giving up
            reconnect_base_delay: Delay in seconds before the first reconnect
            reconnect_max_delay: Upper bound for the backoff delay
        """
        self.capture_factory = capture_factory
        self.transport_factory = transport_factory
        self.constraints = constraints or CaptureConstraints()
        self.chunk_interval_ms = chunk_interval_ms
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay

        self._connection_status = ConnectionStatus.DISCONNECTED
        self._recording_status = RecordingStatus.INACTIVE
        self._notifier = StatusNotifier()

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._url: Optional[str] = None
        self._transport: Optional[Transport] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._reconnect_attempts = 0
        self._closing = False

        self._capture: Optional[CaptureSource] = None
        self._stopping_capture = False
        self._send_lock = asyncio.Lock()
        self._send_tasks: Set[asyncio.Task] = set()
        self._release_futures: Set[asyncio.Future] = set()

        self.stats = ClientStats()

    @classmethod
    def from_config(cls, config: RelayConfig, capture_factory: CaptureFactory,
                    transport_factory: TransportFactory = AiohttpTransport) -> "RecordingClient":
        """Build a client from the ``client`` and ``audio`` config sections."""
        constraints = CaptureConstraints(
            echo_cancellation=config.get('audio.echo_cancellation', True),
            noise_suppression=config.get('audio.noise_suppression', True),
            auto_gain_control=config.get('audio.auto_gain_control', True),
            sample_rate=config.get('audio.sample_rate', 16000),
            channels=config.get('audio.channels', 1),
            frames_per_buffer=config.get('audio.frames_per_buffer', 1024),
        )
        return cls(
            capture_factory=capture_factory,
            transport_factory=transport_factory,
            constraints=constraints,
            chunk_interval_ms=config.get('client.chunk_interval_ms', 500),
            max_reconnect_attempts=config.get('client.max_reconnect_attempts', 3),
            reconnect_base_delay=config.get('client.reconnect_base_delay', 2.0),
            reconnect_max_delay=config.get('client.reconnect_max_delay', 30.0),
        )

    # Status

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._connection_status

    @property
    def recording_status(self) -> RecordingStatus:
        return self._recording_status

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def status(self) -> StatusSnapshot:
        return StatusSnapshot(self._connection_status, self._recording_status)

    def on_status_change(self, callback: StatusListener) -> None:
        """Register callback, called with a StatusSnapshot after every status change."""
        self._notifier.subscribe(callback)

    def remove_status_listener(self, callback: StatusListener) -> bool:
        return self._notifier.unsubscribe(callback)

    def _set_connection_status(self, status: ConnectionStatus) -> None:
        self._connection_status = status
        self._notifier.notify(self.status())

    def _set_recording_status(self, status: RecordingStatus) -> None:
        self._recording_status = status
        self._notifier.notify(self.status())

    def reconnect_delay(self, attempt: int) -> float:
        """Backoff delay in seconds before reconnect number ``attempt`` (1-based)."""
        return min(self.reconnect_base_delay * 2 ** (attempt - 1), self.reconnect_max_delay)

    # Connection lifecycle

    async def connect(self, url: str) -> None:
        """Connect to the relay at url.

        Failures are reported through the connection status and retried with
        backoff; they are not raised.
        """
        if self._transport is not None and self._connection_status is ConnectionStatus.CONNECTED:
            logger.info("Already connected to relay server")
            return

        self._cancel_reconnect()
        self._closing = False
        self._reconnect_attempts = 0
        await self._open(url)

    async def _open(self, url: str) -> None:
        self._loop = asyncio.get_running_loop()
        self._url = url
        self._set_connection_status(ConnectionStatus.CONNECTING)

        transport = self.transport_factory()
        self._transport = transport
        try:
            await transport.open(url)
        except TRANSPORT_ERRORS as e:
            if transport is not self._transport:
                return
            logger.error(f"Failed to connect to relay server at {url}: {e}")
            # A failed open behaves like an error event followed by a close event
            await self._handle_transport_error(transport, e)
            await self._handle_transport_closed(transport)
            return

        if transport is not self._transport:
            # disconnect() ran while the handshake was in flight
            await transport.close()
            return

        logger.info(f"WebSocket connection established to {url}")
        self._reconnect_attempts = 0
        self.stats = ClientStats()
        self._set_connection_status(ConnectionStatus.CONNECTED)
        self._reader_task = asyncio.ensure_future(self._read_loop(transport))

    async def _read_loop(self, transport: Transport) -> None:
        try:
            while True:
                data = await transport.receive()
                if data is None:
                    break
                self._handle_message(data)
        except TRANSPORT_ERRORS as e:
            await self._handle_transport_error(transport, e)
        await self._handle_transport_closed(transport)

    async def _handle_transport_error(self, transport: Transport, error: BaseException) -> None:
        if transport is not self._transport:
            return
        logger.error(f"WebSocket error: {error}")
        if self._recording_status is RecordingStatus.RECORDING:
            await self._teardown_capture(RecordingStatus.ERROR)
        self._set_connection_status(ConnectionStatus.ERROR)

    async def _handle_transport_closed(self, transport: Transport) -> None:
        if transport is not self._transport:
            return
        self._transport = None
        self._reader_task = None
        await transport.close()

        logger.info("WebSocket connection closed")
        if self._recording_status is RecordingStatus.RECORDING:
            await self._teardown_capture(RecordingStatus.INACTIVE)
        self._set_connection_status(ConnectionStatus.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing or self._url is None:
            return
        if self._reconnect_attempts >= self.max_reconnect_attempts:
            logger.warning(f"Giving up after {self._reconnect_attempts} reconnect attempts")
            return

        self._reconnect_attempts += 1
        delay = self.reconnect_delay(self._reconnect_attempts)
        logger.info(f"Attempting to reconnect ({self._reconnect_attempts}/"
                    f"{self.max_reconnect_attempts}) in {delay:.1f}s...")
        self._reconnect_task = asyncio.ensure_future(self._reconnect_after(delay, self._url))

    async def _reconnect_after(self, delay: float, url: str) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        await self._open(url)

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def wait_for_reconnects(self) -> None:
        """Wait until no automatic reconnect is pending."""
        while self._reconnect_task is not None:
            task = self._reconnect_task
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def disconnect(self) -> None:
        """Stop recording if needed and close the connection without reconnecting."""
        self._closing = True
        self._cancel_reconnect()

        if self._recording_status is RecordingStatus.RECORDING:
            await self.stop_recording()

        transport, self._transport = self._transport, None
        reader, self._reader_task = self._reader_task, None
        if transport is not None:
            await transport.close()
        if reader is not None and not reader.done() and reader is not asyncio.current_task():
            reader.cancel()

        self._set_connection_status(ConnectionStatus.DISCONNECTED)

    # Recording lifecycle

    async def start_recording(self) -> None:
        """Acquire the microphone and start streaming chunks to the relay.

        Raises:
            NotConnectedError: not connected to the relay
            CaptureError: the capture source could not be acquired or started
        """
        if self._connection_status is not ConnectionStatus.CONNECTED:
            raise NotConnectedError("Not connected to relay server")

        if self._recording_status is RecordingStatus.RECORDING:
            logger.info("Already recording")
            return

        loop = asyncio.get_running_loop()
        try:
            source = await loop.run_in_executor(None, self.capture_factory, self.constraints)
        except Exception as e:
            error = classify_capture_error(e)
            logger.error(f"Failed to acquire capture source: {error}")
            self._set_recording_status(RecordingStatus.ERROR)
            raise error from e

        transport = self._transport
        if transport is None or self._connection_status is not ConnectionStatus.CONNECTED:
            await loop.run_in_executor(None, source.release)
            raise NotConnectedError("Connection lost while acquiring the microphone")

        self._capture = source
        self._stopping_capture = False
        try:
            await self._send_control(transport, StartCommand())
            source.start(
                self.chunk_interval_ms,
                on_chunk=lambda event: self._dispatch(self._on_capture_chunk, source, event),
                on_stop=lambda: self._dispatch(self._on_capture_stopped, source),
                on_error=lambda error: self._dispatch(self._on_capture_error, source, error),
            )
        except (CaptureError, *TRANSPORT_ERRORS) as e:
            logger.error(f"Failed to start recording: {e}")
            self._capture = None
            await loop.run_in_executor(None, source.release)
            self._set_recording_status(RecordingStatus.ERROR)
            raise

        self._set_recording_status(RecordingStatus.RECORDING)
        logger.info("Recording started")

    async def stop_recording(self) -> None:
        """Stop streaming, tell the relay, and release the microphone."""
        if self._recording_status is not RecordingStatus.RECORDING:
            logger.info("Not currently recording")
            return

        source = self._capture
        if source is not None:
            # The final chunk is flushed to the relay ahead of the stop frame
            self._stopping_capture = True
            await asyncio.get_running_loop().run_in_executor(None, source.stop)

        transport = self._transport
        if transport is not None and transport.is_open:
            try:
                await self._send_control(transport, StopCommand())
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Could not send stop frame: {e}")

        await self._release(source)
        self._set_recording_status(RecordingStatus.INACTIVE)
        logger.info("Recording stopped")

    async def _release(self, source: Optional[CaptureSource]) -> None:
        if self._capture is source:
            self._capture = None
        self._stopping_capture = False
        if source is not None:
            await asyncio.get_running_loop().run_in_executor(None, source.release)

    async def _teardown_capture(self, status: RecordingStatus) -> None:
        """Stop and release the capture source when the connection goes away."""
        source, self._capture = self._capture, None
        if source is not None:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, source.stop)
            await loop.run_in_executor(None, source.release)
        self._set_recording_status(status)

    # Capture callbacks (run on the loop)

    def _dispatch(self, callback: Callable, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug(f"Dropping capture callback {callback.__name__}: loop closed")
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError as e:
            logger.debug(f"Dropping capture callback {callback.__name__}: {e}")

    def _on_capture_chunk(self, source: CaptureSource, event: AudioEvent) -> None:
        if source is not self._capture or not event.audio_data:
            return
        transport = self._transport
        if transport is None or not transport.is_open:
            logger.debug(f"Dropping {event.chunk_id}: transport not open")
            return
        logger.debug(f"Sending audio chunk: {len(event.audio_data)} bytes")
        task = asyncio.ensure_future(self._send_chunk(transport, event.audio_data))
        self._send_tasks.add(task)
        task.add_done_callback(self._send_tasks.discard)

    def _on_capture_stopped(self, source: CaptureSource) -> None:
        if source is not self._capture or self._stopping_capture:
            return
        logger.info("Capture source stopped")
        self._capture = None
        self._release_in_background(source)
        self._set_recording_status(RecordingStatus.INACTIVE)

    def _on_capture_error(self, source: CaptureSource, error: CaptureError) -> None:
        if source is not self._capture:
            return
        logger.error(f"Capture source error: {error}")
        self._capture = None
        self._stopping_capture = False
        self._release_in_background(source)
        self._set_recording_status(RecordingStatus.ERROR)

    def _release_in_background(self, source: CaptureSource) -> None:
        future = self._loop.run_in_executor(None, source.release)
        self._release_futures.add(future)
        future.add_done_callback(self._on_release_done)

    def _on_release_done(self, future: asyncio.Future) -> None:
        self._release_futures.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Error releasing capture source: {error}")

    # Sending

    async def _send_chunk(self, transport: Transport, data: bytes) -> None:
        async with self._send_lock:
            if not transport.is_open:
                return
            try:
                await transport.send_bytes(data)
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Failed to send audio chunk: {e}")
                return
            self.stats.chunks_sent += 1
            self.stats.bytes_sent += len(data)

    async def _send_control(self, transport: Transport, message: Message) -> None:
        async with self._send_lock:
            await transport.send_text(message.to_json())

    async def flush(self) -> None:
        """Wait until every chunk handed to the transport so far was sent."""
        while self._send_tasks:
            await asyncio.gather(*list(self._send_tasks), return_exceptions=True)

    # Inbound messages

    def _handle_message(self, data: Union[str, bytes]) -> None:
        if isinstance(data, bytes):
            logger.warning(f"Ignoring unexpected binary frame from relay ({len(data)} bytes)")
            return
        try:
            message = parse_server_message(data)
        except ProtocolError as e:
            logger.warning(f"Error processing WebSocket message: {e}")
            return

        if isinstance(message, ConnectionMessage):
            self.stats.session_id = message.user_id
            logger.info(f"Connection established with userId: {message.user_id}")
        elif isinstance(message, StartAck):
            logger.info("Server acknowledged recording start")
        elif isinstance(message, StopAck):
            logger.info("Server acknowledged recording stop")
        elif isinstance(message, AudioChunkAck):
            self.stats.chunks_acknowledged += 1
        elif isinstance(message, ErrorMessage):
            self.stats.server_errors += 1
            self.stats.last_server_error = message.message
            logger.error(f"Server error: {message.message}")
