"""Pytest configuration and fixtures for audiorelay tests."""

import asyncio
import pytest
import tempfile
import logging
import time
import uuid
from typing import Callable, List, Optional
from unittest.mock import Mock, patch
import numpy as np

from audiorelay.audio.base import CaptureSource
from audiorelay.client.transport import Transport
from audiorelay.models.audio import CaptureConstraints
from audiorelay.models.events import AudioEvent
from audiorelay.server.relay import AudioRelay
from audiorelay.storage.file_manager import FileManager


# Configure logging for tests
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@pytest.fixture
def temp_data_dir():
    """Create temporary directory for test data."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield temp_dir


@pytest.fixture
def sample_audio_chunk():
    """Generate a sample audio chunk for testing."""
    # Generate 1024 samples of 16-bit audio (sine wave)
    sample_rate = 16000
    duration = 1024 / sample_rate  # ~0.064 seconds
    freq = 440  # A4 note

    t = np.linspace(0, duration, 1024, False)
    wave_data = np.sin(2 * np.pi * freq * t)

    # Convert to 16-bit integers
    audio_data = (wave_data * 32767).astype(np.int16)
    return audio_data.tobytes()


@pytest.fixture
def mock_pyaudio():
    """Mock PyAudio for testing without actual audio hardware."""
    with patch('pyaudio.PyAudio') as mock_pyaudio_class:
        mock_pyaudio_instance = Mock()
        mock_stream = Mock()

        # Configure mock stream
        mock_stream.read.return_value = b'\x00' * 2048  # Silent audio
        mock_stream.is_active.return_value = True
        mock_stream.start_stream.return_value = None
        mock_stream.stop_stream.return_value = None
        mock_stream.close.return_value = None

        # Configure mock PyAudio instance
        mock_pyaudio_instance.open.return_value = mock_stream
        mock_pyaudio_instance.terminate.return_value = None
        mock_pyaudio_instance.get_sample_size.return_value = 2
        mock_pyaudio_instance.get_default_input_device_info.return_value = {"index": 0}

        mock_pyaudio_class.return_value = mock_pyaudio_instance

        yield {
            'class': mock_pyaudio_class,
            'instance': mock_pyaudio_instance,
            'stream': mock_stream
        }


@pytest.fixture
def audio_test_data():
    """Generate various audio test data patterns."""
    def generate_audio(pattern="sine", duration_seconds=1.0, sample_rate=16000, amplitude=1.0):
        """Generate audio data for testing.

        Args:
            pattern: Type of audio pattern ('sine', 'noise', 'silence')
            duration_seconds: Duration of audio
            sample_rate: Sample rate in Hz
            amplitude: Peak amplitude between 0 and 1

        Returns:
            bytes: Audio data as bytes
        """
        samples = int(duration_seconds * sample_rate)

        if pattern == "sine":
            t = np.linspace(0, duration_seconds, samples, False)
            wave_data = np.sin(2 * np.pi * 440 * t)
        elif pattern == "noise":
            wave_data = np.random.uniform(-1, 1, samples)
        elif pattern == "silence":
            wave_data = np.zeros(samples)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

        audio_data = (wave_data * amplitude * 32767).astype(np.int16)
        return audio_data.tobytes()

    return generate_audio


class FakeCaptureSource(CaptureSource):
    """Capture source driven by the test instead of a microphone."""

    def __init__(self, constraints: Optional[CaptureConstraints] = None,
                 final_chunk: bytes = b""):
        super().__init__(constraints or CaptureConstraints())
        self.final_chunk = final_chunk
        self.timeslice_ms = None
        self.started = False
        self.stop_calls = 0
        self.release_calls = 0
        self.sequence = 0
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def start(self, timeslice_ms, on_chunk, on_stop, on_error):
        self.timeslice_ms = timeslice_ms
        self._on_chunk = on_chunk
        self._on_stop = on_stop
        self._on_error = on_error
        self.started = True
        self._active = True

    def emit(self, data: bytes, final: bool = False) -> None:
        self.sequence += 1
        self._on_chunk(AudioEvent(
            chunk_id=f"chunk_{self.sequence}",
            audio_data=data,
            timestamp=time.time(),
            sequence_number=self.sequence,
            final=final,
        ))

    def end(self) -> None:
        """Simulate the device ending the capture on its own."""
        self._active = False
        self._on_stop()

    def fail(self, error) -> None:
        self._active = False
        self._on_error(error)

    def stop(self) -> None:
        self.stop_calls += 1
        if not self._active:
            return
        if self.final_chunk:
            self.emit(self.final_chunk, final=True)
        self._active = False
        self._on_stop()

    def release(self) -> None:
        self.release_calls += 1


class FakeCaptureFactory:
    """Records acquisitions; raises ``error`` instead when set."""

    def __init__(self, final_chunk: bytes = b""):
        self.final_chunk = final_chunk
        self.sources: List[FakeCaptureSource] = []
        self.error: Optional[BaseException] = None

    def __call__(self, constraints: CaptureConstraints) -> FakeCaptureSource:
        if self.error is not None:
            raise self.error
        source = FakeCaptureSource(constraints, final_chunk=self.final_chunk)
        self.sources.append(source)
        return source

    @property
    def last(self) -> FakeCaptureSource:
        return self.sources[-1]


class FakeTransport(Transport):
    """In-memory transport; the test plays the relay."""

    def __init__(self, fail_open: bool = False):
        self.fail_open = fail_open
        self.sent: list = []
        self.opened_url: Optional[str] = None
        self.close_calls = 0
        self._open = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self, url: str) -> None:
        self.opened_url = url
        if self.fail_open:
            raise ConnectionRefusedError(f"Connection refused: {url}")
        self._open = True

    async def receive(self):
        item = await self._incoming.get()
        if isinstance(item, BaseException):
            self._open = False
            raise item
        if item is None:
            self._open = False
        return item

    async def send_text(self, data: str) -> None:
        if not self._open:
            raise ConnectionResetError("not open")
        self.sent.append(data)

    async def send_bytes(self, data: bytes) -> None:
        if not self._open:
            raise ConnectionResetError("not open")
        self.sent.append(data)

    async def close(self) -> None:
        self.close_calls += 1
        if self._open:
            self._open = False
            self._incoming.put_nowait(None)

    # Relay side

    def push(self, message: str) -> None:
        self._incoming.put_nowait(message)

    def drop(self) -> None:
        """Peer closes the connection."""
        self._incoming.put_nowait(None)

    def break_connection(self, error: Optional[BaseException] = None) -> None:
        self._incoming.put_nowait(error or ConnectionResetError("Connection reset by peer"))

    @property
    def sent_text(self) -> List[str]:
        return [item for item in self.sent if isinstance(item, str)]

    @property
    def sent_bytes(self) -> List[bytes]:
        return [item for item in self.sent if isinstance(item, bytes)]


class FakeTransportFactory:
    """Creates FakeTransports; the first ``failures`` opens are refused."""

    def __init__(self, failures: int = 0):
        self.failures = failures
        self.transports: List[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        fail = self.failures < 0 or len(self.transports) < self.failures
        transport = FakeTransport(fail_open=fail)
        self.transports.append(transport)
        return transport

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]


@pytest.fixture
def capture_factory():
    return FakeCaptureFactory()


@pytest.fixture
def transport_factory():
    return FakeTransportFactory()


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until it holds or fail the test after timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("Timed out waiting for condition")
        await asyncio.sleep(0.01)


@pytest.fixture
def relay(temp_data_dir):
    """AudioRelay writing into a temporary directory on its own event topic."""
    relay = AudioRelay(
        FileManager(temp_data_dir),
        event_topic=f"test_relay_{uuid.uuid4().hex}",
    )
    yield relay
    relay.stats.shutdown()
