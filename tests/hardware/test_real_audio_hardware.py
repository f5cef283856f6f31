"""Real hardware tests for microphone capture and streaming.

These tests require actual audio hardware (microphone) and verify that
the system works with real audio devices by checking the recorded files.

Run with: pytest tests/hardware/ -v -s -m hardware
"""

import threading
import time
import pytest

from audiorelay.audio.capture import PyAudioCaptureSource
from audiorelay.client.recording_client import RecordingClient
from audiorelay.exceptions import CaptureError
from audiorelay.models.audio import CaptureConstraints
from audiorelay.models.status import ConnectionStatus, RecordingStatus

from conftest import wait_for


def acquire_or_skip(constraints=None):
    try:
        return PyAudioCaptureSource.acquire(constraints or CaptureConstraints())
    except CaptureError as e:
        pytest.skip(f"No usable microphone: {e} ({e.category.value})")


@pytest.mark.hardware
class TestRealAudioHardware:
    """Tests that require real audio hardware to run."""

    def test_real_microphone_capture_5s(self):
        """Capture 5 seconds from the real microphone in 500ms chunks.

        Verifies that chunks arrive in order, carry roughly the requested
        amount of audio, and that the source stops and releases cleanly.
        """
        print("\n" + "=" * 60)
        print("HARDWARE TEST: 5-second microphone capture")
        print("=" * 60)

        source = acquire_or_skip()
        events = []
        ended = threading.Event()
        errors = []

        def on_error(error):
            errors.append(error)
            ended.set()

        source.start(500, on_chunk=events.append, on_stop=ended.set, on_error=on_error)
        time.sleep(5.0)
        source.stop()
        source.release()

        assert ended.is_set(), "Capture should report its end"
        assert errors == [], f"Capture failed: {errors}"

        stats = source.get_capture_stats()
        print("Capture stats:")
        print(f"  Duration: {stats.duration_seconds:.2f} seconds")
        print(f"  Total chunks: {stats.total_chunks}")
        print(f"  Total bytes: {stats.total_bytes:,}")
        print(f"  Peak level: {stats.peak_level:.3f}")

        # 500ms at 16kHz mono 16-bit is 16000 bytes; be lenient on timing
        assert 6 <= len(events) <= 12, f"Unexpected chunk count: {len(events)}"
        assert [e.sequence_number for e in events] == list(range(1, len(events) + 1))
        for event in events[:-1]:
            assert len(event.audio_data) >= 16000

        total = sum(len(e.audio_data) for e in events)
        expected = 5 * 16000 * 2
        assert 0.8 * expected <= total <= 1.3 * expected, f"Captured {total} bytes"
        print("✅ 5-second capture test passed!")

    async def test_real_microphone_streamed_to_relay(self, aiohttp_server, relay):
        """Stream a few seconds of real microphone audio through a local relay."""
        print("\n" + "=" * 60)
        print("HARDWARE TEST: microphone -> relay -> file")
        print("=" * 60)

        # Fail fast when there is no microphone
        acquire_or_skip().release()

        server = await aiohttp_server(relay.create_app())
        client = RecordingClient(PyAudioCaptureSource.acquire, chunk_interval_ms=250)

        await client.connect(f"ws://{server.host}:{server.port}/")
        assert client.connection_status is ConnectionStatus.CONNECTED
        await wait_for(lambda: client.stats.session_id is not None)

        await client.start_recording()
        assert client.recording_status is RecordingStatus.RECORDING
        await wait_for(lambda: client.stats.chunks_sent >= 10, timeout=10.0)
        await client.stop_recording()
        await client.flush()
        await client.disconnect()
        await wait_for(lambda: len(relay.registry) == 0)

        path = relay.file_manager.get_session_file_path(client.stats.session_id)
        file_size = path.stat().st_size
        print(f"Recorded file: {path} ({file_size:,} bytes)")
        print(f"Chunks sent: {client.stats.chunks_sent}, acknowledged: {client.stats.chunks_acknowledged}")

        assert file_size == client.stats.bytes_sent
        assert client.stats.server_errors == 0
        print("✅ Streaming test passed!")
