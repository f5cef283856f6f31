"""End-to-end tests: RecordingClient streaming into a live relay."""

import pytest

from audiorelay.client.recording_client import RecordingClient
from audiorelay.models.status import ConnectionStatus, RecordingStatus

from conftest import FakeCaptureFactory, wait_for


def relay_url(server) -> str:
    return f"ws://{server.host}:{server.port}/"


def make_client(capture_factory, **kwargs):
    options = dict(chunk_interval_ms=100, reconnect_base_delay=0.01, reconnect_max_delay=0.05)
    options.update(kwargs)
    return RecordingClient(capture_factory, **options)


@pytest.mark.integration
class TestEndToEnd:
    """Recording client and relay server working together."""

    async def test_recording_is_persisted(self, aiohttp_server, relay, audio_test_data):
        server = await aiohttp_server(relay.create_app())
        capture_factory = FakeCaptureFactory(final_chunk=b"\x01\x02")
        client = make_client(capture_factory)

        await client.connect(relay_url(server))
        assert client.connection_status is ConnectionStatus.CONNECTED
        await wait_for(lambda: client.stats.session_id is not None)
        session_id = client.stats.session_id

        await client.start_recording()
        audio = audio_test_data("noise", duration_seconds=1.0, amplitude=0.3)
        chunks = [audio[i:i + 3200] for i in range(0, len(audio), 3200)]
        for chunk in chunks:
            capture_factory.last.emit(chunk)
        await client.stop_recording()
        await client.flush()

        expected = audio + b"\x01\x02"
        await wait_for(lambda: client.stats.chunks_acknowledged == len(chunks) + 1)
        assert client.stats.bytes_sent == len(expected)
        assert client.stats.server_errors == 0

        await client.disconnect()
        await wait_for(lambda: len(relay.registry) == 0)

        recorded = relay.file_manager.get_session_file_path(session_id).read_bytes()
        assert recorded == expected
        assert client.status().recording is RecordingStatus.INACTIVE

    async def test_frames_after_stop_are_rejected(self, aiohttp_server, relay):
        server = await aiohttp_server(relay.create_app())
        capture_factory = FakeCaptureFactory()
        client = make_client(capture_factory)
        await client.connect(relay_url(server))

        await client.start_recording()
        capture_factory.last.emit(b"kept")
        await client.stop_recording()

        # a second recording on the same connection hits a closed sink
        await client.start_recording()
        capture_factory.last.emit(b"rejected")
        await client.flush()
        await wait_for(lambda: client.stats.server_errors >= 2)

        assert client.stats.last_server_error == "Recording sink is closed"
        session_id = client.stats.session_id
        await client.disconnect()
        await wait_for(lambda: len(relay.registry) == 0)

        assert relay.file_manager.get_session_file_path(session_id).read_bytes() == b"kept"

    async def test_reconnect_opens_new_session(self, aiohttp_server, relay):
        server = await aiohttp_server(relay.create_app())
        capture_factory = FakeCaptureFactory()
        client = make_client(capture_factory)
        await client.connect(relay_url(server))
        await wait_for(lambda: client.stats.session_id is not None)
        first_id = client.stats.session_id

        # the relay drops the connection
        session = relay.registry.get(first_id)
        await session.transport.close()

        await wait_for(lambda: client.stats.session_id not in (None, first_id))
        assert client.connection_status is ConnectionStatus.CONNECTED
        assert client.reconnect_attempts == 0
        await wait_for(lambda: len(relay.registry) == 1)

        await client.disconnect()
        await wait_for(lambda: len(relay.registry) == 0)

    async def test_unreachable_relay(self, unused_tcp_port, capture_factory):
        client = make_client(capture_factory, max_reconnect_attempts=2)

        await client.connect(f"ws://127.0.0.1:{unused_tcp_port}/")
        await client.wait_for_reconnects()

        assert client.connection_status is ConnectionStatus.DISCONNECTED
        assert client.reconnect_attempts == 2
