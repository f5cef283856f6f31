"""Command line recording client: stream the microphone to a relay."""

import sys
import asyncio
import argparse
import logging

from rich.console import Console
from rich.table import Table

from .client.recording_client import RecordingClient
from .config import RelayConfig
from .exceptions import CaptureError, NotConnectedError
from .main import load_config, setup_logging
from .models.status import ConnectionStatus, RecordingStatus, StatusSnapshot

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    ConnectionStatus.CONNECTED: "green",
    ConnectionStatus.CONNECTING: "yellow",
    ConnectionStatus.DISCONNECTED: "dim",
    ConnectionStatus.ERROR: "red",
    RecordingStatus.RECORDING: "bold red",
    RecordingStatus.INACTIVE: "dim",
    RecordingStatus.PAUSED: "yellow",
    RecordingStatus.ERROR: "red",
}


class StatusDisplay:
    """Prints every status change of a recording client."""

    def __init__(self, console: Console):
        self.console = console

    def __call__(self, snapshot: StatusSnapshot) -> None:
        connection = snapshot.connection
        recording = snapshot.recording
        self.console.print(
            f"connection: [{STATUS_STYLES[connection]}]{connection.value}[/]  "
            f"recording: [{STATUS_STYLES[recording]}]{recording.value}[/]"
        )


def render_summary(client: RecordingClient) -> Table:
    stats = client.stats
    table = Table(title="Recording summary")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Session id", str(stats.session_id))
    table.add_row("Chunks sent", str(stats.chunks_sent))
    table.add_row("Bytes sent", str(stats.bytes_sent))
    table.add_row("Chunks acknowledged", str(stats.chunks_acknowledged))
    table.add_row("Server errors", str(stats.server_errors))
    return table


async def record(config: RelayConfig, url: str, duration: float, console: Console) -> int:
    # pyaudio is only needed here, not by the client library itself
    from .audio.capture import PyAudioCaptureSource

    client = RecordingClient.from_config(config, capture_factory=PyAudioCaptureSource.acquire)
    display = StatusDisplay(console)
    client.on_status_change(display)

    console.print(f"Connecting to [bold]{url}[/]...")
    await client.connect(url)
    await client.wait_for_reconnects()
    if client.connection_status is not ConnectionStatus.CONNECTED:
        console.print("[red]Could not connect to the relay server[/]")
        return 1

    try:
        await client.start_recording()
    except CaptureError as e:
        console.print(f"[red]{e}[/] ({e.category.value})")
        await client.disconnect()
        return 1
    except NotConnectedError as e:
        console.print(f"[red]{e}[/]")
        await client.disconnect()
        return 1

    console.print(f"Recording for {duration:g}s, press Ctrl+C to stop early")
    try:
        await asyncio.sleep(duration)
    finally:
        await client.stop_recording()
        await client.flush()
        await client.disconnect()
        console.print(render_summary(client))
    return 0


def main() -> None:
    """Main entry point for the recording client."""
    parser = argparse.ArgumentParser(
        description="audiorelay recorder - stream the microphone to a relay server"
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: built-in defaults)"
    )

    parser.add_argument(
        "--url",
        type=str,
        help="Relay WebSocket URL (default: server.public_url from config)"
    )

    parser.add_argument(
        "--duration",
        type=float,
        default=10,
        help="Recording duration in seconds (default: 10)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    args = parser.parse_args()
    console = Console()

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/]")
        sys.exit(1)

    setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
    url = args.url or config.get_public_url()

    try:
        sys.exit(asyncio.run(record(config, url, args.duration, console)))
    except KeyboardInterrupt:
        console.print("\nStopped by user.")


if __name__ == "__main__":
    main()
