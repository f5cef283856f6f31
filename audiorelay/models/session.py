"""Session-related data models."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional


@dataclass
class Session:
    """Relay-side state bound to one live connection."""
    session_id: str
    file_path: Path
    sink: Any  # storage.file_manager.AudioSink
    transport: Any  # aiohttp.web.WebSocketResponse
    connected_at: datetime = field(default_factory=datetime.now)
    streaming: bool = False
    chunks_received: int = 0
    bytes_written: int = 0
    closed: bool = False

    @property
    def sink_open(self) -> bool:
        return self.sink is not None and not self.sink.closed


@dataclass
class ClientStats:
    """Counters kept by the recording client for one connection."""
    session_id: Optional[str] = None
    chunks_sent: int = 0
    bytes_sent: int = 0
    chunks_acknowledged: int = 0
    server_errors: int = 0
    last_server_error: Optional[str] = None
