"""Client status models."""

from dataclasses import dataclass
from enum import Enum


class ConnectionStatus(Enum):
    """Transport lifecycle status of a recording client."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class RecordingStatus(Enum):
    """Capture lifecycle status of a recording client."""
    INACTIVE = "inactive"
    RECORDING = "recording"
    PAUSED = "paused"  # reserved, nothing transitions here yet
    ERROR = "error"


@dataclass(frozen=True)
class StatusSnapshot:
    """Combined client status delivered to status listeners."""
    connection: ConnectionStatus
    recording: RecordingStatus
