"""Event models for pub/sub session and audio processing."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass
class AudioEvent:
    """Encoded audio chunk emitted by a capture source."""
    chunk_id: str
    audio_data: bytes
    timestamp: float  # Unix timestamp when chunk was completed
    sequence_number: int
    final: bool = False  # True for the last chunk before the source stops


@dataclass
class SessionEvent:
    """Relay session lifecycle event."""
    event_id: str
    session_id: str
    event_type: str  # "opened", "started", "stopped", "chunk", "closed", "error"
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
