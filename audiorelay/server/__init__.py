"""Relay server: session registry and WebSocket relay."""

from .registry import SessionIdGenerator, SessionRegistry
from .events import RelayStats, SessionEventPublisher
from .relay import AudioRelay

__all__ = [
    "SessionIdGenerator",
    "SessionRegistry",
    "RelayStats",
    "SessionEventPublisher",
    "AudioRelay",
]
