"""Data models for the audiorelay application."""

from .audio import CaptureConstraints, CaptureStats
from .events import AudioEvent, SessionEvent
from .session import Session, ClientStats
from .status import ConnectionStatus, RecordingStatus, StatusSnapshot
from .messages import (
    MessageType,
    StartCommand,
    StopCommand,
    ConnectionMessage,
    StartAck,
    StopAck,
    AudioChunkAck,
    ErrorMessage,
    parse_control_command,
    parse_server_message,
)

__all__ = [
    "CaptureConstraints",
    "CaptureStats",
    "AudioEvent",
    "SessionEvent",
    "Session",
    "ClientStats",
    "ConnectionStatus",
    "RecordingStatus",
    "StatusSnapshot",
    # Wire protocol
    "MessageType",
    "StartCommand",
    "StopCommand",
    "ConnectionMessage",
    "StartAck",
    "StopAck",
    "AudioChunkAck",
    "ErrorMessage",
    "parse_control_command",
    "parse_server_message",
]
