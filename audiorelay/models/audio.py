"""Audio-related data models."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CaptureConstraints:
    """Requested microphone processing and format settings."""
    echo_cancellation: bool = True
    noise_suppression: bool = True
    auto_gain_control: bool = True
    sample_rate: int = 16000
    channels: int = 1
    frames_per_buffer: int = 1024


@dataclass
class CaptureStats:
    """Audio capture statistics."""
    is_active: bool
    duration_seconds: float
    sample_rate: int
    channels: int
    total_chunks: int
    total_bytes: int
    peak_level: float = 0.0
