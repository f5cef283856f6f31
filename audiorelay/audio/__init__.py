"""Audio capture sources."""

from .base import CaptureSource, classify_capture_error, validate_constraints

__all__ = [
    'CaptureSource',
    'classify_capture_error',
    'validate_constraints',
]
