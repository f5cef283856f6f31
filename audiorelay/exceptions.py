"""Exception hierarchy shared by the relay and the recording client."""

from enum import Enum


class AudioRelayError(Exception):
    """Base class for all audiorelay errors."""


class SinkError(AudioRelayError):
    """A session sink could not be opened or written."""


class ProtocolError(AudioRelayError):
    """A control frame could not be parsed or is not recognised."""


class NotConnectedError(AudioRelayError):
    """A client command needs a connected transport."""


class CaptureErrorCategory(Enum):
    """User-presentable categories of capture-source acquisition failures."""
    PERMISSION_DENIED = "permission_denied"
    DEVICE_NOT_FOUND = "device_not_found"
    DEVICE_BUSY = "device_busy"
    OVERCONSTRAINED = "overconstrained"
    INVALID_CONSTRAINT = "invalid_constraint"
    UNKNOWN = "unknown"


CAPTURE_ERROR_MESSAGES = {
    CaptureErrorCategory.PERMISSION_DENIED:
        "Microphone access was denied. Check the microphone permissions of this application.",
    CaptureErrorCategory.DEVICE_NOT_FOUND:
        "No microphone was found. Check that a microphone is connected.",
    CaptureErrorCategory.DEVICE_BUSY:
        "The microphone could not be opened. Another application may be using it.",
    CaptureErrorCategory.OVERCONSTRAINED:
        "No microphone satisfies the requested capture settings.",
    CaptureErrorCategory.INVALID_CONSTRAINT:
        "The requested capture settings are invalid.",
    CaptureErrorCategory.UNKNOWN:
        "An error occurred while accessing the microphone",
}


class CaptureError(AudioRelayError):
    """Capture source acquisition or runtime failure with a category."""

    def __init__(self, category: CaptureErrorCategory, detail: str = ""):
        self.category = category
        self.detail = detail
        message = CAPTURE_ERROR_MESSAGES[category]
        if category is CaptureErrorCategory.UNKNOWN and detail:
            message = f"{message}: {detail}"
        super().__init__(message)
