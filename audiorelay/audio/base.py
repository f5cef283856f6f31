"""Abstract capture source and capture error classification."""

import errno
from abc import ABC, abstractmethod
from typing import Callable
import logging

from ..exceptions import CaptureError, CaptureErrorCategory
from ..models.audio import CaptureConstraints
from ..models.events import AudioEvent

logger = logging.getLogger(__name__)


ChunkCallback = Callable[[AudioEvent], None]
StopCallback = Callable[[], None]
ErrorCallback = Callable[[CaptureError], None]

# PortAudio error codes, as carried in OSError.errno by PyAudio
PA_INVALID_CHANNEL_COUNT = -9998
PA_INVALID_SAMPLE_RATE = -9997
PA_INVALID_DEVICE = -9996
PA_INVALID_FLAG = -9995
PA_SAMPLE_FORMAT_NOT_SUPPORTED = -9994
PA_BAD_IO_DEVICE_COMBINATION = -9993
PA_DEVICE_UNAVAILABLE = -9985
PA_HOST_API_NOT_FOUND = -9979

_ERRNO_CATEGORIES = {
    errno.EACCES: CaptureErrorCategory.PERMISSION_DENIED,
    errno.EPERM: CaptureErrorCategory.PERMISSION_DENIED,
    errno.ENODEV: CaptureErrorCategory.DEVICE_NOT_FOUND,
    errno.ENOENT: CaptureErrorCategory.DEVICE_NOT_FOUND,
    errno.ENXIO: CaptureErrorCategory.DEVICE_NOT_FOUND,
    errno.EBUSY: CaptureErrorCategory.DEVICE_BUSY,
    PA_INVALID_DEVICE: CaptureErrorCategory.DEVICE_NOT_FOUND,
    PA_HOST_API_NOT_FOUND: CaptureErrorCategory.DEVICE_NOT_FOUND,
    PA_DEVICE_UNAVAILABLE: CaptureErrorCategory.DEVICE_BUSY,
    PA_INVALID_CHANNEL_COUNT: CaptureErrorCategory.OVERCONSTRAINED,
    PA_INVALID_SAMPLE_RATE: CaptureErrorCategory.OVERCONSTRAINED,
    PA_SAMPLE_FORMAT_NOT_SUPPORTED: CaptureErrorCategory.OVERCONSTRAINED,
    PA_BAD_IO_DEVICE_COMBINATION: CaptureErrorCategory.OVERCONSTRAINED,
    PA_INVALID_FLAG: CaptureErrorCategory.INVALID_CONSTRAINT,
}


def classify_capture_error(error: BaseException) -> CaptureError:
    """Map an exception raised while acquiring or running a capture source.

    Args:
        error: Exception from the audio backend or the OS

    Returns:
        CaptureError carrying the matching category
    """
    if isinstance(error, CaptureError):
        return error
    if isinstance(error, PermissionError):
        category = CaptureErrorCategory.PERMISSION_DENIED
    elif isinstance(error, OSError) and error.errno in _ERRNO_CATEGORIES:
        category = _ERRNO_CATEGORIES[error.errno]
    elif isinstance(error, (TypeError, ValueError)):
        category = CaptureErrorCategory.INVALID_CONSTRAINT
    else:
        category = CaptureErrorCategory.UNKNOWN
    return CaptureError(category, str(error))


def validate_constraints(constraints: CaptureConstraints) -> None:
    """Reject constraint values no backend could honour.

    Raises:
        CaptureError: with category INVALID_CONSTRAINT
    """
    for name in ('echo_cancellation', 'noise_suppression', 'auto_gain_control'):
        if not isinstance(getattr(constraints, name), bool):
            raise CaptureError(CaptureErrorCategory.INVALID_CONSTRAINT,
                               f"{name} must be a boolean")
    for name in ('sample_rate', 'channels', 'frames_per_buffer'):
        value = getattr(constraints, name)
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise CaptureError(CaptureErrorCategory.INVALID_CONSTRAINT,
                               f"{name} must be a positive integer, got {value!r}")


class CaptureSource(ABC):
    """A microphone that emits encoded chunks on a fixed interval."""

    def __init__(self, constraints: CaptureConstraints):
        self.constraints = constraints

    @property
    @abstractmethod
    def is_active(self) -> bool:
        """True between a successful start() and the end of capture."""
        pass

    @abstractmethod
    def start(self, timeslice_ms: int, on_chunk: ChunkCallback,
              on_stop: StopCallback, on_error: ErrorCallback) -> None:
        """Begin capturing.

        Callbacks may run on a capture thread. ``on_stop`` or ``on_error`` is
        called exactly once when capture ends.

        Args:
            timeslice_ms: Duration of audio carried by each chunk
            on_chunk: Receives every emitted chunk in order
            on_stop: Called when capture ended normally
            on_error: Called when capture ended because of a failure

        Raises:
            CaptureError: capture could not begin
        """
        pass

    @abstractmethod
    def stop(self) -> None:
        """Stop capturing and wait for the final chunk to be emitted."""
        pass

    @abstractmethod
    def release(self) -> None:
        """Release the underlying device handles. Safe to call repeatedly."""
        pass
