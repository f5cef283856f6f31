"""Recording client: capture-to-relay streaming with reconnect."""

from .notifier import StatusNotifier
from .transport import AiohttpTransport, Transport
from .recording_client import RecordingClient

__all__ = [
    "StatusNotifier",
    "AiohttpTransport",
    "Transport",
    "RecordingClient",
]
