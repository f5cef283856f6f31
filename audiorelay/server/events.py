"""Session event publishing and aggregation over pub/sub."""

import logging
import threading
import uuid
from typing import Any, Dict

from pubsub import pub

from ..models.events import SessionEvent

logger = logging.getLogger(__name__)


class SessionEventPublisher:
    """Publishes relay session lifecycle events using pubsub.pub."""

    def __init__(self, topic: str = "relay.session"):
        """Initialize session event publisher.

        Args:
            topic: Pub/sub topic name for session events
        """
        self.topic = topic
        logger.info(f"SessionEventPublisher initialized with topic: {topic}")

    def publish(self, session_id: str, event_type: str, **metadata: Any) -> SessionEvent:
        """Publish a session event to the pub/sub topic.

        Listener failures are logged and never reach the relay.
        """
        event = SessionEvent(
            event_id=uuid.uuid4().hex,
            session_id=session_id,
            event_type=event_type,
            metadata=metadata,
        )
        try:
            pub.sendMessage(self.topic, event=event)
        except Exception:
            logger.exception(f"Session event listener failed for {event_type} on {session_id}")
        return event


class RelayStats:
    """Aggregates session events into relay-wide counters."""

    def __init__(self, topic: str = "relay.session"):
        """Initialize stats aggregator.

        Args:
            topic: Topic carrying SessionEvent messages
        """
        self.topic = topic
        self.lock = threading.Lock()
        self.counters: Dict[str, int] = {
            "sessions_opened": 0,
            "sessions_closed": 0,
            "sessions_failed": 0,
            "chunks_persisted": 0,
            "bytes_persisted": 0,
            "chunks_rejected": 0,
            "sink_errors": 0,
            "protocol_errors": 0,
        }

        pub.subscribe(self._on_event, topic)
        self._subscribed = True
        logger.info(f"RelayStats subscribed to {topic}")

    def _on_event(self, event: SessionEvent) -> None:
        """Handle session event."""
        with self.lock:
            if event.event_type == "opened":
                self.counters["sessions_opened"] += 1
            elif event.event_type == "closed":
                self.counters["sessions_closed"] += 1
            elif event.event_type == "open_failed":
                self.counters["sessions_failed"] += 1
            elif event.event_type == "chunk":
                self.counters["chunks_persisted"] += 1
                self.counters["bytes_persisted"] += event.metadata.get("size", 0)
            elif event.event_type == "rejected":
                self.counters["chunks_rejected"] += 1
            elif event.event_type == "sink_error":
                self.counters["sink_errors"] += 1
            elif event.event_type == "protocol_error":
                self.counters["protocol_errors"] += 1

    def snapshot(self) -> Dict[str, int]:
        with self.lock:
            return dict(self.counters)

    def shutdown(self) -> None:
        """Unsubscribe from the session topic."""
        if self._subscribed:
            pub.unsubscribe(self._on_event, self.topic)
            self._subscribed = False
