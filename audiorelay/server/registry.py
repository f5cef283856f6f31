"""Live session registry and session id generation."""

import itertools
import logging
import threading
import time
from typing import Callable, Dict, Iterator, Optional

from ..models.session import Session

logger = logging.getLogger(__name__)


class SessionIdGenerator:
    """Generates session ids from the connection time plus a sequence number.

    The sequence number makes ids unique even when two connections arrive in
    the same clock tick.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def generate(self) -> str:
        with self._lock:
            sequence = next(self._counter)
        millis = int(self._clock() * 1000)
        return f"{millis}-{sequence:04d}"


class SessionRegistry:
    """Set of live sessions keyed by session id.

    Only mutated from the relay's event loop.
    """

    def __init__(self, id_generator: Optional[SessionIdGenerator] = None):
        self.id_generator = id_generator or SessionIdGenerator()
        self._sessions: Dict[str, Session] = {}

    def new_session_id(self) -> str:
        """Return an id not used by any live session."""
        session_id = self.id_generator.generate()
        while session_id in self._sessions:
            logger.warning(f"Session id collision on {session_id}, regenerating")
            session_id = self.id_generator.generate()
        return session_id

    def register(self, session: Session) -> None:
        if session.session_id in self._sessions:
            raise KeyError(f"Session already registered: {session.session_id}")
        self._sessions[session.session_id] = session
        logger.debug(f"Registered session {session.session_id} ({len(self._sessions)} live)")

    def remove(self, session_id: str) -> Optional[Session]:
        session = self._sessions.pop(session_id, None)
        if session is not None:
            logger.debug(f"Removed session {session_id} ({len(self._sessions)} live)")
        return session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))
