"""Ordered observer registry for client status changes."""

import logging
from typing import Callable, List

from ..models.status import StatusSnapshot

logger = logging.getLogger(__name__)


StatusListener = Callable[[StatusSnapshot], None]


class StatusNotifier:
    """Calls status listeners in subscription order.

    A listener that raises is logged; the remaining listeners still run.
    """

    def __init__(self):
        self._listeners: List[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: StatusListener) -> bool:
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def notify(self, snapshot: StatusSnapshot) -> None:
        # Copy so listeners may (un)subscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception(f"Error in status change callback {listener!r}")

    def __len__(self) -> int:
        return len(self._listeners)
