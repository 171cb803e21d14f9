"""Observer registry used for frame, data and discovery notifications."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventHook:
    """Ordered list of handlers notified synchronously.

    Handlers are called from a snapshot of the list, so they may subscribe
    or unsubscribe (themselves included) while a notification is running.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Handler] = []
        self._lock = threading.Lock()

    def subscribe(self, handler: Handler) -> None:
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def unsubscribe(self, handler: Handler) -> None:
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def notify(self, *args: Any) -> None:
        with self._lock:
            handlers = tuple(self._handlers)
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                LOGGER.exception("Handler %r for event '%s' failed", handler, self.name)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
