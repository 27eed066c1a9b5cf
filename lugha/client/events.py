"""Listener registry owned by a single socket manager instance."""

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("lugha.client.events")

Listener = Callable[[Any], None]


class EventEmitter:
    """
    Named listener sets with unsubscribe handles.

    A listener that raises is logged and skipped; the remaining listeners
    still run.
    """

    def __init__(self, events: tuple[str, ...]):
        self._listeners: dict[str, list[Listener]] = {name: [] for name in events}

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that removes it."""
        if event not in self._listeners:
            raise ValueError(f"Unknown event {event!r}. Expected one of: {', '.join(self._listeners)}")
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def emit(self, event: str, payload: Any) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %r failed", event)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))
