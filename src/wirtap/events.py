"""Typed session events and their listener registry.

PUBLIC API:
  - PageChanged: Page listing for an application changed
  - FramesDetached: Frames of the selected page were detached
  - Disconnected: The last application went away or the session closed
  - EventBus: Per-event-type listener lists with typed dispatch
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from wirtap.types import PageRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageChanged:
    """Emitted when an application's page array changes outside navigation.

    Attributes:
        app_id: Application id with the "PID:" prefix stripped.
        pages: New page array.
    """

    app_id: str
    pages: list[PageRecord] = field(default_factory=list)


@dataclass(frozen=True)
class FramesDetached:
    """Emitted when frames of the selected page are detached."""

    pass


@dataclass(frozen=True)
class Disconnected:
    """Emitted when the directory empties or the session disconnects."""

    pass


EVENT_TYPES = (PageChanged, FramesDetached, Disconnected)

Listener = Callable[[object], None]


class EventBus:
    """Explicit listener lists keyed by event type.

    Listeners run on the emitting thread. PageChanged is delivered under the
    directory lock. A failing listener is logged and does not stop the others.
    """

    def __init__(self):
        self._listeners: dict[type, list[Listener]] = {event_type: [] for event_type in EVENT_TYPES}
        self._lock = threading.Lock()

    def _check(self, event_type: type) -> None:
        if event_type not in self._listeners:
            raise ValueError(f"Unknown event type: {event_type!r}")

    def on(self, event_type: type, listener: Listener) -> None:
        self._check(event_type)
        with self._lock:
            self._listeners[event_type].append(listener)

    def off(self, event_type: type, listener: Listener) -> bool:
        """Unregister one registration of listener.

        Returns:
            True if a registration was removed.
        """
        self._check(event_type)
        with self._lock:
            listeners = self._listeners[event_type]
            if listener in listeners:
                listeners.remove(listener)
                return True
        return False

    def listener_count(self, event_type: type) -> int:
        self._check(event_type)
        with self._lock:
            return len(self._listeners[event_type])

    def remove_all(self) -> None:
        with self._lock:
            for listeners in self._listeners.values():
                listeners.clear()

    def emit(self, event: object) -> None:
        event_type = type(event)
        self._check(event_type)
        with self._lock:
            listeners = list(self._listeners[event_type])

        for listener in listeners:
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Listener for {event_type.__name__} failed: {e}")


__all__ = ["PageChanged", "FramesDetached", "Disconnected", "EventBus"]
