"""
Observer Pattern Implementation for Connection Events

The bus transport and the connection manager surface lifecycle changes
(connected, disconnected, reconnect failed, reload requested) through an
``EventSubject``. Listeners are plain callables invoked synchronously in
registration order; a listener that needs to do asynchronous work schedules
its own task.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional, Tuple


class ConnectionEventType(Enum):
    """Types of connection lifecycle events."""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECT_FAILED = "reconnect_failed"
    RELOAD_REQUESTED = "reload_requested"


@dataclass
class ConnectionEvent:
    """Event data for connection lifecycle changes."""
    event_type: ConnectionEventType
    reason: Optional[str] = None
    reconnect: bool = False
    error: Optional[BaseException] = None
    timestamp: float = field(default_factory=time.time)


ConnectionListener = Callable[[ConnectionEvent], None]


class EventSubject:
    """Subject that notifies listeners of connection events."""

    def __init__(self, name: str = "EventSubject"):
        self._listeners: List[Tuple[ConnectionListener, Optional[frozenset]]] = []
        self._logger = logging.getLogger(name)

    def subscribe(self, listener: ConnectionListener,
                  event_types: Optional[Iterable[ConnectionEventType]] = None) -> Callable[[], None]:
        """Register *listener*, optionally filtered to *event_types*.

        Returns a function that removes the listener again; calling it twice
        is harmless.
        """
        entry = (listener, frozenset(event_types) if event_types is not None else None)
        self._listeners.append(entry)

        def remove() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return remove

    def clear(self) -> None:
        self._listeners.clear()

    def notify(self, event: ConnectionEvent) -> None:
        """Notify every interested listener, logging (not raising) listener errors."""
        for listener, interested in list(self._listeners):
            if interested is not None and event.event_type not in interested:
                continue
            try:
                listener(event)
            except Exception as e:
                self._logger.error(f"Error in listener for {event.event_type.value}: {e}", exc_info=True)
