"""
Event Emitter
-------------
Minimal observer registry used to surface engine and socket events to
application code.
"""

from typing import Any, Callable, Dict, List

Listener = Callable[[Any], None]


class EventEmitter:
    """Register, remove and fire listeners keyed by event name."""

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def add_listener(self, event: str, listener: Listener) -> None:
        """Add a listener for an event; adding the same listener twice is a no-op."""
        listeners = self._listeners.setdefault(event, [])
        if listener not in listeners:
            listeners.append(listener)

    def on(self, event: str, listener: Listener) -> None:
        self.add_listener(event, listener)

    def once(self, event: str, listener: Listener) -> None:
        """Add a listener that is removed before its first call."""
        def wrapper(payload: Any) -> None:
            self.remove_listener(event, wrapper)
            listener(payload)

        self.add_listener(event, wrapper)

    def has_listener(self, event: str, listener: Listener) -> bool:
        return listener in self._listeners.get(event, ())

    def remove_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def clear_listeners(self) -> None:
        """Remove every listener of every event."""
        self._listeners = {}

    def emit(self, event: str, payload: Any = None) -> None:
        """Call each listener of ``event`` with ``payload``."""
        # Copy, listeners may remove themselves while iterating
        for listener in list(self._listeners.get(event, ())):
            listener(payload)
