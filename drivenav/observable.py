"""Single-value observable used to publish UI-facing state."""

import threading
from typing import Any, Callable


class Signal:
    """Holds the most recent value and notifies subscribers on every set.

    Setting a value supersedes the previous one; late subscribers receive
    the current value immediately.
    """

    def __init__(self, value: Any = None):
        self._value = value
        self._subscribers: list[Callable[[Any], None]] = []
        self._lock = threading.Lock()

    @property
    def value(self) -> Any:
        return self._value

    def set(self, value: Any):
        with self._lock:
            self._value = value
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(value)

    def subscribe(self, callback: Callable[[Any], None],
                  replay: bool = True) -> Callable[[], None]:
        """Register a callback. Returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)
            current = self._value
        if replay:
            callback(current)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def clear_subscribers(self):
        with self._lock:
            self._subscribers.clear()

    def __repr__(self) -> str:
        return f"Signal({self._value!r})"
