"""Event log — queryable, thread-safe event store.

Stores a bounded ring buffer of ``StackEvent`` objects for inspection.
Supports querying by event type, time range, and path.

Thread Safety:
    All methods are protected by a ``threading.Lock``.  The watcher thread,
    image workers and request handlers may all append concurrently.

"""

import threading
from collections import Counter, deque
from collections.abc import Iterable
from typing import Any

from tabby.observability.events import StackEvent


def _event_path(event: object) -> str:
    """Best-effort path of an event (``path`` field, then ``source``)."""
    return getattr(event, "path", None) or getattr(event, "source", None) or ""


class EventLog:
    """Bounded event store with query support.

    The oldest events fall off the end once ``max_events`` is reached.

    Args:
        max_events: Maximum number of events to retain.

    """

    __slots__ = ("_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._events: deque[StackEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def append(self, event: StackEvent) -> None:
        """Record an event in the log."""
        with self._lock:
            self._events.append(event)

    def extend(self, events: Iterable[StackEvent]) -> None:
        """Record several events under one lock acquisition."""
        with self._lock:
            self._events.extend(events)

    def snapshot(self) -> list[StackEvent]:
        """Copy of all retained events, oldest first."""
        with self._lock:
            return list(self._events)

    def query(
        self,
        *,
        event_type: type | None = None,
        since_ns: int = 0,
        path: str | None = None,
        limit: int = 100,
    ) -> list[StackEvent]:
        """Query events with optional filters.

        Args:
            event_type: Only return events of this type.
            since_ns: Only return events at or after this timestamp.
            path: Only return events whose path contains this substring.
            limit: Maximum number of events to return.

        Returns:
            List of matching events, most recent first.

        """
        matches: list[StackEvent] = []
        for event in reversed(self.snapshot()):
            if len(matches) >= limit:
                break
            if event_type is not None and not isinstance(event, event_type):
                continue
            if since_ns and getattr(event, "timestamp_ns", 0) < since_ns:
                continue
            if path is not None and path not in _event_path(event):
                continue
            matches.append(event)
        return matches

    def of_type[T](self, event_type: type[T]) -> list[T]:
        """All retained events of *event_type*, oldest first."""
        return [e for e in self.snapshot() if isinstance(e, event_type)]

    def recent(self, n: int = 20) -> list[StackEvent]:
        """Return the N most recent events."""
        return self.snapshot()[-n:]

    def clear(self) -> int:
        """Clear all events and return the count that was cleared."""
        with self._lock:
            count = len(self._events)
            self._events.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def stats(self) -> dict[str, Any]:
        """Return summary statistics about stored events."""
        by_type = Counter(type(event).__name__ for event in self.snapshot())
        return {
            "total": sum(by_type.values()),
            "max_events": self._max_events,
            "by_type": dict(by_type),
        }
