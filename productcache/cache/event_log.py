"""Bounded, newest-first log of cache activity."""

from collections import deque
from collections.abc import Iterable

from productcache.models.events import EventRecord

DEFAULT_MAX_EVENTS = 50


class EventLog:
    """Keeps the *max_events* most recent records, newest first.

    A batch (a primary event plus the evictions it caused) is written so the
    primary sits directly above its evictions.
    """

    def __init__(self, max_events: int = DEFAULT_MAX_EVENTS) -> None:
        if max_events <= 0:
            raise ValueError(f"max_events must be positive, got {max_events}")
        self.max_events = max_events
        self._events: deque[EventRecord] = deque(maxlen=max_events)

    def record(self, event: EventRecord) -> None:
        self._events.appendleft(event)

    def record_batch(self, primary: EventRecord, followers: Iterable[EventRecord] = ()) -> None:
        for event in reversed([primary, *followers]):
            self._events.appendleft(event)

    def events(self, limit: int | None = None) -> list[EventRecord]:
        """Return records newest first, optionally only the first *limit*."""
        items = list(self._events)
        if limit is not None:
            return items[:limit]
        return items

    def clear(self) -> None:
        self._events.clear()

    def restore(self, events: Iterable[EventRecord]) -> None:
        """Replace the log with *events*, given newest first."""
        self._events = deque(list(events)[: self.max_events], maxlen=self.max_events)

    def __len__(self) -> int:
        return len(self._events)
