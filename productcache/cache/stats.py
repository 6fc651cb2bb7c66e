"""Hit/miss/eviction counters derived from cache events."""

from productcache.models.enums import EventKind
from productcache.models.events import EventRecord
from productcache.models.metrics import Metrics


class StatsRecorder:
    """Accumulates request metrics.

    Every counted request is either a hit or a miss, so
    ``hits + misses == total_requests`` holds between calls.
    """

    def __init__(self) -> None:
        self._metrics = Metrics()

    def observe(self, event: EventRecord) -> None:
        """Update counters from an event; kinds other than hit/miss/eviction are ignored."""
        if event.kind == EventKind.HIT:
            self.record_hit()
        elif event.kind == EventKind.MISS:
            self.record_miss()
        elif event.kind == EventKind.EVICTION:
            self.record_evictions(1)

    def record_hit(self) -> None:
        self._metrics.total_requests += 1
        self._metrics.hits += 1

    def record_miss(self) -> None:
        self._metrics.total_requests += 1
        self._metrics.misses += 1

    def record_evictions(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"Eviction count must be >= 0, got {count}")
        self._metrics.evictions += count

    def snapshot(self) -> Metrics:
        """Return an independent copy of the current metrics."""
        return self._metrics.model_copy()

    def reset(self) -> None:
        self._metrics = Metrics()

    def restore(self, metrics: Metrics) -> None:
        self._metrics = metrics.model_copy()
