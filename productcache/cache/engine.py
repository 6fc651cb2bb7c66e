"""Byte-budgeted in-memory cache with pluggable eviction and invalidation."""

import copy
import itertools
import logging
import time
from collections.abc import Callable, Iterable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict

from productcache.cache.errors import InvalidPolicyConfiguration, ItemTooLarge
from productcache.cache.eviction import EvictionSelector, build_selector
from productcache.cache.invalidation import TTLInvalidator
from productcache.models.entry import CacheEntry
from productcache.models.enums import CacheHealth, EventKind, EvictionPolicy, InvalidationPolicy
from productcache.models.events import EventRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")

EventListener = Callable[[EventRecord], None]


class CacheOptions(BaseModel):
    """Construction-time cache configuration.

    Policy names stay plain strings here so that unknown names surface as
    ``InvalidPolicyConfiguration`` from the engine rather than a validation
    error from the options model.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    capacity_bytes: int = 1024 * 1024
    eviction_policy: str = EvictionPolicy.LRU.value
    invalidation_policy: str = InvalidationPolicy.NONE.value
    std_ttl: float = 500.0
    delete_on_expire: bool = True
    max_keys: int = -1
    copy_on_read: bool = False
    random_seed: int | None = None
    predicate: Callable[[Any], bool] | None = None


def _default_label(key: str, value: object) -> str:
    return getattr(value, "name", None) or key


class CacheEngine(Generic[T]):
    """Owns entries and byte accounting; wires eviction and invalidation together.

    All mutating methods are synchronous, so an evict-then-admit sequence in
    ``put`` is never interleaved with another coroutine reading the cache.

    Args:
        options: Capacity and policy configuration.
        clock: Returns the current epoch time in seconds. Injected in tests.
        labeler: Builds the display label for events from ``(key, value)``.
        selector: Overrides the selector built from ``options.eviction_policy``.

    Raises:
        InvalidPolicyConfiguration: On non-positive capacity or unusable policies.
    """

    def __init__(
        self,
        options: CacheOptions | None = None,
        *,
        clock: Callable[[], float] = time.time,
        labeler: Callable[[str, Any], str] = _default_label,
        selector: EvictionSelector | None = None,
    ) -> None:
        options = options or CacheOptions()
        if options.capacity_bytes <= 0:
            raise InvalidPolicyConfiguration(
                f"capacity_bytes must be positive, got {options.capacity_bytes}"
            )

        self.options = options
        self.capacity_bytes = options.capacity_bytes
        self.max_keys = options.max_keys
        self.delete_on_expire = options.delete_on_expire
        self.copy_on_read = options.copy_on_read
        self.selector = selector or build_selector(options.eviction_policy, seed=options.random_seed)
        self.invalidator = TTLInvalidator(
            options.invalidation_policy,
            std_ttl=options.std_ttl,
            predicate=options.predicate,
        )

        self._clock = clock
        self._labeler = labeler
        self._entries: dict[str, CacheEntry[T]] = {}
        self._current_bytes = 0
        self._sequence = itertools.count()
        self._listeners: list[EventListener] = []
        self._invalidating = False

    # ── Events ───────────────────────────────────────────────────────────

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register *listener* for raw engine events. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, kind: EventKind, entry: CacheEntry[T]) -> None:
        record = EventRecord(
            kind=kind,
            key=entry.key,
            label=self._labeler(entry.key, entry.value),
            timestamp=self._clock(),
        )
        for listener in list(self._listeners):
            listener(record)

    # ── Reads ────────────────────────────────────────────────────────────

    def get(self, key: str) -> tuple[T | None, bool]:
        """Return ``(value, True)`` for a live entry, bumping its recency.

        Absent or expired keys return ``(None, False)``.
        """
        entry = self._live_entry(key)
        if entry is None:
            return None, False

        entry.last_accessed_at = self._clock()
        entry.access_count += 1
        if self.copy_on_read:
            return copy.deepcopy(entry.value), True
        return entry.value, True

    def has(self, key: str) -> bool:
        """True if *key* is present and not expired. Does not bump recency."""
        return self._live_entry(key) is not None

    def peek(self, key: str) -> CacheEntry[T] | None:
        """Return the raw entry without touching recency or expiry."""
        return self._entries.get(key)

    def _live_entry(self, key: str) -> CacheEntry[T] | None:
        self.invalidate_if_stale()
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self.invalidator.check(entry, self._clock()):
            self._expire(entry)
            return None
        return entry

    def _expire(self, entry: CacheEntry[T]) -> None:
        if self.delete_on_expire and self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
            self._current_bytes -= entry.size_bytes
        self._emit(EventKind.EXPIRED, entry)

    # ── Writes ───────────────────────────────────────────────────────────

    def put(self, key: str, value: T, size_bytes: int, ttl: float | None = None) -> list[str]:
        """Admit or overwrite *key*, evicting victims until it fits.

        Returns:
            Keys evicted to make room, in eviction order.

        Raises:
            ItemTooLarge: If *size_bytes* exceeds the whole capacity.
            ValueError: If *size_bytes* is negative.
        """
        if size_bytes < 0:
            raise ValueError(f"size_bytes must be >= 0, got {size_bytes}")
        if size_bytes > self.capacity_bytes:
            raise ItemTooLarge(key, size_bytes, self.capacity_bytes)

        existing = self._entries.get(key)
        if existing is not None:
            self._current_bytes -= existing.size_bytes

        evicted: list[str] = []
        while self._needs_room(size_bytes, existing is None):
            candidates = self._entries
            if existing is not None:
                candidates = {k: e for k, e in self._entries.items() if k != key}
            if not candidates:
                break
            victim = self._entries.pop(self.selector.select(candidates))
            self._current_bytes -= victim.size_bytes
            evicted.append(victim.key)
            logger.debug(
                "Evicted %s (%d bytes, policy %s)",
                victim.key, victim.size_bytes, self.selector.policy,
            )
            self._emit(EventKind.EVICTION, victim)

        now = self._clock()
        expiry = self.invalidator.expiry_for(now, ttl)
        if existing is not None:
            existing.value = value
            existing.size_bytes = size_bytes
            existing.last_accessed_at = now
            existing.ttl_expiry = expiry
        else:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                size_bytes=size_bytes,
                inserted_at=now,
                last_accessed_at=now,
                access_count=0,
                ttl_expiry=expiry,
                sequence=next(self._sequence),
            )
        self._current_bytes += size_bytes
        return evicted

    def _needs_room(self, size_bytes: int, is_new: bool) -> bool:
        if self._current_bytes + size_bytes > self.capacity_bytes:
            return True
        return is_new and self.max_keys > 0 and len(self._entries) >= self.max_keys

    def patch(self, key: str, fields: dict) -> CacheEntry[T] | None:
        """Merge *fields* into the stored value in place and refresh recency.

        Pydantic models are merged with ``model_copy``, dicts with a shallow
        update; any other value is replaced by ``fields["value"]`` if given.
        Size is left unchanged. Returns None if *key* is absent.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        value: Any = entry.value
        if isinstance(value, BaseModel):
            entry.value = value.model_copy(update=fields)
        elif isinstance(value, dict):
            entry.value = {**value, **fields}  # type: ignore[assignment]
        elif "value" in fields:
            entry.value = fields["value"]
        entry.last_accessed_at = self._clock()
        return entry

    def delete(self, key: str) -> bool:
        """Remove *key*. Returns False if it was already absent."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        self._current_bytes -= entry.size_bytes
        self._emit(EventKind.DELETE, entry)
        return True

    def clear(self) -> None:
        """Drop every entry. Metrics held elsewhere are untouched."""
        self._entries.clear()
        self._current_bytes = 0

    def purge_expired(self) -> list[str]:
        """Sweep every expired entry. Returns the keys found expired."""
        now = self._clock()
        stale = [e for e in self._entries.values() if self.invalidator.check(e, now)]
        for entry in stale:
            self._expire(entry)
        return [e.key for e in stale]

    def invalidate_if_stale(self) -> list[str]:
        """Under EVENT invalidation, clear everything when the predicate fires."""
        if self._invalidating or not self._entries:
            return []
        self._invalidating = True
        try:
            if not self.invalidator.should_invalidate(self):
                return []
            dropped = list(self._entries.values())
            self.clear()
            for entry in dropped:
                self._emit(EventKind.EXPIRED, entry)
            logger.info("Event invalidation dropped %d entries", len(dropped))
            return [e.key for e in dropped]
        finally:
            self._invalidating = False

    def load(self, entries: Iterable[CacheEntry[T]]) -> list[str]:
        """Replace the contents with *entries*, rebuilding byte accounting.

        Entries are inserted in the given order; any that would push the
        cache over capacity or ``max_keys`` are skipped. Returns skipped keys.
        """
        self.clear()
        skipped: list[str] = []
        for entry in entries:
            over_keys = self.max_keys > 0 and len(self._entries) >= self.max_keys
            if over_keys or self._current_bytes + entry.size_bytes > self.capacity_bytes:
                skipped.append(entry.key)
                continue
            entry.sequence = next(self._sequence)
            self._entries[entry.key] = entry
            self._current_bytes += entry.size_bytes
        if skipped:
            logger.warning("Skipped %d entries that no longer fit: %s", len(skipped), skipped)
        return skipped

    # ── Accessors ────────────────────────────────────────────────────────

    def size(self) -> int:
        """Bytes currently held."""
        return self._current_bytes

    def count(self) -> int:
        return len(self._entries)

    def entries(self) -> list[CacheEntry[T]]:
        """Entries in insertion order."""
        return list(self._entries.values())

    def keys(self) -> list[str]:
        return list(self._entries)

    def memory_usage(self) -> float:
        return self._current_bytes / self.capacity_bytes

    def health(self) -> CacheHealth:
        usage = self.memory_usage()
        if usage < 0.5:
            return CacheHealth.HEALTHY
        if usage < 0.75:
            return CacheHealth.MODERATE
        return CacheHealth.CRITICAL

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
