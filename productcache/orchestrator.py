"""Cache-aside reads and write-through writes over a byte-budgeted cache."""

import asyncio
import logging
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from productcache.cache.engine import CacheEngine, CacheOptions
from productcache.cache.errors import ItemTooLarge, KeyBusy
from productcache.cache.event_log import EventLog
from productcache.cache.stats import StatsRecorder
from productcache.clients.backing_store import BackingStore
from productcache.clients.resilience import (
    BackingStoreError,
    CircuitOpenError,
    TransientBackingStoreError,
)
from productcache.models.entry import CacheEntry
from productcache.models.enums import CacheOutcome, EventKind
from productcache.models.events import EventRecord
from productcache.models.metrics import Metrics
from productcache.models.product import NewProduct, Product, ProductPatch, ProductSummary
from productcache.models.results import CacheSnapshot, GetResult, MemoryStatus, UpdateResult

logger = logging.getLogger(__name__)


def product_size(item: Product) -> int:
    """Bytes an item occupies in the cache: its declared size, else its JSON length."""
    if item.size_bytes is not None:
        return item.size_bytes
    return len(item.model_dump_json().encode("utf-8"))


def _product_label(key: str, value: object) -> str:
    return getattr(value, "name", None) or key


class Orchestrator:
    """Coordinates a ``CacheEngine`` with an authoritative ``BackingStore``.

    Reads are cache-aside: hits are served from the engine, misses load from
    the store and are admitted. Concurrent misses for the same id share one
    in-flight fetch. Writes go to the store first and are then mirrored into
    the cache.

    Args:
        store: The backing store.
        options: Engine configuration, ignored when *engine* is given.
        engine: A pre-built engine.
        event_log_size: How many events the log keeps.
        clock: Epoch-seconds clock shared with the engine.
    """

    def __init__(
        self,
        store: BackingStore,
        options: CacheOptions | None = None,
        *,
        engine: CacheEngine[Product] | None = None,
        event_log_size: int = 50,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.engine: CacheEngine[Product] = engine or CacheEngine(
            options, clock=clock, labeler=_product_label
        )
        self.stats = StatsRecorder()
        self.events = EventLog(event_log_size)
        self._clock = clock
        self._batch: list[EventRecord] | None = None
        self._loading: dict[str, asyncio.Task[GetResult]] = {}
        self._updating: set[str] = set()
        self._available: list[ProductSummary] = []
        self.engine.subscribe(self._on_engine_event)

    # ── Event plumbing ──────────────────────────────────────────────────

    def _on_engine_event(self, event: EventRecord) -> None:
        if self._batch is not None:
            self._batch.append(event)
            return
        self.stats.observe(event)
        self.events.record(event)

    @contextmanager
    def _collect(self) -> Iterator[list[EventRecord]]:
        """Buffer engine events so they can be logged after their primary event."""
        batch: list[EventRecord] = []
        self._batch = batch
        try:
            yield batch
        finally:
            self._batch = None

    def _event(self, kind: EventKind, key: str, label: str) -> EventRecord:
        return EventRecord(kind=kind, key=key, label=label, timestamp=self._clock())

    def _publish(self, primary: EventRecord, followers: list[EventRecord] | None = None) -> None:
        followers = followers or []
        for event in (primary, *followers):
            self.stats.observe(event)
        self.events.record_batch(primary, followers)

    # ── Reads ───────────────────────────────────────────────────────────

    def is_loading(self, item_id: str) -> bool:
        return item_id in self._loading

    async def get(self, item_id: str) -> GetResult:
        """Return *item_id* from the cache, loading it from the store on a miss."""
        if self.engine.has(item_id):
            value, found = self.engine.get(item_id)
            if found and value is not None:
                self._publish(self._event(EventKind.HIT, item_id, value.name))
                return GetResult(value=value, found=True, outcome=CacheOutcome.HIT, cached=True)

        pending = self._loading.get(item_id)
        if pending is not None:
            logger.debug("Coalescing get for %s onto in-flight fetch", item_id)
            result = await asyncio.shield(pending)
            return result.model_copy(update={"coalesced": True, "evicted": []})

        task = asyncio.ensure_future(self._load(item_id))
        self._loading[item_id] = task
        task.add_done_callback(lambda _t: self._loading.pop(item_id, None))
        # Shielded: a cancelled caller never cancels the fetch itself
        return await asyncio.shield(task)

    async def _load(self, item_id: str) -> GetResult:
        logger.info("Cache miss for %s, fetching from backing store", item_id)
        item = await self.store.get_by_id(item_id)
        if item is None:
            self.stats.record_miss()
            return GetResult(found=False, outcome=CacheOutcome.MISS)

        miss = self._event(EventKind.MISS, item_id, item.name)
        with self._collect() as followers:
            try:
                evicted = self.engine.put(item_id, item, product_size(item))
            except ItemTooLarge as exc:
                logger.warning("Not caching %s: %s", item_id, exc)
                evicted = None
        self._publish(miss, followers)
        return GetResult(
            value=item,
            found=True,
            outcome=CacheOutcome.MISS,
            cached=evicted is not None,
            evicted=evicted or [],
        )

    # ── Writes ──────────────────────────────────────────────────────────

    def admit(self, item: Product, size_bytes: int | None = None) -> list[str]:
        """Put *item* into the cache only, logging an ``add`` plus its evictions.

        Raises:
            ItemTooLarge: If the item cannot fit even in an empty cache.
        """
        size = product_size(item) if size_bytes is None else size_bytes
        with self._collect() as followers:
            evicted = self.engine.put(item.id, item, size)
        self._publish(self._event(EventKind.ADD, item.id, item.name), followers)
        return evicted

    async def put(self, new_item: NewProduct) -> Product:
        """Create *new_item* in the backing store, then cache the stored record.

        Backing-store errors propagate and nothing is cached. An item too
        large for the cache is still returned, just not cached.
        """
        created = await self.store.create(new_item)
        self._available.append(ProductSummary(id=created.id, name=created.name))
        try:
            self.admit(created)
        except ItemTooLarge as exc:
            logger.warning("Created %s but not caching it: %s", created.id, exc)
        return created

    async def update(self, item_id: str, patch: ProductPatch) -> UpdateResult:
        """Write *patch* through to the backing store, then into the cache.

        If the store cannot be reached while the item is cached, the cache is
        patched anyway and the result is flagged ``degraded``; if it is not
        cached the error propagates. A write the store rejects never reaches
        the cache.

        Raises:
            KeyBusy: If another update of *item_id* is in flight.
            PermanentBackingStoreError: If the store rejects the write.
            TransientBackingStoreError: If the store is unreachable and nothing is cached.
        """
        if item_id in self._updating:
            raise KeyBusy(f"Product {item_id} is being updated, try again")
        self._updating.add(item_id)
        try:
            return await self._update(item_id, patch)
        finally:
            self._updating.discard(item_id)

    async def _update(self, item_id: str, patch: ProductPatch) -> UpdateResult:
        changes = patch.changes()
        entry = self.engine.peek(item_id) if self.engine.has(item_id) else None
        try:
            current = entry.value if entry is not None else await self.store.get_by_id(item_id)
            if current is None:
                return UpdateResult(found=False)
            stored = await self.store.update(current.model_copy(update=changes))
        except (TransientBackingStoreError, CircuitOpenError) as exc:
            if entry is None or not self.engine.has(item_id):
                raise
            logger.warning("Backing-store update of %s failed, patching cache only: %s", item_id, exc)
            patched = self.engine.patch(item_id, changes)
            value = patched.value if patched else None
            if value is not None:
                self._publish(self._event(EventKind.UPDATE, item_id, value.name))
            return UpdateResult(value=value, found=True, cached=True, degraded=True, error=str(exc))

        if stored is None:
            return UpdateResult(found=False)

        # The entry may have been evicted or deleted while the store write was pending
        patched = self.engine.patch(item_id, stored.model_dump()) if self.engine.has(item_id) else None
        if patched is not None:
            self._publish(self._event(EventKind.UPDATE, item_id, stored.name))
        return UpdateResult(value=stored, found=True, cached=patched is not None)

    def delete(self, item_id: str) -> bool:
        """Drop *item_id* from the cache. Idempotent; the store is not touched."""
        return self.engine.delete(item_id)

    async def clear(self) -> None:
        """Empty the cache and event log, zero metrics and re-sync the listing.

        A failed listing reload is logged; the cache stays cleared and the
        previous listing is kept.
        """
        self.engine.clear()
        self.events.clear()
        self.stats.reset()
        try:
            await self.refresh_available()
        except BackingStoreError as exc:
            logger.warning("Cache cleared but the product listing could not be reloaded: %s", exc)

    def reset_metrics(self) -> None:
        self.stats.reset()

    async def refresh_available(self) -> list[ProductSummary]:
        """Reload the listing of items that can be fetched from the store."""
        self._available = await self.store.list_all()
        return list(self._available)

    # ── Observability ───────────────────────────────────────────────────

    def get_metrics(self) -> Metrics:
        return self.stats.snapshot()

    def get_events(self, limit: int | None = None) -> list[EventRecord]:
        return self.events.events(limit)

    def available_items(self) -> list[ProductSummary]:
        return list(self._available)

    def cached_items(self) -> list[Product]:
        return [entry.value for entry in self.engine.entries()]

    def memory(self) -> MemoryStatus:
        return MemoryStatus(
            used_bytes=self.engine.size(),
            capacity_bytes=self.engine.capacity_bytes,
            usage=self.engine.memory_usage(),
            health=self.engine.health(),
            count=self.engine.count(),
        )

    # ── Snapshots ───────────────────────────────────────────────────────

    def snapshot(self) -> CacheSnapshot:
        return CacheSnapshot.model_validate(
            {
                "entries": [[e.key, e.model_dump()] for e in self.engine.entries()],
                "metrics": self.stats.snapshot().model_dump(),
                "events": [e.model_dump() for e in self.events.events()],
            }
        )

    def restore(self, snapshot: CacheSnapshot) -> list[str]:
        """Load *snapshot*; byte usage is recomputed from the restored entries.

        Returns:
            Keys skipped because they no longer fit.
        """
        entries: list[CacheEntry[Product]] = []
        for key, entry in snapshot.entries:
            entries.append(entry if entry.key == key else entry.model_copy(update={"key": key}))
        skipped = self.engine.load(entries)
        self.stats.restore(snapshot.metrics)
        self.events.restore(snapshot.events)
        logger.info("Restored %d cached items from snapshot", self.engine.count())
        return skipped
