"""Cancellable bulk fill that drives the cache past capacity to exercise eviction."""

import asyncio
import logging
import random
from uuid import uuid4

from productcache.models.product import Product
from productcache.models.results import FillReport
from productcache.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIZE = 600
DEFAULT_MAX_SIZE = 1200
# Bytes to push through the cache, as a multiple of its capacity
DEFAULT_FILL_FACTOR = 1.5


class BulkFiller:
    """Admits synthetic items until ``fill_factor * capacity`` bytes have gone in.

    The stop signal and the capacity threshold are checked before every
    insertion, and the loop never runs more than ``max_iterations`` times.

    Args:
        orchestrator: Target; items are admitted cache-only, not written to the store.
        min_size: Smallest synthetic item in bytes.
        max_size: Largest synthetic item in bytes.
        fill_factor: Total bytes to admit relative to capacity.
        max_iterations: Hard ceiling; defaults to four times the number of
            smallest items the cache could hold.
        seed: Seed for the size generator.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        min_size: int = DEFAULT_MIN_SIZE,
        max_size: int = DEFAULT_MAX_SIZE,
        fill_factor: float = DEFAULT_FILL_FACTOR,
        max_iterations: int | None = None,
        seed: int | None = None,
    ) -> None:
        if min_size <= 0 or max_size < min_size:
            raise ValueError(f"Invalid size range [{min_size}, {max_size}]")
        if fill_factor <= 0:
            raise ValueError(f"fill_factor must be positive, got {fill_factor}")
        if max_iterations is not None and max_iterations < 1:
            raise ValueError(f"max_iterations must be at least 1, got {max_iterations}")

        self.orchestrator = orchestrator
        self.min_size = min_size
        self.max_size = max_size
        self.fill_factor = fill_factor
        if max_iterations is None:
            max_iterations = max(1, orchestrator.engine.capacity_bytes // min_size) * 4
        self.max_iterations = max_iterations
        self._rng = random.Random(seed)

    def _synthetic_item(self, number: int, size: int) -> Product:
        return Product(
            id=f"fill-{uuid4().hex[:12]}",
            name=f"Synthetic item #{number}",
            price=0,
            category="Synthetic",
            size_bytes=size,
        )

    async def run(self, stop_event: asyncio.Event | None = None) -> FillReport:
        """Run the fill. Setting *stop_event* ends it within one iteration."""
        engine = self.orchestrator.engine
        target_bytes = int(engine.capacity_bytes * self.fill_factor)
        admitted_bytes = 0
        inserted = 0
        evictions = 0
        iterations = 0
        stopped = False

        while iterations < self.max_iterations and admitted_bytes < target_bytes:
            if stop_event is not None and stop_event.is_set():
                stopped = True
                break
            iterations += 1

            size = self._rng.randint(self.min_size, self.max_size)
            if size > engine.capacity_bytes:
                logger.warning("Bulk fill item of %d bytes exceeds capacity, stopping", size)
                break

            evicted = self.orchestrator.admit(self._synthetic_item(iterations, size), size)
            inserted += 1
            evictions += len(evicted)
            admitted_bytes += size

            # Let other tasks (and a stop request) run between insertions
            await asyncio.sleep(0)

        report = FillReport(
            inserted=inserted,
            evictions=evictions,
            iterations=iterations,
            max_iterations=self.max_iterations,
            stopped=stopped,
            final_bytes=engine.size(),
            capacity_bytes=engine.capacity_bytes,
        )
        logger.info(
            "Bulk fill finished: %d inserted, %d evictions, %d/%d bytes%s",
            inserted, evictions, report.final_bytes, report.capacity_bytes,
            " (stopped)" if stopped else "",
        )
        return report
