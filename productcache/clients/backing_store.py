"""Backing-store contract and the in-memory product catalog used for demos and tests."""

import asyncio
import logging
import random
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from productcache.clients.resilience import PermanentBackingStoreError
from productcache.models.product import NewProduct, Product, ProductSummary

logger = logging.getLogger(__name__)


@runtime_checkable
class BackingStore(Protocol):
    """Authoritative product source the cache fronts."""

    async def list_all(self) -> list[ProductSummary]: ...

    async def get_by_id(self, item_id: str) -> Product | None: ...

    async def create(self, item: NewProduct) -> Product: ...

    async def update(self, item: Product) -> Product | None: ...


SEED_PRODUCTS: tuple[Product, ...] = (
    Product(id="p1", name='MacBook Pro 16"', price=2499, category="Electronics", stock=15, size_bytes=2048),
    Product(id="p2", name="iPhone 15 Pro", price=1199, category="Electronics", stock=50, size_bytes=1536),
    Product(id="p3", name="Sony WH-1000XM5", price=399, category="Audio", stock=30, size_bytes=1024),
    Product(id="p4", name="iPad Air", price=799, category="Electronics", stock=25, size_bytes=1792),
    Product(id="p5", name="AirPods Pro", price=249, category="Audio", stock=100, size_bytes=768),
    Product(id="p6", name="Samsung Galaxy S24", price=999, category="Electronics", stock=40, size_bytes=1536),
    Product(id="p7", name="Dell XPS 15", price=1799, category="Electronics", stock=20, size_bytes=2048),
    Product(id="p8", name="Bose QC45", price=329, category="Audio", stock=35, size_bytes=1024),
    Product(id="p9", name="Apple Watch Ultra", price=799, category="Wearables", stock=18, size_bytes=1280),
    Product(id="p10", name="Nintendo Switch OLED", price=349, category="Gaming", stock=45, size_bytes=1536),
)

# Size assigned to created products that do not declare one
NEW_PRODUCT_MIN_SIZE = 512
NEW_PRODUCT_MAX_SIZE = 1536


class InMemoryBackingStore:
    """Dict-backed product store with optional simulated latency.

    Args:
        products: Initial catalog; defaults to ``SEED_PRODUCTS``.
        delay_seconds: Sleep applied to every call to mimic a slow database.
        seed: Seed for the generator that sizes new products.
    """

    def __init__(
        self,
        products: Iterable[Product] | None = None,
        *,
        delay_seconds: float = 0.0,
        seed: int | None = None,
    ) -> None:
        initial = SEED_PRODUCTS if products is None else products
        self._products: dict[str, Product] = {p.id: p.model_copy() for p in initial}
        self.delay_seconds = delay_seconds
        self._rng = random.Random(seed)
        self._next_number = len(self._products) + 1
        self.fetch_count = 0
        self.write_count = 0

    async def _simulate_latency(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

    def _new_id(self) -> str:
        while f"p{self._next_number}" in self._products:
            self._next_number += 1
        item_id = f"p{self._next_number}"
        self._next_number += 1
        return item_id

    def _ensure_unique_name(self, name: str, exclude_id: str | None = None) -> None:
        # Product names are unique in the catalog
        if any(p.name == name and p.id != exclude_id for p in self._products.values()):
            raise PermanentBackingStoreError(f"Product name '{name}' is already taken")

    async def list_all(self) -> list[ProductSummary]:
        await self._simulate_latency()
        return [ProductSummary(id=p.id, name=p.name) for p in self._products.values()]

    async def get_by_id(self, item_id: str) -> Product | None:
        self.fetch_count += 1
        await self._simulate_latency()
        product = self._products.get(item_id)
        return product.model_copy() if product else None

    async def create(self, item: NewProduct) -> Product:
        self.write_count += 1
        await self._simulate_latency()
        self._ensure_unique_name(item.name)
        size = item.size_bytes
        if size is None:
            size = self._rng.randint(NEW_PRODUCT_MIN_SIZE, NEW_PRODUCT_MAX_SIZE)
        product = Product(id=self._new_id(), **item.model_dump(exclude={"size_bytes"}), size_bytes=size)
        self._products[product.id] = product
        logger.info("Created product %s (%s)", product.id, product.name)
        return product.model_copy()

    async def update(self, item: Product) -> Product | None:
        self.write_count += 1
        await self._simulate_latency()
        if item.id not in self._products:
            return None
        self._ensure_unique_name(item.name, exclude_id=item.id)
        self._products[item.id] = item.model_copy()
        return item.model_copy()
