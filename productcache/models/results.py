from pydantic import BaseModel, Field

from productcache.models.entry import CacheEntry
from productcache.models.enums import CacheHealth, CacheOutcome
from productcache.models.events import EventRecord
from productcache.models.metrics import Metrics
from productcache.models.product import Product


class GetResult(BaseModel):
    value: Product | None = None
    found: bool
    outcome: CacheOutcome
    coalesced: bool = False
    cached: bool = False
    evicted: list[str] = []


class UpdateResult(BaseModel):
    value: Product | None = None
    found: bool
    cached: bool = False
    degraded: bool = False
    error: str | None = None


class MemoryStatus(BaseModel):
    used_bytes: int
    capacity_bytes: int
    usage: float
    health: CacheHealth
    count: int


class FillReport(BaseModel):
    inserted: int
    evictions: int
    iterations: int
    max_iterations: int
    stopped: bool
    final_bytes: int
    capacity_bytes: int


class CacheSnapshot(BaseModel):
    """Serializable image of the cache: entries in insertion order, metrics, events."""

    entries: list[tuple[str, CacheEntry[Product]]] = []
    metrics: Metrics = Field(default_factory=Metrics)
    events: list[EventRecord] = []
