from productcache.models.entry import CacheEntry
from productcache.models.enums import (
    BackingStoreKind,
    CacheHealth,
    CacheOutcome,
    EventKind,
    EvictionPolicy,
    InvalidationPolicy,
)
from productcache.models.events import EventRecord
from productcache.models.metrics import Metrics
from productcache.models.product import NewProduct, Product, ProductPatch, ProductSummary
from productcache.models.results import (
    CacheSnapshot,
    FillReport,
    GetResult,
    MemoryStatus,
    UpdateResult,
)

__all__ = [
    "BackingStoreKind",
    "CacheEntry",
    "CacheHealth",
    "CacheOutcome",
    "CacheSnapshot",
    "EventKind",
    "EventRecord",
    "EvictionPolicy",
    "FillReport",
    "GetResult",
    "InvalidationPolicy",
    "MemoryStatus",
    "Metrics",
    "NewProduct",
    "Product",
    "ProductPatch",
    "ProductSummary",
    "UpdateResult",
]
