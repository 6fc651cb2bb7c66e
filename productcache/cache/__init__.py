from productcache.cache.engine import CacheEngine, CacheOptions
from productcache.cache.errors import (
    CacheError,
    InvalidPolicyConfiguration,
    ItemTooLarge,
    KeyBusy,
)
from productcache.cache.event_log import EventLog
from productcache.cache.eviction import (
    EvictionSelector,
    FIFOSelector,
    LFUSelector,
    LRUSelector,
    RandomSelector,
    build_selector,
)
from productcache.cache.invalidation import TTLInvalidator, is_expired
from productcache.cache.stats import StatsRecorder

__all__ = [
    "CacheEngine",
    "CacheError",
    "CacheOptions",
    "EventLog",
    "EvictionSelector",
    "FIFOSelector",
    "InvalidPolicyConfiguration",
    "ItemTooLarge",
    "KeyBusy",
    "LFUSelector",
    "LRUSelector",
    "RandomSelector",
    "StatsRecorder",
    "TTLInvalidator",
    "build_selector",
    "is_expired",
]
