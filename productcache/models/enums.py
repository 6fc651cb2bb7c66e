from enum import StrEnum


class EvictionPolicy(StrEnum):
    LRU = "LRU"
    LFU = "LFU"
    FIFO = "FIFO"
    RANDOM = "RANDOM"


class InvalidationPolicy(StrEnum):
    NONE = "NONE"
    TTL = "TTL"
    EVENT = "EVENT"


class EventKind(StrEnum):
    HIT = "hit"
    MISS = "miss"
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"
    EVICTION = "eviction"
    EXPIRED = "expired"


class CacheOutcome(StrEnum):
    HIT = "hit"
    MISS = "miss"


class CacheHealth(StrEnum):
    HEALTHY = "healthy"
    MODERATE = "moderate"
    CRITICAL = "critical"


class BackingStoreKind(StrEnum):
    MEMORY = "memory"
    HTTP = "http"
