from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class CacheEntry(BaseModel, Generic[T]):
    """A single cached value plus the bookkeeping eviction policies read.

    Timestamps are epoch seconds. ``sequence`` is the engine's insertion
    counter and breaks ties between entries with equal timestamps.
    """

    key: str
    value: T
    size_bytes: int = Field(ge=0)
    inserted_at: float
    last_accessed_at: float
    access_count: int = Field(default=0, ge=0)
    ttl_expiry: float | None = None
    sequence: int = 0
