"""Cache-side exception hierarchy."""


class CacheError(Exception):
    """Base class for all cache engine errors."""


class InvalidPolicyConfiguration(CacheError):
    """The cache was configured with an unusable policy; raised at construction."""


class ItemTooLarge(CacheError):
    """A single item does not fit even in an empty cache."""

    def __init__(self, key: str, size_bytes: int, capacity_bytes: int) -> None:
        super().__init__(
            f"Item '{key}' needs {size_bytes} bytes but the cache holds only "
            f"{capacity_bytes} bytes"
        )
        self.key = key
        self.size_bytes = size_bytes
        self.capacity_bytes = capacity_bytes


class KeyBusy(CacheError):
    """Another write for the same key is still in flight."""
