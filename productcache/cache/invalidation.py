"""Entry invalidation: TTL expiry checks and EVENT predicates."""

from collections.abc import Callable
from typing import Any

from productcache.cache.errors import InvalidPolicyConfiguration
from productcache.models.entry import CacheEntry
from productcache.models.enums import InvalidationPolicy


def is_expired(entry: CacheEntry, now: float) -> bool:
    """True when *entry* carries an expiry that lies strictly before *now*."""
    return entry.ttl_expiry is not None and entry.ttl_expiry < now


class TTLInvalidator:
    """Decides whether entries are stale under the configured policy.

    Args:
        policy: ``NONE``, ``TTL`` or ``EVENT`` (case-insensitive).
        std_ttl: Default lifetime in seconds for ``TTL``.
        predicate: For ``EVENT``, called with the engine; a true result
            invalidates the whole cache.

    Raises:
        InvalidPolicyConfiguration: Unknown policy, non-positive ``std_ttl``
            under ``TTL``, or ``EVENT`` without a callable predicate.
    """

    def __init__(
        self,
        policy: str | InvalidationPolicy = InvalidationPolicy.NONE,
        std_ttl: float = 500.0,
        predicate: Callable[[Any], bool] | None = None,
    ) -> None:
        try:
            self.policy = InvalidationPolicy(str(policy).upper())
        except ValueError:
            raise InvalidPolicyConfiguration(
                f"Unknown invalidation policy '{policy}'. "
                f"Use one of: {', '.join(p.value for p in InvalidationPolicy)}"
            ) from None

        if self.policy == InvalidationPolicy.TTL and std_ttl <= 0:
            raise InvalidPolicyConfiguration(f"TTL invalidation needs std_ttl > 0, got {std_ttl}")
        if self.policy == InvalidationPolicy.EVENT and not callable(predicate):
            raise InvalidPolicyConfiguration("EVENT invalidation requires a predicate")

        self.std_ttl = std_ttl
        self.predicate = predicate

    def expiry_for(self, now: float, ttl: float | None = None) -> float | None:
        """Absolute expiry for an entry admitted at *now*, or None if it never expires."""
        if self.policy != InvalidationPolicy.TTL:
            return None
        return now + (ttl if ttl is not None else self.std_ttl)

    def check(self, entry: CacheEntry, now: float) -> bool:
        if self.policy != InvalidationPolicy.TTL:
            return False
        return is_expired(entry, now)

    def should_invalidate(self, engine: object) -> bool:
        if self.policy != InvalidationPolicy.EVENT or self.predicate is None:
            return False
        return bool(self.predicate(engine))
