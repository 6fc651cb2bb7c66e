"""Eviction strategies: each names exactly one victim from the current entries."""

import random
from abc import ABC, abstractmethod
from collections.abc import Mapping

from productcache.cache.errors import InvalidPolicyConfiguration
from productcache.models.entry import CacheEntry
from productcache.models.enums import EvictionPolicy


class EvictionSelector(ABC):
    """Strategy interface. ``select`` is a linear scan over *entries*."""

    policy: EvictionPolicy

    def select(self, entries: Mapping[str, CacheEntry]) -> str:
        """Return the key to evict.

        Raises:
            ValueError: If *entries* is empty. The engine never asks for a
                victim from an empty cache, so this signals a bug.
        """
        if not entries:
            raise ValueError("Cannot select an eviction victim from an empty cache")
        return self._select(entries)

    @abstractmethod
    def _select(self, entries: Mapping[str, CacheEntry]) -> str: ...


class LRUSelector(EvictionSelector):
    policy = EvictionPolicy.LRU

    def _select(self, entries: Mapping[str, CacheEntry]) -> str:
        victim = min(entries.values(), key=lambda e: (e.last_accessed_at, e.sequence))
        return victim.key


class LFUSelector(EvictionSelector):
    policy = EvictionPolicy.LFU

    def _select(self, entries: Mapping[str, CacheEntry]) -> str:
        victim = min(entries.values(), key=lambda e: (e.access_count, e.sequence))
        return victim.key


class FIFOSelector(EvictionSelector):
    policy = EvictionPolicy.FIFO

    def _select(self, entries: Mapping[str, CacheEntry]) -> str:
        victim = min(entries.values(), key=lambda e: (e.inserted_at, e.sequence))
        return victim.key


class RandomSelector(EvictionSelector):
    """Uniform choice over current keys.

    Args:
        seed: Seed for a private ``random.Random``; pass one for repeatable tests.
        rng: A ready-made generator, takes precedence over *seed*.
    """

    policy = EvictionPolicy.RANDOM

    def __init__(self, seed: int | None = None, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random(seed)

    def _select(self, entries: Mapping[str, CacheEntry]) -> str:
        return self._rng.choice(list(entries))


_SELECTORS: dict[EvictionPolicy, type[EvictionSelector]] = {
    EvictionPolicy.LRU: LRUSelector,
    EvictionPolicy.LFU: LFUSelector,
    EvictionPolicy.FIFO: FIFOSelector,
}


def build_selector(policy: str | EvictionPolicy, seed: int | None = None) -> EvictionSelector:
    """Map a policy name (case-insensitive) to a selector instance.

    Raises:
        InvalidPolicyConfiguration: If *policy* is not a known policy name.
    """
    try:
        resolved = EvictionPolicy(str(policy).upper())
    except ValueError:
        raise InvalidPolicyConfiguration(
            f"Unknown eviction policy '{policy}'. "
            f"Use one of: {', '.join(p.value for p in EvictionPolicy)}"
        ) from None

    if resolved == EvictionPolicy.RANDOM:
        return RandomSelector(seed=seed)
    return _SELECTORS[resolved]()
