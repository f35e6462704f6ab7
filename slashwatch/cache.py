"""
Slashwatch Immutability-Aware Cache

Two-tier key/value store. Values a caller-supplied predicate declares
terminal live in a permanent tier and never expire; everything else lives in
a bounded TTL tier. When a key that was cached as volatile is written again
with a terminal value it is promoted.

Rounds near the chain head flip from "voting" to "executed" exactly once and
never change afterwards, so after promotion they cost zero remote calls.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Dict, Generic, Optional, Tuple, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters and tier sizes."""
    immutable_size: int
    mutable_size: int
    hits: int
    misses: int
    promotions: int

    @property
    def total_size(self) -> int:
        return self.immutable_size + self.mutable_size

    @property
    def hit_rate(self) -> float:
        """Hit rate in percent."""
        total = self.hits + self.misses
        return (self.hits / total) * 100 if total > 0 else 0.0

    def to_dict(self) -> dict:
        return {
            'immutable_size': self.immutable_size,
            'mutable_size': self.mutable_size,
            'total_size': self.total_size,
            'hits': self.hits,
            'misses': self.misses,
            'promotions': self.promotions,
            'hit_rate': round(self.hit_rate, 2),
        }


class ImmutableAwareCache(Generic[K, V]):
    """
    Tiered cache keyed by a serialized form of ``K``.

    Args:
        key_serializer: Maps a key to its string form
        is_immutable: Predicate deciding whether a value is terminal
        max_mutable_size: Capacity of the TTL tier
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        key_serializer: Callable[[K], str],
        is_immutable: Callable[[V], bool],
        max_mutable_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_mutable_size < 1:
            raise ValueError("max_mutable_size must be >= 1")
        self._key_serializer = key_serializer
        self._is_immutable = is_immutable
        self._max_mutable_size = max_mutable_size
        self._clock = clock

        self._immutable: Dict[str, V] = {}
        # key -> (value, stored_at, ttl); insertion order drives eviction
        self._mutable: "OrderedDict[str, Tuple[V, float, float]]" = OrderedDict()

        self._hits = 0
        self._misses = 0
        self._promotions = 0

    def get(self, key: K) -> Optional[V]:
        """Return the cached value, or None on a miss."""
        key_str = self._key_serializer(key)

        if key_str in self._immutable:
            self._hits += 1
            return self._immutable[key_str]

        entry = self._mutable.get(key_str)
        if entry is None:
            self._misses += 1
            return None

        value, stored_at, ttl = entry
        if self._clock() - stored_at > ttl:
            del self._mutable[key_str]
            self._misses += 1
            return None

        self._hits += 1
        return value

    def set(self, key: K, value: V, ttl: float) -> None:
        """
        Store ``value``.

        Terminal values go to the permanent tier and replace any TTL entry for
        the same key. Other values go to the TTL tier; when it is full and the
        key is new, the oldest inserted entry is evicted.
        """
        key_str = self._key_serializer(key)

        if self._is_immutable(value):
            self._immutable[key_str] = value
            if self._mutable.pop(key_str, None) is not None:
                self._promotions += 1
            return

        if key_str in self._mutable:
            # Overwrites keep their original insertion slot
            self._mutable[key_str] = (value, self._clock(), ttl)
            return

        if len(self._mutable) >= self._max_mutable_size:
            self._mutable.popitem(last=False)
        self._mutable[key_str] = (value, self._clock(), ttl)

    def delete(self, key: K) -> bool:
        key_str = self._key_serializer(key)
        deleted_immutable = self._immutable.pop(key_str, None) is not None
        deleted_mutable = self._mutable.pop(key_str, None) is not None
        return deleted_immutable or deleted_mutable

    def clear(self) -> None:
        """Drop both tiers and reset counters."""
        self._immutable.clear()
        self._mutable.clear()
        self._hits = 0
        self._misses = 0
        self._promotions = 0

    def clear_mutable(self) -> None:
        self._mutable.clear()

    def __len__(self) -> int:
        return len(self._immutable) + len(self._mutable)

    def stats(self) -> CacheStats:
        return CacheStats(
            immutable_size=len(self._immutable),
            mutable_size=len(self._mutable),
            hits=self._hits,
            misses=self._misses,
            promotions=self._promotions,
        )

    def stats_string(self) -> str:
        s = self.stats()
        return (
            f"Cache: {s.total_size} entries ({s.immutable_size} immutable, "
            f"{s.mutable_size} mutable) | Hit rate: {s.hit_rate:.1f}% | "
            f"Promotions: {s.promotions}"
        )
