"""
LRU cache with per-entry time-to-live.

Fronts remote ``get`` calls so repeated reads of the same entry do not
spend API quota.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class TTLCache(Generic[K, V]):
    """
    LRU cache whose entries expire ``ttl`` seconds after insertion.

    Features:
    - Least Recently Used eviction policy
    - Configurable max entries
    - Expired entries are dropped lazily on access
    """

    def __init__(
        self,
        max_entries: int = 100,
        ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")

        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._cache: OrderedDict[K, tuple[float, V]] = OrderedDict()

    def _expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl

    def get(self, key: K) -> V | None:
        item = self._cache.get(key)
        if item is None:
            return None

        stored_at, value = item
        if self._expired(stored_at):
            del self._cache[key]
            return None

        self._cache.move_to_end(key)
        return value

    def put(self, key: K, value: V) -> None:
        if key in self._cache:
            del self._cache[key]

        self._cache[key] = (self._clock(), value)

        if len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)

    def delete(self, key: K) -> None:
        self._cache.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def size(self) -> int:
        return len(self._cache)

    def stats(self) -> dict[str, Any]:
        return {
            "size": len(self._cache),
            "max_entries": self.max_entries,
            "ttl": self.ttl,
        }
