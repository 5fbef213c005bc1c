# src/unitable/cache.py
"""
In-process TTL + LRU cache.

Schemas, connections and compiled validators are each held in their own
instance so every kind of entity keeps its own size and expiry policy.

Expiry is lazy: an entry past its TTL is dropped the next time it is touched
(or when `purge_expired()` runs). Eviction is by entry count, least recently
used first.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

from unitable.logging import get_logger

_logger = get_logger(__name__)

V = TypeVar("V")

_MISSING = object()


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "expirations": self.expirations,
        }


class TTLCache(Generic[V]):
    """
    Thread-safe cache with a maximum entry count and a per-entry TTL.

    A cached ``None`` is a real value (useful for negative lookups); use
    ``contains`` / ``in`` to tell it apart from a miss.

    Example:
        cache = TTLCache(max_size=100, ttl_seconds=300)
        cache.set("schema:1", schema)
        schema = cache.get("schema:1")
    """

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: float = 300.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._data: "OrderedDict[Hashable, Tuple[V, float]]" = OrderedDict()
        self._lock = threading.RLock()
        self.stats = CacheStats()

    # ---- Reads ----

    def _lookup(self, key: Hashable) -> Any:
        """Return the live value or _MISSING; caller holds the lock."""
        entry = self._data.get(key)
        if entry is None:
            return _MISSING
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            self.stats.expirations += 1
            return _MISSING
        self._data.move_to_end(key)
        return value

    def get(self, key: Hashable, default: Optional[V] = None) -> Optional[V]:
        with self._lock:
            value = self._lookup(key)
            if value is _MISSING:
                self.stats.misses += 1
                return default
            self.stats.hits += 1
            return value

    def contains(self, key: Hashable) -> bool:
        with self._lock:
            return self._lookup(key) is not _MISSING

    def __contains__(self, key: Hashable) -> bool:
        return self.contains(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    # ---- Writes ----

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            if key in self._data:
                self._data.move_to_end(key)
            self._data[key] = (value, self._clock() + self.ttl_seconds)
            while len(self._data) > self.max_size:
                evicted, _ = self._data.popitem(last=False)
                self.stats.evictions += 1
                _logger.debug("%s: evicted %r", self.name, evicted)

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._data.pop(key, _MISSING) is not _MISSING

    def delete_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every key matching `predicate`; returns how many were removed."""
        with self._lock:
            doomed = [k for k in self._data if predicate(k)]
            for k in doomed:
                del self._data[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, exp) in self._data.items() if now >= exp]
            for k in expired:
                del self._data[k]
            self.stats.expirations += len(expired)
            return len(expired)
