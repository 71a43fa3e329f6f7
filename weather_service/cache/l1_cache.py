"""L1 (in-process) cache implementation with TTL and LRU eviction."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .cache_metrics import CacheMetrics, get_cache_metrics


@dataclass
class CacheEntry:
    """Cache entry with TTL and access tracking.

    The value is never mutated after insertion; a put replaces the whole entry.
    """

    key: str
    value: Any
    inserted_at: float
    expires_at: float
    access_count: int = 0
    last_accessed: float = field(default=0.0)

    def __post_init__(self) -> None:
        self.last_accessed = self.inserted_at

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def touch(self, now: float) -> None:
        self.access_count += 1
        self.last_accessed = now


class L1Cache:
    """Thread-safe bounded cache for one cache name with TTL and LRU eviction."""

    def __init__(
        self,
        name: str,
        max_size: int = 10_000,
        default_ttl: int = 1800,
        enable_metrics: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.name = name
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock

        # OrderedDict keeps recency order: first item is least recently used
        self._cache: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.RLock()

        self._metrics: CacheMetrics | None = get_cache_metrics() if enable_metrics else None

    def _evict_lru(self, count: int = 1) -> int:
        """Evict least recently used entries. Caller holds the lock."""
        evicted_count = 0
        for _ in range(min(count, len(self._cache))):
            self._cache.popitem(last=False)
            evicted_count += 1
            if self._metrics:
                self._metrics.record_l1_eviction(self.name)
        return evicted_count

    def _update_size(self) -> None:
        if self._metrics:
            self._metrics.update_l1_size(self.name, len(self._cache))

    def get(self, key: str) -> Any | None:
        """Get value from cache, or None when absent or expired."""
        now = self._clock()
        with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                if self._metrics:
                    self._metrics.record_l1_miss(self.name)
                return None

            if entry.is_expired(now):
                del self._cache[key]
                self._update_size()
                if self._metrics:
                    self._metrics.record_l1_miss(self.name)
                return None

            entry.touch(now)
            self._cache.move_to_end(key)

            if self._metrics:
                self._metrics.record_l1_hit(self.name)
            return entry.value

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Insert or fully replace the entry for key."""
        now = self._clock()
        ttl = ttl or self.default_ttl
        entry = CacheEntry(key=key, value=value, inserted_at=now, expires_at=now + ttl)

        with self._lock:
            self._cache.pop(key, None)

            if len(self._cache) >= self.max_size:
                self._purge_expired(now)
            if len(self._cache) >= self.max_size:
                self._evict_lru(len(self._cache) - self.max_size + 1)

            self._cache[key] = entry
            self._update_size()

            if self._metrics:
                self._metrics.record_l1_set(self.name)

    def delete(self, key: str) -> bool:
        """Delete key from cache. Absence is not an error."""
        with self._lock:
            entry = self._cache.pop(key, None)
            if entry is None:
                return False
            self._update_size()
            if self._metrics:
                self._metrics.record_l1_delete(self.name)
            return True

    def clear(self) -> None:
        """Clear all entries from cache."""
        with self._lock:
            self._cache.clear()
            self._update_size()

    def exists(self, key: str) -> bool:
        """Check if key exists and is not expired, without touching recency."""
        with self._lock:
            entry = self._cache.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def snapshot(self) -> dict[str, Any]:
        """Copy of all live entries in LRU order.

        Read-only: neither recency order nor expired entries are modified.
        """
        now = self._clock()
        with self._lock:
            return {key: entry.value for key, entry in self._cache.items() if not entry.is_expired(now)}

    def size(self) -> int:
        with self._lock:
            return len(self._cache)

    def _purge_expired(self, now: float) -> int:
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
        for key in expired_keys:
            del self._cache[key]
        return len(expired_keys)

    def cleanup(self) -> int:
        """Manually remove expired entries and return count removed."""
        with self._lock:
            removed = self._purge_expired(self._clock())
            self._update_size()
            return removed

    def get_statistics(self) -> dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        with self._lock:
            total_entries = len(self._cache)
            expired_count = sum(1 for entry in self._cache.values() if entry.is_expired(now))
            total_access_count = sum(entry.access_count for entry in self._cache.values())

            return {
                "total_entries": total_entries,
                "expired_entries": expired_count,
                "valid_entries": total_entries - expired_count,
                "max_size": self.max_size,
                "default_ttl": self.default_ttl,
                "total_access_count": total_access_count,
            }
