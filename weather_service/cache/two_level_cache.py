"""Two-level cache for one cache name: L1 (in-process) in front of L2 (Redis).

get checks L1, then L2, promoting L2 hits into L1 with L1's TTL.
put, evict and clear fan out to both tiers, L1 first. An L2 failure never
fails the operation: it is logged as a warning and the call behaves as if
only L1 existed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from ..error_mapping import CacheTierError, ComputeFailedError
from .cache_config import TierPolicy
from .cache_metrics import CacheMetrics, get_cache_metrics
from .l1_cache import L1Cache
from .l2_cache import L2Cache

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TwoLevelCache:
    """Composes an L1Cache and an L2Cache that share a cache name and policy."""

    def __init__(
        self,
        l1: L1Cache,
        l2: L2Cache,
        policy: TierPolicy,
        enable_metrics: bool = True,
    ):
        if l1.name != l2.name:
            raise ValueError(f"tier names differ: {l1.name!r} != {l2.name!r}")
        self.l1 = l1
        self.l2 = l2
        self.policy = policy
        self._metrics: CacheMetrics | None = get_cache_metrics() if enable_metrics else None

    @property
    def name(self) -> str:
        return self.l1.name

    def _degraded(self, error: CacheTierError) -> None:
        logger.warning(f"Cache {self.name} degraded to L1 only: {error.detail}")
        if self._metrics:
            self._metrics.record_degraded_call(self.name)

    def get(self, key: str) -> Any | None:
        """Return the cached value or None on a miss in both tiers."""
        value = self.l1.get(key)
        if value is not None:
            return value

        try:
            value = self.l2.get(key)
        except CacheTierError as e:
            self._degraded(e)
            return None

        if value is not None:
            self.l1.set(key, value, self.policy.l1_ttl)
            if self._metrics:
                self._metrics.record_promotion(self.name)
        return value

    def put(self, key: str, value: Any) -> None:
        """Write to L1 then L2. An L2 failure leaves the L1 write in place."""
        self.l1.set(key, value, self.policy.l1_ttl)
        try:
            self.l2.set(key, value, self.policy.l2_ttl)
        except CacheTierError as e:
            self._degraded(e)

    def evict(self, key: str) -> None:
        """Remove key from both tiers; absence in either tier is fine."""
        self.l1.delete(key)
        try:
            self.l2.delete(key)
        except CacheTierError as e:
            self._degraded(e)

    def clear(self) -> None:
        """Remove every entry of this cache name from both tiers."""
        self.l1.clear()
        try:
            self.l2.clear()
        except CacheTierError as e:
            self._degraded(e)

    def get_or_compute(self, key: str, loader: Callable[[], T]) -> T:
        """Return the cached value, or load, store and return it.

        Loader failures are wrapped in ComputeFailedError and nothing is cached.
        Concurrent misses on the same key each run the loader; the last put wins.
        """
        existing = self.get(key)
        if existing is not None:
            return existing

        try:
            value = loader()
        except Exception as e:
            raise ComputeFailedError(key, e) from e

        if value is not None:
            self.put(key, value)
        return value
