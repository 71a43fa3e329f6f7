"""Two-level cache manager: one TwoLevelCache per configured cache name."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

import redis

from .cache_config import CacheConfig
from .cache_metrics import get_cache_metrics
from .l1_cache import L1Cache
from .l2_cache import L2Cache, NoOpL2Cache, RedisL2Cache, ValueCodec, create_redis_client
from .two_level_cache import TwoLevelCache

logger = logging.getLogger(__name__)


class TwoLevelCacheManager:
    """Builds and owns the L1/L2 pair for every name in the policy table."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        redis_client: redis.Redis | None = None,
        codecs: Mapping[str, ValueCodec] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or CacheConfig.from_environment()
        codecs = codecs or {}

        self._redis: redis.Redis | None = None
        if self.config.l2_enabled:
            self._redis = redis_client if redis_client is not None else create_redis_client(self.config)

        self._caches: dict[str, TwoLevelCache] = {}
        for name, policy in self.config.policies.items():
            l1 = L1Cache(
                name,
                max_size=policy.l1_max_size,
                default_ttl=policy.l1_ttl,
                enable_metrics=self.config.metrics_enabled,
                clock=clock,
            )
            self._caches[name] = TwoLevelCache(
                l1, self._create_l2_cache(name, codecs.get(name)), policy, enable_metrics=self.config.metrics_enabled
            )

        logger.info(
            f"Cache manager initialized - caches: {', '.join(self._caches)}, L2: {self.config.l2_enabled}"
        )

    def _create_l2_cache(self, name: str, codec: ValueCodec | None) -> L2Cache:
        """Create L2 cache instance based on configuration."""
        if self._redis is None:
            return NoOpL2Cache(name)

        return RedisL2Cache(
            name,
            self._redis,
            default_ttl=self.config.policy_for(name).l2_ttl,
            key_prefix=self.config.l2_key_prefix,
            codec=codec,
            enable_metrics=self.config.metrics_enabled,
        )

    @property
    def cache_names(self) -> tuple[str, ...]:
        return tuple(self._caches)

    def get_cache(self, name: str) -> TwoLevelCache:
        try:
            return self._caches[name]
        except KeyError:
            raise KeyError(f"unknown cache name: {name}") from None

    def clear(self, names: Iterable[str] | None = None) -> list[str]:
        """Clear the given cache names (all when omitted) in both tiers."""
        cleared = []
        for name in self.cache_names if names is None else names:
            self.get_cache(name).clear()
            cleared.append(name)
        return cleared

    def inspect_l1(self) -> dict[str, dict[str, Any]]:
        """Live L1 entries per cache name. Does not touch recency or promote."""
        return {name: cache.l1.snapshot() for name, cache in self._caches.items()}

    def inspect_l2(self) -> dict[str, dict[str, str]]:
        """Raw serialized L2 entries per cache name. Raises CacheTierError if Redis is down."""
        return {name: cache.l2.snapshot_raw() for name, cache in self._caches.items()}

    def health_check(self) -> dict[str, Any]:
        """Perform health check on cache components."""
        l2_healthy = True
        if self._redis is not None:
            # every L2 cache shares one client, so one ping covers all names
            l2_healthy = self.get_cache(self.cache_names[0]).l2.health_check()
        return {
            "l1_cache": True,
            "l2_cache": l2_healthy,
            "l2_enabled": self._redis is not None,
        }

    def get_statistics(self) -> dict[str, Any]:
        """Per cache name L1 statistics plus counters when metrics are enabled."""
        metrics = get_cache_metrics() if self.config.metrics_enabled else None
        stats: dict[str, Any] = {}
        for name, cache in self._caches.items():
            entry: dict[str, Any] = {"l1": cache.l1.get_statistics()}
            if metrics:
                entry["metrics"] = metrics.get_statistics(name)
            stats[name] = entry
        return stats

    def close(self) -> None:
        """Release Redis connections."""
        if self._redis is not None:
            self._redis.close()
        logger.info("Cache manager closed")
