"""Two-level caching: bounded in-process L1 in front of shared Redis L2."""

from .cache_config import CURRENT_CACHE, FIVE_DAYS_CACHE, HOURLY_CACHE, CacheConfig, TierPolicy
from .cache_manager import TwoLevelCacheManager
from .cache_metrics import CacheMetrics, get_cache_metrics
from .l1_cache import CacheEntry, L1Cache
from .l2_cache import JsonCodec, L2Cache, NoOpL2Cache, RedisL2Cache, ValueCodec, create_redis_client
from .two_level_cache import TwoLevelCache

__all__ = [
    "CURRENT_CACHE",
    "FIVE_DAYS_CACHE",
    "HOURLY_CACHE",
    "CacheConfig",
    "CacheEntry",
    "CacheMetrics",
    "JsonCodec",
    "L1Cache",
    "L2Cache",
    "NoOpL2Cache",
    "RedisL2Cache",
    "TierPolicy",
    "TwoLevelCache",
    "TwoLevelCacheManager",
    "ValueCodec",
    "create_redis_client",
    "get_cache_metrics",
]
