"""L2 (Redis) cache implementation.

Entries are stored as JSON text under ``<prefix><cache name>::<key>`` with a
per cache name TTL. Redis failures are counted and logged here, then raised
as CacheTierError so the two-level cache can degrade to Tier-1 only.
"""

from __future__ import annotations

import json
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Protocol

import redis
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..error_mapping import CacheTierError
from .cache_config import CacheConfig
from .cache_metrics import CacheMetrics, get_cache_metrics

logger = logging.getLogger(__name__)

_BATCH_SIZE = 100


class ValueCodec(Protocol):
    def encode(self, value: Any) -> str: ...
    def decode(self, data: str) -> Any: ...


class JsonCodec:
    """Plain JSON codec for values without a declared type."""

    def encode(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def decode(self, data: str) -> Any:
        return json.loads(data)


class L2Cache(ABC):
    """Abstract base class for L2 cache implementations bound to one cache name."""

    name: str

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Get value from L2 cache."""

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value in L2 cache."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete key from L2 cache."""

    @abstractmethod
    def clear(self) -> int:
        """Clear all entries of this cache name, returning how many were removed."""

    @abstractmethod
    def snapshot_raw(self) -> dict[str, str]:
        """Raw serialized values for every live key, without decoding."""

    @abstractmethod
    def health_check(self) -> bool:
        """Check if L2 cache is reachable."""


def create_redis_client(config: CacheConfig) -> redis.Redis:
    """Build a Redis client on a shared, thread-safe connection pool."""
    pool = redis.ConnectionPool.from_url(
        config.redis_url,
        max_connections=config.redis_max_connections,
        socket_timeout=config.redis_socket_timeout,
        socket_connect_timeout=config.redis_socket_connect_timeout,
        decode_responses=True,
    )
    return redis.Redis(connection_pool=pool)


class RedisL2Cache(L2Cache):
    """Redis-based L2 cache for a single cache name."""

    def __init__(
        self,
        name: str,
        client: redis.Redis,
        default_ttl: int = 300,
        key_prefix: str = "weather:",
        codec: ValueCodec | None = None,
        enable_metrics: bool = True,
    ):
        self.name = name
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self.codec = codec or JsonCodec()
        self._redis = client
        self._metrics: CacheMetrics | None = get_cache_metrics() if enable_metrics else None

    @property
    def _namespace(self) -> str:
        return f"{self.key_prefix}{self.name}::"

    def _make_key(self, key: str) -> str:
        """Create prefixed cache key."""
        return f"{self._namespace}{key}"

    def _failure(self, operation: str, key: str | None, exc: Exception) -> CacheTierError:
        if self._metrics:
            if isinstance(exc, RedisTimeoutError):
                self._metrics.record_l2_timeout(self.name)
            self._metrics.record_l2_error(self.name, operation)
        target = f" for key {key}" if key is not None else ""
        logger.warning(f"Redis {operation} error on cache {self.name}{target}: {exc}")
        return CacheTierError("l2", operation, str(exc))

    def _observe(self, start_time: float, operation: str) -> None:
        if self._metrics:
            self._metrics.record_operation_duration(time.perf_counter() - start_time, operation)

    def get(self, key: str) -> Any | None:
        """Get value from Redis cache."""
        start_time = time.perf_counter()
        try:
            data = self._redis.get(self._make_key(key))
        except (RedisError, OSError) as e:
            raise self._failure("get", key, e) from e
        finally:
            self._observe(start_time, "l2_get")

        if data is None:
            if self._metrics:
                self._metrics.record_l2_miss(self.name)
            return None

        try:
            value = self.codec.decode(data)
        except ValueError as e:
            # Unreadable payloads are treated as misses; the next put overwrites them
            logger.warning(f"Discarding undecodable L2 entry {self._make_key(key)}: {e}")
            if self._metrics:
                self._metrics.record_l2_miss(self.name)
            return None

        if self._metrics:
            self._metrics.record_l2_hit(self.name)
        return value

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        """Set value in Redis cache."""
        try:
            serialized_value = self.codec.encode(value)
        except (TypeError, ValueError) as e:
            raise self._failure("encode", key, e) from e

        start_time = time.perf_counter()
        try:
            result = self._redis.set(self._make_key(key), serialized_value, ex=ttl or self.default_ttl)
        except (RedisError, OSError) as e:
            raise self._failure("set", key, e) from e
        finally:
            self._observe(start_time, "l2_set")

        if self._metrics:
            self._metrics.record_l2_set(self.name)
        return bool(result)

    def delete(self, key: str) -> bool:
        """Delete key from Redis cache."""
        start_time = time.perf_counter()
        try:
            result = self._redis.delete(self._make_key(key))
        except (RedisError, OSError) as e:
            raise self._failure("delete", key, e) from e
        finally:
            self._observe(start_time, "l2_delete")

        if self._metrics:
            self._metrics.record_l2_delete(self.name)
        return result > 0

    def _scan(self) -> list[str]:
        try:
            return list(self._redis.scan_iter(match=f"{self._namespace}*", count=500))
        except (RedisError, OSError) as e:
            raise self._failure("scan", None, e) from e

    def clear(self) -> int:
        """Clear all cache entries with this cache name's prefix."""
        keys = self._scan()
        try:
            for i in range(0, len(keys), _BATCH_SIZE):
                self._redis.delete(*keys[i : i + _BATCH_SIZE])
        except (RedisError, OSError) as e:
            raise self._failure("clear", None, e) from e

        logger.info(f"Cleared {len(keys)} keys from Redis cache {self.name}")
        return len(keys)

    def snapshot_raw(self) -> dict[str, str]:
        """Read every live entry as stored; keys that expire mid-scan are skipped."""
        keys = self._scan()
        prefix_len = len(self._namespace)
        entries: dict[str, str] = {}
        try:
            for i in range(0, len(keys), _BATCH_SIZE):
                batch = keys[i : i + _BATCH_SIZE]
                for full_key, data in zip(batch, self._redis.mget(batch)):
                    if data is not None:
                        entries[full_key[prefix_len:]] = data
        except (RedisError, OSError) as e:
            raise self._failure("get", None, e) from e
        return entries

    def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return bool(self._redis.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis health check failed: {e}")
            return False


class NoOpL2Cache(L2Cache):
    """No-op L2 cache implementation for when Redis is disabled."""

    def __init__(self, name: str) -> None:
        self.name = name

    def get(self, key: str) -> Any | None:
        return None

    def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        return True

    def delete(self, key: str) -> bool:
        return False

    def clear(self) -> int:
        return 0

    def snapshot_raw(self) -> dict[str, str]:
        return {}

    def health_check(self) -> bool:
        return True
