"""Cache metrics collection and reporting."""

from __future__ import annotations

import threading
from typing import Any

from prometheus_client import Counter, Gauge, Histogram

from ..metrics import REGISTRY, sample


class CacheMetrics:
    """Metrics collection for the caching system, labelled by cache name."""

    def __init__(self, namespace: str = "weather_cache"):
        self.namespace = namespace

        def counter(name: str, doc: str) -> Counter:
            return Counter(f"{namespace}_{name}", doc, ["cache"], registry=REGISTRY)

        # L1 Cache Metrics
        self.l1_hits = counter("l1_hits_total", "L1 cache hits")
        self.l1_misses = counter("l1_misses_total", "L1 cache misses")
        self.l1_sets = counter("l1_sets_total", "L1 cache writes")
        self.l1_deletes = counter("l1_deletes_total", "L1 cache deletes")
        self.l1_evictions = counter("l1_evictions_total", "L1 LRU evictions")
        self.l1_size = Gauge(f"{namespace}_l1_size", "L1 entry count", ["cache"], registry=REGISTRY)

        # L2 Cache Metrics
        self.l2_hits = counter("l2_hits_total", "L2 cache hits")
        self.l2_misses = counter("l2_misses_total", "L2 cache misses")
        self.l2_sets = counter("l2_sets_total", "L2 cache writes")
        self.l2_deletes = counter("l2_deletes_total", "L2 cache deletes")
        self.l2_errors = Counter(
            f"{namespace}_l2_errors_total", "L2 cache I/O errors", ["cache", "operation"], registry=REGISTRY
        )
        self.l2_timeouts = counter("l2_timeouts_total", "L2 cache timeouts")

        # Two-level behaviour
        self.promotions = counter("promotions_total", "L2 hits copied into L1")
        self.degraded_calls = counter("degraded_calls_total", "Calls served Tier-1 only because L2 failed")

        # Performance Metrics
        self.operation_duration = Histogram(
            f"{namespace}_operation_duration_seconds",
            "Cache operation latency",
            ["operation"],
            buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
            registry=REGISTRY,
        )

    def record_l1_hit(self, cache: str) -> None:
        self.l1_hits.labels(cache=cache).inc()

    def record_l1_miss(self, cache: str) -> None:
        self.l1_misses.labels(cache=cache).inc()

    def record_l1_set(self, cache: str) -> None:
        self.l1_sets.labels(cache=cache).inc()

    def record_l1_delete(self, cache: str) -> None:
        self.l1_deletes.labels(cache=cache).inc()

    def record_l1_eviction(self, cache: str) -> None:
        self.l1_evictions.labels(cache=cache).inc()

    def update_l1_size(self, cache: str, size: int) -> None:
        self.l1_size.labels(cache=cache).set(size)

    def record_l2_hit(self, cache: str) -> None:
        self.l2_hits.labels(cache=cache).inc()

    def record_l2_miss(self, cache: str) -> None:
        self.l2_misses.labels(cache=cache).inc()

    def record_l2_set(self, cache: str) -> None:
        self.l2_sets.labels(cache=cache).inc()

    def record_l2_delete(self, cache: str) -> None:
        self.l2_deletes.labels(cache=cache).inc()

    def record_l2_error(self, cache: str, operation: str = "unknown") -> None:
        self.l2_errors.labels(cache=cache, operation=operation).inc()

    def record_l2_timeout(self, cache: str) -> None:
        self.l2_timeouts.labels(cache=cache).inc()

    def record_promotion(self, cache: str) -> None:
        self.promotions.labels(cache=cache).inc()

    def record_degraded_call(self, cache: str) -> None:
        self.degraded_calls.labels(cache=cache).inc()

    def record_operation_duration(self, duration_seconds: float, operation: str = "unknown") -> None:
        self.operation_duration.labels(operation=operation).observe(duration_seconds)

    def get_statistics(self, cache: str) -> dict[str, Any]:
        """Get counters for one cache name."""
        ns = self.namespace
        labels = {"cache": cache}
        l2_errors = sum(
            sample(f"{ns}_l2_errors_total", {"cache": cache, "operation": op})
            for op in ("get", "set", "encode", "delete", "clear", "scan")
        )
        return {
            "l1_cache": {
                "hits": sample(f"{ns}_l1_hits_total", labels),
                "misses": sample(f"{ns}_l1_misses_total", labels),
                "sets": sample(f"{ns}_l1_sets_total", labels),
                "deletes": sample(f"{ns}_l1_deletes_total", labels),
                "evictions": sample(f"{ns}_l1_evictions_total", labels),
                "size": sample(f"{ns}_l1_size", labels),
            },
            "l2_cache": {
                "hits": sample(f"{ns}_l2_hits_total", labels),
                "misses": sample(f"{ns}_l2_misses_total", labels),
                "sets": sample(f"{ns}_l2_sets_total", labels),
                "deletes": sample(f"{ns}_l2_deletes_total", labels),
                "errors": l2_errors,
                "timeouts": sample(f"{ns}_l2_timeouts_total", labels),
            },
            "promotions": sample(f"{ns}_promotions_total", labels),
            "degraded_calls": sample(f"{ns}_degraded_calls_total", labels),
        }


# Global cache metrics instance
_cache_metrics: CacheMetrics | None = None
_cache_metrics_lock = threading.Lock()


def get_cache_metrics() -> CacheMetrics:
    """Get the global cache metrics instance."""
    global _cache_metrics
    with _cache_metrics_lock:
        if _cache_metrics is None:
            _cache_metrics = CacheMetrics()
    return _cache_metrics
