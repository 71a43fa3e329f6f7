"""Cache orchestration for the weather operations.

Every public operation runs the same fixed pipeline, written out in order:

    validate -> authorize -> cache lookup -> resilience -> fetch -> cache populate

The last four steps live in ``_load``: TwoLevelCache.get_or_compute does the
lookup and the populate, its loader runs the operation's ResilientInvoker,
and the invoker calls the fetcher.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Generic, TypeVar

from .cache import CURRENT_CACHE, FIVE_DAYS_CACHE, HOURLY_CACHE, TwoLevelCacheManager
from .config import ServiceConfig
from .error_mapping import UpstreamNotFoundError, ValidationError
from .logging_utils import get_logger
from .models import (
    CacheKey,
    ForecastRecord,
    HourlyTemperatureRecord,
    NegativeEntry,
    RecordCodec,
    TemperatureRecord,
    WeatherRequest,
)
from .resilience import CircuitBreaker, CircuitBreakerConfig, ResilientInvoker, RetryPolicy
from .resilience.invoker import Fallback
from .security import ADMIN_ROLES, READ_ROLES, Principal, require_role
from .upstream import WeatherApiClient

_logger = get_logger(__name__)

T = TypeVar("T")

CURRENT_OPERATION = "current"
HOURLY_OPERATION = "hourly"
FORECAST_OPERATION = "forecast"


@dataclass(frozen=True)
class OperationBinding(Generic[T]):
    """Binds one logical operation to its cache name, fetcher and invoker."""

    operation: str
    cache_name: str
    fetch: Callable[[WeatherRequest], T]
    invoker: ResilientInvoker
    fallback: Fallback | None = None


def default_bindings(
    client: WeatherApiClient,
    retry_policy: RetryPolicy | None = None,
    breaker_config: CircuitBreakerConfig | None = None,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, OperationBinding[Any]]:
    """One invoker, and so one circuit breaker, per operation."""

    def bind(operation: str, cache_name: str, fetch: Callable[[WeatherRequest], Any]) -> OperationBinding[Any]:
        breaker = CircuitBreaker(operation, breaker_config, clock=clock)
        invoker = ResilientInvoker(operation, retry_policy, breaker, sleep=sleep)
        return OperationBinding(operation, cache_name, fetch, invoker)

    return {
        CURRENT_OPERATION: bind(CURRENT_OPERATION, CURRENT_CACHE, client.fetch_current),
        HOURLY_OPERATION: bind(HOURLY_OPERATION, HOURLY_CACHE, client.fetch_hourly),
        FORECAST_OPERATION: bind(FORECAST_OPERATION, FIVE_DAYS_CACHE, client.fetch_five_day),
    }


def record_codecs() -> dict[str, RecordCodec[Any]]:
    """Tier-2 codecs for the default cache names."""
    return {
        CURRENT_CACHE: RecordCodec(TemperatureRecord),
        HOURLY_CACHE: RecordCodec(list[HourlyTemperatureRecord]),
        FIVE_DAYS_CACHE: RecordCodec(list[ForecastRecord]),
    }


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class CacheOrchestrator:
    """The entry point for callers: weather reads, purges and cache diagnostics."""

    def __init__(
        self,
        caches: TwoLevelCacheManager,
        bindings: Mapping[str, OperationBinding[Any]],
        config: ServiceConfig | None = None,
        today: Callable[[], date] = _utc_today,
    ):
        missing = {CURRENT_OPERATION, HOURLY_OPERATION, FORECAST_OPERATION} - set(bindings)
        if missing:
            raise ValueError(f"missing operation bindings: {sorted(missing)}")
        for binding in bindings.values():
            # fail at startup, not on first request
            caches.get_cache(binding.cache_name)
        self.caches = caches
        self.bindings = dict(bindings)
        self.config = config or ServiceConfig()
        self._today = today

    # -- weather reads ----------------------------------------------------

    def get_current(self, identifier: str, on_date: date | None, *, principal: Principal | None) -> TemperatureRecord:
        request = WeatherRequest(self._validate_identifier(identifier), self._validate_date(on_date))
        require_role(principal, READ_ROLES)
        binding = self.bindings[CURRENT_OPERATION]
        key = CacheKey.of(binding.cache_name, request.identifier, request.on_date)
        return self._load(binding, key, request)

    def get_short_range_series(
        self, identifier: str, on_date: date | None, *, principal: Principal | None
    ) -> list[HourlyTemperatureRecord]:
        """Hourly records for ``on_date`` only, ascending by time."""
        request = WeatherRequest(self._validate_identifier(identifier), self._validate_date(on_date))
        require_role(principal, READ_ROLES)
        binding = self.bindings[HOURLY_OPERATION]
        key = CacheKey.of(binding.cache_name, request.identifier, request.on_date)
        series = self._load(binding, key, request)
        return sorted((r for r in series if r.at.date() == request.on_date), key=lambda r: r.at)

    def get_extended_series(self, identifier: str, *, principal: Principal | None) -> list[ForecastRecord]:
        """Up to ``extended_series_max_points`` 3-hour steps, ascending by time."""
        request = WeatherRequest(self._validate_identifier(identifier))
        require_role(principal, READ_ROLES)
        binding = self.bindings[FORECAST_OPERATION]
        key = CacheKey.of(binding.cache_name, request.identifier)
        series = self._load(binding, key, request)
        return sorted(series, key=lambda r: r.at)[: self.config.extended_series_max_points]

    # -- invalidation -----------------------------------------------------

    def purge(self, *, principal: Principal | None) -> list[str]:
        """Clear every purgeable cache name in both tiers. Safe to repeat."""
        require_role(principal, ADMIN_ROLES)
        cleared = self.caches.clear(self.caches.config.purgeable_names)
        _logger.info("cache_purged", caches=cleared, user=principal.name)
        return cleared

    def purge_all(self, *, principal: Principal | None) -> list[str]:
        """Clear every configured cache name in both tiers."""
        require_role(principal, ADMIN_ROLES)
        cleared = self.caches.clear()
        _logger.info("cache_purged", caches=cleared, user=principal.name)
        return cleared

    # -- diagnostics ------------------------------------------------------

    def inspect_tier1(self, *, principal: Principal | None) -> dict[str, dict[str, Any]]:
        require_role(principal, ADMIN_ROLES)
        return self.caches.inspect_l1()

    def inspect_tier2(self, *, principal: Principal | None) -> dict[str, dict[str, str]]:
        """Raw Tier-2 JSON per cache name. Raises CacheTierError when Redis is unreachable."""
        require_role(principal, ADMIN_ROLES)
        return self.caches.inspect_l2()

    def health(self) -> dict[str, Any]:
        cache_health = self.caches.health_check()
        circuits = {name: b.invoker.breaker.snapshot() for name, b in self.bindings.items()}
        healthy = cache_health["l2_cache"] and all(c["state"] != "open" for c in circuits.values())
        return {
            "status": "UP" if healthy else "DEGRADED",
            "cache": cache_health,
            "circuits": circuits,
            "statistics": self.caches.get_statistics(),
        }

    # -- pipeline ---------------------------------------------------------

    def _validate_identifier(self, identifier: str) -> str:
        if identifier is None or not str(identifier).strip():
            raise ValidationError("parameter 'city' must not be blank")
        return str(identifier).strip()

    def _validate_date(self, on_date: date | None) -> date:
        if on_date is None:
            raise ValidationError("required parameter 'date' is missing")
        today = self._today()
        latest = today + timedelta(days=self.config.forecast_window_days)
        if not today <= on_date <= latest:
            raise ValidationError(f"parameter 'date' must be between {today} and {latest} (inclusive)")
        return on_date

    def _load(self, binding: OperationBinding[T], key: CacheKey, request: WeatherRequest) -> T:
        cache = self.caches.get_cache(binding.cache_name)

        def fetch_resilient() -> T | NegativeEntry:
            try:
                return binding.invoker.call(binding.fetch, request, binding.fallback)
            except UpstreamNotFoundError as e:
                if cache.policy.cache_not_found:
                    return NegativeEntry(not_found=e.detail)
                raise

        value = cache.get_or_compute(str(key), fetch_resilient)
        if isinstance(value, NegativeEntry):
            raise UpstreamNotFoundError(value.not_found)
        return value
