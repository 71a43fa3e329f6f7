"""Cache configuration management.

A single policy table keyed by cache name drives both tiers, so the set of
names known to Tier-1 and Tier-2 can never drift apart.
"""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from ..error_mapping import ConfigurationError

CURRENT_CACHE = "currentTemp"
HOURLY_CACHE = "hourlyForecast"
FIVE_DAYS_CACHE = "fiveDaysForecast"


@dataclass(frozen=True)
class TierPolicy:
    """Per cache name TTLs and bounds for both tiers."""

    l1_ttl: int = 1800  # 30 minutes
    l1_max_size: int = 10_000
    l2_ttl: int = 300  # 5 minutes
    purgeable: bool = True
    cache_not_found: bool = False

    def __post_init__(self) -> None:
        if self.l1_ttl <= 0 or self.l2_ttl <= 0:
            raise ConfigurationError("cache TTLs must be positive")
        if self.l1_max_size <= 0:
            raise ConfigurationError("l1_max_size must be positive")


def default_policies() -> dict[str, TierPolicy]:
    return {
        CURRENT_CACHE: TierPolicy(l1_ttl=1800, l1_max_size=10_000, l2_ttl=300),
        HOURLY_CACHE: TierPolicy(l1_ttl=1800, l1_max_size=10_000, l2_ttl=3600),
        FIVE_DAYS_CACHE: TierPolicy(l1_ttl=1800, l1_max_size=10_000, l2_ttl=6 * 3600, purgeable=False),
    }


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for the two-level caching system."""

    policies: Mapping[str, TierPolicy] = field(default_factory=default_policies)

    # L2 Cache (Redis) Configuration
    l2_enabled: bool = True
    l2_key_prefix: str = "weather:"

    # Redis Configuration
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 20
    redis_socket_timeout: float = 1.0
    redis_socket_connect_timeout: float = 1.0

    # Metrics Configuration
    metrics_enabled: bool = True

    def __post_init__(self) -> None:
        if not self.policies:
            raise ConfigurationError("at least one cache policy is required")
        object.__setattr__(self, "policies", MappingProxyType(dict(self.policies)))

    @property
    def cache_names(self) -> tuple[str, ...]:
        return tuple(self.policies)

    @property
    def purgeable_names(self) -> tuple[str, ...]:
        return tuple(name for name, policy in self.policies.items() if policy.purgeable)

    def policy_for(self, cache_name: str) -> TierPolicy:
        try:
            return self.policies[cache_name]
        except KeyError:
            raise ConfigurationError(f"no cache policy configured for '{cache_name}'") from None

    @classmethod
    def from_environment(cls) -> CacheConfig:
        """Create cache configuration from environment variables."""
        return cls(
            policies=_parse_policies(os.getenv("CACHE_POLICIES")),
            l2_enabled=os.getenv("CACHE_L2_ENABLED", "true").lower() == "true",
            l2_key_prefix=os.getenv("CACHE_L2_KEY_PREFIX", "weather:"),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            redis_max_connections=int(os.getenv("REDIS_MAX_CONNECTIONS", "20")),
            redis_socket_timeout=float(os.getenv("REDIS_SOCKET_TIMEOUT", "1.0")),
            redis_socket_connect_timeout=float(os.getenv("REDIS_SOCKET_CONNECT_TIMEOUT", "1.0")),
            metrics_enabled=os.getenv("CACHE_METRICS_ENABLED", "true").lower() == "true",
        )


def _parse_policies(raw: str | None) -> dict[str, TierPolicy]:
    """Overlay JSON overrides such as ``{"currentTemp": {"l2_ttl": 120}}`` on the defaults.

    Names absent from the defaults are added with the given fields.
    """
    policies = default_policies()
    if not raw:
        return policies

    try:
        overrides = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"CACHE_POLICIES is not valid JSON: {e}") from e
    if not isinstance(overrides, dict):
        raise ConfigurationError("CACHE_POLICIES must be a JSON object")

    for name, fields in overrides.items():
        if not isinstance(fields, dict):
            raise ConfigurationError(f"policy for '{name}' must be a JSON object")
        try:
            policies[name] = replace(policies.get(name, TierPolicy()), **fields)
        except TypeError as e:
            raise ConfigurationError(f"invalid policy for '{name}': {e}") from e
    return policies
