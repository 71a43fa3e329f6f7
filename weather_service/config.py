"""Application configuration.

Every section is an immutable dataclass built from environment variables and
handed to the components that need it at construction time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .cache.cache_config import CacheConfig
from .error_mapping import ConfigurationError
from .resilience.circuit_breaker import CircuitBreakerConfig
from .resilience.retry import RetryPolicy
from .security import UserCredential, parse_users


@dataclass(frozen=True)
class WeatherApiConfig:
    """Upstream provider address and credential."""

    api_key: str = field(repr=False)
    base_url: str = "https://api.openweathermap.org"
    current_timeout: float = 2.0
    series_timeout: float = 3.0

    def __post_init__(self) -> None:
        if not self.api_key:
            raise ConfigurationError("WEATHER_API_KEY is required")
        if self.current_timeout <= 0 or self.series_timeout <= 0:
            raise ConfigurationError("upstream timeouts must be positive")

    @classmethod
    def from_environment(cls) -> WeatherApiConfig:
        return cls(
            api_key=os.getenv("WEATHER_API_KEY", ""),
            base_url=os.getenv("WEATHER_API_BASE_URL", "https://api.openweathermap.org"),
            current_timeout=float(os.getenv("WEATHER_API_CURRENT_TIMEOUT", "2.0")),
            series_timeout=float(os.getenv("WEATHER_API_SERIES_TIMEOUT", "3.0")),
        )


@dataclass(frozen=True)
class ServiceConfig:
    forecast_window_days: int = 5
    extended_series_max_points: int = 40  # 5 days of 3-hour steps
    log_level: str = "INFO"
    users: tuple[UserCredential, ...] = ()

    def __post_init__(self) -> None:
        if self.forecast_window_days < 0:
            raise ConfigurationError("forecast_window_days must not be negative")
        if self.extended_series_max_points < 1:
            raise ConfigurationError("extended_series_max_points must be at least 1")

    @classmethod
    def from_environment(cls) -> ServiceConfig:
        return cls(
            forecast_window_days=int(os.getenv("FORECAST_WINDOW_DAYS", "5")),
            extended_series_max_points=int(os.getenv("EXTENDED_SERIES_MAX_POINTS", "40")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            users=parse_users(os.getenv("SERVICE_USERS")),
        )


@dataclass(frozen=True)
class AppConfig:
    weather_api: WeatherApiConfig
    cache: CacheConfig = field(default_factory=CacheConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    @classmethod
    def from_environment(cls) -> AppConfig:
        return cls(
            weather_api=WeatherApiConfig.from_environment(),
            cache=CacheConfig.from_environment(),
            retry=RetryPolicy.from_environment(),
            circuit_breaker=CircuitBreakerConfig.from_environment(),
            service=ServiceConfig.from_environment(),
        )
