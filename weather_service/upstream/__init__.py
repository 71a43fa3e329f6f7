"""Upstream weather provider client."""

from .client import WeatherApiClient

__all__ = ["WeatherApiClient"]
