"""Two-level caching and resilience layer in front of a weather data provider."""

__version__ = "1.0.0"
