"""OpenWeatherMap client.

Each fetch returns typed records or raises a classified UpstreamError:
404 is not-found, 401 is an auth failure, other 4xx are client errors,
5xx are server errors, httpx timeouts and transport failures map to
timeout and network. A payload that cannot be mapped to records is an
invalid upstream response.

Every fetch has a single deadline covering all of its requests. Each request
gets the time left as its httpx timeout, the body is read in chunks against
the deadline, and a response that completes after it is a timeout.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx

from ..config import WeatherApiConfig
from ..error_mapping import (
    UpstreamAuthError,
    UpstreamClientError,
    UpstreamNetworkError,
    UpstreamNotFoundError,
    UpstreamResponseError,
    UpstreamServerError,
    UpstreamTimeoutError,
)
from ..models import ForecastRecord, HourlyTemperatureRecord, TemperatureRecord, WeatherRequest

_FORECAST_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


def _from_epoch(ts: int) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def _first_description(item: dict[str, Any]) -> str:
    weather = item.get("weather") or []
    if not weather:
        return "n/a"
    return weather[0].get("description") or "n/a"


def _raise_for_status(status: int, subject: str) -> None:
    if status == 404:
        raise UpstreamNotFoundError(f"not found: {subject}", status_code=status)
    if status == 401:
        raise UpstreamAuthError("invalid API key for weather provider", status_code=status)
    if 400 <= status < 500:
        raise UpstreamClientError(f"upstream {status} fetching {subject}", status_code=status)
    if status >= 500:
        raise UpstreamServerError(f"upstream {status} fetching {subject}", status_code=status)


class WeatherApiClient:
    """Synchronous fetcher for current conditions, hourly and 5-day series."""

    def __init__(
        self,
        config: WeatherApiConfig,
        transport: httpx.BaseTransport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self._client = httpx.Client(base_url=config.base_url, transport=transport)
        self._clock = clock

    def close(self) -> None:
        self._client.close()

    # -- transport --------------------------------------------------------

    def _deadline(self, budget: float) -> float:
        return self._clock() + budget

    def _get_json(self, path: str, params: dict[str, Any], deadline: float, subject: str) -> Any:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise UpstreamTimeoutError(f"deadline exceeded before fetching {subject}")

        query = {**params, "appid": self.config.api_key}
        content = bytearray()
        try:
            with self._client.stream("GET", path, params=query, timeout=httpx.Timeout(remaining)) as response:
                status = response.status_code
                _raise_for_status(status, subject)
                for chunk in response.iter_bytes():
                    if self._clock() > deadline:
                        break
                    content.extend(chunk)
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"timed out fetching {subject}") from e
        except httpx.TransportError as e:
            raise UpstreamNetworkError(f"network failure fetching {subject}: {e}") from e

        if self._clock() > deadline:
            raise UpstreamTimeoutError(f"deadline exceeded fetching {subject}")
        try:
            return json.loads(content)
        except ValueError as e:
            raise UpstreamResponseError(f"response for {subject} is not JSON", status_code=status) from e

    # -- fetchers ---------------------------------------------------------

    def fetch_current(self, request: WeatherRequest) -> TemperatureRecord:
        """GET /data/2.5/weather for one city."""
        city = request.identifier
        body = self._get_json(
            "/data/2.5/weather",
            {"q": city, "units": "metric"},
            self._deadline(self.config.current_timeout),
            f"current weather for {city}",
        )
        try:
            main = body["main"]
            return TemperatureRecord(
                city=city,
                at=_from_epoch(body["dt"]),
                temperature_c=main["temp"],
                feels_like_c=main["feels_like"],
                humidity_percent=main["humidity"],
                description=_first_description(body),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise UpstreamResponseError(f"unexpected current weather payload for {city}: {e}") from e

    def fetch_hourly(self, request: WeatherRequest) -> list[HourlyTemperatureRecord]:
        """Geocode the city, then read the hourly series from the One Call API."""
        city = request.identifier
        deadline = self._deadline(self.config.series_timeout)
        lat, lon = self._geocode(city, deadline)
        body = self._get_json(
            "/data/2.5/onecall",
            {"lat": lat, "lon": lon, "exclude": "current,minutely,daily,alerts", "units": "metric"},
            deadline,
            f"hourly forecast for {city}",
        )
        try:
            return [
                HourlyTemperatureRecord(
                    at=_from_epoch(item["dt"]),
                    temperature_c=item["temp"],
                    feels_like_c=item["feels_like"],
                    humidity_percent=item["humidity"],
                    description=_first_description(item),
                )
                for item in body.get("hourly") or []
            ]
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise UpstreamResponseError(f"unexpected hourly payload for {city}: {e}") from e

    def fetch_five_day(self, request: WeatherRequest) -> list[ForecastRecord]:
        """GET /data/2.5/forecast: up to 40 entries in 3-hour steps."""
        city = request.identifier
        body = self._get_json(
            "/data/2.5/forecast",
            {"q": city, "units": "metric"},
            self._deadline(self.config.series_timeout),
            f"5-day forecast for {city}",
        )
        try:
            items = body["list"]
            return [
                ForecastRecord(
                    city=city,
                    at=datetime.strptime(item["dt_txt"], _FORECAST_TS_FORMAT).replace(tzinfo=timezone.utc),
                    temperature_c=item["main"]["temp"],
                    feels_like_c=item["main"]["feels_like"],
                    humidity_percent=item["main"]["humidity"],
                    description=_first_description(item),
                )
                for item in items
            ]
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise UpstreamResponseError(f"unexpected forecast payload for {city}: {e}") from e

    def _geocode(self, city: str, deadline: float) -> tuple[float, float]:
        body = self._get_json(
            "/geo/1.0/direct",
            {"q": city, "limit": 1},
            deadline,
            f"location {city}",
        )
        if not body:
            raise UpstreamNotFoundError(f"city not found: {city}")
        try:
            return float(body[0]["lat"]), float(body[0]["lon"])
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise UpstreamResponseError(f"unexpected geocoding payload for {city}: {e}") from e
