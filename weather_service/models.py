"""Weather records, cache keys and the Tier-2 value codec.

Records are frozen pydantic models. The same model validates upstream
payloads (after mapping) and values read back from Redis, so a malformed
entry in either place fails the same way.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator

T = TypeVar("T")


class _Reading(BaseModel):
    model_config = {"frozen": True}

    at: datetime
    temperature_c: float
    feels_like_c: float
    humidity_percent: int = Field(ge=0, le=100)
    description: str

    @field_validator("description")
    @classmethod
    def description_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("description must not be blank")
        return v


class TemperatureRecord(_Reading):
    """Current conditions for one city."""

    city: str

    @field_validator("city")
    @classmethod
    def city_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("city must not be blank")
        return v


class HourlyTemperatureRecord(_Reading):
    """One hour of the short-range series."""


class ForecastRecord(_Reading):
    """One 3-hour step of the extended series."""

    city: str

    @field_validator("city")
    @classmethod
    def city_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("city must not be blank")
        return v


class NegativeEntry(BaseModel):
    """Cached not-found outcome, replayed as UpstreamNotFoundError on hit."""

    model_config = {"frozen": True}

    not_found: str


@dataclass(frozen=True)
class WeatherRequest:
    identifier: str
    on_date: date | None = None


@dataclass(frozen=True)
class CacheKey:
    """Logical cache key. ``str(key)`` is the key used in both tiers."""

    cache_name: str
    parts: tuple[str, ...]

    @classmethod
    def of(cls, cache_name: str, *parts: Any) -> CacheKey:
        rendered = []
        for part in parts:
            if part is None:
                continue
            rendered.append(part.isoformat() if isinstance(part, date) else str(part))
        return cls(cache_name, tuple(rendered))

    def __str__(self) -> str:
        return "|".join(p for p in self.parts if p)


class RecordCodec(Generic[T]):
    """Tier-2 codec for one value type, also accepting negative entries."""

    def __init__(self, value_type: Any):
        self.value_type = value_type
        self._adapter: TypeAdapter[Any] = TypeAdapter(Union[value_type, NegativeEntry])

    def encode(self, value: T | NegativeEntry) -> str:
        return self._adapter.dump_json(value).decode()

    def decode(self, data: str) -> T | NegativeEntry:
        """Raises ValueError (pydantic ValidationError) on malformed data."""
        return self._adapter.validate_json(data)
