"""Retry policy with capped exponential backoff."""

from __future__ import annotations

import os
from collections.abc import Iterator
from dataclasses import dataclass, field

from ..error_mapping import ConfigurationError, FailureKind

DEFAULT_RETRYABLE = frozenset({FailureKind.SERVER_ERROR, FailureKind.NETWORK, FailureKind.TIMEOUT})


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 2.0
    retryable: frozenset[FailureKind] = field(default=DEFAULT_RETRYABLE)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0 or self.multiplier < 1:
            raise ConfigurationError("retry delays must be non-negative and multiplier >= 1")

    def delay_for(self, attempt: int) -> float:
        """Wait before the attempt following ``attempt`` (1-based)."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def schedule(self) -> Iterator[float]:
        """All inter-attempt delays, e.g. 0.5, 1.0 for three attempts."""
        for attempt in range(1, self.max_attempts):
            yield self.delay_for(attempt)

    def should_retry(self, kind: FailureKind, attempt: int) -> bool:
        return kind in self.retryable and attempt < self.max_attempts

    @classmethod
    def from_environment(cls) -> RetryPolicy:
        return cls(
            max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", "3")),
            base_delay=float(os.getenv("RETRY_BASE_DELAY", "0.5")),
            multiplier=float(os.getenv("RETRY_MULTIPLIER", "2.0")),
            max_delay=float(os.getenv("RETRY_MAX_DELAY", "2.0")),
            retryable=_parse_kinds(os.getenv("RETRY_RETRYABLE_KINDS"), DEFAULT_RETRYABLE),
        )


def _parse_kinds(raw: str | None, default: frozenset[FailureKind]) -> frozenset[FailureKind]:
    """Parse a comma-separated list of FailureKind values."""
    if raw is None:
        return default
    try:
        return frozenset(FailureKind(part.strip()) for part in raw.split(",") if part.strip())
    except ValueError as e:
        raise ConfigurationError(f"unknown failure kind: {e}") from e
