"""Retry and circuit breaking around a single upstream operation.

Retry wraps the breaker: every attempt asks the breaker for permission and
reports its own outcome, so a call that retries three times contributes three
outcomes to the failure window. A rejected attempt is not retried, and a
failure that opens the circuit ends the loop at once instead of sleeping
towards a rejection.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TypeVar

from ..error_mapping import (
    CircuitOpenError,
    FailureKind,
    ServiceUnavailableError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamNotFoundError,
    ValidationError,
    WeatherServiceError,
)
from ..logging_utils import get_logger
from ..metrics import CIRCUIT_REJECTIONS, FALLBACKS, UPSTREAM_ATTEMPTS, UPSTREAM_RETRIES
from .circuit_breaker import CircuitBreaker, CircuitState
from .retry import RetryPolicy

_logger = get_logger(__name__)

Req = TypeVar("Req")
T = TypeVar("T")

Fallback = Callable[[Exception, Req], T]


def classify(exc: BaseException) -> FailureKind:
    if isinstance(exc, UpstreamError):
        return exc.kind
    return FailureKind.UNEXPECTED


def _code_of(exc: BaseException) -> str:
    if isinstance(exc, WeatherServiceError):
        return exc.code.value
    return type(exc).__name__


def unavailable_fallback(operation: str) -> Fallback:
    """Default fallback for ``operation``.

    Not-found, upstream auth and validation failures are re-raised unchanged.
    Everything else becomes ServiceUnavailableError carrying the original cause.
    """

    def fallback(exc: Exception, request: object) -> None:
        if isinstance(exc, (UpstreamNotFoundError, UpstreamAuthError, ValidationError)):
            raise exc
        raise ServiceUnavailableError(f"{operation} data temporarily unavailable", cause=exc) from exc

    return fallback


class ResilientInvoker:
    """Runs fetches for one operation through its retry policy and breaker."""

    def __init__(
        self,
        operation: str,
        retry_policy: RetryPolicy | None = None,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.operation = operation
        self.retry_policy = retry_policy or RetryPolicy()
        self.breaker = breaker or CircuitBreaker(operation)
        self.default_fallback = unavailable_fallback(operation)
        self._sleep = sleep

    def call(
        self,
        fetch: Callable[[Req], T],
        request: Req,
        fallback: Fallback | None = None,
    ) -> T:
        """Fetch with retries. On final failure or rejection, return (or raise) the fallback's result."""
        if fallback is None:
            fallback = self.default_fallback
        attempt = 0
        while True:
            attempt += 1
            permit = self.breaker.try_acquire()
            if permit is None:
                CIRCUIT_REJECTIONS.labels(operation=self.operation).inc()
                rejected = CircuitOpenError(self.operation, self.breaker.retry_after())
                return self._fallback(fallback, rejected, request, attempt)

            try:
                result = fetch(request)
            except Exception as e:
                kind = classify(e)
                self.breaker.record_failure(permit, kind)
                UPSTREAM_ATTEMPTS.labels(operation=self.operation, outcome=kind.value).inc()
                if not self.retry_policy.should_retry(kind, attempt):
                    return self._fallback(fallback, e, request, attempt)
                if self.breaker.state == CircuitState.OPEN:
                    # this failure opened the circuit; the next attempt would be rejected
                    opened = CircuitOpenError(self.operation, self.breaker.retry_after())
                    opened.__cause__ = e
                    return self._fallback(fallback, opened, request, attempt)

                delay = self.retry_policy.delay_for(attempt)
                UPSTREAM_RETRIES.labels(operation=self.operation).inc()
                _logger.warning(
                    "upstream_attempt_failed",
                    operation=self.operation,
                    attempt=attempt,
                    kind=kind.value,
                    retry_in_s=delay,
                    error=str(e),
                )
                self._sleep(delay)
                continue

            self.breaker.record_success(permit)
            UPSTREAM_ATTEMPTS.labels(operation=self.operation, outcome="success").inc()
            return result

    def _fallback(self, fallback: Fallback, exc: Exception, request: Req, attempts: int) -> T:
        code = _code_of(exc)
        FALLBACKS.labels(operation=self.operation, code=code).inc()
        _logger.warning(
            "fallback_invoked",
            operation=self.operation,
            attempts=attempts,
            code=code,
            error=str(exc),
        )
        return fallback(exc, request)
