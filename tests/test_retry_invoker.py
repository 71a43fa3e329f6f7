"""Tests for the retry policy and the resilient invoker."""

import os
from unittest.mock import MagicMock, patch

import pytest

from weather_service.error_mapping import (
    CircuitOpenError,
    ConfigurationError,
    FailureKind,
    ServiceUnavailableError,
    UpstreamAuthError,
    UpstreamClientError,
    UpstreamNotFoundError,
    UpstreamServerError,
    UpstreamTimeoutError,
)
from weather_service.metrics import sample
from weather_service.models import WeatherRequest
from weather_service.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    ResilientInvoker,
    RetryPolicy,
    unavailable_fallback,
)

REQUEST = WeatherRequest("London,UK")


def _lenient_breaker(clock):
    return CircuitBreaker("lenient", CircuitBreakerConfig(window_size=10, minimum_calls=10), clock=clock)


class TestRetryPolicy:
    def test_default_schedule(self):
        assert list(RetryPolicy().schedule()) == [0.5, 1.0]

    def test_delays_are_capped(self):
        policy = RetryPolicy(max_attempts=5, base_delay=0.5, multiplier=2.0, max_delay=2.0)
        assert list(policy.schedule()) == [0.5, 1.0, 2.0, 2.0]

    def test_only_retryable_kinds_within_budget_are_retried(self):
        policy = RetryPolicy()
        assert policy.should_retry(FailureKind.TIMEOUT, 1)
        assert policy.should_retry(FailureKind.SERVER_ERROR, 2)
        assert not policy.should_retry(FailureKind.SERVER_ERROR, 3)
        assert not policy.should_retry(FailureKind.NOT_FOUND, 1)
        assert not policy.should_retry(FailureKind.UNAUTHORIZED, 1)

    def test_invalid_policy(self):
        with pytest.raises(ConfigurationError):
            RetryPolicy(max_attempts=0)

    def test_from_environment(self):
        env = {"RETRY_MAX_ATTEMPTS": "4", "RETRY_BASE_DELAY": "0.1", "RETRY_RETRYABLE_KINDS": "timeout"}
        with patch.dict(os.environ, env):
            policy = RetryPolicy.from_environment()

        assert policy.max_attempts == 4
        assert policy.base_delay == 0.1
        assert policy.retryable == frozenset({FailureKind.TIMEOUT})

    def test_unknown_kind_in_environment(self):
        with patch.dict(os.environ, {"RETRY_RETRYABLE_KINDS": "timeout,sometimes"}):
            with pytest.raises(ConfigurationError):
                RetryPolicy.from_environment()


def test_fails_twice_then_succeeds(clock):
    """Three attempts with 0.5s then 1.0s between them; the caller sees the success."""
    sleeps = []
    fetch = MagicMock(side_effect=[UpstreamServerError("503"), UpstreamTimeoutError("slow"), "sunny"])
    fallback = MagicMock()
    invoker = ResilientInvoker("current", RetryPolicy(), _lenient_breaker(clock), sleep=sleeps.append)

    assert invoker.call(fetch, REQUEST, fallback) == "sunny"

    assert fetch.call_count == 3
    fetch.assert_called_with(REQUEST)
    assert sleeps == [pytest.approx(0.5), pytest.approx(1.0)]
    fallback.assert_not_called()


def test_exhausted_retries_route_to_fallback_with_last_failure(clock):
    last = UpstreamServerError("still 503")
    fetch = MagicMock(side_effect=[UpstreamServerError("503"), UpstreamServerError("503"), last])
    fallback = MagicMock(return_value="fallback-value")
    invoker = ResilientInvoker("current", RetryPolicy(), _lenient_breaker(clock), sleep=lambda s: None)

    assert invoker.call(fetch, REQUEST, fallback) == "fallback-value"

    assert fetch.call_count == 3
    fallback.assert_called_once_with(last, REQUEST)


@pytest.mark.parametrize(
    "error",
    [UpstreamNotFoundError("no such city"), UpstreamAuthError("bad key"), UpstreamClientError("400")],
)
def test_non_retryable_failures_go_straight_to_fallback(clock, error):
    sleep = MagicMock()
    fetch = MagicMock(side_effect=error)
    fallback = MagicMock(return_value=None)
    invoker = ResilientInvoker("current", RetryPolicy(), _lenient_breaker(clock), sleep=sleep)

    invoker.call(fetch, REQUEST, fallback)

    assert fetch.call_count == 1
    sleep.assert_not_called()
    fallback.assert_called_once_with(error, REQUEST)


def test_unexpected_exception_is_recorded_but_not_retried(clock):
    breaker = _lenient_breaker(clock)
    bug = KeyError("oops")
    fetch = MagicMock(side_effect=bug)
    fallback = MagicMock(return_value="handled")
    invoker = ResilientInvoker("current", RetryPolicy(), breaker, sleep=lambda s: None)

    assert invoker.call(fetch, REQUEST, fallback) == "handled"

    assert fetch.call_count == 1
    assert breaker.snapshot()["failed_calls"] == 1


def test_two_failures_open_circuit_and_next_call_skips_fetcher(clock):
    """Window 2 at 100%: two failures open the circuit, the next call gets CircuitOpenError."""
    breaker = CircuitBreaker(
        "current", CircuitBreakerConfig(window_size=2, minimum_calls=2, failure_rate_threshold=100.0), clock=clock
    )
    invoker = ResilientInvoker("current", RetryPolicy(max_attempts=1), breaker, sleep=lambda s: None)
    failing = MagicMock(side_effect=UpstreamServerError("503"))
    fallback = MagicMock(return_value=None)

    invoker.call(failing, REQUEST, fallback)
    invoker.call(failing, REQUEST, fallback)
    assert breaker.state == CircuitState.OPEN

    fetch = MagicMock()
    rejections_before = sample("weather_circuit_rejections_total", {"operation": "current"})
    invoker.call(fetch, REQUEST, fallback)

    fetch.assert_not_called()
    rejected = fallback.call_args.args[0]
    assert isinstance(rejected, CircuitOpenError)
    assert rejected.operation == "current"
    assert fallback.call_args.args[1] == REQUEST
    assert sample("weather_circuit_rejections_total", {"operation": "current"}) == rejections_before + 1


def test_each_retry_attempt_is_recorded_by_the_breaker(clock):
    """With the default breaker, the second failed attempt opens it and ends the retry loop."""
    breaker = CircuitBreaker("current", CircuitBreakerConfig(), clock=clock)
    fetch = MagicMock(side_effect=UpstreamServerError("503"))
    fallback = MagicMock(return_value=None)
    invoker = ResilientInvoker("current", RetryPolicy(), breaker, sleep=lambda s: None)

    invoker.call(fetch, REQUEST, fallback)

    assert fetch.call_count == 2
    assert isinstance(fallback.call_args.args[0], CircuitOpenError)
    assert breaker.state == CircuitState.OPEN


def test_failure_that_opens_circuit_does_not_sleep_before_fallback(clock):
    """The second failure opens the default breaker, so there is no 1.0s wait for a certain rejection."""
    sleeps = []
    second = UpstreamTimeoutError("slow")
    fetch = MagicMock(side_effect=[UpstreamServerError("503"), second, "sunny"])
    fallback = MagicMock(return_value="fallback-value")
    breaker = CircuitBreaker("current", CircuitBreakerConfig(), clock=clock)
    invoker = ResilientInvoker("current", RetryPolicy(), breaker, sleep=sleeps.append)
    rejections_before = sample("weather_circuit_rejections_total", {"operation": "current"})

    with patch("weather_service.resilience.invoker._logger") as mock_logger:
        assert invoker.call(fetch, REQUEST, fallback) == "fallback-value"

    assert fetch.call_count == 2
    assert sleeps == [pytest.approx(0.5)]
    opened = fallback.call_args.args[0]
    assert isinstance(opened, CircuitOpenError)
    assert opened.__cause__ is second
    assert opened.retry_after_s == pytest.approx(10.0)
    retried = [c for c in mock_logger.warning.call_args_list if c.args[0] == "upstream_attempt_failed"]
    assert [c.kwargs["attempt"] for c in retried] == [1]
    # the circuit refused nothing; the loop stopped on its own
    assert sample("weather_circuit_rejections_total", {"operation": "current"}) == rejections_before


def test_fallback_exception_reaches_caller(clock):
    invoker = ResilientInvoker("current", RetryPolicy(max_attempts=1), _lenient_breaker(clock))
    fetch = MagicMock(side_effect=UpstreamServerError("503"))

    def fallback(exc, request):
        raise RuntimeError("fallback failed")

    with pytest.raises(RuntimeError, match="fallback failed"):
        invoker.call(fetch, REQUEST, fallback)


class TestDefaultFallback:
    def test_transient_failure_becomes_service_unavailable_with_cause(self, clock):
        cause = UpstreamTimeoutError("timed out")
        invoker = ResilientInvoker("current", RetryPolicy(max_attempts=1), _lenient_breaker(clock))

        with pytest.raises(ServiceUnavailableError) as excinfo:
            invoker.call(MagicMock(side_effect=cause), REQUEST)

        assert excinfo.value.cause is cause
        assert excinfo.value.__cause__ is cause

    def test_not_found_is_reraised_unchanged(self, clock):
        cause = UpstreamNotFoundError("city not found")
        invoker = ResilientInvoker("current", RetryPolicy(), _lenient_breaker(clock))

        with pytest.raises(UpstreamNotFoundError) as excinfo:
            invoker.call(MagicMock(side_effect=cause), REQUEST)

        assert excinfo.value is cause

    def test_factory_names_the_operation(self):
        with pytest.raises(ServiceUnavailableError, match="hourly"):
            unavailable_fallback("hourly")(CircuitOpenError("hourly"), REQUEST)


def test_fallback_invocation_is_logged(clock):
    invoker = ResilientInvoker("current", RetryPolicy(max_attempts=1), _lenient_breaker(clock))

    with patch("weather_service.resilience.invoker._logger") as mock_logger:
        invoker.call(MagicMock(side_effect=UpstreamServerError("503")), REQUEST, lambda e, r: None)

    event, = (c for c in mock_logger.warning.call_args_list if c.args[0] == "fallback_invoked")
    assert event.kwargs["operation"] == "current"
    assert event.kwargs["code"] == "upstream_server_error"
