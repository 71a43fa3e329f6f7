"""Retry and circuit breaking for upstream calls."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState, Permit
from .invoker import ResilientInvoker, classify, unavailable_fallback
from .retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "Permit",
    "ResilientInvoker",
    "RetryPolicy",
    "classify",
    "unavailable_fallback",
]
