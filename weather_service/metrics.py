"""Prometheus registry shared by every component of the service."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

REGISTRY = CollectorRegistry(auto_describe=True)

ERRORS = Counter(
    "weather_errors_total",
    "Errors marshalled to callers, by error code",
    ["code"],
    registry=REGISTRY,
)

UPSTREAM_ATTEMPTS = Counter(
    "weather_upstream_attempts_total",
    "Upstream fetch attempts, by operation and outcome",
    ["operation", "outcome"],
    registry=REGISTRY,
)

UPSTREAM_RETRIES = Counter(
    "weather_upstream_retries_total",
    "Upstream fetch retries scheduled after a retryable failure",
    ["operation"],
    registry=REGISTRY,
)

FALLBACKS = Counter(
    "weather_fallbacks_total",
    "Fallback invocations, by operation and triggering error code",
    ["operation", "code"],
    registry=REGISTRY,
)

CIRCUIT_REJECTIONS = Counter(
    "weather_circuit_rejections_total",
    "Calls rejected by an open circuit",
    ["operation"],
    registry=REGISTRY,
)

CIRCUIT_STATE = Gauge(
    "weather_circuit_state",
    "Circuit phase per operation (0=closed, 1=half_open, 2=open)",
    ["operation"],
    registry=REGISTRY,
)


def sample(name: str, labels: dict[str, str] | None = None) -> float:
    """Read the current value of a sample, 0.0 when it was never touched."""
    value = REGISTRY.get_sample_value(name, labels or {})
    return value if value is not None else 0.0


def render_latest() -> bytes:
    return generate_latest(REGISTRY)
