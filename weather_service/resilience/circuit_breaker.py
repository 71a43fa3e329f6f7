"""Count-based sliding-window circuit breaker.

One instance guards one logical upstream operation and is shared by every
caller of it. All transitions happen under a single lock, so callers always
observe one phase and one failure window.

Each permission handed out carries the generation of the phase it was issued
in. Outcomes reported with a permit from an earlier generation are dropped,
so a slow call that started while Closed cannot close a circuit that has
since opened.
"""

from __future__ import annotations

import os
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..error_mapping import ConfigurationError, FailureKind
from ..logging_utils import get_logger
from ..metrics import CIRCUIT_STATE
from .retry import _parse_kinds

_logger = get_logger(__name__)


class CircuitState(str, Enum):
    CLOSED = "closed"
    HALF_OPEN = "half_open"
    OPEN = "open"


_GAUGE_VALUE = {CircuitState.CLOSED: 0, CircuitState.HALF_OPEN: 1, CircuitState.OPEN: 2}


@dataclass(frozen=True)
class CircuitBreakerConfig:
    window_size: int = 2
    minimum_calls: int = 2
    failure_rate_threshold: float = 50.0  # percent
    open_duration_s: float = 10.0
    half_open_max_calls: int = 1
    ignored: frozenset[FailureKind] = field(default=frozenset({FailureKind.NOT_FOUND}))

    def __post_init__(self) -> None:
        if self.window_size < 1 or self.half_open_max_calls < 1:
            raise ConfigurationError("window_size and half_open_max_calls must be at least 1")
        if not 1 <= self.minimum_calls <= self.window_size:
            raise ConfigurationError("minimum_calls must be between 1 and window_size")
        if not 0 < self.failure_rate_threshold <= 100:
            raise ConfigurationError("failure_rate_threshold must be in (0, 100]")

    @classmethod
    def from_environment(cls) -> CircuitBreakerConfig:
        return cls(
            window_size=int(os.getenv("CIRCUIT_WINDOW_SIZE", "2")),
            minimum_calls=int(os.getenv("CIRCUIT_MINIMUM_CALLS", "2")),
            failure_rate_threshold=float(os.getenv("CIRCUIT_FAILURE_RATE_THRESHOLD", "50")),
            open_duration_s=float(os.getenv("CIRCUIT_OPEN_DURATION", "10")),
            half_open_max_calls=int(os.getenv("CIRCUIT_HALF_OPEN_MAX_CALLS", "1")),
            ignored=_parse_kinds(os.getenv("CIRCUIT_IGNORED_KINDS"), frozenset({FailureKind.NOT_FOUND})),
        )


@dataclass(frozen=True)
class Permit:
    generation: int
    trial: bool = False


class CircuitBreaker:
    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._generation = 0
        self._window: deque[bool] = deque(maxlen=self.config.window_size)  # True = failure
        self._opened_at = 0.0
        self._trials_in_flight = 0
        CIRCUIT_STATE.labels(operation=name).set(_GAUGE_VALUE[self._state])

    # -- state inspection -------------------------------------------------

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def retry_after(self) -> float:
        """Seconds until an open circuit admits trial calls, 0 when not open."""
        with self._lock:
            if self._state != CircuitState.OPEN:
                return 0.0
            return max(0.0, self._opened_at + self.config.open_duration_s - self._clock())

    def failure_rate(self) -> float:
        with self._lock:
            return self._failure_rate()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            self._maybe_half_open()
            return {
                "state": self._state.value,
                "failure_rate": round(self._failure_rate(), 1),
                "buffered_calls": len(self._window),
                "failed_calls": sum(self._window),
            }

    # -- permission and outcomes ------------------------------------------

    def try_acquire(self) -> Permit | None:
        """Ask to call the upstream. None means the call must fail fast."""
        with self._lock:
            self._maybe_half_open()
            if self._state == CircuitState.CLOSED:
                return Permit(self._generation)
            if self._state == CircuitState.HALF_OPEN and self._trials_in_flight < self.config.half_open_max_calls:
                self._trials_in_flight += 1
                return Permit(self._generation, trial=True)
            return None

    def record_success(self, permit: Permit) -> None:
        with self._lock:
            if permit.generation != self._generation:
                return
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED)
                return
            self._window.append(False)
            self._evaluate()

    def record_failure(self, permit: Permit, kind: FailureKind = FailureKind.UNEXPECTED) -> None:
        with self._lock:
            if permit.generation != self._generation:
                return
            if kind in self.config.ignored:
                if permit.trial:
                    self._trials_in_flight -= 1
                return
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                return
            self._window.append(True)
            self._evaluate()

    def reset(self) -> None:
        with self._lock:
            self._transition(CircuitState.CLOSED)

    # -- internals (lock held) --------------------------------------------

    def _failure_rate(self) -> float:
        if not self._window:
            return 0.0
        return 100.0 * sum(self._window) / len(self._window)

    def _evaluate(self) -> None:
        if len(self._window) >= self.config.minimum_calls and self._failure_rate() >= self.config.failure_rate_threshold:
            self._transition(CircuitState.OPEN)

    def _maybe_half_open(self) -> None:
        if self._state == CircuitState.OPEN and self._clock() - self._opened_at >= self.config.open_duration_s:
            self._transition(CircuitState.HALF_OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._trials_in_flight = 0
        if new_state == CircuitState.OPEN:
            self._opened_at = self._clock()
        if new_state != CircuitState.HALF_OPEN:
            self._window.clear()
        CIRCUIT_STATE.labels(operation=self.name).set(_GAUGE_VALUE[new_state])
        _logger.info("circuit_transition", operation=self.name, from_state=old_state.value, to_state=new_state.value)
