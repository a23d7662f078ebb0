"""Circuit breaker guarding individual model adapters."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

import structlog

from Entropy_decomp.observability.metrics import set_adapter_circuit_state

from .errors import AdapterUnavailableError

logger = structlog.get_logger(__name__)


class CircuitState(str, Enum):
    """Finite state machine for circuit breakers."""

    CLOSED = "closed"
    HALF_OPEN = "half_open"
    OPEN = "open"


@dataclass(slots=True)
class CircuitBreaker:
    """Circuit breaker with half-open recovery, keyed by adapter id."""

    adapter_id: str
    failure_threshold: int = 3
    reset_timeout_seconds: float = 30.0
    half_open_max_calls: int = 1
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _half_open_calls: int = field(default=0, init=False)

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self._ready_for_half_open():
            return CircuitState.HALF_OPEN
        return self._state

    def _transition(self, state: CircuitState) -> None:
        if self._state == state:
            return
        logger.info(
            "adapters.circuit.transition",
            adapter_id=self.adapter_id,
            previous_state=self._state.value,
            next_state=state.value,
        )
        self._state = state
        if state is CircuitState.OPEN:
            self._opened_at = self.clock()
            self._half_open_calls = 0
        elif state is CircuitState.CLOSED:
            self._failure_count = 0
            self._opened_at = None
            self._half_open_calls = 0
        set_adapter_circuit_state(self.adapter_id, state.value)

    def _ready_for_half_open(self) -> bool:
        if self._opened_at is None:
            return False
        return (self.clock() - self._opened_at) >= self.reset_timeout_seconds

    def allows_call(self) -> bool:
        """Return whether a call may proceed, without consuming a half-open slot."""
        state = self.state
        if state is CircuitState.OPEN:
            return False
        if state is CircuitState.HALF_OPEN:
            return self._half_open_calls < self.half_open_max_calls
        return True

    def before_call(self) -> None:
        if self._state is CircuitState.OPEN:
            if not self._ready_for_half_open():
                raise AdapterUnavailableError(
                    f"Circuit breaker open for adapter {self.adapter_id}"
                )
            self._transition(CircuitState.HALF_OPEN)
        if self._state is CircuitState.HALF_OPEN:
            self._half_open_calls += 1
            if self._half_open_calls > self.half_open_max_calls:
                raise AdapterUnavailableError(
                    f"Circuit breaker half-open limit reached for adapter {self.adapter_id}"
                )

    def record_success(self) -> None:
        self._transition(CircuitState.CLOSED)

    def record_failure(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return
        self._failure_count += 1
        logger.warning(
            "adapters.circuit.failure",
            adapter_id=self.adapter_id,
            failure_count=self._failure_count,
            threshold=self.failure_threshold,
        )
        if self._failure_count >= self.failure_threshold:
            self._transition(CircuitState.OPEN)


__all__ = ["CircuitBreaker", "CircuitState"]
