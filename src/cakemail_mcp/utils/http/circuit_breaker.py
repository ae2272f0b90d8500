"""Circuit breaker for API operations.

This module provides a circuit breaker that isolates the client from a
consistently failing dependency. After ``failure_threshold`` consecutive
failures the circuit opens and calls fail fast with ``CircuitOpenError``
without touching the network. Once ``reset_timeout`` has elapsed the next
call is let through as a single trial: its success closes the circuit, its
failure re-opens it with a fresh timer.

All state changes happen between suspension points, so the event loop
serializes them without an explicit lock.
"""

import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from ...exceptions import CircuitOpenError
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states.

    - CLOSED: Normal operation, requests are allowed
    - OPEN: Circuit is open, requests are blocked
    - HALF_OPEN: One trial request tests whether the service recovered
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


def _count_everything(error: BaseException) -> bool:
    return True


class CircuitBreaker:
    """Three-state circuit breaker wrapping async operations.

    :param failure_threshold: Consecutive failures that open the circuit
    :param reset_timeout: Seconds the circuit stays open before a trial
    :param failure_predicate: Decides which exceptions count as failures;
                              rejected exceptions count as successes
    :param clock: Monotonic time source in seconds
    :param metrics: Optional metrics collector for state changes
    :param name: Name used in logs and metrics
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        failure_predicate: Callable[[BaseException], bool] = _count_everything,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional[MetricsCollector] = None,
        name: str = "cakemail-api",
    ):
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.name = name
        self._failure_predicate = failure_predicate
        self._clock = clock
        self._metrics = metrics
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.opened_at: Optional[float] = None
        self._trial_in_flight = False

    def _transition(self, state: CircuitState) -> None:
        if state == self.state:
            return
        previous = self.state
        self.state = state
        if self._metrics:
            self._metrics.record_circuit_state(self.name, state.value)
        log = logger.warning if state == CircuitState.OPEN else logger.info
        log("Circuit %s: %s -> %s", self.name, previous.value, state.value)

    def _admit(self, label: str) -> bool:
        """Admit or reject a call; return True when it is the half-open trial."""
        if self.state == CircuitState.OPEN:
            elapsed = self._clock() - (self.opened_at or 0.0)
            if elapsed < self.reset_timeout:
                raise CircuitOpenError(
                    f"Circuit breaker is OPEN, rejecting {label}",
                    state=CircuitState.OPEN.value,
                    endpoint=label,
                    retry_in=self.reset_timeout - elapsed,
                )
            self._transition(CircuitState.HALF_OPEN)

        if self.state == CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(
                    f"Circuit breaker is HALF_OPEN with a trial in flight, rejecting {label}",
                    state=CircuitState.HALF_OPEN.value,
                    endpoint=label,
                )
            self._trial_in_flight = True
            return True
        return False

    def _on_success(self) -> None:
        self.consecutive_failures = 0
        if self.state != CircuitState.CLOSED:
            self.opened_at = None
            self._transition(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        self.consecutive_failures += 1
        if self.state == CircuitState.HALF_OPEN:
            self.opened_at = self._clock()
            self._transition(CircuitState.OPEN)
        elif (
            self.state == CircuitState.CLOSED
            and self.consecutive_failures >= self.failure_threshold
        ):
            self.opened_at = self._clock()
            self._transition(CircuitState.OPEN)

    async def execute(
        self, operation: Callable[[], Awaitable[T]], label: str = "operation"
    ) -> T:
        """Run ``operation`` through the breaker.

        :param operation: Zero-argument coroutine function
        :param label: Name of the call for errors and logs
        :return: The operation's result
        :raises CircuitOpenError: If the circuit rejects the call
        """
        is_trial = self._admit(label)
        try:
            result = await operation()
        except Exception as e:
            if self._failure_predicate(e):
                self._on_failure()
            else:
                self._on_success()
            raise
        else:
            self._on_success()
            return result
        finally:
            if is_trial:
                self._trial_in_flight = False

    def reset(self) -> None:
        """Force the breaker back to CLOSED."""
        self.consecutive_failures = 0
        self.opened_at = None
        self._trial_in_flight = False
        self._transition(CircuitState.CLOSED)

    def get_state(self) -> Dict[str, Any]:
        """Return the breaker state and counters."""
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
            "opened_at": self.opened_at,
        }
