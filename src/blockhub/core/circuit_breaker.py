"""Circuit Breaker for remote control-plane calls.

States:
- CLOSED: Calls pass through
- OPEN: Provider judged unhealthy, calls are rejected without reaching it
- HALF_OPEN: Probing recovery, a few successes close the circuit again

Each EC2Gateway owns its breaker, so gateways with different credentials
trip independently; the named registry serves ad-hoc with_retry callers.
Permanent errors (missing resources, invalid parameters) do not count as
failures, so a caller probing for deleted volumes cannot trip the circuit.

Usage:
    from blockhub.core.circuit_breaker import get_circuit_breaker

    cb = get_circuit_breaker("snapshots", error_classifier=classify_error)
    volumes = await cb.call(lambda: client.describe_volumes())
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from blockhub.logging_schema import Component, LogEvent
from blockhub.metrics.collector import (
    CIRCUIT_BREAKER_CALLS_TOTAL,
    CIRCUIT_BREAKER_REJECTIONS_TOTAL,
    CIRCUIT_BREAKER_STATE,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STATE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when the circuit is open and the call is rejected."""

    def __init__(self, circuit: str, retry_after: float) -> None:
        self.circuit = circuit
        self.retry_after = retry_after
        super().__init__(f"Circuit {circuit} open, retry after {retry_after:.1f}s")


class CircuitBreaker:
    """Failure-counting breaker around one remote provider.

    Args:
        name: Circuit name (metric label and log field)
        failure_threshold: Consecutive failures that open the circuit
        success_threshold: HALF_OPEN successes needed to close it
        timeout: Seconds spent OPEN before probing
        error_classifier: Returns 'permanent', 'retryable' or 'unknown';
            permanent errors are passed through without counting.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout: float = 60.0,
        error_classifier: Callable[[Exception], str] | None = None,
    ) -> None:
        self.name = name
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self._error_classifier = error_classifier

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _set_state(self, state: CircuitState, **fields: object) -> None:
        logger.info(
            "Circuit %s: %s -> %s",
            self.name,
            self._state.value,
            state.value,
            extra={
                "event": LogEvent.STATE_CHANGED,
                "component": Component.GATEWAY,
                "circuit": self.name,
                **fields,
            },
        )
        self._state = state
        CIRCUIT_BREAKER_STATE.labels(circuit=self.name).set(_STATE_VALUES[state.value])

    def _retry_after(self) -> float:
        elapsed = time.monotonic() - (self._opened_at or 0.0)
        return max(0.0, self.timeout - elapsed)

    async def call(self, coro_factory: Callable[[], Awaitable[T]]) -> T:
        """Run one call under breaker protection.

        Raises:
            CircuitOpenError: If the circuit is open
            Exception: Whatever the call raised
        """
        async with self._lock:
            if self._state == CircuitState.OPEN and self._retry_after() == 0.0:
                self._successes = 0
                self._set_state(CircuitState.HALF_OPEN)

            if self._state == CircuitState.OPEN:
                retry_after = self._retry_after()
                CIRCUIT_BREAKER_REJECTIONS_TOTAL.labels(circuit=self.name).inc()
                logger.warning(
                    "Circuit %s open, rejecting call",
                    self.name,
                    extra={
                        "event": LogEvent.OPERATION_FAILED,
                        "circuit": self.name,
                        "retry_after": retry_after,
                    },
                )
                raise CircuitOpenError(self.name, retry_after)

        try:
            result = await coro_factory()
        except Exception as exc:
            CIRCUIT_BREAKER_CALLS_TOTAL.labels(circuit=self.name, result="failure").inc()
            if self._error_classifier and self._error_classifier(exc) == "permanent":
                raise
            await self._on_failure()
            raise

        CIRCUIT_BREAKER_CALLS_TOTAL.labels(circuit=self.name, result="success").inc()
        await self._on_success()
        return result

    async def _on_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.success_threshold:
                    self._failures = 0
                    self._set_state(CircuitState.CLOSED, success_count=self._successes)
            else:
                self._failures = 0

    async def _on_failure(self) -> None:
        async with self._lock:
            self._failures += 1
            if self._state == CircuitState.HALF_OPEN or (
                self._state == CircuitState.CLOSED
                and self._failures >= self.failure_threshold
            ):
                self._opened_at = time.monotonic()
                self._set_state(CircuitState.OPEN, failure_count=self._failures)


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(
    name: str = "default",
    error_classifier: Callable[[Exception], str] | None = None,
) -> CircuitBreaker:
    """Get or create a circuit breaker by name.

    The classifier is only used when the breaker is first created.
    """
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name=name, error_classifier=error_classifier)
    return _circuit_breakers[name]


def reset_all_circuit_breakers() -> None:
    """Forget every breaker (for tests)."""
    _circuit_breakers.clear()
