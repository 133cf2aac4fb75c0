"""Tests for Circuit Breaker pattern implementation."""

from unittest.mock import patch

import pytest

from blockhub.core.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    get_circuit_breaker,
    reset_all_circuit_breakers,
)


async def success() -> str:
    return "ok"


async def fail() -> str:
    raise RuntimeError("fail")


class TestCircuitBreaker:
    """Tests for CircuitBreaker state transitions."""

    @pytest.fixture(autouse=True)
    def reset_circuit_breakers(self) -> None:
        """Reset global circuit breakers before each test."""
        reset_all_circuit_breakers()

    async def test_initial_state_is_closed(self) -> None:
        """Circuit should start in CLOSED state."""
        cb = CircuitBreaker(name="test")
        assert cb.state == CircuitState.CLOSED

    async def test_success_keeps_circuit_closed(self) -> None:
        cb = CircuitBreaker(name="test", failure_threshold=3)

        for _ in range(10):
            assert await cb.call(success) == "ok"

        assert cb.state == CircuitState.CLOSED

    async def test_failures_open_circuit(self) -> None:
        """Circuit should open after failure_threshold failures."""
        cb = CircuitBreaker(name="test", failure_threshold=3)

        for _ in range(3):
            with pytest.raises(RuntimeError):
                await cb.call(fail)

        assert cb.state == CircuitState.OPEN

    async def test_success_resets_failure_count(self) -> None:
        cb = CircuitBreaker(name="test", failure_threshold=2)

        with pytest.raises(RuntimeError):
            await cb.call(fail)
        await cb.call(success)
        with pytest.raises(RuntimeError):
            await cb.call(fail)

        assert cb.state == CircuitState.CLOSED

    async def test_open_circuit_rejects_immediately(self) -> None:
        """Open circuit should reject calls with CircuitOpenError."""
        cb = CircuitBreaker(name="test", failure_threshold=2)
        for _ in range(2):
            with pytest.raises(RuntimeError):
                await cb.call(fail)

        with pytest.raises(CircuitOpenError) as exc_info:
            await cb.call(success)

        assert exc_info.value.circuit == "test"
        assert exc_info.value.retry_after >= 0

    async def test_half_open_after_timeout_then_closes(self) -> None:
        """After the timeout, success_threshold successes close the circuit."""
        cb = CircuitBreaker(name="test", failure_threshold=1, success_threshold=2, timeout=30.0)
        with patch("blockhub.core.circuit_breaker.time.monotonic", return_value=100.0):
            with pytest.raises(RuntimeError):
                await cb.call(fail)
        assert cb.state == CircuitState.OPEN

        with patch("blockhub.core.circuit_breaker.time.monotonic", return_value=131.0):
            await cb.call(success)
            assert cb.state == CircuitState.HALF_OPEN
            await cb.call(success)

        assert cb.state == CircuitState.CLOSED

    async def test_half_open_failure_reopens(self) -> None:
        cb = CircuitBreaker(name="test", failure_threshold=1, timeout=30.0)
        with patch("blockhub.core.circuit_breaker.time.monotonic", return_value=100.0):
            with pytest.raises(RuntimeError):
                await cb.call(fail)

        with patch("blockhub.core.circuit_breaker.time.monotonic", return_value=131.0):
            with pytest.raises(RuntimeError):
                await cb.call(fail)

        assert cb.state == CircuitState.OPEN

    async def test_permanent_errors_not_counted(self) -> None:
        """Errors the classifier marks permanent do not open the circuit."""
        cb = CircuitBreaker(
            name="test", failure_threshold=1, error_classifier=lambda exc: "permanent"
        )

        for _ in range(5):
            with pytest.raises(RuntimeError):
                await cb.call(fail)

        assert cb.state == CircuitState.CLOSED


class TestGetCircuitBreaker:
    @pytest.fixture(autouse=True)
    def reset_circuit_breakers(self) -> None:
        reset_all_circuit_breakers()

    def test_same_name_same_instance(self) -> None:
        assert get_circuit_breaker("ec2") is get_circuit_breaker("ec2")

    def test_reset_forgets_instances(self) -> None:
        first = get_circuit_breaker("ec2")
        reset_all_circuit_breakers()
        assert get_circuit_breaker("ec2") is not first
