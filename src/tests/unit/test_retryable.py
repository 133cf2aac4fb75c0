"""Tests for retryable error classification and retry logic."""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from blockhub.core.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    get_circuit_breaker,
    reset_all_circuit_breakers,
)
from blockhub.core.errors import ResourceNotFoundError
from blockhub.core.retryable import (
    classify_error,
    classify_mutation_error,
    error_class_of,
    is_retryable,
    with_retry,
)
from blockhub.logging_schema import ErrorClass


def client_error(code: str, operation: str = "DescribeVolumes") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestClassifyError:
    """Tests for EC2 error classification."""

    @pytest.mark.parametrize(
        "code",
        ["RequestLimitExceeded", "Throttling", "Unavailable", "InternalError", "ServiceUnavailable"],
    )
    def test_transient_codes_are_retryable(self, code: str) -> None:
        exc = client_error(code)
        assert classify_error(exc) == "retryable"
        assert is_retryable(exc) is True

    @pytest.mark.parametrize(
        "code",
        [
            "InvalidVolume.NotFound",
            "InvalidSnapshot.NotFound",
            "InvalidInstanceID.NotFound",
            "InvalidVolumeID.Malformed",
            "VolumeLimitExceeded",
            "UnauthorizedOperation",
            "InvalidParameterValue",
        ],
    )
    def test_permanent_codes(self, code: str) -> None:
        assert classify_error(client_error(code)) == "permanent"

    def test_unrecognized_code_is_unknown(self) -> None:
        assert classify_error(client_error("SomethingNew")) == "unknown"

    def test_connection_error_is_retryable(self) -> None:
        exc = EndpointConnectionError(endpoint_url="https://ec2.us-east-1.amazonaws.com")
        assert classify_error(exc) == "retryable"

    def test_asyncio_timeout_is_retryable(self) -> None:
        assert classify_error(asyncio.TimeoutError()) == "retryable"

    def test_domain_not_found_is_permanent(self) -> None:
        assert classify_error(ResourceNotFoundError("us-east-1/vol-1")) == "permanent"

    def test_generic_exception_is_unknown(self) -> None:
        assert classify_error(ValueError("x")) == "unknown"


class TestClassifyMutationError:
    """Non-idempotent calls retry only what was certainly not applied."""

    @pytest.mark.parametrize("code", ["RequestLimitExceeded", "Throttling", "ThrottlingException"])
    def test_throttling_is_retryable(self, code: str) -> None:
        assert classify_mutation_error(client_error(code, "CreateVolume")) == "retryable"

    def test_refused_connection_is_retryable(self) -> None:
        exc = EndpointConnectionError(endpoint_url="https://ec2.us-east-1.amazonaws.com")
        assert classify_mutation_error(exc) == "retryable"

    @pytest.mark.parametrize(
        "exc",
        [
            ReadTimeoutError(endpoint_url="https://ec2.us-east-1.amazonaws.com"),
            ConnectionClosedError(endpoint_url="https://ec2.us-east-1.amazonaws.com"),
            asyncio.TimeoutError(),
        ],
    )
    def test_ambiguous_transport_errors_are_unknown(self, exc: Exception) -> None:
        assert classify_mutation_error(exc) == "unknown"

    @pytest.mark.parametrize("code", ["InternalError", "ServiceUnavailable", "IncorrectState"])
    def test_server_side_codes_are_unknown(self, code: str) -> None:
        assert classify_mutation_error(client_error(code, "AttachVolume")) == "unknown"

    def test_permanent_stays_permanent(self) -> None:
        exc = client_error("InvalidVolume.NotFound", "AttachVolume")
        assert classify_mutation_error(exc) == "permanent"


class TestErrorClassOf:
    def test_not_found(self) -> None:
        assert error_class_of(client_error("InvalidVolume.NotFound")) == ErrorClass.NOT_FOUND

    def test_transient(self) -> None:
        assert error_class_of(client_error("RequestLimitExceeded")) == ErrorClass.TRANSIENT

    def test_permanent(self) -> None:
        assert error_class_of(client_error("VolumeLimitExceeded")) == ErrorClass.PERMANENT


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip backoff sleeps."""
    with patch("blockhub.core.retryable.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestWithRetry:
    """Tests for with_retry()."""

    @pytest.fixture(autouse=True)
    def reset_circuit_breakers(self) -> None:
        reset_all_circuit_breakers()

    async def test_success_first_try(self) -> None:
        call = AsyncMock(return_value="ok")
        assert await with_retry(call) == "ok"
        assert call.await_count == 1

    async def test_retries_transient_then_succeeds(self, no_sleep: AsyncMock) -> None:
        call = AsyncMock(side_effect=[client_error("RequestLimitExceeded"), "ok"])

        assert await with_retry(call, max_retries=3) == "ok"
        assert call.await_count == 2
        assert no_sleep.await_count == 1

    async def test_permanent_error_not_retried(self) -> None:
        call = AsyncMock(side_effect=client_error("InvalidVolume.NotFound"))

        with pytest.raises(ClientError):
            await with_retry(call, max_retries=3)

        assert call.await_count == 1

    async def test_unknown_error_not_retried(self) -> None:
        """A create/attach that failed ambiguously must not be re-issued."""
        call = AsyncMock(side_effect=client_error("SomethingNew"))

        with pytest.raises(ClientError):
            await with_retry(call, max_retries=3)

        assert call.await_count == 1

    async def test_gives_up_after_max_retries(self) -> None:
        call = AsyncMock(side_effect=client_error("Throttling"))

        with pytest.raises(ClientError):
            await with_retry(call, max_retries=2)

        assert call.await_count == 3

    async def test_backoff_is_capped(self, no_sleep: AsyncMock) -> None:
        call = AsyncMock(side_effect=client_error("Throttling"))

        with pytest.raises(ClientError):
            await with_retry(call, max_retries=4, base_delay=1.0, max_delay=2.0)

        delays = [c.args[0] for c in no_sleep.await_args_list]
        assert len(delays) == 4
        assert all(d <= 3.0 for d in delays)  # 150% of max_delay

    async def test_not_found_does_not_trip_circuit(self) -> None:
        """Permanent errors pass through the breaker without counting."""
        call = AsyncMock(side_effect=client_error("InvalidVolume.NotFound"))

        for _ in range(10):
            with pytest.raises(ClientError):
                await with_retry(call, circuit_breaker="test-ec2")

        assert get_circuit_breaker("test-ec2").state == CircuitState.CLOSED

    async def test_open_circuit_is_not_retried(self) -> None:
        cb = get_circuit_breaker("test-open")
        cb.failure_threshold = 1
        failing = AsyncMock(side_effect=RuntimeError("down"))
        with pytest.raises(RuntimeError):
            await with_retry(failing, circuit_breaker="test-open")

        call = AsyncMock(return_value="ok")
        with pytest.raises(CircuitOpenError):
            await with_retry(call, circuit_breaker="test-open", max_retries=3)

        call.assert_not_awaited()

    async def test_custom_classifier(self) -> None:
        call = AsyncMock(
            side_effect=ReadTimeoutError(endpoint_url="https://ec2.us-east-1.amazonaws.com")
        )

        with pytest.raises(ReadTimeoutError):
            await with_retry(call, max_retries=3, classifier=classify_mutation_error)

        assert call.await_count == 1

    async def test_breaker_instance(self) -> None:
        """A breaker passed by instance is used instead of the registry."""
        cb = CircuitBreaker("owned", failure_threshold=1)
        failing = AsyncMock(side_effect=RuntimeError("down"))
        with pytest.raises(RuntimeError):
            await with_retry(failing, circuit_breaker=cb)

        assert cb.state == CircuitState.OPEN
        assert get_circuit_breaker("owned").state == CircuitState.CLOSED
