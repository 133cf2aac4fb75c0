"""Retryable error classification with exponential backoff retry.

Classifies provider errors as retryable (throttling, transient 5xx,
connection drops) or permanent (missing resources, bad parameters,
authorization). Only gateway adapters retry; the lifecycle coordinator
never re-issues a mutating call.

Usage:
    from blockhub.core.retryable import with_retry

    volumes = await with_retry(
        lambda: client.describe_volumes(VolumeIds=[volume_id]),
        circuit_breaker="ec2",
    )
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from blockhub.core.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    get_circuit_breaker,
)
from blockhub.core.errors import InvalidArgumentError, ResourceNotFoundError
from blockhub.logging_schema import ErrorClass

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# EC2 (botocore) error classification
# =============================================================================

EC2_RETRYABLE_CODES = frozenset({
    "RequestLimitExceeded",
    "Throttling",
    "ThrottlingException",
    "ServiceUnavailable",
    "Unavailable",
    "InternalError",
    "InternalFailure",
    "RequestTimeout",
    "RequestTimeoutException",
    "IncorrectState",
})

# Rejected before the request was applied; safe to re-send even a create
EC2_THROTTLING_CODES = frozenset({
    "RequestLimitExceeded",
    "Throttling",
    "ThrottlingException",
})

EC2_NON_RETRYABLE_CODES = frozenset({
    "AuthFailure",
    "UnauthorizedOperation",
    "InvalidParameter",
    "InvalidParameterValue",
    "InvalidParameterCombination",
    "MissingParameter",
    "VolumeLimitExceeded",
    "SnapshotLimitExceeded",
    "VolumeInUse",
    "InvalidVolume.ZoneMismatch",
})

BOTOCORE_RETRYABLE = (
    EndpointConnectionError,
    ConnectionClosedError,
    ReadTimeoutError,
)


def client_error_code(exc: ClientError) -> str:
    """Extract the provider error code from a botocore ClientError."""
    return exc.response.get("Error", {}).get("Code", "")


def is_not_found_code(code: str) -> bool:
    """EC2 reports missing resources as <Resource>.NotFound."""
    return code.endswith(".NotFound")


def classify_error(exc: Exception) -> str:
    """Classify error as 'retryable', 'permanent', or 'unknown'.

    Returns:
        'retryable': Transient error, can retry
        'permanent': Permanent error, should not retry
        'unknown': Cannot classify
    """
    if isinstance(exc, asyncio.TimeoutError):
        return "retryable"

    if isinstance(exc, (ResourceNotFoundError, InvalidArgumentError)):
        return "permanent"

    if isinstance(exc, BOTOCORE_RETRYABLE):
        return "retryable"

    if isinstance(exc, ClientError):
        code = client_error_code(exc)
        if code in EC2_RETRYABLE_CODES:
            return "retryable"
        if code in EC2_NON_RETRYABLE_CODES or is_not_found_code(code):
            return "permanent"
        if code.endswith(".Malformed"):
            return "permanent"
        return "unknown"

    return "unknown"


def classify_mutation_error(exc: Exception) -> str:
    """Classify the failure of a non-idempotent call (create, attach, detach).

    Only throttling and refused connections are known to have left the
    provider untouched. A dropped connection, read timeout or 5xx may
    follow an applied request, so those become 'unknown' and are not
    re-sent.
    """
    if isinstance(exc, ClientError):
        if client_error_code(exc) in EC2_THROTTLING_CODES:
            return "retryable"
    elif isinstance(exc, EndpointConnectionError):
        return "retryable"

    verdict = classify_error(exc)
    return "unknown" if verdict == "retryable" else verdict


def is_retryable(exc: Exception) -> bool:
    """Check if error is transient and the call can be re-issued."""
    return classify_error(exc) == "retryable"


def error_class_of(exc: Exception) -> ErrorClass:
    """Map an exception onto the log/metric ErrorClass label."""
    if isinstance(exc, ResourceNotFoundError):
        return ErrorClass.NOT_FOUND
    if isinstance(exc, ClientError) and is_not_found_code(client_error_code(exc)):
        return ErrorClass.NOT_FOUND
    if isinstance(exc, asyncio.TimeoutError):
        return ErrorClass.TIMEOUT
    if classify_error(exc) == "retryable":
        return ErrorClass.TRANSIENT
    return ErrorClass.PERMANENT


# =============================================================================
# Retry utility
# =============================================================================


async def with_retry(
    coro_factory: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    circuit_breaker: str | CircuitBreaker | None = None,
    classifier: Callable[[Exception], str] = classify_error,
) -> T:
    """Execute async operation with exponential backoff retry.

    Only errors the classifier reports as 'retryable' are retried;
    'permanent' and 'unknown' errors are raised immediately. Pass
    classify_mutation_error for calls that must not be issued twice after
    an ambiguous failure.

    Args:
        coro_factory: Factory function that creates new coroutine for each attempt
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 30.0)
        circuit_breaker: Breaker instance, registry name, or None to disable
        classifier: Decides which errors are retried (default: classify_error)

    Raises:
        CircuitOpenError: If circuit breaker is open
        Exception: The last exception if all retries fail, or immediately
                   for non-retryable errors
    """
    if isinstance(circuit_breaker, CircuitBreaker):
        cb: CircuitBreaker | None = circuit_breaker
    elif circuit_breaker:
        cb = get_circuit_breaker(circuit_breaker, error_classifier=classify_error)
    else:
        cb = None

    attempt = 0
    while True:
        try:
            if cb:
                return await cb.call(coro_factory)
            return await coro_factory()
        except CircuitOpenError:
            raise
        except Exception as exc:
            error_class = classifier(exc)

            if error_class != "retryable":
                raise

            if attempt >= max_retries:
                logger.error(
                    "Max retries exceeded (%d attempts): %s",
                    attempt + 1,
                    exc,
                    extra={"error_class": error_class, "attempt": attempt + 1},
                )
                raise

            delay = min(base_delay * (2**attempt), max_delay)
            # Jitter: 50% ~ 150% of delay
            jittered_delay = delay * (0.5 + random.random())
            logger.warning(
                "Retryable error (attempt %d/%d, retry in %.1fs): %s",
                attempt + 1,
                max_retries + 1,
                jittered_delay,
                exc,
                extra={
                    "error_class": error_class,
                    "attempt": attempt + 1,
                    "delay": jittered_delay,
                },
            )
            await asyncio.sleep(jittered_delay)
            attempt += 1
