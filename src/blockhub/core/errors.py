"""Error handling module for blockhub.

This module defines error codes and exception classes shared by the
coordinator, the reference store and gateway adapters.

Taxonomy:
- INVALID_ARGUMENT: malformed identifier or missing option (raised before
  any remote call)
- NOT_FOUND: referenced resource absent (coordinator turns this into a
  negative result; gateways raise it)
- POLL_TIMEOUT: attempt budget exhausted before the target state
- POLL_CANCELLED: caller aborted an in-flight wait
- REMOTE_FAILURE: provider error unrelated to existence (never retried by
  the coordinator)

Usage:
    from blockhub.core.errors import InvalidArgumentError, PollTimeoutError

    raise InvalidArgumentError("device must not be empty")

    try:
        await coordinator.attach_volume(volume_id, node_id, options)
    except PollTimeoutError as exc:
        log_last_state(exc.last)
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    POLL_TIMEOUT = "POLL_TIMEOUT"
    POLL_CANCELLED = "POLL_CANCELLED"
    REMOTE_FAILURE = "REMOTE_FAILURE"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class BlockHubError(Exception):
    """Base exception for blockhub.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
    """

    def __init__(self, code: ErrorCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(message)

    def to_detail(self) -> ErrorDetail:
        """Convert exception to ErrorDetail model."""
        return ErrorDetail(code=self.code.value, message=self.message)


class InvalidArgumentError(BlockHubError):
    """Malformed identifier or missing required option."""

    def __init__(self, message: str = "Invalid argument") -> None:
        super().__init__(ErrorCode.INVALID_ARGUMENT, message)


class ResourceNotFoundError(BlockHubError):
    """Referenced remote resource does not exist."""

    def __init__(self, resource_id: str = "", message: str | None = None) -> None:
        self.resource_id = resource_id
        super().__init__(
            ErrorCode.NOT_FOUND, message or f"Resource not found: {resource_id}"
        )


class PollTimeoutError(BlockHubError):
    """Attempt budget exhausted before the awaited condition held.

    Attributes:
        condition: Name of the awaited condition
        attempts: Number of refreshes issued
        last: Last observed object (for diagnostics)
    """

    def __init__(self, condition: str, attempts: int, last: Any) -> None:
        self.condition = condition
        self.attempts = attempts
        self.last = last
        super().__init__(
            ErrorCode.POLL_TIMEOUT,
            f"Condition {condition} not reached after {attempts} attempts",
        )


class PollCancelledError(BlockHubError):
    """Caller cancelled a wait before the condition held."""

    def __init__(self, condition: str, last: Any) -> None:
        self.condition = condition
        self.last = last
        super().__init__(ErrorCode.POLL_CANCELLED, f"Wait for {condition} cancelled")


class RemoteFailureError(BlockHubError):
    """Provider reported an error unrelated to existence.

    Attributes:
        provider_code: Provider-specific error code (e.g. VolumeLimitExceeded)
    """

    def __init__(self, message: str = "Remote call failed", provider_code: str = "") -> None:
        self.provider_code = provider_code
        super().__init__(ErrorCode.REMOTE_FAILURE, message)
