"""Bounded wait for a remote resource to reach a target state.

Remote control planes acknowledge a mutation before applying it. After a
mutating call the coordinator hands the returned snapshot to
ConditionPoller.wait(), which re-fetches it until `ready` holds:

    volume = await poller.wait(
        created,
        ready=volume_available,
        refresh=lambda v: describe_one(v.scope, v.volume_id),
        condition="volume_available",
        operation="create_volume",
    )

Budget: the initial check is free; at most `max_attempts` refreshes
follow, each preceded by a `delay` sleep. Worst case is therefore
max_attempts * delay plus the refresh latency.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from blockhub.config import PollerConfig, get_settings
from blockhub.core.errors import (
    PollCancelledError,
    PollTimeoutError,
    RemoteFailureError,
    ResourceNotFoundError,
)
from blockhub.logging_schema import Component, ErrorClass, LogEvent
from blockhub.metrics.collector import (
    POLL_DURATION,
    POLL_REFRESHES_TOTAL,
    POLL_RESULTS_TOTAL,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ConditionPoller:
    """Retry-until-predicate primitive.

    Args:
        config: Attempt/delay budgets. Defaults to get_settings().poller.
    """

    def __init__(self, config: PollerConfig | None = None) -> None:
        self._config = config or get_settings().poller

    @property
    def config(self) -> PollerConfig:
        return self._config

    async def wait(
        self,
        obj: T,
        ready: Callable[[T], bool],
        refresh: Callable[[T], Awaitable[T]],
        *,
        condition: str,
        operation: str = "",
        max_attempts: int | None = None,
        delay: float | None = None,
        not_found_is_ready: bool = False,
        failed: Callable[[T], bool] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> T | None:
        """Wait until `ready(obj)` holds.

        Args:
            obj: Last known state (checked before any refresh)
            ready: Target-state predicate
            refresh: Re-fetches the current state of obj
            condition: Name of the awaited condition (metric label)
            operation: Budget override key in PollerConfig.overrides
            max_attempts: Refresh budget; overrides the configured one
            delay: Seconds between refreshes; overrides the configured one
            not_found_is_ready: Treat a vanished resource as satisfied
                (deletion waits)
            failed: Terminal-failure predicate; ends the wait early
            cancel: Set by the caller to abort the wait

        Returns:
            The object that satisfied `ready`, or None when the resource
            vanished and not_found_is_ready is set.

        Raises:
            PollTimeoutError: Budget exhausted; carries the last object
            PollCancelledError: `cancel` was set during the wait
            RemoteFailureError: `failed` held for an observed object
            ResourceNotFoundError: Resource vanished and not_found_is_ready
                is not set
        """
        budget = self._config.budget_for(operation)
        max_attempts = budget.max_attempts if max_attempts is None else max_attempts
        delay = budget.delay if delay is None else delay

        start = time.monotonic()
        last = obj
        attempts = 0

        try:
            while True:
                if failed is not None and failed(last):
                    raise RemoteFailureError(
                        f"{condition}: resource entered a failed state: {last!r}",
                        provider_code="failed",
                    )
                if ready(last):
                    self._record(condition, "satisfied", start)
                    if attempts:
                        logger.debug(
                            "Condition %s satisfied after %d refreshes",
                            condition,
                            attempts,
                            extra={
                                "event": LogEvent.POLL_SATISFIED,
                                "component": Component.POLLER,
                                "condition": condition,
                                "attempts": attempts,
                            },
                        )
                    return last

                if attempts >= max_attempts:
                    self._record(condition, "timeout", start)
                    logger.warning(
                        "Condition %s not reached after %d refreshes",
                        condition,
                        attempts,
                        extra={
                            "event": LogEvent.POLL_TIMEOUT,
                            "component": Component.POLLER,
                            "error_class": ErrorClass.TIMEOUT,
                            "condition": condition,
                            "attempts": attempts,
                        },
                    )
                    raise PollTimeoutError(condition, attempts, last)

                if attempts == 0:
                    logger.info(
                        "Waiting for %s (budget %d x %.1fs)",
                        condition,
                        max_attempts,
                        delay,
                        extra={
                            "event": LogEvent.POLL_STARTED,
                            "component": Component.POLLER,
                            "condition": condition,
                        },
                    )

                await self._sleep(delay, cancel, condition, last)
                attempts += 1
                POLL_REFRESHES_TOTAL.labels(condition=condition).inc()
                try:
                    last = await refresh(last)
                except ResourceNotFoundError:
                    if not not_found_is_ready:
                        self._record(condition, "not_found", start)
                        raise
                    self._record(condition, "satisfied", start)
                    return None
        except PollCancelledError:
            self._record(condition, "cancelled", start)
            logger.info(
                "Wait for %s cancelled",
                condition,
                extra={
                    "event": LogEvent.POLL_CANCELLED,
                    "component": Component.POLLER,
                    "condition": condition,
                    "attempts": attempts,
                },
            )
            raise
        except RemoteFailureError as exc:
            self._record(condition, "failed", start)
            logger.error(
                "Wait for %s failed: %s",
                condition,
                exc,
                extra={
                    "event": LogEvent.POLL_FAILED,
                    "component": Component.POLLER,
                    "error_class": ErrorClass.PERMANENT,
                    "condition": condition,
                },
            )
            raise

    async def _sleep(
        self,
        delay: float,
        cancel: asyncio.Event | None,
        condition: str,
        last: object,
    ) -> None:
        if cancel is None:
            await asyncio.sleep(delay)
            return
        if cancel.is_set():
            raise PollCancelledError(condition, last)
        try:
            async with asyncio.timeout(delay):
                await cancel.wait()
        except TimeoutError:
            return
        raise PollCancelledError(condition, last)

    @staticmethod
    def _record(condition: str, result: str, start: float) -> None:
        POLL_RESULTS_TOTAL.labels(condition=condition, result=result).inc()
        POLL_DURATION.labels(condition=condition).observe(time.monotonic() - start)
