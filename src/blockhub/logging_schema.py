"""Logging field schema - v1.0

Standard fields (added to all logs):
- service: Service name (blockhub)
- component: Component name (coordinator, store, poller, gateway)
- event: Event type (volume_created, poll_timeout, etc.)

High cardinality fields (OK in logs, NOT in metric labels):
- volume_id: Composite volume handle
- snapshot_id: Composite snapshot handle
- node_id: Composite node handle
"""

from enum import StrEnum


class LogEvent(StrEnum):
    """Log event types.

    Used with logger.info/warning/error extra dict:
        logger.info("message", extra={"event": LogEvent.VOLUME_CREATED, ...})
    """

    # Volume events
    VOLUME_CREATED = "volume_created"
    VOLUME_ATTACHED = "volume_attached"
    VOLUME_DETACHED = "volume_detached"
    VOLUME_REMOVED = "volume_removed"

    # Snapshot events
    SNAPSHOT_CREATED = "snapshot_created"
    SNAPSHOT_DELETED = "snapshot_deleted"

    # Lookup outcomes
    RESOURCE_NOT_FOUND = "resource_not_found"
    ATTACHMENT_NOT_FOUND = "attachment_not_found"
    ATTACHMENT_CONFLICT = "attachment_conflict"

    # Poller events
    POLL_STARTED = "poll_started"
    POLL_SATISFIED = "poll_satisfied"
    POLL_TIMEOUT = "poll_timeout"
    POLL_CANCELLED = "poll_cancelled"
    POLL_FAILED = "poll_failed"

    # Gateway / resilience events
    REMOTE_ERROR = "remote_error"
    OPERATION_FAILED = "operation_failed"
    STATE_CHANGED = "state_changed"


class ErrorClass(StrEnum):
    """Error classification for structured error logging.

    Use these in the 'error_class' extra field to enable
    filtering by error type and setting up alerts.
    """

    TRANSIENT = "transient"  # Retryable (throttling, temp failure)
    PERMANENT = "permanent"  # Not retryable (invalid input, quota)
    NOT_FOUND = "not_found"  # Resource absent
    TIMEOUT = "timeout"  # Poll budget exhausted


class Component(StrEnum):
    """Component identifiers for log filtering."""

    COORDINATOR = "coordinator"
    STORE = "store"
    POLLER = "poller"
    GATEWAY = "gateway"
