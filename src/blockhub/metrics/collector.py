"""Prometheus metrics definitions for lifecycle reconciliation."""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================

# POLL: remote state waits (1s ~ 100min, the default budget ceiling)
# Log scale: ratio ≈ 2.2
_BUCKETS_POLL = (
    1, 2.5, 5, 10, 20,
    45, 90, 180, 400, 900,
    2000, 6000,
)  # 12 buckets

# GATEWAY: single remote API calls (5ms ~ 60s)
_BUCKETS_GATEWAY = (
    0.005, 0.01, 0.02, 0.04, 0.09,
    0.18, 0.36, 0.73, 1.5, 3,
    6.2, 12.7, 26, 53,
)  # 14 buckets

# =============================================================================
# Poller Metrics
# =============================================================================
# condition: volume_available, attachment_attached, attachment_detached,
#            volume_deleted, snapshot_completed (bounded set)
# result: satisfied, timeout, cancelled, failed, not_found

POLL_RESULTS_TOTAL = Counter(
    "blockhub_poll_results_total",
    "Condition poll outcomes",
    ["condition", "result"],
)

POLL_REFRESHES_TOTAL = Counter(
    "blockhub_poll_refreshes_total",
    "Remote re-fetches issued while polling",
    ["condition"],
)

POLL_DURATION = Histogram(
    "blockhub_poll_duration_seconds",
    "Time spent waiting for a remote condition",
    ["condition"],
    buckets=_BUCKETS_POLL,
)

# =============================================================================
# Lifecycle Metrics
# =============================================================================
# operation: create_volume, attach_volume, detach_volume, remove_volume,
#            create_snapshot, delete_snapshot
# result: success, not_found, timeout, cancelled, error

LIFECYCLE_OPERATIONS_TOTAL = Counter(
    "blockhub_lifecycle_operations_total",
    "Lifecycle operations by outcome",
    ["backend", "operation", "result"],
)

# =============================================================================
# Gateway Metrics
# =============================================================================

GATEWAY_CALL_DURATION = Histogram(
    "blockhub_gateway_call_duration_seconds",
    "Remote gateway call latency",
    ["provider", "call"],
    buckets=_BUCKETS_GATEWAY,
)

GATEWAY_ERRORS_TOTAL = Counter(
    "blockhub_gateway_errors_total",
    "Remote gateway errors by class",
    ["provider", "call", "error_class"],
)

# =============================================================================
# Circuit Breaker Metrics
# =============================================================================

CIRCUIT_BREAKER_STATE = Gauge(
    "blockhub_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["circuit"],
)

CIRCUIT_BREAKER_CALLS_TOTAL = Counter(
    "blockhub_circuit_breaker_calls_total",
    "Calls through the circuit breaker",
    ["circuit", "result"],
)

CIRCUIT_BREAKER_REJECTIONS_TOTAL = Counter(
    "blockhub_circuit_breaker_rejections_total",
    "Calls rejected while the circuit was open",
    ["circuit"],
)
