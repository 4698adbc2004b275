"""Prometheus metrics for loan transitions, ledger volume and notification delivery"""

from decimal import Decimal
from prometheus_client import Counter, Histogram

# Lifecycle metrics
lifecycle_transition_counter = Counter(
    "microlend_lifecycle_transitions_total",
    "Loan lifecycle operations that completed",
    ["operation", "status"],  # apply|approve|reject|fund|repay, resulting loan status
)

lifecycle_rejection_counter = Counter(
    "microlend_lifecycle_rejections_total",
    "Lifecycle operations refused by a business rule",
    ["operation", "reason"],  # reason = exception class name
)

# Ledger metrics
ledger_volume_counter = Counter(
    "microlend_ledger_volume_total",
    "Currency units moved through the wallet ledger",
    ["type"],  # topup | loan_funded | emi_paid ...
)

credit_adjustment_counter = Counter(
    "microlend_credit_adjustments_total",
    "Credit score adjustments applied",
    ["direction"],  # up | down
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Event webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(operation: str, status: str) -> None:
    lifecycle_transition_counter.labels(operation=operation, status=status).inc()


def record_rejection(operation: str, error: Exception) -> None:
    lifecycle_rejection_counter.labels(operation=operation, reason=type(error).__name__).inc()


def record_ledger_movement(txn_type: str, amount: Decimal) -> None:
    ledger_volume_counter.labels(type=txn_type).inc(float(amount))


def record_credit_adjustment(delta: int) -> None:
    credit_adjustment_counter.labels(direction="up" if delta >= 0 else "down").inc()
