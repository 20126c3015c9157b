"""Prometheus metrics for plan operations, settlements and event delivery"""

from prometheus_client import Counter, Histogram

# Plan operation metrics
plan_operation_counter = Counter(
    "billing_plan_operations_total",
    "Installment plan operations by outcome",
    ["operation", "outcome"],  # outcome: success | failure
)

operation_duration_histogram = Histogram(
    "billing_operation_duration_seconds",
    "Service operation latency",
    ["operation"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.2, 0.3, 0.5, 1.0, 2.5],
)

# Settlement metrics
settlement_counter = Counter(
    "billing_settlements_total",
    "Statement settlements by outcome",
    ["outcome"],  # created | already_exists | failed
)

# Event delivery metrics
event_counter = Counter(
    "billing_events_total",
    "Telemetry events recorded",
    ["event"],
)

event_delivery_latency_histogram = Histogram(
    "billing_event_delivery_latency_seconds",
    "Analytics webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

event_delivery_failure_counter = Counter(
    "billing_event_delivery_failures_total",
    "Failed analytics event deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_operation(operation: str, success: bool, duration_seconds: float) -> None:
    """Record outcome and latency of a service operation"""
    outcome = "success" if success else "failure"
    plan_operation_counter.labels(operation=operation, outcome=outcome).inc()
    operation_duration_histogram.labels(operation=operation).observe(duration_seconds)


def record_settlement(outcome: str) -> None:
    settlement_counter.labels(outcome=outcome).inc()
