"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from fastapi import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# Booking lifecycle metrics
booking_operations = Counter(
    "booking_operations_total",
    "Booking lifecycle operations",
    ["operation", "outcome"],  # outcome: success, rejected, conflict, error
)

booking_latency = Histogram(
    "booking_operation_latency_seconds",
    "Booking lifecycle operation latency",
    ["operation"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)

# Inventory ledger metrics
ledger_reservations = Counter(
    "ledger_reservations_total",
    "Ticket reservation attempts against the inventory ledger",
    ["result"],  # reserved, insufficient
)

ledger_recomputes = Counter(
    "ledger_recomputes_total",
    "Inventory recomputations",
    ["cascade"],  # none, sold_out, reopened
)

# State machines
status_transitions = Counter(
    "status_transitions_total",
    "Status transitions applied",
    ["entity", "target"],
)

# Notifications
notifications_enqueued = Counter(
    "notifications_enqueued_total",
    "Notifications handed to the queue",
    ["result"],  # queued, failed
)

notification_deliveries = Counter(
    "notification_deliveries_total",
    "Notification e-mail delivery attempts",
    ["result"],  # sent, failed
)

# Batch jobs
batch_job_runs = Counter(
    "batch_job_runs_total",
    "Scheduled batch job runs",
    ["job", "result"],  # result: ok, error
)

batch_job_items = Counter(
    "batch_job_items_total",
    "Items processed by scheduled batch jobs",
    ["job", "result"],  # result: processed, failed
)


def metrics_endpoint() -> Response:
    """
    Prometheus metrics endpoint.

    Usage:
        @app.get("/metrics")
        def metrics():
            return metrics_endpoint()
    """
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


def record_booking_operation(operation: str, outcome: str):
    """Record a booking operation. Outcome: success, rejected, conflict, error"""
    booking_operations.labels(operation=operation, outcome=outcome).inc()


def record_reservation(reserved: bool):
    result = "reserved" if reserved else "insufficient"
    ledger_reservations.labels(result=result).inc()


def record_transition(entity: str, target: str):
    status_transitions.labels(entity=entity, target=target).inc()


def record_batch_item(job: str, ok: bool):
    batch_job_items.labels(job=job, result="processed" if ok else "failed").inc()
