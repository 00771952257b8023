"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Booking metrics
booking_attempts = Counter(
    'booking_attempts_total',
    'Total booking attempts',
    ['outcome']  # success, or the error code that rejected it
)

booking_latency = Histogram(
    'booking_latency_seconds',
    'Booking transaction latency',
    ['operation'],  # create, cancel, complete, undo_complete
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

cancellations = Counter(
    'booking_cancellations_total',
    'Cancelled bookings by classification',
    ['kind']  # early, late
)

# Ledger metrics
ledger_operations = Counter(
    'concession_ledger_operations_total',
    'Concession debits and refunds',
    ['operation']  # debit, credit
)

credit_bookings = Counter(
    'concession_credit_bookings_total',
    'Bookings that pushed the member balance below zero'
)

# Completion metrics
completion_transitions = Counter(
    'class_completion_bookings_total',
    'Bookings moved by complete / undo-complete',
    ['direction']  # complete, undo
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)


def metrics_endpoint() -> Response:
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_booking_attempt(outcome: str):
    booking_attempts.labels(outcome=outcome).inc()


def record_cancellation(late: bool):
    cancellations.labels(kind="late" if late else "early").inc()


def record_ledger_operation(operation: str):
    """Operation: debit, credit"""
    ledger_operations.labels(operation=operation).inc()


def record_completion(direction: str, count: int):
    completion_transitions.labels(direction=direction).inc(count)


def record_cache_operation(operation: str, hit: bool):
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()
