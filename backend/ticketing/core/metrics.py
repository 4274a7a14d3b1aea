"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Inventory metrics
reservation_attempts = Counter(
    'ticket_reservation_attempts_total',
    'Total ticket reservation attempts',
    ['result']  # success, no_capacity, not_purchasable
)

reservation_latency = Histogram(
    'ticket_reservation_latency_seconds',
    'Ticket reservation latency, lock wait included',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

ticket_transitions = Counter(
    'ticket_transitions_total',
    'Ticket status transitions',
    ['status']  # cancelled, used
)

capacity_changes = Counter(
    'event_capacity_changes_total',
    'Event resize attempts',
    ['result']  # success, below_sold_floor
)

# Transaction metrics
transaction_retries = Counter(
    'db_transaction_retries_total',
    'Transactions re-run after a lock timeout or deadlock',
    ['operation']
)

transaction_conflicts = Counter(
    'db_transaction_conflicts_total',
    'Transactions that exhausted the retry budget',
    ['operation']
)

# Admission queue metrics
admission_decisions = Counter(
    'queue_admission_decisions_total',
    'Queue join outcomes',
    ['result']  # admitted, queued, existing, bypassed
)

queue_promotions = Counter(
    'queue_promotions_total',
    'Waiting sessions promoted to active'
)

queue_expirations = Counter(
    'queue_lease_expirations_total',
    'Active leases marked expired by reconciliation'
)

policy_read_failures = Counter(
    'queue_policy_read_failures_total',
    'Admission policy reads that fell back to enforcing the queue'
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
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
        media_type=CONTENT_TYPE_LATEST
    )


def record_reservation(result: str):
    """Record reservation attempt. Result: success, no_capacity, not_purchasable"""
    reservation_attempts.labels(result=result).inc()


def record_ticket_transition(new_status: str):
    ticket_transitions.labels(status=new_status).inc()


def record_capacity_change(result: str):
    capacity_changes.labels(result=result).inc()


def record_transaction_retry(operation: str):
    transaction_retries.labels(operation=operation).inc()


def record_transaction_conflict(operation: str):
    transaction_conflicts.labels(operation=operation).inc()


def record_admission(result: str):
    """Record queue join outcome. Result: admitted, queued, existing, bypassed"""
    admission_decisions.labels(result=result).inc()


def record_queue_reconciliation(promoted: int, expired: int):
    if promoted:
        queue_promotions.inc(promoted)
    if expired:
        queue_expirations.inc(expired)
