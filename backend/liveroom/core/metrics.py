"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# RSVP / ledger metrics
rsvp_outcomes = Counter(
    'rsvp_outcomes_total',
    'RSVP registration outcomes',
    ['outcome']  # registered, waitlisted, refused, existing
)

rsvp_cancellations = Counter(
    'rsvp_cancellations_total',
    'RSVP cancellations',
    ['released']  # registered, waitlisted
)

ledger_latency = Histogram(
    'ledger_transaction_latency_seconds',
    'Capacity ledger transaction latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

ledger_retries = Counter(
    'ledger_retry_attempts_total',
    'Transaction retries due to concurrent writers'
)

dual_write_failures = Counter(
    'rsvp_dual_write_failures_total',
    'Ledger commits whose mirrored RSVP records failed to write'
)

# Audience metrics
audience_joins = Counter(
    'audience_joins_total',
    'Audience join writes',
    ['kind']  # first, repeat
)

# Countdown gate metrics
gate_events = Counter(
    'countdown_gate_events_total',
    'Countdown gate transitions',
    ['event']  # armed, expired, still_locked, unlocked, closed
)

# Store metrics
store_errors = Counter(
    'store_errors_total',
    'Backing store errors',
    ['kind']  # transient, permission, publish
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


# Convenience functions for instrumentation
def record_rsvp_outcome(outcome: str):
    """Record RSVP outcome. Outcome: registered, waitlisted, refused, existing"""
    rsvp_outcomes.labels(outcome=outcome).inc()


def record_cancellation(released: str):
    rsvp_cancellations.labels(released=released).inc()


def record_ledger_retry():
    ledger_retries.inc()


def record_join(first: bool):
    """Record audience join."""
    kind = "first" if first else "repeat"
    audience_joins.labels(kind=kind).inc()


def record_gate_event(event: str):
    gate_events.labels(event=event).inc()


def record_store_error(kind: str):
    """Record store error. Kind: transient, permission, publish"""
    store_errors.labels(kind=kind).inc()
