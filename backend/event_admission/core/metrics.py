"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Registration metrics
registration_attempts = Counter(
    'registration_attempts_total',
    'Total registration attempts that reached the admission controller',
    ['result']  # registered, waitlist, rejected
)

registration_latency = Histogram(
    'registration_latency_seconds',
    'Registration transaction latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

waitlist_demotions = Counter(
    'waitlist_demotions_total',
    'Registrations moved to the waitlist by capacity reconciliation'
)

waitlist_promotions = Counter(
    'waitlist_promotions_total',
    'Waitlisted registrations promoted into a freed slot'
)

checkin_transitions = Counter(
    'checkin_transitions_total',
    'Check-in state transitions',
    ['transition']  # checked_in, undone
)

# Rate limiting metrics
rate_limit_decisions = Counter(
    'rate_limit_decisions_total',
    'Rate limiter decisions',
    ['action', 'result']  # allowed, rejected
)

rate_limit_latency = Histogram(
    'rate_limit_check_latency_seconds',
    'Rate limit check latency',
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1]
)

rate_limit_records_swept = Counter(
    'rate_limit_records_swept_total',
    'Expired rate limit records deleted by the maintenance sweep'
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Transaction retries due to version conflicts',
    ['operation']
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set/invalidate, hit/miss/error
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


def record_registration(result: str):
    """Record registration outcome. Result: registered, waitlist, rejected"""
    registration_attempts.labels(result=result).inc()


def record_rate_limit_decision(action: str, allowed: bool):
    """Record rate limiter decision."""
    result = "allowed" if allowed else "rejected"
    rate_limit_decisions.labels(action=action, result=result).inc()


def record_db_retry(operation: str):
    """Record a transaction retry after a version conflict."""
    db_retries.labels(operation=operation).inc()


def record_cache_operation(operation: str, result: str):
    """Record cache operation. Result: hit, miss, error"""
    cache_operations.labels(operation=operation, result=result).inc()
