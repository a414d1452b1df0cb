"""
Prometheus metrics endpoint.

Exposes rule engine and webhook delivery metrics for monitoring.
"""
from fastapi import APIRouter, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter()

# ============================================
# HTTP Request Metrics
# ============================================

http_requests_total = Counter(
    'eventcore_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status']
)

http_request_duration = Histogram(
    'eventcore_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# ============================================
# Rule Engine Metrics
# ============================================

rule_executions = Counter(
    'rule_executions_total',
    'Automation rule executions',
    ['trigger_type', 'action_type', 'outcome']
)

rules_skipped_cooldown = Counter(
    'rules_skipped_cooldown_total',
    'Rules skipped because they were inside their cooldown window',
    ['trigger_type']
)

# ============================================
# Webhook Metrics
# ============================================

webhook_attempts = Counter(
    'webhook_attempts_total',
    'Individual webhook HTTP attempts',
    ['outcome']
)

webhook_deliveries = Counter(
    'webhook_deliveries_total',
    'Webhook delivery cycles by final outcome',
    ['event_type', 'outcome']
)

webhook_attempt_duration = Histogram(
    'webhook_attempt_duration_seconds',
    'Duration of a single webhook HTTP attempt',
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)


# ============================================
# Metrics Helper Functions
# ============================================

def track_request(method: str, endpoint: str, status: int, duration_seconds: float):
    """
    Record HTTP request metrics.

    Called by the logging middleware after each request.
    """
    http_requests_total.labels(
        method=method,
        endpoint=endpoint,
        status=status
    ).inc()

    http_request_duration.labels(
        method=method,
        endpoint=endpoint
    ).observe(duration_seconds)


def track_rule_execution(trigger_type: str, action_type: str, success: bool):
    """Record a rule that fired, by action outcome."""
    rule_executions.labels(
        trigger_type=trigger_type,
        action_type=action_type,
        outcome="success" if success else "failure"
    ).inc()


def track_rule_cooldown(trigger_type: str):
    """Record a rule suppressed by its cooldown."""
    rules_skipped_cooldown.labels(trigger_type=trigger_type).inc()


def track_webhook_attempt(success: bool, duration_seconds: float):
    """Record one webhook HTTP attempt."""
    webhook_attempts.labels(outcome="success" if success else "failure").inc()
    webhook_attempt_duration.observe(duration_seconds)


def track_webhook_delivery(event_type: str, success: bool):
    """Record the final outcome of a delivery cycle."""
    webhook_deliveries.labels(
        event_type=event_type,
        outcome="delivered" if success else "failed"
    ).inc()


# ============================================
# Prometheus Endpoint
# ============================================

@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Returns all registered metrics in Prometheus format.
    """
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
