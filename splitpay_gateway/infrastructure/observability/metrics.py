"""Prometheus metrics for collection progress, settlements and webhook handling"""

from prometheus_client import Counter, Histogram

# Collection metrics
collections_created_counter = Counter(
    "splitpay_collections_created_total",
    "Total collections created",
    ["mode"],  # split | self-pay
)

payer_transition_counter = Counter(
    "splitpay_payer_transitions_total",
    "Payer status transitions",
    ["to_status", "trigger"],  # PAID | CANCELLED ; checkout | multi_card | webhook | cancel
)

collection_amount_bucket_counter = Counter(
    "splitpay_collection_amount_bucket",
    "Collection totals by bucket (minor units)",
    ["bucket"],
)

# Settlement metrics
allocation_settlement_counter = Counter(
    "splitpay_allocation_settlements_total",
    "Multi-card allocation settlement attempts",
    ["provider", "outcome"],  # succeeded | failed
)

provider_latency_histogram = Histogram(
    "provider_call_latency_seconds",
    "Payment provider response time",
    ["provider", "operation"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

provider_failure_counter = Counter(
    "provider_failures_total",
    "Failed payment provider calls",
    ["provider"],
)

# Webhook metrics
webhook_event_counter = Counter(
    "splitpay_webhook_events_total",
    "Inbound provider webhook events",
    ["event_type", "outcome"],  # processed | ignored | dropped | rejected
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_collection_created(mode: str, total_amount: int) -> None:
    """Record collection metrics for monitoring split modes and bill sizes"""
    collections_created_counter.labels(mode=mode).inc()

    if total_amount <= 100_000:
        bucket = "<=1000"
    elif total_amount <= 1_000_000:
        bucket = "1000-10000"
    else:
        bucket = "10000+"

    collection_amount_bucket_counter.labels(bucket=bucket).inc()


def record_payer_transition(to_status: str, trigger: str) -> None:
    payer_transition_counter.labels(to_status=to_status, trigger=trigger).inc()


def record_allocation_settlement(provider: str, success: bool) -> None:
    outcome = "succeeded" if success else "failed"
    allocation_settlement_counter.labels(provider=provider, outcome=outcome).inc()


def record_webhook_event(event_type: str, outcome: str) -> None:
    webhook_event_counter.labels(event_type=event_type, outcome=outcome).inc()
