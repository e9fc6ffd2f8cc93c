"""Prometheus collectors exposed on /metrics."""
from __future__ import annotations

from prometheus_client import Counter, Histogram

ATTEMPTS_CREATED = Counter(
    "payment_attempts_created_total",
    "Payment attempt rows inserted",
    ["flow_type"],
)

ATTEMPT_CLAIMS = Counter(
    "payment_attempt_claims_total",
    "Claim outcomes by flow type",
    ["flow_type", "outcome"],
)

PROVIDER_CALLS = Counter(
    "payment_provider_calls_total",
    "Calls made to the payment provider",
    ["operation", "outcome"],
)

WAITER_SECONDS = Histogram(
    "payment_attempt_wait_seconds",
    "Time spent waiting for a concurrent claimant's external resource",
    ["outcome"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0),
)
