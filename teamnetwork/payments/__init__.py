"""Idempotent payment-attempt orchestration."""
from __future__ import annotations

from teamnetwork.payments.attempts import (
    ClaimResult,
    claim_payment_attempt,
    ensure_payment_attempt,
    has_stripe_resource,
    update_payment_attempt,
)
from teamnetwork.payments.errors import (
    IdempotencyConflictError,
    PaymentAttemptError,
    PaymentAttemptFailedError,
    PaymentAttemptNotFound,
    PaymentInFlightError,
    PaymentProviderError,
)
from teamnetwork.payments.fingerprint import (
    hash_fingerprint,
    normalize_currency,
    normalize_text,
)
from teamnetwork.payments.flows import (
    DonationCheckout,
    DonationPaymentIntent,
    PaymentFlow,
    SubscriptionCheckout,
    donation_flow,
)
from teamnetwork.payments.orchestrator import CheckoutOrchestrator, CheckoutResult
from teamnetwork.payments.store import PaymentAttemptStore
from teamnetwork.payments.waiter import wait_for_existing_stripe_resource

__all__ = [
    "CheckoutOrchestrator",
    "CheckoutResult",
    "ClaimResult",
    "DonationCheckout",
    "DonationPaymentIntent",
    "IdempotencyConflictError",
    "PaymentAttemptError",
    "PaymentAttemptFailedError",
    "PaymentAttemptNotFound",
    "PaymentAttemptStore",
    "PaymentFlow",
    "PaymentInFlightError",
    "PaymentProviderError",
    "SubscriptionCheckout",
    "claim_payment_attempt",
    "donation_flow",
    "ensure_payment_attempt",
    "has_stripe_resource",
    "hash_fingerprint",
    "normalize_currency",
    "normalize_text",
    "update_payment_attempt",
    "wait_for_existing_stripe_resource",
]
