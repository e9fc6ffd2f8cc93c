"""
Payment flow variants.

Each flow that can start a payment is its own frozen dataclass carrying only
the fields it needs.  ``PaymentFlow`` is the closed union the orchestrator
dispatches on.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, ClassVar, Union

from teamnetwork.payments.fingerprint import hash_fingerprint
from teamnetwork.shared.models import FlowType

MIN_DONATION_CENTS = 100
SUBSCRIPTION_CURRENCY = "usd"


@dataclass(frozen=True)
class _Donation:
    organization_id: str
    organization_slug: str
    organization_name: str
    stripe_connected_account_id: str
    amount_cents: int
    currency: str
    donor_name: str | None = None
    donor_email: str | None = None
    event_id: str | None = None
    purpose: str | None = None
    platform_fee_cents: int = 0

    flow_type: ClassVar[FlowType]
    mode: ClassVar[str]

    def __post_init__(self) -> None:
        if self.amount_cents < MIN_DONATION_CENTS:
            raise ValueError("Amount must be at least $1.00")
        if not 0 <= self.platform_fee_cents <= self.amount_cents:
            raise ValueError("Platform fee must be between 0 and the donation amount")

    def fingerprint(self) -> str:
        return hash_fingerprint(
            {
                "orgId": self.organization_id,
                "amountCents": self.amount_cents,
                "currency": self.currency,
                "mode": self.mode,
                "donorEmail": self.donor_email,
                "donorName": self.donor_name,
                "eventId": self.event_id,
                "purpose": self.purpose,
                "platformFeeCents": self.platform_fee_cents,
            }
        )

    def attempt_metadata(self) -> dict[str, str]:
        metadata = {
            "organization_id": self.organization_id,
            "organization_slug": self.organization_slug,
            "flow": self.mode,
        }
        if self.donor_name:
            metadata["donor_name"] = self.donor_name
        if self.donor_email:
            metadata["donor_email"] = self.donor_email
        if self.event_id:
            metadata["event_id"] = self.event_id
        if self.purpose:
            metadata["purpose"] = self.purpose
        if self.platform_fee_cents:
            metadata["platform_fee_cents"] = str(self.platform_fee_cents)
        return metadata

    @property
    def description(self) -> str:
        if self.purpose:
            return f"Donation: {self.purpose}"
        return f"Donation to {self.organization_name}"


@dataclass(frozen=True)
class DonationCheckout(_Donation):
    """Donation through a provider-hosted checkout page."""

    flow_type: ClassVar[FlowType] = FlowType.donation_checkout
    mode: ClassVar[str] = "checkout"


@dataclass(frozen=True)
class DonationPaymentIntent(_Donation):
    """Donation confirmed client-side against a payment intent."""

    flow_type: ClassVar[FlowType] = FlowType.donation_payment_intent
    mode: ClassVar[str] = "payment_intent"


@dataclass(frozen=True)
class SubscriptionCheckout:
    """Subscription signup for an organization that does not exist yet."""

    user_id: str
    organization_name: str
    slug: str
    billing_interval: str
    alumni_bucket: str
    base_price_id: str
    alumni_price_id: str | None = None
    user_email: str | None = None
    description: str | None = None
    primary_color: str | None = None

    flow_type: ClassVar[FlowType] = FlowType.subscription_checkout
    mode: ClassVar[str] = "subscription"

    # Priced entirely by the provider; nothing to compare at claim time.
    amount_cents: ClassVar[int] = 0
    currency: ClassVar[str] = SUBSCRIPTION_CURRENCY
    stripe_connected_account_id: ClassVar[str | None] = None

    def fingerprint(self) -> str:
        return hash_fingerprint(
            {
                "userId": self.user_id,
                "name": self.organization_name,
                "slug": self.slug,
                "interval": self.billing_interval,
                "bucket": self.alumni_bucket,
                "primaryColor": self.primary_color,
            }
        )

    def attempt_metadata(self) -> dict[str, str]:
        return {
            "pending_org_id": str(uuid.uuid4()),
            "slug": self.slug,
            "alumni_bucket": self.alumni_bucket,
            "billing_interval": self.billing_interval,
        }


PaymentFlow = Union[DonationCheckout, DonationPaymentIntent, SubscriptionCheckout]


def donation_flow(mode: str, **fields: Any) -> DonationCheckout | DonationPaymentIntent:
    """Build the donation variant for ``mode`` (``checkout`` or ``payment_intent``)."""
    if mode == DonationPaymentIntent.mode:
        return DonationPaymentIntent(**fields)
    return DonationCheckout(**fields)
