"""Pydantic v2 request/response schemas for the checkout API."""
from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DonationRequest(_CamelModel):
    """Request body for starting a donation (hosted checkout or payment intent)."""

    organization_id: str | None = None
    organization_slug: str | None = None
    amount: Decimal = Field(..., description="Donation amount in major units (dollars)")
    currency: str | None = Field(default=None, max_length=8)
    donor_name: str | None = Field(default=None, max_length=255)
    donor_email: str | None = Field(default=None, max_length=255)
    event_id: str | None = None
    purpose: str | None = Field(default=None, max_length=500)
    mode: Literal["checkout", "payment_intent"] = "checkout"
    idempotency_key: str | None = Field(default=None, max_length=255)
    payment_attempt_id: str | None = None
    platform_fee_amount_cents: int | None = None


class OrgCheckoutRequest(_CamelModel):
    """Request body for the organization subscription checkout."""

    name: str = Field(..., max_length=255)
    slug: str = Field(..., max_length=255)
    description: str | None = None
    primary_color: str | None = Field(default=None, max_length=32)
    billing_interval: str = "month"
    alumni_bucket: str = "none"
    idempotency_key: str | None = Field(default=None, max_length=255)
    payment_attempt_id: str | None = None


class CheckoutResponse(_CamelModel):
    """Response for any checkout-starting call; unused fields are omitted."""

    mode: str | None = None
    session_id: str | None = None
    url: str | None = None
    payment_intent_id: str | None = None
    client_secret: str | None = None
    idempotency_key: str
    payment_attempt_id: str


class ErrorResponse(_CamelModel):
    """Standard error response envelope."""

    error: str
    idempotency_key: str | None = None
    payment_attempt_id: str | None = None
    retryable: bool | None = None
