"""
Failure scenarios package.

Provides the FailureResult dataclass and the donation payload helpers used by
all scenario modules.  Scenarios target a running API whose database holds an
organization with a connected Stripe account (``SCENARIO_ORG_SLUG``).
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

ORG_SLUG = os.getenv("SCENARIO_ORG_SLUG", "scenario-org")
DONATION_PATH = "/api/stripe/create-donation"


@dataclass
class FailureResult:
    """Outcome of one failure scenario against the payments API."""

    scenario_name: str
    expected_outcome: str
    actual_outcome: str
    correct: bool
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


def donation_payload(
    idempotency_key: str | None,
    amount: str = "25.00",
    *,
    mode: str = "checkout",
    purpose: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "organizationSlug": ORG_SLUG,
        "amount": amount,
        "currency": "usd",
        "donorName": "Scenario Donor",
        "donorEmail": "donor@example.com",
        "mode": mode,
    }
    if idempotency_key:
        payload["idempotencyKey"] = idempotency_key
    if purpose:
        payload["purpose"] = purpose
    return payload


def resource_id(body: dict[str, Any]) -> str | None:
    """Provider resource named by a successful donation response."""
    return body.get("sessionId") or body.get("paymentIntentId")
