"""
Key reuse conflict scenario.

Starts a $25 donation, then reuses the same idempotency key for a $50
donation.

Expected: the second request is a non-retryable 409 and never yields a
checkout session.
"""
from __future__ import annotations

import uuid

import httpx

from failure_scenarios import DONATION_PATH, FailureResult, donation_payload

SCENARIO_NAME = "key_reuse_conflict"


async def run(base_url: str) -> FailureResult:
    """Execute key reuse conflict scenario."""
    idem_key = str(uuid.uuid4())

    first_status: int | None = None
    second_status: int | None = None
    second_body: dict = {}
    error: str | None = None

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            r1 = await client.post(
                f"{base_url}{DONATION_PATH}", json=donation_payload(idem_key, "25.00")
            )
            first_status = r1.status_code

            r2 = await client.post(
                f"{base_url}{DONATION_PATH}", json=donation_payload(idem_key, "50.00")
            )
            second_status = r2.status_code
            second_body = r2.json()
    except Exception as exc:
        error = str(exc)

    correct = (
        first_status == 200
        and second_status == 409
        and not second_body.get("retryable")
        and "sessionId" not in second_body
    )

    return FailureResult(
        scenario_name=SCENARIO_NAME,
        expected_outcome="reused key with a different amount is a non-retryable 409",
        actual_outcome=f"first={first_status} second={second_status}",
        correct=correct,
        details={"idempotency_key": idem_key, "second_body": second_body},
        error=error,
    )
