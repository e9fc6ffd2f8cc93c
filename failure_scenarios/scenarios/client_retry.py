"""
Client retry scenario.

Simulates a client that sends a donation request, assumes the first response
was lost (network drop), then retries with the same idempotency key.

Expected: both attempts return the same checkout session and attempt id,
the second flagged as a replay.
"""
from __future__ import annotations

import uuid

import httpx

from failure_scenarios import DONATION_PATH, FailureResult, donation_payload, resource_id

SCENARIO_NAME = "client_retry"


async def run(base_url: str) -> FailureResult:
    """Execute client retry scenario against `base_url`."""
    idem_key = str(uuid.uuid4())
    payload = donation_payload(idem_key, "25.00")

    first_id: str | None = None
    second_id: str | None = None
    replayed: str | None = None
    error: str | None = None

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            r1 = await client.post(f"{base_url}{DONATION_PATH}", json=payload)
            if r1.status_code == 200:
                first_id = resource_id(r1.json())

            # Simulate "response lost" - retry immediately
            r2 = await client.post(f"{base_url}{DONATION_PATH}", json=payload)
            if r2.status_code == 200:
                second_id = resource_id(r2.json())
                replayed = r2.headers.get("X-Idempotency-Replay")

    except Exception as exc:
        error = str(exc)

    correct = first_id is not None and first_id == second_id and replayed == "true"

    return FailureResult(
        scenario_name=SCENARIO_NAME,
        expected_outcome="both attempts return the same session, second is a replay",
        actual_outcome=f"first={first_id} second={second_id} replay={replayed}",
        correct=correct,
        details={"idempotency_key": idem_key, "first_id": first_id, "second_id": second_id},
        error=error,
    )
