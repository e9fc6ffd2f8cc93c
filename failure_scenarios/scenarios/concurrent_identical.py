"""
Concurrent identical requests scenario.

Fires 10 concurrent identical donation requests sharing one idempotency key
and counts the distinct provider resources in the responses.

Expected: at most one checkout session across all 10 responses; any other
response is a retryable 409 (claim held by a concurrent request).
"""
from __future__ import annotations

import asyncio
import uuid

import httpx

from failure_scenarios import DONATION_PATH, FailureResult, donation_payload, resource_id

SCENARIO_NAME = "concurrent_identical"


async def run(base_url: str) -> FailureResult:
    """Execute concurrent identical requests scenario."""
    idem_key = str(uuid.uuid4())
    payload = donation_payload(idem_key, "33.33")

    ids: list[str] = []
    status_codes: list[int] = []
    non_retryable: list[dict] = []
    error: str | None = None

    async def send(client: httpx.AsyncClient) -> None:
        r = await client.post(f"{base_url}{DONATION_PATH}", json=payload)
        status_codes.append(r.status_code)
        body = r.json()
        if r.status_code == 200:
            rid = resource_id(body)
            if rid:
                ids.append(rid)
        elif not (r.status_code == 409 and body.get("retryable")):
            non_retryable.append(body)

    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            await asyncio.gather(*[send(client) for _ in range(10)])
    except Exception as exc:
        error = str(exc)

    unique_ids = set(ids)
    correct = len(unique_ids) == 1 and not non_retryable

    return FailureResult(
        scenario_name=SCENARIO_NAME,
        expected_outcome="one session for all 10 requests, others retryable 409",
        actual_outcome=f"unique_sessions={len(unique_ids)}, total_200={len(ids)}",
        correct=correct,
        details={
            "idempotency_key": idem_key,
            "unique_ids": list(unique_ids),
            "status_codes": status_codes,
            "unexpected": non_retryable,
        },
        error=error,
    )
