"""
Network timeout scenario.

Sends a donation request with a very short timeout (0.05 s) so the client
gives up before the server answers, then retries with a normal timeout
using the same idempotency key.

Expected: the retry resolves to a session (new or replayed) whatever state
the first request left the attempt in.  A retryable 409 is followed by one
more retry after Retry-After.
"""
from __future__ import annotations

import asyncio
import uuid

import httpx

from failure_scenarios import DONATION_PATH, FailureResult, donation_payload, resource_id

SCENARIO_NAME = "network_timeout"


async def run(base_url: str) -> FailureResult:
    """Execute network timeout scenario."""
    idem_key = str(uuid.uuid4())
    payload = donation_payload(idem_key, "10.00")

    timed_out = False
    retry_id: str | None = None
    retry_codes: list[int] = []
    error: str | None = None

    try:
        async with httpx.AsyncClient(timeout=0.05) as client:
            try:
                await client.post(f"{base_url}{DONATION_PATH}", json=payload)
            except (httpx.TimeoutException, httpx.ConnectError):
                timed_out = True

        async with httpx.AsyncClient(timeout=10.0) as client:
            for _ in range(2):
                r = await client.post(f"{base_url}{DONATION_PATH}", json=payload)
                retry_codes.append(r.status_code)
                if r.status_code == 200:
                    retry_id = resource_id(r.json())
                    break
                if r.status_code == 409 and r.json().get("retryable"):
                    await asyncio.sleep(float(r.headers.get("Retry-After", "1")))
                    continue
                break

    except Exception as exc:
        error = str(exc)

    correct = retry_id is not None

    return FailureResult(
        scenario_name=SCENARIO_NAME,
        expected_outcome="retry resolves to a session after client timeout",
        actual_outcome=f"timed_out={timed_out}, retry_id={retry_id}",
        correct=correct,
        details={
            "idempotency_key": idem_key,
            "timed_out": timed_out,
            "retry_id": retry_id,
            "retry_codes": retry_codes,
        },
        error=error,
    )
