"""
Server-generated key scenario.

Sends two identical donation requests without an idempotency key.

Expected: the server issues a key per request, so each gets its own attempt
and its own session; the returned key replays the first one.
"""
from __future__ import annotations

import httpx

from failure_scenarios import DONATION_PATH, FailureResult, donation_payload, resource_id

SCENARIO_NAME = "server_generated_key"


async def run(base_url: str) -> FailureResult:
    """Execute server-generated key scenario."""
    attempt_ids: list[str] = []
    sessions: list[str | None] = []
    replay_id: str | None = None
    error: str | None = None

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            first_body: dict = {}
            for _ in range(2):
                r = await client.post(f"{base_url}{DONATION_PATH}", json=donation_payload(None))
                body = r.json()
                first_body = first_body or body
                if r.status_code == 200:
                    attempt_ids.append(body["paymentAttemptId"])
                    sessions.append(resource_id(body))

            if first_body.get("idempotencyKey"):
                r = await client.post(
                    f"{base_url}{DONATION_PATH}",
                    json=donation_payload(first_body["idempotencyKey"]),
                )
                if r.status_code == 200:
                    replay_id = resource_id(r.json())
    except Exception as exc:
        error = str(exc)

    correct = (
        len(set(attempt_ids)) == 2
        and len(set(sessions)) == 2
        and replay_id is not None
        and replay_id == sessions[0]
    )

    return FailureResult(
        scenario_name=SCENARIO_NAME,
        expected_outcome="distinct attempts without a key; issued key replays",
        actual_outcome=f"attempts={len(set(attempt_ids))} replay={replay_id}",
        correct=correct,
        details={"attempt_ids": attempt_ids, "sessions": sessions},
        error=error,
    )
