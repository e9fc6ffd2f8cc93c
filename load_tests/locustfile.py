"""
Locust load-test file for the TeamNetwork payments API.

Usage:
    locust -f load_tests/locustfile.py --host http://localhost:8000

The target database must contain an organization with a ready connected
Stripe account; set its slug with LOAD_TEST_ORG_SLUG.

User classes:
- DonorUser       : normal donation traffic, fresh key per donation
- RetryUser       : client retry pattern (same key, 3 attempts)
- ConcurrentUser  : bursts of identical requests sharing one key
"""
from __future__ import annotations

import os
import random
import uuid

from locust import HttpUser, between, events, task

ORG_SLUG = os.getenv("LOAD_TEST_ORG_SLUG", "load-test-org")
DONATION_PATH = "/api/stripe/create-donation"

MODES = ["checkout", "payment_intent"]


def _donation_payload(idempotency_key: str, mode: str | None = None) -> dict:
    return {
        "organizationSlug": ORG_SLUG,
        "amount": str(round(random.uniform(1.00, 500.00), 2)),
        "currency": "usd",
        "donorEmail": f"donor-{uuid.uuid4().hex[:8]}@example.com",
        "mode": mode or random.choice(MODES),
        "idempotencyKey": idempotency_key,
    }


def _resource_id(data: dict) -> str:
    return data.get("sessionId") or data.get("paymentIntentId") or ""


def _report_violation(name: str, ids: set[str]) -> None:
    events.request.fire(
        request_type="IDEMPOTENCY_VIOLATION",
        name=name,
        response_time=0,
        response_length=0,
        exception=ValueError(f"Multiple provider resources: {ids}"),
        context={},
    )


class DonorUser(HttpUser):
    """
    Simulates normal donation traffic.
    Each task starts a unique donation with a fresh idempotency key.
    """

    wait_time = between(0.1, 1.0)

    @task(10)
    def create_donation(self) -> None:
        self.client.post(
            DONATION_PATH,
            json=_donation_payload(str(uuid.uuid4())),
            name=f"{DONATION_PATH} [POST]",
        )

    @task(3)
    def get_health(self) -> None:
        self.client.get("/health", name="/health")


class RetryUser(HttpUser):
    """
    Simulates a client that retries the same donation up to 3 times
    using the same idempotency key.  All responses must name one resource.
    """

    wait_time = between(0.5, 2.0)

    @task
    def retry_donation(self) -> None:
        payload = _donation_payload(str(uuid.uuid4()))
        resource_ids: set[str] = set()

        for _ in range(3):
            with self.client.post(
                DONATION_PATH,
                json=payload,
                name=f"{DONATION_PATH} [RETRY]",
                catch_response=True,
            ) as response:
                if response.status_code == 200:
                    rid = _resource_id(response.json())
                    if rid:
                        resource_ids.add(rid)
                    response.success()
                elif response.status_code == 409 and response.json().get("retryable"):
                    response.success()
                else:
                    response.failure(f"Unexpected status {response.status_code}")

        if len(resource_ids) > 1:
            _report_violation("retry_produces_duplicates", resource_ids)


class ConcurrentUser(HttpUser):
    """
    Sends 5 back-to-back requests with the same idempotency key to
    stress the created → processing claim.
    """

    wait_time = between(1.0, 3.0)

    @task
    def concurrent_burst(self) -> None:
        payload = _donation_payload(str(uuid.uuid4()), mode="checkout")
        resource_ids: set[str] = set()

        for _ in range(5):
            with self.client.post(
                DONATION_PATH,
                json=payload,
                name=f"{DONATION_PATH} [CONCURRENT]",
                catch_response=True,
            ) as response:
                if response.status_code == 200:
                    resource_ids.add(_resource_id(response.json()))
                    response.success()
                elif response.status_code == 409 and response.json().get("retryable"):
                    response.success()
                else:
                    response.failure(f"Unexpected status {response.status_code}")

        if len(resource_ids) > 1:
            _report_violation("burst_produces_duplicates", resource_ids)
