import asyncio

from teamnetwork.payments.attempts import (
    claim_payment_attempt,
    ensure_payment_attempt,
    update_payment_attempt,
)
from teamnetwork.payments.waiter import wait_for_existing_stripe_resource
from teamnetwork.shared.models import FlowType

FINGERPRINT = "a" * 64


async def _claimed_attempt(store):
    attempt = await ensure_payment_attempt(
        store,
        idempotency_key="wait-key",
        flow_type=FlowType.donation_checkout,
        amount_cents=2500,
        currency="usd",
        fingerprint=FINGERPRINT,
    )
    claim = await claim_payment_attempt(
        store,
        attempt,
        amount_cents=2500,
        currency="usd",
        stripe_connected_account_id=None,
        fingerprint=FINGERPRINT,
    )
    assert claim.claimed
    return claim.attempt


async def test_returns_immediately_when_resource_present(store):
    attempt = await _claimed_attempt(store)
    await update_payment_attempt(store, attempt.id, stripe_checkout_session_id="cs_1")

    found = await wait_for_existing_stripe_resource(
        store, attempt.id, max_wait_ms=1000, poll_interval_ms=10
    )

    assert found is not None
    assert found.stripe_checkout_session_id == "cs_1"


async def test_returns_once_winner_backfills(store):
    attempt = await _claimed_attempt(store)

    async def backfill_later():
        await asyncio.sleep(0.05)
        await update_payment_attempt(store, attempt.id, stripe_payment_intent_id="pi_1")

    found, _ = await asyncio.gather(
        wait_for_existing_stripe_resource(
            store, attempt.id, max_wait_ms=2000, poll_interval_ms=10
        ),
        backfill_later(),
    )

    assert found is not None
    assert found.stripe_payment_intent_id == "pi_1"


async def test_times_out_with_none(store):
    attempt = await _claimed_attempt(store)
    loop = asyncio.get_running_loop()
    started = loop.time()

    found = await wait_for_existing_stripe_resource(
        store, attempt.id, max_wait_ms=100, poll_interval_ms=20
    )

    elapsed = loop.time() - started
    assert found is None
    assert 0.09 <= elapsed < 1.0


async def test_stops_early_on_failed_attempt(store):
    attempt = await _claimed_attempt(store)
    await update_payment_attempt(store, attempt.id, status="failed", last_error="card_declined")
    loop = asyncio.get_running_loop()
    started = loop.time()

    found = await wait_for_existing_stripe_resource(
        store, attempt.id, max_wait_ms=5000, poll_interval_ms=10
    )

    assert found is None
    assert loop.time() - started < 1.0


async def test_missing_attempt_returns_none(store):
    found = await wait_for_existing_stripe_resource(
        store, "missing", max_wait_ms=50, poll_interval_ms=10
    )
    assert found is None
