import asyncio

import pytest

from teamnetwork.payments.attempts import (
    claim_payment_attempt,
    ensure_payment_attempt,
    has_stripe_resource,
    update_payment_attempt,
)
from teamnetwork.payments.errors import IdempotencyConflictError, PaymentAttemptNotFound
from teamnetwork.shared.models import AttemptStatus, FlowType

FINGERPRINT = "f" * 64


async def _ensure(store, key="k1", **overrides):
    fields = dict(
        idempotency_key=key,
        flow_type=FlowType.donation_checkout,
        amount_cents=2500,
        currency="usd",
        organization_id="org-1",
        stripe_connected_account_id="acct_alpha",
        fingerprint=FINGERPRINT,
        metadata={"flow": "checkout"},
    )
    fields.update(overrides)
    return await ensure_payment_attempt(store, **fields)


async def _claim(store, attempt, **overrides):
    fields = dict(
        amount_cents=2500,
        currency="usd",
        stripe_connected_account_id="acct_alpha",
        fingerprint=FINGERPRINT,
    )
    fields.update(overrides)
    return await claim_payment_attempt(store, attempt, **fields)


# ---------------------------------------------------------------------------
# ensure_payment_attempt
# ---------------------------------------------------------------------------


async def test_ensure_creates_attempt_in_created_state(store):
    attempt = await _ensure(store)

    assert attempt.idempotency_key == "k1"
    assert attempt.status == AttemptStatus.created.value
    assert attempt.flow_type == "donation_checkout"
    assert attempt.amount_cents == 2500
    assert attempt.request_fingerprint == FINGERPRINT
    assert attempt.metadata_ == {"flow": "checkout"}
    assert not has_stripe_resource(attempt)


async def test_ensure_twice_with_same_key_returns_same_row(store):
    first = await _ensure(store)
    second = await _ensure(store)

    assert first.id == second.id


async def test_ensure_returns_existing_row_unchanged_even_if_fields_differ(store):
    first = await _ensure(store)
    second = await _ensure(store, amount_cents=5000, fingerprint="0" * 64)

    assert second.id == first.id
    assert second.amount_cents == 2500
    assert second.request_fingerprint == FINGERPRINT


async def test_concurrent_ensure_with_same_key_inserts_one_row(store):
    results = await asyncio.gather(*[_ensure(store, key="race") for _ in range(5)])

    assert len({a.id for a in results}) == 1


async def test_ensure_without_key_generates_one(store):
    a = await _ensure(store, key=None)
    b = await _ensure(store, key=None)

    assert a.idempotency_key
    assert a.idempotency_key != b.idempotency_key
    assert a.id != b.id


async def test_ensure_by_attempt_id(store):
    created = await _ensure(store)
    loaded = await _ensure(store, key=None, attempt_id=created.id)

    assert loaded.id == created.id


async def test_ensure_unknown_attempt_id_is_not_found(store):
    with pytest.raises(PaymentAttemptNotFound) as exc_info:
        await _ensure(store, attempt_id="does-not-exist")

    assert exc_info.value.attempt_id == "does-not-exist"


async def test_ensure_rejects_negative_amount(store):
    with pytest.raises(ValueError):
        await _ensure(store, amount_cents=-1)


async def test_ensure_allows_zero_amount(store):
    attempt = await _ensure(
        store,
        flow_type=FlowType.subscription_checkout,
        amount_cents=0,
        organization_id=None,
        stripe_connected_account_id=None,
        user_id="user-1",
    )
    assert attempt.amount_cents == 0
    assert attempt.user_id == "user-1"


# ---------------------------------------------------------------------------
# claim_payment_attempt
# ---------------------------------------------------------------------------


async def test_claim_transitions_created_to_processing(store):
    attempt = await _ensure(store)
    result = await _claim(store, attempt)

    assert result.claimed is True
    assert result.attempt.status == AttemptStatus.processing.value


async def test_second_claim_is_not_claimed(store):
    attempt = await _ensure(store)
    await _claim(store, attempt)

    # stale copy still says "created"; the claim must re-read
    result = await _claim(store, attempt)

    assert result.claimed is False
    assert result.attempt.status == AttemptStatus.processing.value


async def test_concurrent_claims_exactly_one_wins(store):
    attempt = await _ensure(store)

    results = await asyncio.gather(*[_claim(store, attempt) for _ in range(5)])

    assert sum(r.claimed for r in results) == 1
    assert all(r.attempt.status == AttemptStatus.processing.value for r in results)


@pytest.mark.parametrize(
    "override, field",
    [
        ({"amount_cents": 5000}, "amount_cents"),
        ({"currency": "eur"}, "currency"),
        ({"stripe_connected_account_id": "acct_other"}, "stripe_connected_account_id"),
        ({"fingerprint": "0" * 64}, "request_fingerprint"),
    ],
)
async def test_claim_mismatch_is_conflict_and_leaves_status(store, override, field):
    attempt = await _ensure(store)

    with pytest.raises(IdempotencyConflictError) as exc_info:
        await _claim(store, attempt, **override)

    assert field in exc_info.value.fields
    assert exc_info.value.idempotency_key == "k1"
    assert exc_info.value.attempt_id == attempt.id
    current = await store.get(attempt.id)
    assert current.status == AttemptStatus.created.value


async def test_claim_mismatch_after_processing_is_still_conflict(store):
    attempt = await _ensure(store)
    await _claim(store, attempt)

    with pytest.raises(IdempotencyConflictError):
        await _claim(store, attempt, amount_cents=5000)


async def test_claim_currency_compare_is_case_insensitive(store):
    attempt = await _ensure(store)
    result = await _claim(store, attempt, currency="USD")

    assert result.claimed is True


@pytest.mark.parametrize("status", ["succeeded", "failed", "canceled"])
async def test_claim_on_non_created_status_is_not_claimed(store, status):
    attempt = await _ensure(store)
    await update_payment_attempt(store, attempt.id, status=status)

    result = await _claim(store, attempt)

    assert result.claimed is False
    assert result.attempt.status == status


async def test_claim_missing_attempt_is_not_found(store):
    attempt = await _ensure(store)
    attempt.id = "gone"

    with pytest.raises(PaymentAttemptNotFound):
        await _claim(store, attempt)


# ---------------------------------------------------------------------------
# update_payment_attempt
# ---------------------------------------------------------------------------


async def test_update_backfills_external_ids(store):
    attempt = await _ensure(store)
    await _claim(store, attempt)

    await update_payment_attempt(
        store,
        attempt.id,
        stripe_checkout_session_id="cs_1",
        checkout_url="https://checkout.stripe.test/cs_1",
        status="processing",
    )

    current = await store.get(attempt.id)
    assert current.stripe_checkout_session_id == "cs_1"
    assert current.checkout_url == "https://checkout.stripe.test/cs_1"
    assert has_stripe_resource(current)


async def test_update_is_repeatable_with_same_ids(store):
    attempt = await _ensure(store)
    for _ in range(2):
        await update_payment_attempt(store, attempt.id, stripe_payment_intent_id="pi_1")

    current = await store.get(attempt.id)
    assert current.stripe_payment_intent_id == "pi_1"


async def test_update_never_overwrites_a_different_external_id(store):
    attempt = await _ensure(store)
    await update_payment_attempt(store, attempt.id, stripe_checkout_session_id="cs_1")

    with pytest.raises(IdempotencyConflictError) as exc_info:
        await update_payment_attempt(store, attempt.id, stripe_checkout_session_id="cs_2")

    assert exc_info.value.fields == ("stripe_checkout_session_id",)
    current = await store.get(attempt.id)
    assert current.stripe_checkout_session_id == "cs_1"


@pytest.mark.parametrize("column", ["stripe_checkout_session_id", "stripe_payment_intent_id"])
async def test_update_cannot_clear_an_external_id(store, column):
    attempt = await _ensure(store)
    await update_payment_attempt(store, attempt.id, **{column: "id_1"})

    with pytest.raises(ValueError):
        await update_payment_attempt(store, attempt.id, **{column: None})
    with pytest.raises(IdempotencyConflictError):
        await update_payment_attempt(store, attempt.id, **{column: "id_2"})

    current = await store.get(attempt.id)
    assert getattr(current, column) == "id_1"


async def test_update_last_write_wins_for_plain_fields(store):
    attempt = await _ensure(store)
    await update_payment_attempt(store, attempt.id, last_error="first")
    await update_payment_attempt(store, attempt.id, last_error="second")

    current = await store.get(attempt.id)
    assert current.last_error == "second"


async def test_update_rejects_unknown_fields(store):
    attempt = await _ensure(store)

    with pytest.raises(ValueError):
        await update_payment_attempt(store, attempt.id, amount_cents=1)


async def test_update_rejects_unknown_status(store):
    attempt = await _ensure(store)

    with pytest.raises(ValueError):
        await update_payment_attempt(store, attempt.id, status="refunded")


async def test_update_missing_attempt_is_not_found(store):
    with pytest.raises(PaymentAttemptNotFound):
        await update_payment_attempt(store, "gone", last_error="x")
