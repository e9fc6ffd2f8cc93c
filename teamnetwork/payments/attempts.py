"""
Payment attempt lifecycle.

ensure_payment_attempt()  – find-or-create the attempt for an idempotency key
claim_payment_attempt()   – exclusive created → processing transition that
                            gates the single external provider call
update_payment_attempt()  – backfill provider ids / status / error text

All coordination goes through the store (unique key + conditional UPDATE);
nothing here keeps in-process state, so any number of stateless instances can
serve duplicate requests for the same key.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import structlog

from teamnetwork.payments.errors import (
    IdempotencyConflictError,
    PaymentAttemptNotFound,
)
from teamnetwork.payments.store import EXTERNAL_ID_COLUMNS, PaymentAttemptStore
from teamnetwork.shared.metrics import ATTEMPT_CLAIMS, ATTEMPTS_CREATED
from teamnetwork.shared.models import AttemptStatus, FlowType, PaymentAttempt

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = frozenset(
    {
        "status",
        "stripe_payment_intent_id",
        "stripe_checkout_session_id",
        "checkout_url",
        "last_error",
        "stripe_connected_account_id",
        "metadata",
    }
)


@dataclass
class ClaimResult:
    attempt: PaymentAttempt
    claimed: bool


def has_stripe_resource(attempt: PaymentAttempt | None) -> bool:
    """True once the attempt records a checkout session or payment intent."""
    if attempt is None:
        return False
    return bool(attempt.stripe_checkout_session_id or attempt.stripe_payment_intent_id)


async def ensure_payment_attempt(
    store: PaymentAttemptStore,
    *,
    flow_type: FlowType | str,
    amount_cents: int,
    currency: str,
    fingerprint: str,
    idempotency_key: str | None = None,
    attempt_id: str | None = None,
    organization_id: str | None = None,
    user_id: str | None = None,
    stripe_connected_account_id: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> PaymentAttempt:
    """Return the attempt for this request, creating it on first sighting.

    An explicit ``attempt_id`` must already exist.  An existing row for
    ``idempotency_key`` is returned unchanged; whether it still matches the
    request is checked at claim time.
    """
    if attempt_id:
        attempt = await store.get(attempt_id)
        if attempt is None:
            raise PaymentAttemptNotFound(
                "Payment attempt not found",
                attempt_id=attempt_id,
                idempotency_key=idempotency_key,
            )
        return attempt

    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")

    if idempotency_key:
        existing = await store.get_by_key(idempotency_key)
        if existing is not None:
            logger.info(
                "payment_attempt_reused",
                key=idempotency_key,
                attempt_id=existing.id,
                status=existing.status,
            )
            return existing
    else:
        idempotency_key = str(uuid.uuid4())

    flow_value = FlowType(flow_type).value
    inserted = await store.insert_if_absent(
        {
            "id": str(uuid.uuid4()),
            "idempotency_key": idempotency_key,
            "flow_type": flow_value,
            "amount_cents": amount_cents,
            "currency": currency,
            "organization_id": organization_id,
            "user_id": user_id,
            "stripe_connected_account_id": stripe_connected_account_id,
            "request_fingerprint": fingerprint,
            "status": AttemptStatus.created.value,
            "metadata": metadata or {},
        }
    )

    # Winner or loser of an insert race, the row for the key now exists.
    attempt = await store.get_by_key(idempotency_key)
    if attempt is None:
        raise RuntimeError(f"Payment attempt for key {idempotency_key} vanished after insert")

    if inserted:
        ATTEMPTS_CREATED.labels(flow_type=flow_value).inc()
        logger.info(
            "payment_attempt_created",
            key=idempotency_key,
            attempt_id=attempt.id,
            flow_type=flow_value,
            amount_cents=amount_cents,
        )
    return attempt


def _mismatched_fields(
    attempt: PaymentAttempt,
    *,
    amount_cents: int,
    currency: str,
    stripe_connected_account_id: str | None,
    fingerprint: str,
) -> tuple[str, ...]:
    mismatched = []
    if attempt.request_fingerprint != fingerprint:
        mismatched.append("request_fingerprint")
    if attempt.amount_cents != amount_cents:
        mismatched.append("amount_cents")
    if (attempt.currency or "").lower() != currency.lower():
        mismatched.append("currency")
    if (attempt.stripe_connected_account_id or None) != (stripe_connected_account_id or None):
        mismatched.append("stripe_connected_account_id")
    return tuple(mismatched)


async def claim_payment_attempt(
    store: PaymentAttemptStore,
    attempt: PaymentAttempt,
    *,
    amount_cents: int,
    currency: str,
    stripe_connected_account_id: str | None,
    fingerprint: str,
) -> ClaimResult:
    """Try to become the single caller allowed to hit the payment provider.

    The decision is made on a fresh read of the row, never on ``attempt`` as
    passed in.  Exclusivity comes from a conditional UPDATE
    (``status = 'created'``) in the store, so two concurrent callers cannot
    both win even if both read ``created``.

    Raises IdempotencyConflictError if the key was first used for a request
    with a different fingerprint, amount, currency or connected account.
    """
    current = await store.get(attempt.id)
    if current is None:
        raise PaymentAttemptNotFound(
            "Payment attempt not found",
            attempt_id=attempt.id,
            idempotency_key=attempt.idempotency_key,
        )

    mismatched = _mismatched_fields(
        current,
        amount_cents=amount_cents,
        currency=currency,
        stripe_connected_account_id=stripe_connected_account_id,
        fingerprint=fingerprint,
    )
    if mismatched:
        ATTEMPT_CLAIMS.labels(flow_type=current.flow_type, outcome="conflict").inc()
        logger.warning(
            "idempotency_conflict",
            key=current.idempotency_key,
            attempt_id=current.id,
            fields=list(mismatched),
        )
        raise IdempotencyConflictError(
            "Idempotency key was already used for a different payment request",
            idempotency_key=current.idempotency_key,
            attempt_id=current.id,
            fields=mismatched,
        )

    if current.status != AttemptStatus.created.value:
        ATTEMPT_CLAIMS.labels(flow_type=current.flow_type, outcome="existing").inc()
        logger.info(
            "payment_attempt_claim_skipped",
            key=current.idempotency_key,
            attempt_id=current.id,
            status=current.status,
        )
        return ClaimResult(attempt=current, claimed=False)

    won = await store.transition_status(
        current.id,
        expected=AttemptStatus.created.value,
        new=AttemptStatus.processing.value,
    )
    refreshed = await store.get(current.id)
    if refreshed is None:
        raise PaymentAttemptNotFound(
            "Payment attempt not found",
            attempt_id=current.id,
            idempotency_key=current.idempotency_key,
        )

    outcome = "claimed" if won else "lost_race"
    ATTEMPT_CLAIMS.labels(flow_type=refreshed.flow_type, outcome=outcome).inc()
    logger.info(
        "payment_attempt_claim",
        key=refreshed.idempotency_key,
        attempt_id=refreshed.id,
        claimed=won,
        status=refreshed.status,
    )
    return ClaimResult(attempt=refreshed, claimed=won)


async def update_payment_attempt(
    store: PaymentAttemptStore, attempt_id: str, **fields: Any
) -> None:
    """Merge ``fields`` into the attempt; last write wins per field.

    Provider ids are write-once: a different id than the one already recorded
    raises IdempotencyConflictError instead of overwriting it, and passing
    None for one is a ValueError.
    """
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update payment attempt fields: {sorted(unknown)}")
    cleared = sorted(c for c in EXTERNAL_ID_COLUMNS if c in fields and fields[c] is None)
    if cleared:
        raise ValueError(f"Provider ids cannot be cleared: {cleared}")
    if not fields:
        return

    values = dict(fields)
    status = values.get("status")
    if status is not None:
        values["status"] = AttemptStatus(status).value

    affected = await store.update(attempt_id, values)
    if affected:
        logger.info(
            "payment_attempt_updated",
            attempt_id=attempt_id,
            fields=sorted(values),
        )
        return

    current = await store.get(attempt_id)
    if current is None:
        raise PaymentAttemptNotFound("Payment attempt not found", attempt_id=attempt_id)

    clashing = tuple(
        column
        for column in EXTERNAL_ID_COLUMNS
        if values.get(column) is not None
        and getattr(current, column) not in (None, values[column])
    )
    if clashing:
        logger.error(
            "payment_attempt_external_id_clash",
            attempt_id=attempt_id,
            key=current.idempotency_key,
            fields=list(clashing),
        )
        raise IdempotencyConflictError(
            "Payment attempt already references a different provider resource",
            idempotency_key=current.idempotency_key,
            attempt_id=attempt_id,
            fields=clashing,
        )
