"""
Checkout orchestration.

For every payment-starting flow:

  1. fingerprint the request and ensure an attempt row for the key
  2. claim the attempt (exclusive created → processing)
  3. claimed     → call the provider with the attempt's idempotency key and
                   backfill the resulting ids onto the attempt
     not claimed → serve the resource already recorded, or wait briefly for
                   the concurrent claimant to record it, else raise a
                   retryable PaymentInFlightError

A second provider call for the same attempt is never made from here.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from teamnetwork.payments.attempts import (
    claim_payment_attempt,
    ensure_payment_attempt,
    has_stripe_resource,
    update_payment_attempt,
)
from teamnetwork.payments.errors import (
    PaymentAttemptFailedError,
    PaymentInFlightError,
    PaymentProviderError,
)
from teamnetwork.payments.flows import (
    DonationCheckout,
    DonationPaymentIntent,
    PaymentFlow,
    SubscriptionCheckout,
)
from teamnetwork.payments.provider import CheckoutSessionResult, PaymentProvider
from teamnetwork.payments.store import PaymentAttemptStore
from teamnetwork.payments.waiter import wait_for_existing_stripe_resource
from teamnetwork.shared.config import DEFAULT_PRIMARY_COLOR
from teamnetwork.shared.models import AttemptStatus, PaymentAttempt

logger = structlog.get_logger(__name__)

_DEAD_STATUSES = {AttemptStatus.failed.value, AttemptStatus.canceled.value}


@dataclass
class CheckoutResult:
    """What the request layer needs to answer a checkout call."""

    mode: str
    idempotency_key: str
    payment_attempt_id: str
    session_id: str | None = None
    url: str | None = None
    payment_intent_id: str | None = None
    client_secret: str | None = None
    replayed: bool = False


def _compact(params: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in params.items() if v is not None}


class CheckoutOrchestrator:
    """Runs donation and subscription checkouts through the attempt lifecycle."""

    def __init__(
        self,
        store: PaymentAttemptStore,
        provider: PaymentProvider,
        *,
        wait_ms: int | None = None,
        poll_ms: int | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._wait_ms = wait_ms
        self._poll_ms = poll_ms

    # ------------------------------------------------------------------
    # Donations
    # ------------------------------------------------------------------

    async def start_donation(
        self,
        flow: DonationCheckout | DonationPaymentIntent,
        *,
        origin: str,
        idempotency_key: str | None = None,
        attempt_id: str | None = None,
    ) -> CheckoutResult:
        fingerprint = flow.fingerprint()
        metadata = flow.attempt_metadata()

        attempt = await ensure_payment_attempt(
            self._store,
            idempotency_key=idempotency_key,
            attempt_id=attempt_id,
            flow_type=flow.flow_type,
            amount_cents=flow.amount_cents,
            currency=flow.currency,
            organization_id=flow.organization_id,
            stripe_connected_account_id=flow.stripe_connected_account_id,
            fingerprint=fingerprint,
            metadata=metadata,
        )
        metadata["payment_attempt_id"] = attempt.id

        if isinstance(flow, DonationPaymentIntent):
            create = self._payment_intent_creator(flow, metadata)
        else:
            create = self._donation_checkout_creator(flow, metadata, origin)

        return await self._run(flow, attempt, fingerprint, create)

    def _donation_checkout_creator(
        self, flow: DonationCheckout, metadata: dict[str, str], origin: str
    ) -> Callable[[PaymentAttempt], Awaitable[CheckoutResult]]:
        async def create(attempt: PaymentAttempt) -> CheckoutResult:
            fee = flow.platform_fee_cents or None
            params = {
                "mode": "payment",
                "submit_type": "donate",
                "line_items": [
                    {
                        "quantity": 1,
                        "price_data": {
                            "currency": flow.currency,
                            "unit_amount": flow.amount_cents,
                            "product_data": {
                                "name": f"Donation to {flow.organization_name}",
                                "metadata": metadata,
                            },
                        },
                    }
                ],
                "customer_email": flow.donor_email,
                "metadata": metadata,
                "payment_intent_data": _compact(
                    {
                        "metadata": metadata,
                        "receipt_email": flow.donor_email,
                        "application_fee_amount": fee,
                    }
                ),
                "success_url": (
                    f"{origin}/{flow.organization_slug}/donations"
                    "?donation=success&session_id={CHECKOUT_SESSION_ID}"
                ),
                "cancel_url": f"{origin}/{flow.organization_slug}/donations?donation=cancelled",
            }
            session = await self._provider.create_checkout_session(
                _compact(params),
                idempotency_key=attempt.idempotency_key,
                stripe_account=flow.stripe_connected_account_id,
            )
            await update_payment_attempt(
                self._store,
                attempt.id,
                **_compact(
                    {
                        "stripe_payment_intent_id": session.payment_intent_id,
                        "stripe_checkout_session_id": session.id,
                        "checkout_url": session.url,
                        "status": AttemptStatus.processing.value,
                        "stripe_connected_account_id": flow.stripe_connected_account_id,
                    }
                ),
            )
            if session.payment_intent_id:
                await self._tag_payment_intent(attempt, session, metadata, flow)
            return CheckoutResult(
                mode=flow.mode,
                session_id=session.id,
                url=session.url,
                idempotency_key=attempt.idempotency_key,
                payment_attempt_id=attempt.id,
            )

        return create

    async def _tag_payment_intent(
        self,
        attempt: PaymentAttempt,
        session: CheckoutSessionResult,
        metadata: dict[str, str],
        flow: DonationCheckout,
    ) -> None:
        """Copy the session id onto its payment intent. Best effort: the session is already recorded."""
        try:
            # Stripe rejects one key reused across endpoints; derive a sibling key.
            await self._provider.update_payment_intent(
                session.payment_intent_id,
                {"metadata": {**metadata, "checkout_session_id": session.id}},
                idempotency_key=f"{attempt.idempotency_key}:pi-metadata",
                stripe_account=flow.stripe_connected_account_id,
            )
        except PaymentProviderError as exc:
            logger.warning(
                "payment_intent_tag_failed",
                attempt_id=attempt.id,
                payment_intent_id=session.payment_intent_id,
                error=exc.message,
            )

    def _payment_intent_creator(
        self, flow: DonationPaymentIntent, metadata: dict[str, str]
    ) -> Callable[[PaymentAttempt], Awaitable[CheckoutResult]]:
        async def create(attempt: PaymentAttempt) -> CheckoutResult:
            params = {
                "amount": flow.amount_cents,
                "currency": flow.currency,
                "automatic_payment_methods": {"enabled": True},
                "receipt_email": flow.donor_email,
                "description": flow.description,
                "metadata": metadata,
                "application_fee_amount": flow.platform_fee_cents or None,
            }
            intent = await self._provider.create_payment_intent(
                _compact(params),
                idempotency_key=attempt.idempotency_key,
                stripe_account=flow.stripe_connected_account_id,
            )
            await update_payment_attempt(
                self._store,
                attempt.id,
                stripe_payment_intent_id=intent.id,
                status=AttemptStatus.processing.value,
                stripe_connected_account_id=flow.stripe_connected_account_id,
            )
            return CheckoutResult(
                mode=flow.mode,
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                idempotency_key=attempt.idempotency_key,
                payment_attempt_id=attempt.id,
            )

        return create

    # ------------------------------------------------------------------
    # Organization subscription
    # ------------------------------------------------------------------

    async def start_subscription_checkout(
        self,
        flow: SubscriptionCheckout,
        *,
        origin: str,
        idempotency_key: str | None = None,
        attempt_id: str | None = None,
    ) -> CheckoutResult:
        fingerprint = flow.fingerprint()
        seed_metadata = flow.attempt_metadata()

        attempt = await ensure_payment_attempt(
            self._store,
            idempotency_key=idempotency_key,
            attempt_id=attempt_id,
            flow_type=flow.flow_type,
            amount_cents=flow.amount_cents,
            currency=flow.currency,
            user_id=flow.user_id,
            fingerprint=fingerprint,
            metadata=seed_metadata,
        )

        # A reused attempt keeps the pending organization id it was created with.
        stored = attempt.metadata_ or {}
        pending_org_id = stored.get("pending_org_id") or seed_metadata["pending_org_id"]
        metadata = {
            "organization_id": pending_org_id,
            "organization_slug": flow.slug,
            "organization_name": flow.organization_name,
            "organization_description": (flow.description or "")[:500],
            "organization_color": flow.primary_color or DEFAULT_PRIMARY_COLOR,
            "alumni_bucket": flow.alumni_bucket,
            "created_by": flow.user_id,
            "base_interval": flow.billing_interval,
            "payment_attempt_id": attempt.id,
        }

        async def create(claimed: PaymentAttempt) -> CheckoutResult:
            line_items = [{"price": flow.base_price_id, "quantity": 1}]
            if flow.alumni_price_id:
                line_items.append({"price": flow.alumni_price_id, "quantity": 1})

            session = await self._provider.create_checkout_session(
                _compact(
                    {
                        "mode": "subscription",
                        "customer_email": flow.user_email,
                        "line_items": line_items,
                        "subscription_data": {"metadata": metadata},
                        "metadata": metadata,
                        "success_url": f"{origin}/app?org={flow.slug}&checkout=success",
                        "cancel_url": f"{origin}/app?org={flow.slug}&checkout=cancel",
                    }
                ),
                idempotency_key=claimed.idempotency_key,
            )
            await update_payment_attempt(
                self._store,
                claimed.id,
                stripe_checkout_session_id=session.id,
                checkout_url=session.url,
                status=AttemptStatus.processing.value,
            )
            return CheckoutResult(
                mode=flow.mode,
                session_id=session.id,
                url=session.url,
                idempotency_key=claimed.idempotency_key,
                payment_attempt_id=claimed.id,
            )

        return await self._run(flow, attempt, fingerprint, create)

    # ------------------------------------------------------------------
    # Shared claim / serve / wait path
    # ------------------------------------------------------------------

    async def _run(
        self,
        flow: PaymentFlow,
        attempt: PaymentAttempt,
        fingerprint: str,
        create: Callable[[PaymentAttempt], Awaitable[CheckoutResult]],
    ) -> CheckoutResult:
        claim = await claim_payment_attempt(
            self._store,
            attempt,
            amount_cents=flow.amount_cents,
            currency=flow.currency,
            stripe_connected_account_id=flow.stripe_connected_account_id,
            fingerprint=fingerprint,
        )

        if not claim.claimed:
            return await self._serve_or_wait(flow, claim.attempt)

        try:
            result = await create(claim.attempt)
        except PaymentProviderError as exc:
            await self._record_failure(claim.attempt, exc.message)
            raise

        logger.info(
            "checkout_started",
            flow_type=flow.flow_type.value,
            attempt_id=result.payment_attempt_id,
            key=result.idempotency_key,
            session_id=result.session_id,
            payment_intent_id=result.payment_intent_id,
        )
        return result

    async def _serve_or_wait(self, flow: PaymentFlow, attempt: PaymentAttempt) -> CheckoutResult:
        if has_stripe_resource(attempt):
            existing = await self._serve_existing(flow, attempt)
            if existing is not None:
                return existing

        if attempt.status in _DEAD_STATUSES:
            raise self._dead_attempt_error(attempt)

        awaited = await wait_for_existing_stripe_resource(
            self._store,
            attempt.id,
            max_wait_ms=self._wait_ms,
            poll_interval_ms=self._poll_ms,
        )
        if awaited is not None:
            existing = await self._serve_existing(flow, awaited)
            if existing is not None:
                return existing

        latest = awaited or await self._store.get(attempt.id) or attempt
        if latest.status in _DEAD_STATUSES and not has_stripe_resource(latest):
            raise self._dead_attempt_error(latest)

        logger.warning(
            "payment_in_flight",
            attempt_id=attempt.id,
            key=attempt.idempotency_key,
            status=latest.status,
        )
        raise PaymentInFlightError(
            "Payment is already in progress for this idempotency key. "
            "Retry shortly with the same key.",
            idempotency_key=attempt.idempotency_key,
            attempt_id=attempt.id,
        )

    async def _serve_existing(
        self, flow: PaymentFlow, attempt: PaymentAttempt
    ) -> CheckoutResult | None:
        if attempt.stripe_checkout_session_id and attempt.checkout_url:
            logger.info(
                "checkout_replayed",
                attempt_id=attempt.id,
                key=attempt.idempotency_key,
                session_id=attempt.stripe_checkout_session_id,
            )
            return CheckoutResult(
                mode=flow.mode,
                session_id=attempt.stripe_checkout_session_id,
                url=attempt.checkout_url,
                idempotency_key=attempt.idempotency_key,
                payment_attempt_id=attempt.id,
                replayed=True,
            )

        if attempt.stripe_payment_intent_id and not isinstance(flow, SubscriptionCheckout):
            # The client secret is not stored; fetch it again.
            intent = await self._provider.retrieve_payment_intent(
                attempt.stripe_payment_intent_id,
                stripe_account=attempt.stripe_connected_account_id,
            )
            logger.info(
                "payment_intent_replayed",
                attempt_id=attempt.id,
                key=attempt.idempotency_key,
                payment_intent_id=intent.id,
            )
            return CheckoutResult(
                mode=DonationPaymentIntent.mode,
                payment_intent_id=intent.id,
                client_secret=intent.client_secret,
                idempotency_key=attempt.idempotency_key,
                payment_attempt_id=attempt.id,
                replayed=True,
            )

        return None

    def _dead_attempt_error(self, attempt: PaymentAttempt) -> PaymentAttemptFailedError:
        return PaymentAttemptFailedError(
            f"The payment attempt for this idempotency key is {attempt.status}"
            + (f" ({attempt.last_error})" if attempt.last_error else "")
            + ". Start a new payment with a new idempotency key.",
            idempotency_key=attempt.idempotency_key,
            attempt_id=attempt.id,
        )

    async def _record_failure(self, attempt: PaymentAttempt, message: str) -> None:
        """Best effort: a failure here must not mask the provider error."""
        try:
            await self._store.record_error_by_id(
                attempt.id, message, status=AttemptStatus.failed.value
            )
        except Exception as exc:
            logger.error(
                "payment_attempt_error_record_failed",
                attempt_id=attempt.id,
                error=str(exc),
            )
