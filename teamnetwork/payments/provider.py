"""
Payment provider adapter.

``PaymentProvider`` is the async interface the orchestrator depends on;
``StripeProvider`` backs it with the stripe SDK.  Every creating call takes
the attempt's idempotency key, so Stripe itself deduplicates a repeated call
even if the store-level claim were bypassed.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Protocol

import stripe
import structlog

from teamnetwork.payments.errors import PaymentProviderError
from teamnetwork.shared import config
from teamnetwork.shared.metrics import PROVIDER_CALLS

logger = structlog.get_logger(__name__)

stripe.api_key = config.STRIPE_SECRET_KEY


@dataclass(frozen=True)
class CheckoutSessionResult:
    id: str
    url: str | None
    payment_intent_id: str | None = None


@dataclass(frozen=True)
class PaymentIntentResult:
    id: str
    client_secret: str | None


@dataclass(frozen=True)
class ConnectAccountStatus:
    account_id: str
    charges_enabled: bool
    details_submitted: bool
    payouts_enabled: bool

    @property
    def is_ready(self) -> bool:
        return self.charges_enabled and self.details_submitted


class PaymentProvider(Protocol):
    async def create_checkout_session(
        self,
        params: dict[str, Any],
        *,
        idempotency_key: str,
        stripe_account: str | None = None,
    ) -> CheckoutSessionResult: ...

    async def create_payment_intent(
        self,
        params: dict[str, Any],
        *,
        idempotency_key: str,
        stripe_account: str | None = None,
    ) -> PaymentIntentResult: ...

    async def retrieve_payment_intent(
        self, payment_intent_id: str, *, stripe_account: str | None = None
    ) -> PaymentIntentResult: ...

    async def update_payment_intent(
        self,
        payment_intent_id: str,
        params: dict[str, Any],
        *,
        idempotency_key: str,
        stripe_account: str | None = None,
    ) -> None: ...

    async def get_connect_account_status(self, account_id: str) -> ConnectAccountStatus: ...


def _account_options(stripe_account: str | None) -> dict[str, Any]:
    return {"stripe_account": stripe_account} if stripe_account else {}


class StripeProvider:
    """PaymentProvider backed by the blocking stripe SDK, run off the event loop."""

    async def _call(self, operation: str, fn, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await asyncio.to_thread(fn, *args, **kwargs)
        except stripe.StripeError as exc:
            PROVIDER_CALLS.labels(operation=operation, outcome="error").inc()
            message = exc.user_message or str(exc) or f"{operation} failed"
            logger.error(
                "stripe_call_failed",
                operation=operation,
                code=exc.code,
                http_status=exc.http_status,
                error=message,
            )
            raise PaymentProviderError(message, code=exc.code) from exc
        PROVIDER_CALLS.labels(operation=operation, outcome="ok").inc()
        return result

    async def create_checkout_session(
        self,
        params: dict[str, Any],
        *,
        idempotency_key: str,
        stripe_account: str | None = None,
    ) -> CheckoutSessionResult:
        session = await self._call(
            "checkout_session_create",
            stripe.checkout.Session.create,
            idempotency_key=idempotency_key,
            **_account_options(stripe_account),
            **params,
        )
        payment_intent = session.get("payment_intent")
        return CheckoutSessionResult(
            id=session["id"],
            url=session.get("url"),
            payment_intent_id=payment_intent if isinstance(payment_intent, str) else None,
        )

    async def create_payment_intent(
        self,
        params: dict[str, Any],
        *,
        idempotency_key: str,
        stripe_account: str | None = None,
    ) -> PaymentIntentResult:
        intent = await self._call(
            "payment_intent_create",
            stripe.PaymentIntent.create,
            idempotency_key=idempotency_key,
            **_account_options(stripe_account),
            **params,
        )
        return PaymentIntentResult(id=intent["id"], client_secret=intent.get("client_secret"))

    async def retrieve_payment_intent(
        self, payment_intent_id: str, *, stripe_account: str | None = None
    ) -> PaymentIntentResult:
        intent = await self._call(
            "payment_intent_retrieve",
            stripe.PaymentIntent.retrieve,
            payment_intent_id,
            **_account_options(stripe_account),
        )
        return PaymentIntentResult(id=intent["id"], client_secret=intent.get("client_secret"))

    async def update_payment_intent(
        self,
        payment_intent_id: str,
        params: dict[str, Any],
        *,
        idempotency_key: str,
        stripe_account: str | None = None,
    ) -> None:
        await self._call(
            "payment_intent_update",
            stripe.PaymentIntent.modify,
            payment_intent_id,
            idempotency_key=idempotency_key,
            **_account_options(stripe_account),
            **params,
        )

    async def get_connect_account_status(self, account_id: str) -> ConnectAccountStatus:
        account = await self._call("account_retrieve", stripe.Account.retrieve, account_id)
        return ConnectAccountStatus(
            account_id=account_id,
            charges_enabled=bool(account.get("charges_enabled")),
            details_submitted=bool(account.get("details_submitted")),
            payouts_enabled=bool(account.get("payouts_enabled")),
        )
