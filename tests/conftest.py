from __future__ import annotations

import asyncio
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from teamnetwork.payments.errors import PaymentProviderError
from teamnetwork.payments.flows import DonationCheckout, DonationPaymentIntent
from teamnetwork.payments.provider import (
    CheckoutSessionResult,
    ConnectAccountStatus,
    PaymentIntentResult,
)
from teamnetwork.payments.store import PaymentAttemptStore
from teamnetwork.shared import models  # noqa: F401 – register models
from teamnetwork.shared.database import Base


class FakeProvider:
    """In-memory stand-in for Stripe that records every call."""

    def __init__(self) -> None:
        self.checkout_calls: list[dict[str, Any]] = []
        self.intent_calls: list[dict[str, Any]] = []
        self.retrieved: list[str] = []
        self.intent_updates: list[dict[str, Any]] = []
        self.checkout_with_intent = False
        self.fail_intent_update_with: PaymentProviderError | None = None
        self.gate: asyncio.Event | None = None
        self.fail_with: PaymentProviderError | None = None
        self.account_ready = True

    async def _maybe_block_or_fail(self) -> None:
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    async def create_checkout_session(
        self, params, *, idempotency_key, stripe_account=None
    ) -> CheckoutSessionResult:
        self.checkout_calls.append(
            {"params": params, "idempotency_key": idempotency_key, "stripe_account": stripe_account}
        )
        await self._maybe_block_or_fail()
        n = len(self.checkout_calls)
        return CheckoutSessionResult(
            id=f"cs_{n}",
            url=f"https://checkout.stripe.test/cs_{n}",
            payment_intent_id=f"pi_cs_{n}" if self.checkout_with_intent else None,
        )

    async def create_payment_intent(
        self, params, *, idempotency_key, stripe_account=None
    ) -> PaymentIntentResult:
        self.intent_calls.append(
            {"params": params, "idempotency_key": idempotency_key, "stripe_account": stripe_account}
        )
        await self._maybe_block_or_fail()
        n = len(self.intent_calls)
        return PaymentIntentResult(id=f"pi_{n}", client_secret=f"pi_{n}_secret")

    async def retrieve_payment_intent(self, payment_intent_id, *, stripe_account=None):
        self.retrieved.append(payment_intent_id)
        return PaymentIntentResult(id=payment_intent_id, client_secret=f"{payment_intent_id}_secret")

    async def update_payment_intent(
        self, payment_intent_id, params, *, idempotency_key, stripe_account=None
    ) -> None:
        self.intent_updates.append(
            {
                "id": payment_intent_id,
                "params": params,
                "idempotency_key": idempotency_key,
                "stripe_account": stripe_account,
            }
        )
        if self.fail_intent_update_with is not None:
            raise self.fail_intent_update_with

    async def get_connect_account_status(self, account_id):
        return ConnectAccountStatus(
            account_id=account_id,
            charges_enabled=self.account_ready,
            details_submitted=self.account_ready,
            payouts_enabled=self.account_ready,
        )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def store(session_factory) -> PaymentAttemptStore:
    return PaymentAttemptStore(session_factory)


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


def make_donation(mode: str = "checkout", **overrides: Any):
    fields: dict[str, Any] = {
        "organization_id": "org-1",
        "organization_slug": "alpha",
        "organization_name": "Alpha Chapter",
        "stripe_connected_account_id": "acct_alpha",
        "amount_cents": 2500,
        "currency": "usd",
        "donor_name": "Dana Donor",
        "donor_email": "dana@example.com",
    }
    fields.update(overrides)
    cls = DonationPaymentIntent if mode == "payment_intent" else DonationCheckout
    return cls(**fields)


@pytest.fixture
def donation():
    """Factory for donation flows with sensible defaults."""
    return make_donation
