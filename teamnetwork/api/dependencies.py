"""FastAPI dependency providers; tests override these."""
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from teamnetwork.payments.orchestrator import CheckoutOrchestrator
from teamnetwork.payments.provider import PaymentProvider, StripeProvider
from teamnetwork.payments.store import PaymentAttemptStore
from teamnetwork.shared.database import get_session_factory

_stripe_provider = StripeProvider()


def get_provider() -> PaymentProvider:
    return _stripe_provider


def get_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> PaymentAttemptStore:
    return PaymentAttemptStore(session_factory)


def get_orchestrator(
    store: PaymentAttemptStore = Depends(get_store),
    provider: PaymentProvider = Depends(get_provider),
) -> CheckoutOrchestrator:
    return CheckoutOrchestrator(store, provider)
