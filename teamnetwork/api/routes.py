"""
Checkout routes.

POST /api/stripe/create-donation:
    Donation to an organization through its connected Stripe account, either
    as a hosted checkout session or a payment intent confirmed client-side.

POST /api/stripe/create-org-checkout:
    Subscription checkout for a new organization (authenticated user).

Both accept an optional ``idempotencyKey`` / ``paymentAttemptId``.  A repeat
of the same request returns the resource created the first time, with
X-Idempotency-Replay: true.  Reusing a key for a different request is a 409.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from teamnetwork.api.auth import AuthenticatedUser, get_current_user
from teamnetwork.api.dependencies import get_orchestrator, get_provider
from teamnetwork.payments.fingerprint import normalize_currency, normalize_text
from teamnetwork.payments.flows import MIN_DONATION_CENTS, SubscriptionCheckout, donation_flow
from teamnetwork.payments.orchestrator import CheckoutOrchestrator, CheckoutResult
from teamnetwork.payments.provider import PaymentProvider
from teamnetwork.shared.config import ALUMNI_BUCKETS, get_price_ids, is_sales_led_bucket
from teamnetwork.shared.database import get_db
from teamnetwork.shared.models import Event, Organization
from teamnetwork.shared.schemas import (
    CheckoutResponse,
    DonationRequest,
    ErrorResponse,
    OrgCheckoutRequest,
)

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["checkout"])

_ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def _origin(request: Request) -> str:
    return request.headers.get("origin") or str(request.base_url).rstrip("/")


def _to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _respond(result: CheckoutResult, response: Response, *, include_mode: bool = True) -> CheckoutResponse:
    response.headers["X-Idempotency-Replay"] = "true" if result.replayed else "false"
    return CheckoutResponse(
        mode=result.mode if include_mode else None,
        session_id=result.session_id if include_mode else None,
        url=result.url,
        payment_intent_id=result.payment_intent_id,
        client_secret=result.client_secret,
        idempotency_key=result.idempotency_key,
        payment_attempt_id=result.payment_attempt_id,
    )


@router.post(
    "/api/stripe/create-donation",
    response_model=CheckoutResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
    summary="Start an idempotent donation checkout or payment intent",
)
async def create_donation(
    body: DonationRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    provider: PaymentProvider = Depends(get_provider),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> CheckoutResponse:
    amount_cents = _to_cents(body.amount)
    if amount_cents < MIN_DONATION_CENTS:
        raise HTTPException(status_code=400, detail="Amount must be at least $1.00")

    try:
        currency = normalize_currency(body.currency)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    platform_fee_cents = max(0, min(amount_cents, body.platform_fee_amount_cents or 0))

    if body.organization_id:
        org_filter = Organization.id == body.organization_id
    elif body.organization_slug:
        org_filter = Organization.slug == body.organization_slug
    else:
        raise HTTPException(
            status_code=400, detail="organizationId or organizationSlug is required"
        )

    org = (await db.execute(select(Organization).where(org_filter))).scalar_one_or_none()
    if org is None:
        raise HTTPException(status_code=404, detail="Organization not found")

    if not org.stripe_connect_account_id:
        raise HTTPException(
            status_code=400, detail="Stripe is not connected for this organization"
        )

    connect_status = await provider.get_connect_account_status(org.stripe_connect_account_id)
    if not connect_status.is_ready:
        raise HTTPException(
            status_code=400,
            detail="Stripe onboarding is not completed for this organization",
        )

    event_id = normalize_text(body.event_id)
    if event_id:
        event = (
            await db.execute(
                select(Event.id)
                .where(Event.id == event_id)
                .where(Event.organization_id == org.id)
            )
        ).scalar_one_or_none()
        if event is None:
            raise HTTPException(
                status_code=404,
                detail="Philanthropy event not found for this organization",
            )

    flow = donation_flow(
        body.mode,
        organization_id=org.id,
        organization_slug=org.slug,
        organization_name=org.name,
        stripe_connected_account_id=org.stripe_connect_account_id,
        amount_cents=amount_cents,
        currency=currency,
        donor_name=normalize_text(body.donor_name),
        donor_email=normalize_text(body.donor_email),
        event_id=event_id,
        purpose=normalize_text(body.purpose),
        platform_fee_cents=platform_fee_cents,
    )

    result = await orchestrator.start_donation(
        flow,
        origin=_origin(request),
        idempotency_key=normalize_text(body.idempotency_key),
        attempt_id=normalize_text(body.payment_attempt_id),
    )
    logger.info(
        "donation_checkout_response",
        organization_id=org.id,
        mode=result.mode,
        attempt_id=result.payment_attempt_id,
        replayed=result.replayed,
    )
    return _respond(result, response)


@router.post(
    "/api/stripe/create-org-checkout",
    response_model=CheckoutResponse,
    response_model_exclude_none=True,
    responses=_ERROR_RESPONSES,
    summary="Start an idempotent subscription checkout for a new organization",
)
async def create_org_checkout(
    body: OrgCheckoutRequest,
    request: Request,
    response: Response,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: CheckoutOrchestrator = Depends(get_orchestrator),
) -> CheckoutResponse:
    name = normalize_text(body.name)
    slug = normalize_text(body.slug)
    if not name or not slug:
        raise HTTPException(status_code=400, detail="Name and slug are required")

    interval = "year" if body.billing_interval == "year" else "month"
    bucket = body.alumni_bucket if body.alumni_bucket in ALUMNI_BUCKETS else "none"

    taken = (
        await db.execute(select(Organization.id).where(Organization.slug == slug))
    ).scalar_one_or_none()
    if taken is not None:
        raise HTTPException(status_code=409, detail="Slug is already taken")

    if is_sales_led_bucket(bucket):
        raise HTTPException(
            status_code=400,
            detail=(
                "Alumni tier 1500+ is sales-led. This service only starts self-serve "
                "checkout; contact sales to create the organization."
            ),
        )

    base_price, alumni_price = get_price_ids(interval, bucket)
    flow = SubscriptionCheckout(
        user_id=user.id,
        user_email=user.email,
        organization_name=name,
        slug=slug,
        description=normalize_text(body.description),
        primary_color=normalize_text(body.primary_color),
        billing_interval=interval,
        alumni_bucket=bucket,
        base_price_id=base_price,
        alumni_price_id=alumni_price,
    )

    result = await orchestrator.start_subscription_checkout(
        flow,
        origin=_origin(request),
        idempotency_key=normalize_text(body.idempotency_key),
        attempt_id=normalize_text(body.payment_attempt_id),
    )
    logger.info(
        "org_checkout_response",
        user_id=user.id,
        slug=slug,
        attempt_id=result.payment_attempt_id,
        replayed=result.replayed,
    )
    return _respond(result, response, include_mode=False)


@router.get("/health", summary="Health check")
async def health() -> dict:
    return {"status": "ok", "service": "teamnetwork-payments"}
