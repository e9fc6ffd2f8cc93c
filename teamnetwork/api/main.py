"""
TeamNetwork Payments API.

Idempotent checkout for donations and organization subscriptions.
- Each request is tied to a payment attempt row keyed by idempotency key
- A conditional UPDATE (created → processing) lets exactly one request call
  Stripe; duplicates replay the recorded session / payment intent
- Stripe receives the same idempotency key as a second line of defence
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from teamnetwork.payments.errors import (
    IdempotencyConflictError,
    PaymentAttemptError,
    PaymentAttemptFailedError,
    PaymentAttemptNotFound,
    PaymentInFlightError,
    PaymentProviderError,
)
from teamnetwork.shared.database import init_db
from teamnetwork.shared.logging_config import configure_logging
from teamnetwork.shared.schemas import ErrorResponse

from .routes import router

configure_logging()

logger = structlog.get_logger(__name__)

RETRY_AFTER_SECONDS = 1


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("payments_api_startup")
    await init_db()
    yield
    logger.info("payments_api_shutdown")


def _attempt_error_response(
    exc: PaymentAttemptError,
    status_code: int,
    *,
    retryable: bool | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(
        error=exc.message,
        idempotency_key=exc.idempotency_key,
        payment_attempt_id=exc.attempt_id,
        retryable=retryable,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=headers,
    )


async def handle_conflict(request: Request, exc: IdempotencyConflictError) -> JSONResponse:
    return _attempt_error_response(exc, 409, retryable=False)


async def handle_failed_attempt(request: Request, exc: PaymentAttemptFailedError) -> JSONResponse:
    return _attempt_error_response(exc, 409, retryable=False)


async def handle_in_flight(request: Request, exc: PaymentInFlightError) -> JSONResponse:
    return _attempt_error_response(
        exc,
        409,
        retryable=True,
        headers={"Retry-After": str(RETRY_AFTER_SECONDS)},
    )


async def handle_not_found(request: Request, exc: PaymentAttemptNotFound) -> JSONResponse:
    return _attempt_error_response(exc, 404)


async def handle_provider_error(request: Request, exc: PaymentProviderError) -> JSONResponse:
    logger.error("payment_provider_error", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(status_code=400, content={"error": exc.message})


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = ErrorResponse(error=exc.detail if isinstance(exc.detail, str) else str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="TeamNetwork Payments API",
        description=(
            "Idempotent donation and subscription checkout. "
            "Safe under duplicate submissions, concurrent retries and client timeouts."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(IdempotencyConflictError, handle_conflict)
    app.add_exception_handler(PaymentAttemptFailedError, handle_failed_attempt)
    app.add_exception_handler(PaymentInFlightError, handle_in_flight)
    app.add_exception_handler(PaymentAttemptNotFound, handle_not_found)
    app.add_exception_handler(PaymentProviderError, handle_provider_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)

    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("teamnetwork.api.main:app", host="0.0.0.0", port=8000, reload=False)
