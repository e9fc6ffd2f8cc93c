"""Bounded wait for a concurrent claimant to record its provider resource."""
from __future__ import annotations

import asyncio

import structlog

from teamnetwork.payments.attempts import has_stripe_resource
from teamnetwork.payments.store import PaymentAttemptStore
from teamnetwork.shared import config
from teamnetwork.shared.metrics import WAITER_SECONDS
from teamnetwork.shared.models import AttemptStatus, PaymentAttempt

logger = structlog.get_logger(__name__)

_TERMINAL_WITHOUT_RESOURCE = {AttemptStatus.failed.value, AttemptStatus.canceled.value}


async def wait_for_existing_stripe_resource(
    store: PaymentAttemptStore,
    attempt_id: str,
    *,
    max_wait_ms: int | None = None,
    poll_interval_ms: int | None = None,
) -> PaymentAttempt | None:
    """Poll the attempt until it carries a provider resource id.

    Returns the attempt as soon as a checkout session or payment intent id is
    visible, or None once ``max_wait_ms`` has elapsed.  Gives up early when
    the attempt ends in failed/canceled without a resource, since nothing
    will be backfilled after that.
    """
    max_wait = (config.PAYMENT_ATTEMPT_WAIT_MS if max_wait_ms is None else max_wait_ms) / 1000
    interval = (
        config.PAYMENT_ATTEMPT_POLL_MS if poll_interval_ms is None else poll_interval_ms
    ) / 1000

    loop = asyncio.get_running_loop()
    started = loop.time()
    deadline = started + max_wait

    while True:
        attempt = await store.get(attempt_id)
        if attempt is None:
            logger.warning("wait_for_resource_missing", attempt_id=attempt_id)
            WAITER_SECONDS.labels(outcome="missing").observe(loop.time() - started)
            return None

        if has_stripe_resource(attempt):
            elapsed = loop.time() - started
            WAITER_SECONDS.labels(outcome="found").observe(elapsed)
            logger.info(
                "wait_for_resource_found",
                attempt_id=attempt_id,
                waited_ms=round(elapsed * 1000),
            )
            return attempt

        if attempt.status in _TERMINAL_WITHOUT_RESOURCE:
            WAITER_SECONDS.labels(outcome="terminal").observe(loop.time() - started)
            logger.info(
                "wait_for_resource_terminal",
                attempt_id=attempt_id,
                status=attempt.status,
            )
            return None

        remaining = deadline - loop.time()
        if remaining <= 0:
            break
        await asyncio.sleep(min(interval, remaining))

    WAITER_SECONDS.labels(outcome="timeout").observe(loop.time() - started)
    logger.warning("wait_for_resource_timeout", attempt_id=attempt_id, max_wait_ms=max_wait * 1000)
    return None
