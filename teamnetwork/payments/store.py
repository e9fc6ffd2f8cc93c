"""
Payment attempt store.

Thin row-level access to ``payment_attempts``.  Every method runs in its own
short session and commits before returning, so concurrent request handlers
(possibly on different instances) only coordinate through the database:

- insert_if_absent()   – INSERT … ON CONFLICT (idempotency_key) DO NOTHING
- get() / get_by_key() – fresh point reads
- transition_status()  – UPDATE … WHERE id = :id AND status = :expected
- update()             – partial update; external ids are write-once
- record_error_by_id() – best-effort last_error writes
"""
from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from teamnetwork.shared.models import PaymentAttempt

logger = structlog.get_logger(__name__)

# Columns that name a provider-side resource. Once set they never change.
EXTERNAL_ID_COLUMNS = ("stripe_checkout_session_id", "stripe_payment_intent_id")

attempts = PaymentAttempt.__table__

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class PaymentAttemptStore:
    """Durable store for payment attempts backed by an async session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get(self, attempt_id: str) -> PaymentAttempt | None:
        async with self._session_factory() as session:
            return await session.get(PaymentAttempt, attempt_id, populate_existing=True)

    async def get_by_key(self, idempotency_key: str) -> PaymentAttempt | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PaymentAttempt).where(
                    PaymentAttempt.idempotency_key == idempotency_key
                )
            )
            return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def insert_if_absent(self, values: dict[str, Any]) -> bool:
        """Insert a new attempt unless its idempotency key already exists.

        Returns True when this call created the row.  Racing inserts for the
        same key are serialised by the unique index; the loser gets False.
        """
        async with self._session_factory() as session:
            dialect = session.get_bind().dialect.name
            insert = _INSERTS.get(dialect)
            if insert is None:
                raise RuntimeError(f"Unsupported database dialect: {dialect}")

            stmt = (
                insert(attempts)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
            )
            result = await session.execute(stmt)
            await session.commit()

        inserted = result.rowcount == 1
        logger.debug(
            "payment_attempt_insert",
            key=values.get("idempotency_key"),
            inserted=inserted,
        )
        return inserted

    async def transition_status(
        self, attempt_id: str, expected: str, new: str
    ) -> bool:
        """Compare-and-swap the status column. True when exactly one row changed."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(attempts)
                .where(attempts.c.id == attempt_id)
                .where(attempts.c.status == expected)
                .values(status=new, updated_at=func.now())
            )
            await session.commit()
        return result.rowcount == 1

    async def update(self, attempt_id: str, values: dict[str, Any]) -> int:
        """Apply a partial update and return the affected row count.

        External id columns in ``values`` only match rows where the column is
        still null or already holds the same id, so a second, different id
        leaves the row untouched (rowcount 0).
        """
        stmt = (
            update(attempts)
            .where(attempts.c.id == attempt_id)
            .values(**values, updated_at=func.now())
        )
        for column in EXTERNAL_ID_COLUMNS:
            new_value = values.get(column)
            if new_value is not None:
                col = attempts.c[column]
                stmt = stmt.where(or_(col.is_(None), col == new_value))

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount

    async def record_error_by_id(
        self, attempt_id: str, message: str, *, status: str | None = None
    ) -> None:
        values: dict[str, Any] = {"last_error": message, "updated_at": func.now()}
        if status is not None:
            values["status"] = status
        async with self._session_factory() as session:
            await session.execute(
                update(attempts)
                .where(attempts.c.id == attempt_id)
                .values(**values)
            )
            await session.commit()
