"""Error taxonomy for payment-attempt orchestration."""
from __future__ import annotations


class PaymentAttemptError(Exception):
    """Base class; carries the attempt identity when known."""

    def __init__(
        self,
        message: str,
        *,
        idempotency_key: str | None = None,
        attempt_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.idempotency_key = idempotency_key
        self.attempt_id = attempt_id


class IdempotencyConflictError(PaymentAttemptError):
    """Same idempotency key presented with different semantic content. Never retried."""

    def __init__(
        self,
        message: str,
        *,
        idempotency_key: str | None = None,
        attempt_id: str | None = None,
        fields: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message, idempotency_key=idempotency_key, attempt_id=attempt_id)
        self.fields = fields


class PaymentInFlightError(PaymentAttemptError):
    """A concurrent request holds the claim and no external resource is visible yet."""


class PaymentAttemptFailedError(PaymentAttemptError):
    """The attempt behind this key already failed; a fresh key is required."""


class PaymentAttemptNotFound(PaymentAttemptError):
    """An explicit attempt id was supplied but no such row exists."""


class PaymentProviderError(Exception):
    """The payment provider rejected or failed a call."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
