"""Typed failures raised by the ledger core and mapped to HTTP by the API layer."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for ledger rejections; nothing was persisted when raised."""

    code = "ledger_error"

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(LedgerError):
    code = "not_found"


class UnauthorizedError(LedgerError):
    code = "unauthorized"


class InvalidStateError(LedgerError):
    code = "invalid_state"


class PolicyViolationError(LedgerError):
    code = "policy_violation"


class InsufficientFundsError(LedgerError):
    code = "insufficient_funds"


class LedgerValidationError(LedgerError):
    code = "validation_error"


class PaymentLinkUnavailableError(LedgerError):
    code = "payment_link_unavailable"


class ConcurrentModificationError(LedgerError):
    """A competing writer changed the card or customer first; safe to retry."""

    code = "concurrent_modification"
    retryable = True


__all__ = [
    "ConcurrentModificationError",
    "InsufficientFundsError",
    "InvalidStateError",
    "LedgerError",
    "LedgerValidationError",
    "NotFoundError",
    "PaymentLinkUnavailableError",
    "PolicyViolationError",
    "UnauthorizedError",
]
