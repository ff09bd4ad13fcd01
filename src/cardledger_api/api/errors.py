"""Translate ledger failures into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from cardledger_api.services.ledger import (
    ConcurrentModificationError,
    InsufficientFundsError,
    InvalidStateError,
    LedgerError,
    LedgerValidationError,
    NotFoundError,
    PaymentLinkUnavailableError,
    PolicyViolationError,
    UnauthorizedError,
)


_STATUS_BY_ERROR: dict[type[LedgerError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    InvalidStateError: status.HTTP_409_CONFLICT,
    PolicyViolationError: status.HTTP_403_FORBIDDEN,
    InsufficientFundsError: 422,
    LedgerValidationError: status.HTTP_400_BAD_REQUEST,
    PaymentLinkUnavailableError: status.HTTP_410_GONE,
    ConcurrentModificationError: status.HTTP_409_CONFLICT,
}


def to_http_exception(error: LedgerError) -> HTTPException:
    status_code = _STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    headers = None
    if isinstance(error, ConcurrentModificationError):
        headers = {"Retry-After": "1"}
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
        headers=headers,
    )


__all__ = ["to_http_exception"]
