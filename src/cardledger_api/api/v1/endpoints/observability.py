"""Observability endpoints for ledger and payment counters."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cardledger_api.api.dependencies.security import require_service_api_key
from cardledger_api.observability.ledger import get_ledger_store
from cardledger_api.observability.payments import get_payment_store


router = APIRouter(prefix="/observability", tags=["Observability"])


@router.get(
    "/ledger",
    dependencies=[Depends(require_service_api_key)],
    summary="Ledger observability snapshot",
)
async def get_ledger_snapshot() -> dict[str, object]:
    """Aggregated transaction, rejection, reconciliation and notification counters."""
    return get_ledger_store().snapshot().as_dict()


@router.get(
    "/payments",
    dependencies=[Depends(require_service_api_key)],
    summary="Payment intent and webhook snapshot",
)
async def get_payments_snapshot() -> dict[str, object]:
    return get_payment_store().snapshot().as_dict()
