"""Cashier-facing EARN, REDEEM and ADJUST endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.api.dependencies.services import get_ledger_dispatcher
from cardledger_api.api.dependencies.session import require_actor
from cardledger_api.api.errors import to_http_exception
from cardledger_api.db.session import get_session
from cardledger_api.models.ledger import LedgerTransactionTypeEnum
from cardledger_api.models.rules import TransactionCategoryEnum
from cardledger_api.services.ledger import (
    ActorContext,
    LedgerError,
    LedgerEventDispatcher,
    LedgerResult,
    LedgerService,
)


router = APIRouter(prefix="/transactions", tags=["transactions"])


class TransactionRequest(BaseModel):
    cardUid: str = Field(..., min_length=1, description="Identifier printed on or encoded in the card")
    amountCents: int = Field(..., description="Amount in minor units; signed for adjustments")
    storeId: UUID = Field(..., description="Store where the transaction takes place")
    category: Optional[TransactionCategoryEnum] = Field(None, description="Cashback category for earn")
    note: Optional[str] = Field(None, max_length=500)


class TransactionResponse(BaseModel):
    id: UUID
    type: str
    cardUid: str
    amountCents: int
    cashbackCents: int
    balanceBeforeCents: int
    balanceAfterCents: int
    category: Optional[str]
    rateBps: Optional[int]
    tier: Optional[str]
    previousTier: Optional[str]
    tierChanged: bool
    createdAt: datetime


def _to_response(card_uid: str, result: LedgerResult) -> TransactionResponse:
    transaction = result.transaction
    return TransactionResponse(
        id=transaction.id,
        type=transaction.type.value,
        cardUid=card_uid,
        amountCents=int(transaction.amount_cents),
        cashbackCents=int(transaction.cashback_cents),
        balanceBeforeCents=int(transaction.balance_before_cents),
        balanceAfterCents=int(transaction.balance_after_cents),
        category=transaction.category.value if transaction.category else None,
        rateBps=result.rate.rate_bps if result.rate else None,
        tier=result.tier.tier if result.tier else None,
        previousTier=result.tier.previous_tier if result.tier else None,
        tierChanged=bool(result.tier and result.tier.changed),
        createdAt=transaction.created_at,
    )


async def _apply(
    transaction_type: LedgerTransactionTypeEnum,
    payload: TransactionRequest,
    request: Request,
    actor: ActorContext,
    db: AsyncSession,
    dispatcher: LedgerEventDispatcher,
) -> TransactionResponse:
    service = LedgerService(db, dispatcher=dispatcher)
    try:
        result = await service.apply_transaction(
            card_uid=payload.cardUid,
            transaction_type=transaction_type,
            amount_cents=payload.amountCents,
            store_id=payload.storeId,
            actor=actor,
            category=payload.category,
            note=payload.note,
            source_ip=request.client.host if request.client else None,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(payload.cardUid, result)


@router.post("/earn", response_model=TransactionResponse)
async def earn_cashback(
    payload: TransactionRequest,
    request: Request,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> TransactionResponse:
    """Record a purchase on the card and credit the resolved cashback."""
    return await _apply(LedgerTransactionTypeEnum.EARN, payload, request, actor, db, dispatcher)


@router.post("/redeem", response_model=TransactionResponse)
async def redeem_balance(
    payload: TransactionRequest,
    request: Request,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> TransactionResponse:
    """Spend part of the card balance."""
    return await _apply(LedgerTransactionTypeEnum.REDEEM, payload, request, actor, db, dispatcher)


@router.post("/adjust", response_model=TransactionResponse)
async def adjust_balance(
    payload: TransactionRequest,
    request: Request,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> TransactionResponse:
    return await _apply(LedgerTransactionTypeEnum.ADJUST, payload, request, actor, db, dispatcher)
