"""Customer read models for the cashier console."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.api.dependencies.session import require_actor
from cardledger_api.db.session import get_session
from cardledger_api.models.card import Customer
from cardledger_api.services.ledger import ActorContext, TierEvaluator


router = APIRouter(prefix="/customers", tags=["customers"])


class TierProgressResponse(BaseModel):
    customerId: UUID
    currentTier: str
    currentSpendCents: int
    currentTierMinCents: int
    nextTier: Optional[str]
    nextTierMinCents: Optional[int]
    progressPercent: float
    remainingToNextCents: int


@router.get("/{customer_id}/tier-progress", response_model=TierProgressResponse)
async def get_tier_progress(
    customer_id: UUID,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
) -> TierProgressResponse:
    customer = await db.get(Customer, customer_id)
    if customer is None or customer.tenant_id != actor.tenant_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

    progress = await TierEvaluator(db).tier_progress(actor.tenant_id, customer)
    return TierProgressResponse(
        customerId=customer.id,
        currentTier=progress.current_tier,
        currentSpendCents=progress.current_spend_cents,
        currentTierMinCents=progress.current_tier_min_cents,
        nextTier=progress.next_tier,
        nextTierMinCents=progress.next_tier_min_cents,
        progressPercent=progress.progress_percent,
        remainingToNextCents=progress.remaining_to_next_cents,
    )
