"""Tenant rule administration."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.api.dependencies.session import require_tenant_admin
from cardledger_api.db.session import get_session
from cardledger_api.services.ledger import ActorContext, initialize_default_rules


router = APIRouter(prefix="/rules", tags=["rules"])


class DefaultRulesResponse(BaseModel):
    created: int


@router.post("/defaults", response_model=DefaultRulesResponse)
async def seed_default_rules(
    actor: ActorContext = Depends(require_tenant_admin),
    db: AsyncSession = Depends(get_session),
) -> DefaultRulesResponse:
    """Create any missing default cashback and tier rules for the caller's tenant."""

    created = await initialize_default_rules(db, actor.tenant_id)
    await db.commit()
    return DefaultRulesResponse(created=created)
