from __future__ import annotations

from typing import Dict, Literal

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.db.session import get_session
from cardledger_api.observability.ledger import get_ledger_store


router = APIRouter()


class ComponentStatus(BaseModel):
    status: Literal["ready", "degraded", "error"]
    detail: str | None = Field(default=None, description="Human readable status detail")


class ReadinessPayload(BaseModel):
    status: Literal["ready", "degraded", "error"]
    components: Dict[str, ComponentStatus]


@router.get("/healthz", summary="Service health check")
async def service_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz", summary="Service readiness", response_model=ReadinessPayload)
async def service_readiness(session: AsyncSession = Depends(get_session)) -> ReadinessPayload:
    components: Dict[str, ComponentStatus] = {}
    status: Literal["ready", "degraded", "error"] = "ready"

    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as error:
        logger.error("Database readiness probe failed", error=str(error))
        components["database"] = ComponentStatus(status="error", detail="Database unreachable")
        status = "error"
    else:
        components["database"] = ComponentStatus(status="ready")

    alerts = get_ledger_store().snapshot().alerts
    missing_cards = alerts.get("reconciliation_card_missing", 0)
    if missing_cards:
        components["reconciliation"] = ComponentStatus(
            status="degraded",
            detail=f"{missing_cards} completed purchase(s) could not be credited to a card",
        )
        if status == "ready":
            status = "degraded"
    else:
        components["reconciliation"] = ComponentStatus(status="ready")

    return ReadinessPayload(status=status, components=components)
