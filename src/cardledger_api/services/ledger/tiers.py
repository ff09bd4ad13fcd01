"""Tier qualification from lifetime spend."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.models.card import Customer
from cardledger_api.models.rules import TierRule


@dataclass
class TierEvaluation:
    tier: str
    previous_tier: str
    changed: bool


@dataclass
class TierProgress:
    """Read model for how far a customer is from the next tier."""

    current_tier: str
    current_spend_cents: int
    current_tier_min_cents: int
    next_tier: Optional[str]
    next_tier_min_cents: Optional[int]
    progress_percent: float
    remaining_to_next_cents: int


def select_qualifying_tier(rules: Sequence[TierRule], total_spend_cents: int) -> Optional[TierRule]:
    """Highest threshold not above spend, else the lowest-defined tier."""

    if not rules:
        return None
    ordered = sorted(rules, key=lambda rule: int(rule.min_total_spend_cents), reverse=True)
    for rule in ordered:
        if int(rule.min_total_spend_cents) <= total_spend_cents:
            return rule
    return ordered[-1]


class TierEvaluator:
    """Recomputes and persists a customer's tier inside the caller's unit of work."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_active_rules(self, tenant_id: UUID) -> list[TierRule]:
        stmt = (
            select(TierRule)
            .where(TierRule.tenant_id == tenant_id, TierRule.is_active.is_(True))
            .order_by(TierRule.min_total_spend_cents.asc())
        )
        return list((await self._db.execute(stmt)).scalars().all())

    async def evaluate_tier(self, tenant_id: UUID, customer: Customer) -> TierEvaluation:
        previous = customer.tier
        rules = await self.list_active_rules(tenant_id)
        target = select_qualifying_tier(rules, int(customer.total_spend_cents or 0))
        if target is None or target.tier == previous:
            return TierEvaluation(tier=previous, previous_tier=previous, changed=False)

        customer.tier = target.tier
        logger.info(
            "Customer tier changed",
            customer_id=str(customer.id),
            previous_tier=previous,
            tier=target.tier,
            total_spend_cents=int(customer.total_spend_cents or 0),
        )
        return TierEvaluation(tier=target.tier, previous_tier=previous, changed=True)

    async def tier_progress(self, tenant_id: UUID, customer: Customer) -> TierProgress:
        rules = await self.list_active_rules(tenant_id)
        spend = int(customer.total_spend_cents or 0)

        current_rule = next((rule for rule in rules if rule.tier == customer.tier), None)
        next_rule = next(
            (
                rule
                for rule in rules
                if int(rule.min_total_spend_cents) > spend and rule.tier != customer.tier
            ),
            None,
        )

        if next_rule is None:
            progress = 100.0
            remaining = 0
        else:
            threshold = int(next_rule.min_total_spend_cents)
            progress = min(100.0, (spend / threshold) * 100) if threshold else 100.0
            remaining = max(0, threshold - spend)

        return TierProgress(
            current_tier=customer.tier,
            current_spend_cents=spend,
            current_tier_min_cents=int(current_rule.min_total_spend_cents) if current_rule else 0,
            next_tier=next_rule.tier if next_rule else None,
            next_tier_min_cents=int(next_rule.min_total_spend_cents) if next_rule else None,
            progress_percent=round(progress, 2),
            remaining_to_next_cents=remaining,
        )


__all__ = ["TierEvaluation", "TierEvaluator", "TierProgress", "select_qualifying_tier"]
