"""Idempotent seeding of a tenant's starter cashback and tier tables."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.models.rules import CashbackRule, TierRule, TransactionCategoryEnum


DEFAULT_CASHBACK_RATES_BPS: dict[TransactionCategoryEnum, int] = {
    TransactionCategoryEnum.PURCHASE: 300,
    TransactionCategoryEnum.REPAIR: 500,
    TransactionCategoryEnum.OTHER: 200,
}


@dataclass(frozen=True)
class DefaultTier:
    tier: str
    name: str
    min_total_spend_cents: int
    bonus_rate_bps: int


DEFAULT_TIERS: tuple[DefaultTier, ...] = (
    DefaultTier("SILVER", "Silver Member", 0, 0),
    DefaultTier("GOLD", "Gold Member", 10_000, 100),
    DefaultTier("PLATINUM", "Platinum Member", 50_000, 200),
)


async def initialize_default_rules(db: AsyncSession, tenant_id: UUID) -> int:
    """Create any missing default rules; existing rows are left untouched.

    Returns the number of rules created. The caller owns the commit.
    """

    existing_categories = set(
        (
            await db.execute(select(CashbackRule.category).where(CashbackRule.tenant_id == tenant_id))
        ).scalars()
    )
    existing_tiers = set(
        (await db.execute(select(TierRule.tier).where(TierRule.tenant_id == tenant_id))).scalars()
    )

    created = 0
    for category, rate in DEFAULT_CASHBACK_RATES_BPS.items():
        if category in existing_categories:
            continue
        db.add(CashbackRule(tenant_id=tenant_id, category=category, base_rate_bps=rate, is_active=True))
        created += 1

    for default in DEFAULT_TIERS:
        if default.tier in existing_tiers:
            continue
        db.add(
            TierRule(
                tenant_id=tenant_id,
                tier=default.tier,
                name=default.name,
                min_total_spend_cents=default.min_total_spend_cents,
                bonus_rate_bps=default.bonus_rate_bps,
                is_active=True,
            )
        )
        created += 1

    await db.flush()
    logger.info("Default rules initialized", tenant_id=str(tenant_id), created=created)
    return created
