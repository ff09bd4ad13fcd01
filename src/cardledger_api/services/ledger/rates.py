"""Cashback rate resolution from category, tier, and offer tables."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.core.clock import Clock, utcnow, window_contains
from cardledger_api.core.settings import settings
from cardledger_api.models.rules import CashbackRule, Offer, TierRule, TransactionCategoryEnum


BPS_DENOMINATOR = 10_000


@dataclass
class RateBreakdown:
    """Effective rate plus the components it was composed from."""

    rate_bps: int
    base_rate_bps: int
    tier_bonus_bps: int
    offer_bonus_bps: int
    category_rule_found: bool
    applied_offer_ids: list[UUID] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        return {
            "rateBps": self.rate_bps,
            "baseRateBps": self.base_rate_bps,
            "tierBonusBps": self.tier_bonus_bps,
            "offerBonusBps": self.offer_bonus_bps,
            "categoryRuleFound": self.category_rule_found,
            "appliedOfferIds": [str(offer_id) for offer_id in self.applied_offer_ids],
        }


def compute_cashback(amount_cents: int, rate_bps: int) -> int:
    """Floor of amount * rate / 10000, never negative."""

    if amount_cents <= 0 or rate_bps <= 0:
        return 0
    return (int(amount_cents) * int(rate_bps)) // BPS_DENOMINATOR


class RateResolver:
    """Read-only lookup of the effective cashback rate for a purchase."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        clock: Clock | None = None,
        tier_rate_cap_bps: int | None = None,
        total_rate_cap_bps: int | None = None,
    ) -> None:
        self._db = db_session
        self._clock = clock or utcnow
        self._tier_rate_cap_bps = (
            settings.cashback_tier_rate_cap_bps if tier_rate_cap_bps is None else tier_rate_cap_bps
        )
        self._total_rate_cap_bps = (
            settings.cashback_total_rate_cap_bps if total_rate_cap_bps is None else total_rate_cap_bps
        )

    async def resolve_cashback_rate(
        self,
        tenant_id: UUID,
        category: TransactionCategoryEnum,
        customer_tier: str,
    ) -> RateBreakdown:
        now = self._clock()

        category_rule = await self._active_category_rule(tenant_id, category, now)
        base_rate = int(category_rule.base_rate_bps) if category_rule else 0

        tier_rule = await self._active_tier_rule(tenant_id, customer_tier)
        tier_bonus = int(tier_rule.bonus_rate_bps) if tier_rule else 0

        rate = min(base_rate + tier_bonus, self._tier_rate_cap_bps)

        offers = await self._active_offers(tenant_id, now)
        offer_bonus = sum(int(offer.rate_multiplier_bps) for offer in offers)
        rate = min(rate + offer_bonus, self._total_rate_cap_bps)

        return RateBreakdown(
            rate_bps=rate,
            base_rate_bps=base_rate,
            tier_bonus_bps=tier_bonus,
            offer_bonus_bps=offer_bonus,
            category_rule_found=category_rule is not None,
            applied_offer_ids=[offer.id for offer in offers],
        )

    async def _active_category_rule(
        self,
        tenant_id: UUID,
        category: TransactionCategoryEnum,
        now,
    ) -> CashbackRule | None:
        stmt = (
            select(CashbackRule)
            .where(
                CashbackRule.tenant_id == tenant_id,
                CashbackRule.category == category,
                CashbackRule.is_active.is_(True),
            )
            .order_by(CashbackRule.created_at.desc())
        )
        rules = (await self._db.execute(stmt)).scalars().all()
        for rule in rules:
            if window_contains(rule.start_at, rule.end_at, now):
                return rule
        return None

    async def _active_tier_rule(self, tenant_id: UUID, tier: str) -> TierRule | None:
        if not tier:
            return None
        stmt = select(TierRule).where(
            TierRule.tenant_id == tenant_id,
            TierRule.tier == tier.upper(),
            TierRule.is_active.is_(True),
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def _active_offers(self, tenant_id: UUID, now) -> list[Offer]:
        stmt = (
            select(Offer)
            .where(Offer.tenant_id == tenant_id, Offer.is_active.is_(True))
            .order_by(Offer.start_at.asc())
        )
        offers = (await self._db.execute(stmt)).scalars().all()
        return [offer for offer in offers if window_contains(offer.start_at, offer.end_at, now)]


__all__ = ["BPS_DENOMINATOR", "RateBreakdown", "RateResolver", "compute_cashback"]
