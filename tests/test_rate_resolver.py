from datetime import datetime, timedelta, timezone

import pytest

from cardledger_api.models.rules import CashbackRule, Offer, TransactionCategoryEnum
from cardledger_api.services.ledger import RateResolver, compute_cashback


NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _fixed_clock():
    return NOW


def _offer(tenant_id, bps, *, start=None, end=None, active=True) -> Offer:
    return Offer(
        tenant_id=tenant_id,
        name=f"Offer {bps}",
        rate_multiplier_bps=bps,
        is_active=active,
        start_at=start or NOW - timedelta(days=1),
        end_at=end or NOW + timedelta(days=1),
    )


def test_compute_cashback_floors_and_ignores_non_positive_inputs() -> None:
    assert compute_cashback(10_000, 300) == 300
    assert compute_cashback(999, 300) == 29
    assert compute_cashback(0, 300) == 0
    assert compute_cashback(5_000, 0) == 0
    assert compute_cashback(-100, 300) == 0


@pytest.mark.asyncio
async def test_offers_stack_additively_on_base_and_tier(session_factory, world) -> None:
    async with session_factory() as session:
        session.add_all([_offer(world.tenant_id, 100), _offer(world.tenant_id, 200)])
        await session.commit()

        resolver = RateResolver(session, clock=_fixed_clock)
        breakdown = await resolver.resolve_cashback_rate(world.tenant_id, TransactionCategoryEnum.PURCHASE, "GOLD")

    assert breakdown.rate_bps == 700
    assert breakdown.base_rate_bps == 300
    assert breakdown.tier_bonus_bps == 100
    assert breakdown.offer_bonus_bps == 300
    assert len(breakdown.applied_offer_ids) == 2


@pytest.mark.asyncio
async def test_expired_inactive_and_future_offers_are_ignored(session_factory, world) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                _offer(world.tenant_id, 400, start=NOW - timedelta(days=5), end=NOW - timedelta(days=1)),
                _offer(world.tenant_id, 400, start=NOW + timedelta(days=1), end=NOW + timedelta(days=5)),
                _offer(world.tenant_id, 400, active=False),
            ]
        )
        await session.commit()

        resolver = RateResolver(session, clock=_fixed_clock)
        breakdown = await resolver.resolve_cashback_rate(world.tenant_id, TransactionCategoryEnum.PURCHASE, "SILVER")

    assert breakdown.rate_bps == 300
    assert breakdown.applied_offer_ids == []


@pytest.mark.asyncio
async def test_missing_category_rule_yields_zero_base(session_factory, world) -> None:
    async with session_factory() as session:
        resolver = RateResolver(session, clock=_fixed_clock)
        breakdown = await resolver.resolve_cashback_rate(world.tenant_id, TransactionCategoryEnum.OTHER, "PLATINUM")

    assert breakdown.category_rule_found is False
    assert breakdown.base_rate_bps == 0
    assert breakdown.rate_bps == 200


@pytest.mark.asyncio
async def test_category_rule_outside_window_is_skipped(session_factory, world) -> None:
    async with session_factory() as session:
        session.add(
            CashbackRule(
                tenant_id=world.tenant_id,
                category=TransactionCategoryEnum.OTHER,
                base_rate_bps=900,
                start_at=NOW + timedelta(days=2),
            )
        )
        await session.commit()

        resolver = RateResolver(session, clock=_fixed_clock)
        breakdown = await resolver.resolve_cashback_rate(world.tenant_id, TransactionCategoryEnum.OTHER, "SILVER")

    assert breakdown.category_rule_found is False
    assert breakdown.rate_bps == 0


@pytest.mark.asyncio
async def test_rates_are_capped(session_factory, world) -> None:
    async with session_factory() as session:
        session.add_all([_offer(world.tenant_id, 2_000), _offer(world.tenant_id, 2_500)])
        await session.commit()

        tier_capped = RateResolver(session, clock=_fixed_clock, tier_rate_cap_bps=350, total_rate_cap_bps=10_000)
        breakdown = await tier_capped.resolve_cashback_rate(world.tenant_id, TransactionCategoryEnum.REPAIR, "GOLD")
        assert breakdown.rate_bps == 350 + 4_500

        resolver = RateResolver(session, clock=_fixed_clock)
        breakdown = await resolver.resolve_cashback_rate(world.tenant_id, TransactionCategoryEnum.REPAIR, "PLATINUM")
        assert breakdown.rate_bps == 5_000


@pytest.mark.asyncio
async def test_rules_from_other_tenants_do_not_leak(session_factory, world) -> None:
    async with session_factory() as session:
        session.add(_offer(world.other_tenant_id, 1_000))
        await session.commit()

        resolver = RateResolver(session, clock=_fixed_clock)
        breakdown = await resolver.resolve_cashback_rate(
            world.other_tenant_id, TransactionCategoryEnum.PURCHASE, "SILVER"
        )

    assert breakdown.base_rate_bps == 0
    assert breakdown.rate_bps == 1_000


def test_rate_validation_rejects_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        Offer(name="Too generous", rate_multiplier_bps=10_001)
    with pytest.raises(ValueError):
        CashbackRule(category=TransactionCategoryEnum.PURCHASE, base_rate_bps=-1)
