import pytest
from sqlalchemy import select

from cardledger_api.models.card import Customer
from cardledger_api.models.rules import TierRule
from cardledger_api.services.ledger import TierEvaluator
from cardledger_api.services.ledger.tiers import select_qualifying_tier


def _rule(tier: str, threshold: int) -> TierRule:
    return TierRule(tier=tier, name=tier.title(), min_total_spend_cents=threshold, bonus_rate_bps=0)


def test_select_qualifying_tier_picks_highest_threshold_reached() -> None:
    rules = [_rule("silver", 0), _rule("gold", 10_000), _rule("platinum", 50_000)]

    assert select_qualifying_tier(rules, 0).tier == "SILVER"
    assert select_qualifying_tier(rules, 9_999).tier == "SILVER"
    assert select_qualifying_tier(rules, 10_000).tier == "GOLD"
    assert select_qualifying_tier(rules, 75_000).tier == "PLATINUM"


def test_select_qualifying_tier_falls_back_to_lowest_defined() -> None:
    rules = [_rule("gold", 10_000), _rule("platinum", 50_000)]

    assert select_qualifying_tier(rules, 500).tier == "GOLD"
    assert select_qualifying_tier([], 500) is None


@pytest.mark.asyncio
async def test_evaluate_tier_promotes_on_exact_threshold(session_factory, world) -> None:
    async with session_factory() as session:
        customer = await session.get(Customer, world.customer_id)
        customer.total_spend_cents = 10_000

        evaluation = await TierEvaluator(session).evaluate_tier(world.tenant_id, customer)
        await session.commit()

        assert evaluation.changed is True
        assert evaluation.previous_tier == "SILVER"
        assert evaluation.tier == "GOLD"
        assert customer.tier == "GOLD"


@pytest.mark.asyncio
async def test_evaluate_tier_can_demote(session_factory, world) -> None:
    async with session_factory() as session:
        customer = await session.get(Customer, world.customer_id)
        customer.tier = "PLATINUM"
        customer.total_spend_cents = 12_000

        evaluation = await TierEvaluator(session).evaluate_tier(world.tenant_id, customer)

    assert evaluation.changed is True
    assert evaluation.tier == "GOLD"


@pytest.mark.asyncio
async def test_evaluate_tier_without_rules_keeps_stored_tier(session_factory, world) -> None:
    async with session_factory() as session:
        customer = await session.get(Customer, world.customer_id)
        customer.tier = "LEGACY"
        customer.total_spend_cents = 1_000_000

        evaluation = await TierEvaluator(session).evaluate_tier(world.other_tenant_id, customer)

    assert evaluation.changed is False
    assert evaluation.tier == "LEGACY"
    assert customer.tier == "LEGACY"


@pytest.mark.asyncio
async def test_inactive_rules_are_not_considered(session_factory, world) -> None:
    async with session_factory() as session:
        gold = (
            await session.execute(
                select(TierRule).where(TierRule.tenant_id == world.tenant_id, TierRule.tier == "GOLD")
            )
        ).scalar_one()
        gold.is_active = False
        await session.flush()

        customer = await session.get(Customer, world.customer_id)
        customer.total_spend_cents = 20_000
        evaluation = await TierEvaluator(session).evaluate_tier(world.tenant_id, customer)

    assert evaluation.changed is False
    assert evaluation.tier == "SILVER"


@pytest.mark.asyncio
async def test_tier_progress_reports_distance_to_next_tier(session_factory, world) -> None:
    async with session_factory() as session:
        customer = await session.get(Customer, world.customer_id)
        customer.total_spend_cents = 2_500

        progress = await TierEvaluator(session).tier_progress(world.tenant_id, customer)

    assert progress.current_tier == "SILVER"
    assert progress.current_tier_min_cents == 0
    assert progress.next_tier == "GOLD"
    assert progress.next_tier_min_cents == 10_000
    assert progress.progress_percent == 25.0
    assert progress.remaining_to_next_cents == 7_500


@pytest.mark.asyncio
async def test_tier_progress_at_top_tier_is_complete(session_factory, world) -> None:
    async with session_factory() as session:
        customer = await session.get(Customer, world.customer_id)
        customer.tier = "PLATINUM"
        customer.total_spend_cents = 80_000

        progress = await TierEvaluator(session).tier_progress(world.tenant_id, customer)

    assert progress.next_tier is None
    assert progress.progress_percent == 100.0
    assert progress.remaining_to_next_cents == 0
