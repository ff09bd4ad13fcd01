import pytest
from sqlalchemy import select

from cardledger_api.models.rules import CashbackRule, TierRule, TransactionCategoryEnum
from cardledger_api.services.ledger import initialize_default_rules


@pytest.mark.asyncio
async def test_default_rules_are_created_once(session_factory, world) -> None:
    async with session_factory() as session:
        first = await initialize_default_rules(session, world.other_tenant_id)
        await session.commit()
        second = await initialize_default_rules(session, world.other_tenant_id)
        await session.commit()

        tiers = (
            await session.execute(
                select(TierRule)
                .where(TierRule.tenant_id == world.other_tenant_id)
                .order_by(TierRule.min_total_spend_cents)
            )
        ).scalars().all()

    assert first == 6
    assert second == 0
    assert [(tier.tier, tier.min_total_spend_cents, tier.bonus_rate_bps) for tier in tiers] == [
        ("SILVER", 0, 0),
        ("GOLD", 10_000, 100),
        ("PLATINUM", 50_000, 200),
    ]


@pytest.mark.asyncio
async def test_existing_rules_are_left_untouched(session_factory, world) -> None:
    async with session_factory() as session:
        created = await initialize_default_rules(session, world.tenant_id)
        await session.commit()

        rules = {
            rule.category: rule.base_rate_bps
            for rule in (
                await session.execute(select(CashbackRule).where(CashbackRule.tenant_id == world.tenant_id))
            ).scalars()
        }

    assert created == 1
    assert rules == {
        TransactionCategoryEnum.PURCHASE: 300,
        TransactionCategoryEnum.REPAIR: 500,
        TransactionCategoryEnum.OTHER: 200,
    }
