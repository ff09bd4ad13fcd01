import sys
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

import cardledger_api.models  # noqa: E402,F401
from cardledger_api.app import create_app  # noqa: E402
from cardledger_api.db.base import Base  # noqa: E402
from cardledger_api.db.session import get_session  # noqa: E402
from cardledger_api.models.card import Card, CardStatusEnum, Customer  # noqa: E402
from cardledger_api.models.rules import CashbackRule, TierRule, TransactionCategoryEnum  # noqa: E402
from cardledger_api.models.tenant import StaffRoleEnum, StaffUser, Store, Tenant  # noqa: E402
from cardledger_api.observability.ledger import get_ledger_store  # noqa: E402
from cardledger_api.observability.payments import get_payment_store  # noqa: E402
from cardledger_api.services.ledger import ActorContext  # noqa: E402


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_observability():
    get_ledger_store().reset()
    get_payment_store().reset()
    yield


@dataclass
class LedgerWorld:
    """Identifiers of a seeded tenant with two stores, staff, and one active card."""

    tenant_id: UUID
    other_tenant_id: UUID
    store_id: UUID
    second_store_id: UUID
    admin_id: UUID
    cashier_id: UUID
    second_cashier_id: UUID
    customer_id: UUID
    card_uid: str

    @property
    def cashier(self) -> ActorContext:
        return ActorContext(
            id=self.cashier_id,
            tenant_id=self.tenant_id,
            role=StaffRoleEnum.CASHIER,
            store_id=self.store_id,
        )

    @property
    def second_cashier(self) -> ActorContext:
        return ActorContext(
            id=self.second_cashier_id,
            tenant_id=self.tenant_id,
            role=StaffRoleEnum.CASHIER,
            store_id=self.second_store_id,
        )

    @property
    def admin(self) -> ActorContext:
        return ActorContext(id=self.admin_id, tenant_id=self.tenant_id, role=StaffRoleEnum.TENANT_ADMIN)

    @property
    def foreign_admin(self) -> ActorContext:
        return ActorContext(id=None, tenant_id=self.other_tenant_id, role=StaffRoleEnum.TENANT_ADMIN)


async def seed_world(session_factory, *, balance_cents: int = 0, email: str | None = "holder@example.com") -> LedgerWorld:
    async with session_factory() as session:
        tenant = Tenant(name="Corner Repairs")
        other_tenant = Tenant(name="Rival Repairs")
        session.add_all([tenant, other_tenant])
        await session.flush()

        store = Store(tenant_id=tenant.id, name="Downtown")
        second_store = Store(tenant_id=tenant.id, name="Uptown")
        session.add_all([store, second_store])
        await session.flush()

        admin = StaffUser(tenant_id=tenant.id, email="owner@example.com", role=StaffRoleEnum.TENANT_ADMIN)
        cashier = StaffUser(
            tenant_id=tenant.id,
            store_id=store.id,
            email="cashier@example.com",
            role=StaffRoleEnum.CASHIER,
        )
        second_cashier = StaffUser(
            tenant_id=tenant.id,
            store_id=second_store.id,
            email="uptown@example.com",
            role=StaffRoleEnum.CASHIER,
        )
        customer = Customer(
            tenant_id=tenant.id,
            first_name="Dana",
            last_name="Holder",
            email=email,
            tier="SILVER",
            total_spend_cents=0,
        )
        session.add_all([admin, cashier, second_cashier, customer])
        await session.flush()

        card = Card(
            card_uid="CARD-0001-AAAA",
            tenant_id=tenant.id,
            customer_id=customer.id,
            store_id=store.id,
            status=CardStatusEnum.ACTIVE,
            balance_cents=balance_cents,
        )
        session.add(card)

        session.add_all(
            [
                CashbackRule(tenant_id=tenant.id, category=TransactionCategoryEnum.PURCHASE, base_rate_bps=300),
                CashbackRule(tenant_id=tenant.id, category=TransactionCategoryEnum.REPAIR, base_rate_bps=500),
                TierRule(tenant_id=tenant.id, tier="SILVER", name="Silver", min_total_spend_cents=0, bonus_rate_bps=0),
                TierRule(tenant_id=tenant.id, tier="GOLD", name="Gold", min_total_spend_cents=10_000, bonus_rate_bps=100),
                TierRule(
                    tenant_id=tenant.id,
                    tier="PLATINUM",
                    name="Platinum",
                    min_total_spend_cents=50_000,
                    bonus_rate_bps=200,
                ),
            ]
        )
        await session.commit()

        return LedgerWorld(
            tenant_id=tenant.id,
            other_tenant_id=other_tenant.id,
            store_id=store.id,
            second_store_id=second_store.id,
            admin_id=admin.id,
            cashier_id=cashier.id,
            second_cashier_id=second_cashier.id,
            customer_id=customer.id,
            card_uid=card.card_uid,
        )


@pytest_asyncio.fixture
async def world(session_factory) -> LedgerWorld:
    return await seed_world(session_factory)


@pytest.fixture
def make_world(session_factory):
    async def _make(**kwargs) -> LedgerWorld:
        return await seed_world(session_factory, **kwargs)

    return _make
