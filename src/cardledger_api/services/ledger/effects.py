"""Card loading, invariant checks, and the balance effect shared by every write path."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from cardledger_api.models.card import Card, CardStatusEnum, Customer
from cardledger_api.models.ledger import LedgerTransaction, LedgerTransactionTypeEnum
from cardledger_api.models.rules import TransactionCategoryEnum
from cardledger_api.models.tenant import StaffRoleEnum, Store

from .errors import (
    ConcurrentModificationError,
    InsufficientFundsError,
    InvalidStateError,
    NotFoundError,
    PolicyViolationError,
    UnauthorizedError,
)
from .events import LedgerEvent, LedgerEventKind
from .tiers import TierEvaluation, TierEvaluator


@dataclass(frozen=True)
class ActorContext:
    """Identity of the staff member performing an operation."""

    id: Optional[UUID]
    tenant_id: UUID
    role: StaffRoleEnum
    store_id: Optional[UUID] = None

    @property
    def is_tenant_admin(self) -> bool:
        return self.role == StaffRoleEnum.TENANT_ADMIN

    @classmethod
    def from_staff(cls, staff) -> "ActorContext":  # noqa: ANN001
        return cls(id=staff.id, tenant_id=staff.tenant_id, role=staff.role, store_id=staff.store_id)


@dataclass
class EffectResult:
    transaction: LedgerTransaction
    tier: Optional[TierEvaluation]
    events: list[LedgerEvent] = field(default_factory=list)


async def load_card_for_update(db: AsyncSession, card_uid: str) -> Optional[Card]:
    stmt = (
        select(Card)
        .where(Card.card_uid == card_uid)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def load_customer_for_update(db: AsyncSession, customer_id: UUID) -> Optional[Customer]:
    stmt = (
        select(Customer)
        .where(Customer.id == customer_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return (await db.execute(stmt)).scalar_one_or_none()


async def check_card_usable(
    db: AsyncSession,
    card: Optional[Card],
    *,
    card_uid: str,
    actor: ActorContext,
    store_id: UUID,
) -> tuple[Card, Customer]:
    """Apply the card, tenant, customer, and store-binding invariants in order."""

    if card is None:
        raise NotFoundError("Card not found", card_uid=card_uid)

    if card.tenant_id != actor.tenant_id:
        raise UnauthorizedError("Card does not belong to this tenant", card_uid=card_uid)

    if card.status != CardStatusEnum.ACTIVE:
        raise InvalidStateError(
            f"Card is {card.status.value}; activate the card before transacting",
            card_uid=card_uid,
        )

    if card.customer_id is None:
        raise InvalidStateError("Card is not linked to a customer", card_uid=card_uid)

    store = await db.get(Store, store_id)
    if store is None or store.tenant_id != card.tenant_id:
        raise NotFoundError("Store not found", store_id=str(store_id))

    if card.store_id is not None and card.store_id != store_id and not actor.is_tenant_admin:
        bound_store = await db.get(Store, card.store_id)
        bound_name = bound_store.name if bound_store is not None else str(card.store_id)
        raise PolicyViolationError(
            f"Card is registered to store {bound_name}; cross-store transactions are not allowed",
            card_uid=card_uid,
            bound_store_id=str(card.store_id),
        )

    customer = await load_customer_for_update(db, card.customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", customer_id=str(card.customer_id))

    return card, customer


def next_balance(card: Card, transaction_type: LedgerTransactionTypeEnum, amount_cents: int, cashback_cents: int) -> int:
    balance = int(card.balance_cents or 0)
    if transaction_type == LedgerTransactionTypeEnum.EARN:
        return balance + cashback_cents
    if transaction_type == LedgerTransactionTypeEnum.REDEEM:
        if amount_cents > balance:
            raise InsufficientFundsError(
                "Insufficient balance for redemption",
                balance_cents=balance,
                requested_cents=amount_cents,
            )
        return balance - amount_cents
    new_balance = balance + amount_cents
    if new_balance < 0:
        raise InsufficientFundsError(
            "Adjustment would make the card balance negative",
            balance_cents=balance,
            requested_cents=amount_cents,
        )
    return new_balance


async def apply_card_effect(
    db: AsyncSession,
    *,
    card: Card,
    customer: Customer,
    transaction_type: LedgerTransactionTypeEnum,
    amount_cents: int,
    cashback_cents: int,
    category: Optional[TransactionCategoryEnum],
    store_id: Optional[UUID],
    cashier_id: Optional[UUID],
    tier_evaluator: TierEvaluator,
    evaluate_tier: bool = True,
    note: Optional[str] = None,
    source_ip: Optional[str] = None,
    purchase_id: Optional[UUID] = None,
    event_kind: Optional[LedgerEventKind] = None,
) -> EffectResult:
    """Mutate balance and spend, append the ledger row, and re-tier.

    Must run inside the caller's unit of work; nothing here commits. A lost
    optimistic version check on the card or customer surfaces as
    ``ConcurrentModificationError``.
    """

    balance_before = int(card.balance_cents or 0)
    balance_after = next_balance(card, transaction_type, amount_cents, cashback_cents)

    card.balance_cents = balance_after
    if transaction_type == LedgerTransactionTypeEnum.EARN:
        customer.total_spend_cents = int(customer.total_spend_cents or 0) + amount_cents

    transaction = LedgerTransaction(
        tenant_id=card.tenant_id,
        store_id=store_id,
        card_id=card.id,
        customer_id=customer.id,
        cashier_id=cashier_id,
        purchase_id=purchase_id,
        type=transaction_type,
        category=category,
        amount_cents=amount_cents,
        cashback_cents=cashback_cents if transaction_type == LedgerTransactionTypeEnum.EARN else 0,
        balance_before_cents=balance_before,
        balance_after_cents=balance_after,
        note=note,
        source_ip=source_ip,
    )
    db.add(transaction)

    tier: Optional[TierEvaluation] = None
    try:
        # Version checks run here, not in the tier lookup's autoflush.
        await db.flush()
        if evaluate_tier:
            tier = await tier_evaluator.evaluate_tier(card.tenant_id, customer)
            await db.flush()
    except StaleDataError as exc:
        raise ConcurrentModificationError(
            "Card was modified by a concurrent transaction; retry the request",
            card_uid=card.card_uid,
        ) from exc

    logger.info(
        "Applied ledger effect",
        transaction_id=str(transaction.id),
        transaction_type=transaction_type.value,
        card_uid=card.card_uid,
        amount_cents=amount_cents,
        cashback_cents=transaction.cashback_cents,
        balance_before_cents=balance_before,
        balance_after_cents=balance_after,
    )

    return EffectResult(
        transaction=transaction,
        tier=tier,
        events=_build_events(card, customer, transaction, tier, event_kind),
    )


_DEFAULT_EVENT_KINDS = {
    LedgerTransactionTypeEnum.EARN: LedgerEventKind.CASHBACK_EARNED,
    LedgerTransactionTypeEnum.REDEEM: LedgerEventKind.CASHBACK_REDEEMED,
    LedgerTransactionTypeEnum.ADJUST: LedgerEventKind.BALANCE_ADJUSTED,
}


def _build_events(
    card: Card,
    customer: Customer,
    transaction: LedgerTransaction,
    tier: Optional[TierEvaluation],
    event_kind: Optional[LedgerEventKind],
) -> list[LedgerEvent]:
    common = {
        "tenant_id": card.tenant_id,
        "customer_id": customer.id,
        "card_uid": card.card_uid,
        "transaction_id": transaction.id,
        "recipient_email": customer.email,
        "recipient_name": customer.display_name,
        "balance_after_cents": int(transaction.balance_after_cents),
    }
    events = [
        LedgerEvent(
            kind=event_kind or _DEFAULT_EVENT_KINDS[transaction.type],
            amount_cents=int(transaction.amount_cents),
            cashback_cents=int(transaction.cashback_cents or 0),
            tier=customer.tier,
            **common,
        )
    ]
    if tier is not None and tier.changed:
        events.append(
            LedgerEvent(
                kind=LedgerEventKind.TIER_CHANGED,
                tier=tier.tier,
                previous_tier=tier.previous_tier,
                **common,
            )
        )
    return events


__all__ = [
    "ActorContext",
    "EffectResult",
    "apply_card_effect",
    "check_card_usable",
    "load_card_for_update",
    "load_customer_for_update",
    "next_balance",
]
