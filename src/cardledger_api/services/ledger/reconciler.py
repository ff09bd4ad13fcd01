"""Exactly-once confirmation of pending purchases.

Confirmation can arrive from the public payment page, from a cashier, or from
processor webhooks (possibly redelivered). Each path funnels into
``_confirm`` where the PENDING -> COMPLETED transition and the payment-link
``used_at`` stamp are conditional UPDATEs in the same unit of work as the
balance effect. Only the caller whose UPDATE matched a row mutates balances.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.core.clock import Clock, ensure_utc, utcnow
from cardledger_api.models.card import Card, Customer
from cardledger_api.models.ledger import LedgerTransaction, LedgerTransactionTypeEnum
from cardledger_api.models.purchase import (
    PaymentLink,
    PurchaseKindEnum,
    PurchasePaymentStatusEnum,
    PurchaseTransaction,
)
from cardledger_api.observability.ledger import get_ledger_store
from cardledger_api.observability.tracing import get_tracer

from .effects import ActorContext, apply_card_effect, load_card_for_update, load_customer_for_update
from .errors import LedgerError, NotFoundError, UnauthorizedError
from .events import LedgerEvent, LedgerEventDispatcher, LedgerEventKind
from .tiers import TierEvaluation, TierEvaluator


CARD_NOT_FOUND = "card_not_found"
CUSTOMER_NOT_LINKED = "customer_not_linked"


class ReconciliationStatus(str, Enum):
    APPLIED = "applied"
    ALREADY_PROCESSED = "already_processed"
    EXPIRED = "expired"
    CARD_MISSING = "card_missing"


@dataclass
class ReconciliationOutcome:
    status: ReconciliationStatus
    purchase: Optional[PurchaseTransaction] = None
    transaction: Optional[LedgerTransaction] = None
    tier: Optional[TierEvaluation] = None
    events: list[LedgerEvent] = field(default_factory=list)

    @property
    def applied(self) -> bool:
        return self.status == ReconciliationStatus.APPLIED


class PaymentReconciler:
    """Confirm a pending purchase once, regardless of how many callers race."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        tier_evaluator: TierEvaluator | None = None,
        dispatcher: LedgerEventDispatcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._db = db_session
        self._tiers = tier_evaluator or TierEvaluator(db_session)
        self._dispatcher = dispatcher or LedgerEventDispatcher()
        self._clock = clock or utcnow

    async def confirm_by_token(self, token: str, *, source_ip: str | None = None) -> ReconciliationOutcome:
        link = (
            await self._db.execute(select(PaymentLink).where(PaymentLink.token == token))
        ).scalar_one_or_none()
        if link is None:
            raise NotFoundError("Payment link not found")
        purchase = await self._purchase_for_link(link.id)
        return await self._confirm(purchase, link, source_ip=source_ip, trigger="payment_page")

    async def confirm_by_payment_link_id(self, payment_link_id: UUID) -> ReconciliationOutcome:
        link = await self._db.get(PaymentLink, payment_link_id)
        if link is None:
            raise NotFoundError("Payment link not found", payment_link_id=str(payment_link_id))
        purchase = await self._purchase_for_link(link.id)
        return await self._confirm(purchase, link, trigger="webhook")

    async def confirm_by_purchase_id(
        self,
        purchase_id: UUID,
        *,
        actor: ActorContext | None = None,
        source_ip: str | None = None,
    ) -> ReconciliationOutcome:
        purchase = await self._db.get(PurchaseTransaction, purchase_id)
        if purchase is None:
            raise NotFoundError("Purchase transaction not found", purchase_id=str(purchase_id))
        if actor is not None and purchase.tenant_id != actor.tenant_id:
            logger.warning(
                "Rejected cross-tenant purchase confirmation",
                purchase_id=str(purchase_id),
                tenant_id=str(actor.tenant_id),
            )
            raise UnauthorizedError("Purchase does not belong to this tenant")
        link = await self._db.get(PaymentLink, purchase.payment_link_id) if purchase.payment_link_id else None
        return await self._confirm(purchase, link, source_ip=source_ip, trigger="cashier")

    async def _purchase_for_link(self, payment_link_id: UUID) -> PurchaseTransaction:
        purchase = (
            await self._db.execute(
                select(PurchaseTransaction).where(PurchaseTransaction.payment_link_id == payment_link_id)
            )
        ).scalar_one_or_none()
        if purchase is None:
            raise NotFoundError("No purchase is attached to this payment link")
        return purchase

    async def _confirm(
        self,
        purchase: PurchaseTransaction,
        link: PaymentLink | None,
        *,
        trigger: str,
        source_ip: str | None = None,
    ) -> ReconciliationOutcome:
        observability = get_ledger_store()
        purchase_id = purchase.id
        now = self._clock()

        try:
            with get_tracer().start_as_current_span(
                "ledger.reconcile_purchase",
                attributes={"purchase.id": str(purchase_id), "reconcile.trigger": trigger},
            ) as span:
                outcome = await self._transition(purchase, link, now=now, source_ip=source_ip)
                span.set_attribute("reconcile.status", outcome.status.value)
            if outcome.status in (ReconciliationStatus.APPLIED, ReconciliationStatus.CARD_MISSING):
                await self._db.commit()
            else:
                # A lost link CAS may follow a won purchase CAS; undo it.
                await self._db.rollback()
                await self._db.refresh(purchase)
        except LedgerError:
            await self._db.rollback()
            raise
        except Exception:
            await self._db.rollback()
            logger.exception("Purchase confirmation failed", purchase_id=str(purchase_id), trigger=trigger)
            raise

        observability.record_reconciliation(outcome.status.value)
        if outcome.status == ReconciliationStatus.CARD_MISSING:
            observability.record_alert("reconciliation_card_missing")
            logger.error(
                "Purchase completed without applying balance effects",
                purchase_id=str(purchase_id),
                card_uid=purchase.card_uid,
                reason=purchase.reconciliation_error,
                trigger=trigger,
            )
        else:
            logger.info(
                "Purchase confirmation processed",
                purchase_id=str(purchase_id),
                status=outcome.status.value,
                trigger=trigger,
            )

        if outcome.events:
            await self._dispatcher.dispatch(outcome.events)
        return outcome

    async def _transition(
        self,
        purchase: PurchaseTransaction,
        link: PaymentLink | None,
        *,
        now,
        source_ip: str | None,
    ) -> ReconciliationOutcome:
        if purchase.payment_status != PurchasePaymentStatusEnum.PENDING:
            return ReconciliationOutcome(status=ReconciliationStatus.ALREADY_PROCESSED, purchase=purchase)

        if link is not None:
            if link.used_at is not None:
                return ReconciliationOutcome(status=ReconciliationStatus.ALREADY_PROCESSED, purchase=purchase)
            if ensure_utc(link.expires_at) < now:
                return ReconciliationOutcome(status=ReconciliationStatus.EXPIRED, purchase=purchase)

        completed = await self._db.execute(
            update(PurchaseTransaction)
            .where(
                PurchaseTransaction.id == purchase.id,
                PurchaseTransaction.payment_status == PurchasePaymentStatusEnum.PENDING,
            )
            .values(payment_status=PurchasePaymentStatusEnum.COMPLETED, paid_at=now)
            .execution_options(synchronize_session=False)
        )
        if completed.rowcount != 1:
            return ReconciliationOutcome(status=ReconciliationStatus.ALREADY_PROCESSED, purchase=purchase)

        if link is not None:
            consumed = await self._db.execute(
                update(PaymentLink)
                .where(PaymentLink.id == link.id, PaymentLink.used_at.is_(None))
                .values(used_at=now)
                .execution_options(synchronize_session=False)
            )
            if consumed.rowcount != 1:
                return ReconciliationOutcome(status=ReconciliationStatus.ALREADY_PROCESSED, purchase=purchase)

        await self._db.refresh(purchase)
        return await self._apply_payout(purchase, source_ip=source_ip)

    async def _apply_payout(self, purchase: PurchaseTransaction, *, source_ip: str | None) -> ReconciliationOutcome:
        if purchase.kind == PurchaseKindEnum.STORE_CREDIT:
            return await self._credit_store_balance(purchase, source_ip=source_ip)

        cashback = int(purchase.cashback_cents or 0)
        if not purchase.card_uid or cashback <= 0:
            return ReconciliationOutcome(status=ReconciliationStatus.APPLIED, purchase=purchase)

        resolved = await self._resolve_card(purchase)
        if resolved is None:
            return ReconciliationOutcome(status=ReconciliationStatus.CARD_MISSING, purchase=purchase)
        card, customer = resolved

        effect = await apply_card_effect(
            self._db,
            card=card,
            customer=customer,
            transaction_type=LedgerTransactionTypeEnum.EARN,
            amount_cents=int(purchase.amount_cents),
            cashback_cents=cashback,
            category=purchase.category,
            store_id=purchase.store_id,
            cashier_id=purchase.cashier_id,
            tier_evaluator=self._tiers,
            note=f"Purchase transaction: {purchase.id}",
            source_ip=source_ip or purchase.source_ip,
            purchase_id=purchase.id,
        )
        return ReconciliationOutcome(
            status=ReconciliationStatus.APPLIED,
            purchase=purchase,
            transaction=effect.transaction,
            tier=effect.tier,
            events=effect.events,
        )

    async def _credit_store_balance(
        self,
        purchase: PurchaseTransaction,
        *,
        source_ip: str | None,
    ) -> ReconciliationOutcome:
        resolved = await self._resolve_card(purchase)
        if resolved is None:
            return ReconciliationOutcome(status=ReconciliationStatus.CARD_MISSING, purchase=purchase)
        card, customer = resolved

        effect = await apply_card_effect(
            self._db,
            card=card,
            customer=customer,
            transaction_type=LedgerTransactionTypeEnum.ADJUST,
            amount_cents=int(purchase.amount_cents),
            cashback_cents=0,
            category=purchase.category,
            store_id=purchase.store_id,
            cashier_id=purchase.cashier_id,
            tier_evaluator=self._tiers,
            evaluate_tier=False,
            note=f"Store credit top-up: {purchase.id}",
            source_ip=source_ip or purchase.source_ip,
            purchase_id=purchase.id,
            event_kind=LedgerEventKind.STORE_CREDIT_ADDED,
        )
        return ReconciliationOutcome(
            status=ReconciliationStatus.APPLIED,
            purchase=purchase,
            transaction=effect.transaction,
            events=effect.events,
        )

    async def _resolve_card(self, purchase: PurchaseTransaction) -> tuple[Card, Customer] | None:
        """Load the purchase's card and customer, stamping the purchase when either is gone."""

        card = await load_card_for_update(self._db, purchase.card_uid) if purchase.card_uid else None
        if card is None or card.tenant_id != purchase.tenant_id:
            purchase.reconciliation_error = CARD_NOT_FOUND
            await self._db.flush()
            return None

        customer_id = card.customer_id or purchase.customer_id
        customer = await load_customer_for_update(self._db, customer_id) if customer_id else None
        if customer is None:
            purchase.reconciliation_error = CUSTOMER_NOT_LINKED
            await self._db.flush()
            return None
        return card, customer


__all__ = [
    "PaymentReconciler",
    "ReconciliationOutcome",
    "ReconciliationStatus",
]
