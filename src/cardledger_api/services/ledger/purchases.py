"""Staging of purchases whose balance effects wait for payment confirmation."""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.core.clock import Clock, ensure_utc, utcnow
from cardledger_api.core.settings import settings
from cardledger_api.models.card import Customer
from cardledger_api.models.purchase import (
    PaymentLink,
    PaymentMethodEnum,
    PurchaseKindEnum,
    PurchasePaymentStatusEnum,
    PurchaseTransaction,
)
from cardledger_api.models.rules import TransactionCategoryEnum
from cardledger_api.models.tenant import Store

from .effects import ActorContext, check_card_usable, load_card_for_update
from .errors import LedgerError, LedgerValidationError, NotFoundError, PaymentLinkUnavailableError
from .rates import RateResolver, compute_cashback
from .reconciler import PaymentReconciler, ReconciliationOutcome


DEFAULT_PURCHASE_DESCRIPTION = "Purchase Payment"
DEFAULT_STORE_CREDIT_DESCRIPTION = "Store Credit Top-up"


@dataclass
class CustomerInfo:
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class StagedPurchase:
    purchase: PurchaseTransaction
    payment_link: Optional[PaymentLink] = None
    payment_url: Optional[str] = None
    confirmation: Optional[ReconciliationOutcome] = None


def generate_payment_token() -> str:
    return secrets.token_urlsafe(32)


class PurchaseService:
    """Create pending purchases and single-use payment links."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rate_resolver: RateResolver | None = None,
        reconciler: PaymentReconciler | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._db = db_session
        self._clock = clock or utcnow
        self._rates = rate_resolver or RateResolver(db_session, clock=self._clock)
        self._reconciler = reconciler or PaymentReconciler(db_session, clock=self._clock)

    def payment_url(self, link: PaymentLink) -> str:
        return f"{settings.frontend_url.rstrip('/')}/payment/{link.token}"

    async def create_purchase(
        self,
        *,
        actor: ActorContext,
        amount_cents: int,
        category: TransactionCategoryEnum,
        payment_method: PaymentMethodEnum,
        card_uid: str | None = None,
        customer_id: UUID | None = None,
        store_id: UUID | None = None,
        description: str | None = None,
        customer_info: CustomerInfo | None = None,
        source_ip: str | None = None,
    ) -> StagedPurchase:
        """Record a purchase in PENDING with cashback precomputed.

        QR payments receive a payment link; CASH purchases are confirmed
        straight away through the reconciler so they share its effects.
        """

        if amount_cents <= 0:
            raise LedgerValidationError("Amount must be positive")

        try:
            transaction_store_id = await self._resolve_store(actor, store_id)
            customer: Customer | None = None
            cashback = 0

            if card_uid:
                card = await load_card_for_update(self._db, card_uid)
                card, customer = await check_card_usable(
                    self._db,
                    card,
                    card_uid=card_uid,
                    actor=actor,
                    store_id=transaction_store_id,
                )
                rate = await self._rates.resolve_cashback_rate(card.tenant_id, category, customer.tier)
                cashback = compute_cashback(amount_cents, rate.rate_bps)
            elif customer_id:
                customer = (
                    await self._db.execute(
                        select(Customer).where(Customer.id == customer_id, Customer.tenant_id == actor.tenant_id)
                    )
                ).scalar_one_or_none()
                if customer is None:
                    raise NotFoundError("Customer not found", customer_id=str(customer_id))
            elif customer_info is not None and payment_method != PaymentMethodEnum.QR_PAYMENT:
                customer = await self._find_or_create_customer(actor.tenant_id, customer_info)

            link: PaymentLink | None = None
            if payment_method == PaymentMethodEnum.QR_PAYMENT:
                link = await self._new_payment_link(
                    actor.tenant_id,
                    amount_cents,
                    description or DEFAULT_PURCHASE_DESCRIPTION,
                )

            purchase = PurchaseTransaction(
                tenant_id=actor.tenant_id,
                store_id=transaction_store_id,
                customer_id=customer.id if customer else None,
                cashier_id=actor.id,
                card_uid=card_uid,
                kind=PurchaseKindEnum.REGULAR,
                payment_method=payment_method,
                payment_status=PurchasePaymentStatusEnum.PENDING,
                category=category,
                amount_cents=amount_cents,
                cashback_cents=cashback,
                description=description,
                source_ip=source_ip,
                payment_link_id=link.id if link else None,
            )
            self._db.add(purchase)
            await self._db.commit()
        except LedgerError as exc:
            await self._db.rollback()
            logger.info("Purchase creation rejected", reason=exc.code, detail=exc.message, card_uid=card_uid)
            raise
        except Exception:
            await self._db.rollback()
            logger.exception("Purchase creation failed", card_uid=card_uid)
            raise

        logger.info(
            "Purchase transaction created",
            purchase_id=str(purchase.id),
            payment_method=payment_method.value,
            amount_cents=amount_cents,
            cashback_cents=cashback,
        )

        staged = StagedPurchase(
            purchase=purchase,
            payment_link=link,
            payment_url=self.payment_url(link) if link else None,
        )
        if payment_method == PaymentMethodEnum.CASH:
            staged.confirmation = await self._reconciler.confirm_by_purchase_id(
                purchase.id,
                actor=actor,
                source_ip=source_ip,
            )
        return staged

    async def create_store_credit_topup(
        self,
        *,
        actor: ActorContext,
        card_uid: str,
        amount_cents: int,
        store_id: UUID,
        payment_method: PaymentMethodEnum = PaymentMethodEnum.QR_PAYMENT,
        description: str | None = None,
        source_ip: str | None = None,
    ) -> StagedPurchase:
        """Stage a top-up that credits the full paid amount once confirmed."""

        if amount_cents <= 0:
            raise LedgerValidationError("Amount must be positive")

        try:
            card = await load_card_for_update(self._db, card_uid)
            card, customer = await check_card_usable(
                self._db,
                card,
                card_uid=card_uid,
                actor=actor,
                store_id=store_id,
            )
            link = await self._new_payment_link(
                actor.tenant_id,
                amount_cents,
                description or DEFAULT_STORE_CREDIT_DESCRIPTION,
            )
            purchase = PurchaseTransaction(
                tenant_id=actor.tenant_id,
                store_id=store_id,
                customer_id=customer.id,
                cashier_id=actor.id,
                card_uid=card.card_uid,
                kind=PurchaseKindEnum.STORE_CREDIT,
                payment_method=payment_method,
                payment_status=PurchasePaymentStatusEnum.PENDING,
                category=TransactionCategoryEnum.OTHER,
                amount_cents=amount_cents,
                cashback_cents=0,
                description=description or DEFAULT_STORE_CREDIT_DESCRIPTION,
                source_ip=source_ip,
                payment_link_id=link.id,
            )
            self._db.add(purchase)
            await self._db.commit()
        except LedgerError as exc:
            await self._db.rollback()
            logger.info("Store credit top-up rejected", reason=exc.code, detail=exc.message, card_uid=card_uid)
            raise
        except Exception:
            await self._db.rollback()
            logger.exception("Store credit top-up failed", card_uid=card_uid)
            raise

        logger.info(
            "Store credit top-up staged",
            purchase_id=str(purchase.id),
            amount_cents=amount_cents,
            card_uid=card_uid,
        )
        return StagedPurchase(purchase=purchase, payment_link=link, payment_url=self.payment_url(link))

    async def get_payment_link(self, token: str) -> tuple[PaymentLink, PurchaseTransaction]:
        """Return a payable link and its purchase, or explain why it cannot be paid."""

        link = (
            await self._db.execute(select(PaymentLink).where(PaymentLink.token == token))
        ).scalar_one_or_none()
        if link is None:
            raise NotFoundError("Payment link not found")
        if link.used_at is not None:
            raise PaymentLinkUnavailableError("Payment link has already been used")
        if ensure_utc(link.expires_at) < self._clock():
            raise PaymentLinkUnavailableError("Payment link has expired")

        purchase = (
            await self._db.execute(
                select(PurchaseTransaction).where(PurchaseTransaction.payment_link_id == link.id)
            )
        ).scalar_one_or_none()
        if purchase is None:
            raise NotFoundError("No purchase is attached to this payment link")
        return link, purchase

    async def _new_payment_link(self, tenant_id: UUID, amount_cents: int, description: str) -> PaymentLink:
        link = PaymentLink(
            tenant_id=tenant_id,
            token=generate_payment_token(),
            amount_cents=amount_cents,
            description=description,
            expires_at=self._clock() + timedelta(hours=settings.payment_link_ttl_hours),
        )
        self._db.add(link)
        await self._db.flush()
        return link

    async def _resolve_store(self, actor: ActorContext, requested_store_id: UUID | None) -> UUID:
        if actor.is_tenant_admin:
            if requested_store_id:
                store = await self._db.get(Store, requested_store_id)
                if store is None or store.tenant_id != actor.tenant_id:
                    raise NotFoundError("Invalid store specified", store_id=str(requested_store_id))
                return store.id
            if actor.store_id:
                return actor.store_id
            first_store = (
                await self._db.execute(
                    select(Store)
                    .where(Store.tenant_id == actor.tenant_id, Store.is_active.is_(True))
                    .order_by(Store.created_at.asc())
                    .limit(1)
                )
            ).scalar_one_or_none()
            if first_store is None:
                raise NotFoundError("No active stores found for tenant")
            return first_store.id

        if not actor.store_id:
            raise LedgerValidationError("Cashier must be assigned to a store")
        return actor.store_id

    async def _find_or_create_customer(self, tenant_id: UUID, info: CustomerInfo) -> Customer:
        if info.email:
            existing = (
                await self._db.execute(
                    select(Customer).where(Customer.tenant_id == tenant_id, Customer.email == info.email)
                )
            ).scalar_one_or_none()
            if existing is not None:
                return existing

        customer = Customer(
            tenant_id=tenant_id,
            first_name=info.first_name,
            last_name=info.last_name,
            email=info.email,
            phone=info.phone,
            tier=settings.default_tier_code,
            total_spend_cents=0,
        )
        self._db.add(customer)
        await self._db.flush()
        return customer


__all__ = [
    "CustomerInfo",
    "PurchaseService",
    "StagedPurchase",
    "generate_payment_token",
]
