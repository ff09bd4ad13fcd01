"""Purchase staging and cashier confirmation endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel, Field, model_validator
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.api.dependencies.services import get_ledger_dispatcher
from cardledger_api.api.dependencies.session import require_actor
from cardledger_api.api.errors import to_http_exception
from cardledger_api.db.session import get_session
from cardledger_api.models.purchase import PaymentMethodEnum, PurchaseTransaction
from cardledger_api.models.rules import TransactionCategoryEnum
from cardledger_api.services.ledger import (
    ActorContext,
    CustomerInfo,
    LedgerError,
    LedgerEventDispatcher,
    PaymentReconciler,
    PurchaseService,
    ReconciliationOutcome,
    StagedPurchase,
)


router = APIRouter(prefix="/purchases", tags=["purchases"])


class CustomerInfoPayload(BaseModel):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None


class PurchaseCreateRequest(BaseModel):
    amountCents: int = Field(..., gt=0, description="Purchase total in minor units")
    category: TransactionCategoryEnum = TransactionCategoryEnum.PURCHASE
    paymentMethod: PaymentMethodEnum = PaymentMethodEnum.QR_PAYMENT
    cardUid: Optional[str] = None
    customerId: Optional[UUID] = None
    storeId: Optional[UUID] = None
    description: Optional[str] = Field(None, max_length=500)
    customer: Optional[CustomerInfoPayload] = None

    @model_validator(mode="after")
    def validate_customer_reference(self) -> "PurchaseCreateRequest":
        if self.cardUid and self.customerId:
            raise ValueError("Provide either cardUid or customerId, not both")
        return self


class StoreCreditRequest(BaseModel):
    cardUid: str = Field(..., min_length=1)
    amountCents: int = Field(..., gt=0)
    storeId: UUID
    description: Optional[str] = Field(None, max_length=500)


class ConfirmationResponse(BaseModel):
    status: str
    purchaseId: Optional[UUID]
    paymentStatus: Optional[str]
    transactionId: Optional[UUID]
    cashbackCents: int
    balanceAfterCents: Optional[int]
    tier: Optional[str]
    tierChanged: bool
    reconciliationError: Optional[str]


class PurchaseResponse(BaseModel):
    id: UUID
    kind: str
    paymentMethod: str
    paymentStatus: str
    category: str
    amountCents: int
    cashbackCents: int
    cardUid: Optional[str]
    customerId: Optional[UUID]
    description: Optional[str]
    paymentToken: Optional[str]
    paymentUrl: Optional[str]
    expiresAt: Optional[datetime]
    createdAt: datetime
    confirmation: Optional[ConfirmationResponse] = None


def confirmation_response(outcome: ReconciliationOutcome) -> ConfirmationResponse:
    purchase = outcome.purchase
    transaction = outcome.transaction
    return ConfirmationResponse(
        status=outcome.status.value,
        purchaseId=purchase.id if purchase else None,
        paymentStatus=purchase.payment_status.value if purchase else None,
        transactionId=transaction.id if transaction else None,
        cashbackCents=int(transaction.cashback_cents) if transaction else 0,
        balanceAfterCents=int(transaction.balance_after_cents) if transaction else None,
        tier=outcome.tier.tier if outcome.tier else None,
        tierChanged=bool(outcome.tier and outcome.tier.changed),
        reconciliationError=purchase.reconciliation_error if purchase else None,
    )


def _purchase_response(staged: StagedPurchase) -> PurchaseResponse:
    purchase: PurchaseTransaction = staged.purchase
    link = staged.payment_link
    return PurchaseResponse(
        id=purchase.id,
        kind=purchase.kind.value,
        paymentMethod=purchase.payment_method.value,
        paymentStatus=purchase.payment_status.value,
        category=purchase.category.value,
        amountCents=int(purchase.amount_cents),
        cashbackCents=int(purchase.cashback_cents),
        cardUid=purchase.card_uid,
        customerId=purchase.customer_id,
        description=purchase.description,
        paymentToken=link.token if link else None,
        paymentUrl=staged.payment_url,
        expiresAt=link.expires_at if link else None,
        createdAt=purchase.created_at,
        confirmation=confirmation_response(staged.confirmation) if staged.confirmation else None,
    )


def _purchase_service(db: AsyncSession, dispatcher: LedgerEventDispatcher) -> PurchaseService:
    reconciler = PaymentReconciler(db, dispatcher=dispatcher)
    return PurchaseService(db, reconciler=reconciler)


@router.post("", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase(
    payload: PurchaseCreateRequest,
    request: Request,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> PurchaseResponse:
    """Stage a purchase; QR payments get a payment link, cash is confirmed immediately."""

    customer_info = None
    if payload.customer is not None:
        customer_info = CustomerInfo(
            first_name=payload.customer.firstName,
            last_name=payload.customer.lastName,
            email=payload.customer.email,
            phone=payload.customer.phone,
        )

    service = _purchase_service(db, dispatcher)
    try:
        staged = await service.create_purchase(
            actor=actor,
            amount_cents=payload.amountCents,
            category=payload.category,
            payment_method=payload.paymentMethod,
            card_uid=payload.cardUid,
            customer_id=payload.customerId,
            store_id=payload.storeId,
            description=payload.description,
            customer_info=customer_info,
            source_ip=request.client.host if request.client else None,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _purchase_response(staged)


@router.post("/store-credit", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def create_store_credit_topup(
    payload: StoreCreditRequest,
    request: Request,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> PurchaseResponse:
    """Stage a store-credit top-up paid through a payment link."""

    service = _purchase_service(db, dispatcher)
    try:
        staged = await service.create_store_credit_topup(
            actor=actor,
            card_uid=payload.cardUid,
            amount_cents=payload.amountCents,
            store_id=payload.storeId,
            description=payload.description,
            source_ip=request.client.host if request.client else None,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return _purchase_response(staged)


@router.post("/{purchase_id}/confirm", response_model=ConfirmationResponse)
async def confirm_purchase(
    purchase_id: UUID,
    request: Request,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_session),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> ConfirmationResponse:
    """Cashier-side confirmation; repeated calls report ``already_processed``."""

    reconciler = PaymentReconciler(db, dispatcher=dispatcher)
    try:
        outcome = await reconciler.confirm_by_purchase_id(
            purchase_id,
            actor=actor,
            source_ip=request.client.host if request.client else None,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    return confirmation_response(outcome)
