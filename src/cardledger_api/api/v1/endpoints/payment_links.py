"""Public endpoints behind the QR payment page."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.api.dependencies.services import (
    get_ledger_dispatcher,
    get_payment_session_store,
    get_stripe_service,
)
from cardledger_api.api.errors import to_http_exception
from cardledger_api.core.settings import settings
from cardledger_api.db.session import get_session
from cardledger_api.observability.payments import get_payment_store
from cardledger_api.services.ledger import LedgerError, LedgerEventDispatcher, PurchaseService
from cardledger_api.services.payments import PaymentService, PaymentSessionStore, StripeService

from .purchases import ConfirmationResponse, confirmation_response


router = APIRouter(prefix="/payment-links", tags=["payment-links"])


class PaymentLinkResponse(BaseModel):
    purchaseId: UUID
    kind: str
    amountCents: int
    currency: str
    description: Optional[str]
    expiresAt: datetime
    publishableKey: Optional[str]


class PaymentIntentResponse(BaseModel):
    paymentIntentId: str
    clientSecret: str
    amountCents: int
    currency: str
    publishableKey: Optional[str]


@router.get("/{token}", response_model=PaymentLinkResponse)
async def get_payment_link(
    token: str,
    db: AsyncSession = Depends(get_session),
) -> PaymentLinkResponse:
    """Describe a payable link; used or expired links answer 410."""

    service = PurchaseService(db)
    try:
        link, purchase = await service.get_payment_link(token)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc

    return PaymentLinkResponse(
        purchaseId=purchase.id,
        kind=purchase.kind.value,
        amountCents=int(link.amount_cents),
        currency=settings.stripe_currency,
        description=link.description,
        expiresAt=link.expires_at,
        publishableKey=settings.stripe_public_key,
    )


@router.post("/{token}/intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    token: str,
    db: AsyncSession = Depends(get_session),
    stripe_service: StripeService = Depends(get_stripe_service),
    session_store: PaymentSessionStore = Depends(get_payment_session_store),
) -> PaymentIntentResponse:
    """Return the processor intent for this link, reusing one across page loads."""

    payment_service = PaymentService(db, stripe_service=stripe_service, session_store=session_store)
    try:
        session = await payment_service.get_or_create_payment_session(token)
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    except stripe.StripeError as exc:
        get_payment_store().record_checkout_failure(str(exc))
        logger.error(
            "Failed to create payment intent for link",
            token=token,
            error=str(exc),
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment processor unavailable")

    return PaymentIntentResponse(
        paymentIntentId=session.payment_intent_id,
        clientSecret=session.client_secret,
        amountCents=session.amount_cents,
        currency=stripe_service.currency,
        publishableKey=settings.stripe_public_key,
    )


@router.post("/{token}/pay", response_model=ConfirmationResponse)
async def confirm_payment_link(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_session),
    stripe_service: StripeService = Depends(get_stripe_service),
    session_store: PaymentSessionStore = Depends(get_payment_session_store),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> ConfirmationResponse:
    """Confirm payment from the payment page; repeated calls are harmless."""

    payment_service = PaymentService(
        db,
        stripe_service=stripe_service,
        session_store=session_store,
        dispatcher=dispatcher,
    )
    try:
        outcome = await payment_service.confirm_paid_link(
            token,
            source_ip=request.client.host if request.client else None,
        )
    except LedgerError as exc:
        raise to_http_exception(exc) from exc
    except stripe.StripeError as exc:
        logger.error("Failed to verify payment intent", token=token, error=str(exc))
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment processor unavailable")
    return confirmation_response(outcome)
