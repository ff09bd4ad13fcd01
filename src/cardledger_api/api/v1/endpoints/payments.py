from typing import Any, Dict

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.api.dependencies.services import get_ledger_dispatcher, get_stripe_service
from cardledger_api.db.session import get_session
from cardledger_api.observability.payments import get_payment_store
from cardledger_api.services.ledger import LedgerEventDispatcher
from cardledger_api.services.payments import PaymentService, StripeService


router = APIRouter(prefix="/payments", tags=["payments"])


class WebhookResponse(BaseModel):
    """Response model for webhook processing."""
    success: bool = Field(..., description="Whether webhook was processed successfully")
    message: str = Field(..., description="Processing result message")
    status: str = Field(..., description="Reconciliation status or handling decision")


@router.post("/webhooks/stripe", response_model=WebhookResponse)
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: str = Header(..., alias="stripe-signature"),
    db: AsyncSession = Depends(get_session),
    stripe_service: StripeService = Depends(get_stripe_service),
    dispatcher: LedgerEventDispatcher = Depends(get_ledger_dispatcher),
) -> WebhookResponse:
    """Handle Stripe webhook events that settle payment links.

    Verified ``payment_intent.succeeded`` events confirm the linked purchase
    exactly once. Redeliveries and unrelated events are acknowledged so the
    processor stops retrying; unexpected failures answer 500 to request a retry.

    Raises:
        HTTPException: If webhook verification fails or processing error occurs
    """
    delivery_id = request.headers.get("stripe-webhook-id")
    retry_count = request.headers.get("stripe-webhook-retry-count", "0")
    event: Dict[str, Any] | None = None
    payments_store = get_payment_store()

    try:
        payload = await request.body()
        event = await stripe_service.construct_webhook_event(payload, stripe_signature)

        logger.info(
            "Processing Stripe webhook event",
            event_id=event.get("id"),
            event_type=event.get("type"),
            delivery_id=delivery_id,
            retry_count=retry_count,
            livemode=event.get("livemode"),
        )

        payment_service = PaymentService(db, stripe_service=stripe_service, dispatcher=dispatcher)
        result = await payment_service.process_stripe_webhook_event(event)

    except stripe.SignatureVerificationError:
        logger.warning(
            "Invalid Stripe webhook signature",
            delivery_id=delivery_id,
            retry_count=retry_count,
        )
        payments_store.record_webhook(
            event_type="signature_error",
            success=False,
            delivery_id=delivery_id,
            error="signature_verification_failed",
        )
        raise HTTPException(status_code=400, detail="Invalid webhook signature")
    except Exception as e:
        logger.error(
            "Stripe webhook processing error",
            error=str(e),
            delivery_id=delivery_id,
            retry_count=retry_count,
            event_id=event.get("id") if event else None,
            event_type=event.get("type") if event else None,
        )
        payments_store.record_webhook(
            event_type=event["type"] if event else "unknown",
            success=False,
            delivery_id=delivery_id,
            error=str(e),
        )
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    logger.info(
        "Stripe webhook processed",
        event_id=event.get("id"),
        event_type=result.event_type,
        status=result.status,
        delivery_id=delivery_id,
        retry_count=retry_count,
    )
    payments_store.record_webhook(
        event_type=result.event_type,
        success=True,
        delivery_id=delivery_id,
        error=None,
    )
    return WebhookResponse(
        success=True,
        message=f"Processed {result.event_type} event",
        status=result.status,
    )
