"""Stripe payment processing service."""

from typing import Any, Dict, Optional

import stripe
from loguru import logger

from cardledger_api.core.settings import get_settings


class StripeService:
    """Service for handling Stripe payment operations."""

    def __init__(self):
        """Initialize Stripe service with API keys."""
        settings = get_settings()
        stripe.api_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret
        self.currency = settings.stripe_currency

    async def create_payment_intent(
        self,
        *,
        amount_cents: int,
        payment_link_id: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> stripe.PaymentIntent:
        """Create a PaymentIntent that settles a payment link.

        Args:
            amount_cents: Amount to charge in minor units
            payment_link_id: Internal payment link identifier, echoed back in webhooks
            description: Statement description shown to the payer
            metadata: Additional metadata to attach to the intent

        Returns:
            Stripe PaymentIntent object

        Raises:
            stripe.StripeError: If intent creation fails
        """
        intent_metadata = {"paymentLinkId": payment_link_id}
        if metadata:
            intent_metadata.update(metadata)

        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=self.currency,
                description=description,
                metadata=intent_metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(
                "Failed to create Stripe PaymentIntent",
                payment_link_id=payment_link_id,
                error=str(e),
            )
            raise

        logger.info(
            "Created Stripe PaymentIntent",
            payment_intent_id=intent.id,
            payment_link_id=payment_link_id,
            amount_cents=amount_cents,
        )
        return intent

    async def retrieve_payment_intent(self, payment_intent_id: str) -> stripe.PaymentIntent:
        """Retrieve a Stripe PaymentIntent by ID.

        Raises:
            stripe.StripeError: If retrieval fails
        """
        try:
            return stripe.PaymentIntent.retrieve(payment_intent_id)
        except stripe.StripeError as e:
            logger.error(
                "Failed to retrieve PaymentIntent",
                payment_intent_id=payment_intent_id,
                error=str(e),
            )
            raise

    async def construct_webhook_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Construct and verify a Stripe webhook event.

        Args:
            payload: Raw webhook payload
            signature: Stripe signature header

        Returns:
            Verified Stripe Event object

        Raises:
            stripe.SignatureVerificationError: If signature verification fails
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.error("Failed to verify Stripe webhook signature", error=str(e))
            raise

        logger.info(
            "Verified Stripe webhook event",
            event_type=event["type"],
            event_id=event["id"],
        )
        return event
