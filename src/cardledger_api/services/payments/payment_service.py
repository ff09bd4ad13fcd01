"""Payment processing service layer."""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.core.clock import Clock, ensure_utc, utcnow
from cardledger_api.models.purchase import PaymentLink
from cardledger_api.models.webhook_event import WebhookEvent, WebhookProviderEnum
from cardledger_api.observability.payments import get_payment_store
from cardledger_api.services.ledger import (
    InvalidStateError,
    LedgerEventDispatcher,
    NotFoundError,
    PaymentReconciler,
    PurchaseService,
    ReconciliationOutcome,
    ReconciliationStatus,
)
from .session_store import PaymentSession, PaymentSessionStore
from .stripe_service import StripeService


@dataclass
class WebhookResult:
    """Outcome of a processed webhook delivery."""

    event_type: str
    status: str
    payment_link_id: Optional[str] = None


class PaymentService:
    """Bridges the processor (Stripe) with payment links and the reconciler."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        stripe_service: StripeService | None = None,
        session_store: PaymentSessionStore | None = None,
        dispatcher: LedgerEventDispatcher | None = None,
        clock: Clock | None = None,
    ):
        """Initialize payment service.

        Args:
            db_session: Database session for operations
            stripe_service: Processor client, defaults to the configured Stripe account
            session_store: Shared cache of intents per payment-link token
            dispatcher: Post-commit notification dispatcher
            clock: Injectable time source
        """
        self.db = db_session
        self._clock = clock or utcnow
        self.stripe_service = stripe_service or StripeService()
        self._session_store = session_store
        self._reconciler = PaymentReconciler(db_session, dispatcher=dispatcher, clock=self._clock)
        self._purchases = PurchaseService(db_session, reconciler=self._reconciler, clock=self._clock)

    def _get_session_store(self) -> PaymentSessionStore:
        if self._session_store is None:
            self._session_store = PaymentSessionStore()
        return self._session_store

    async def _is_duplicate_webhook(self, provider_reference: str) -> bool:
        stmt = select(WebhookEvent).where(
            WebhookEvent.provider == WebhookProviderEnum.STRIPE,
            WebhookEvent.external_id == provider_reference,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def _record_webhook(
        self,
        provider_reference: str,
        event_type: str,
        *,
        payment_link_id: Optional[str],
        outcome: str,
    ) -> None:
        event = WebhookEvent(
            provider=WebhookProviderEnum.STRIPE,
            external_id=provider_reference,
            event_type=event_type,
            payment_link_id=payment_link_id,
            outcome=outcome,
        )
        self.db.add(event)
        await self.db.flush()

    async def get_or_create_payment_session(self, token: str) -> PaymentSession:
        """Return the processor session for a payable link, creating one intent at most.

        Raises:
            NotFoundError: If the token is unknown
            PaymentLinkUnavailableError: If the link is used or expired
        """
        link, purchase = await self._purchases.get_payment_link(token)
        store = self._get_session_store()

        cached = await store.get(token)
        if cached is not None:
            return cached

        intent = await self.stripe_service.create_payment_intent(
            amount_cents=int(link.amount_cents),
            payment_link_id=str(link.id),
            description=link.description,
            metadata={"purchaseId": str(purchase.id), "tenantId": str(link.tenant_id)},
        )
        session = PaymentSession(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_cents=int(link.amount_cents),
        )
        ttl_seconds = int((ensure_utc(link.expires_at) - self._clock()).total_seconds())
        if not await store.put(token, session, ttl_seconds=ttl_seconds):
            # Another instance stored its intent first; reuse it.
            existing = await store.get(token)
            if existing is not None:
                return existing
        get_payment_store().record_checkout_success(str(purchase.id))
        return session

    async def confirm_paid_link(self, token: str, *, source_ip: Optional[str] = None) -> ReconciliationOutcome:
        """Confirm a link from the payment page once the processor reports success.

        Links that were already consumed go straight to the reconciler, which
        reports them as already processed.
        """
        link = (
            await self.db.execute(select(PaymentLink).where(PaymentLink.token == token))
        ).scalar_one_or_none()
        if link is None:
            raise NotFoundError("Payment link not found")

        if link.used_at is None:
            session = await self._get_session_store().get(token)
            if session is None:
                raise InvalidStateError("No payment has been started for this link")
            intent = await self.stripe_service.retrieve_payment_intent(session.payment_intent_id)
            if intent.status != "succeeded":
                logger.info(
                    "Payment page confirmation before processor success",
                    payment_intent_id=session.payment_intent_id,
                    intent_status=intent.status,
                )
                raise InvalidStateError("Payment has not completed", intent_status=intent.status)

        outcome = await self._reconciler.confirm_by_token(token, source_ip=source_ip)
        if outcome.applied:
            await self._get_session_store().discard(token)
        return outcome

    async def process_stripe_webhook_event(self, event_data: Dict[str, Any]) -> WebhookResult:
        """Process a verified Stripe webhook event.

        Duplicate deliveries and unrelated event types are acknowledged without
        side effects. ``payment_intent.succeeded`` carrying a ``paymentLinkId``
        is handed to the reconciler, which confirms the purchase exactly once.
        """
        event_type = event_data.get("type", "unknown")
        event_id = event_data.get("id")

        if event_id and await self._is_duplicate_webhook(event_id):
            logger.info("Ignoring duplicate Stripe webhook", event_id=event_id, event_type=event_type)
            return WebhookResult(event_type=event_type, status="duplicate")

        payment_link_id: Optional[str] = None
        if event_type == "payment_intent.succeeded":
            payment_intent = event_data.get("data", {}).get("object", {}) or {}
            payment_link_id = (payment_intent.get("metadata") or {}).get("paymentLinkId")
            status = await self._handle_payment_succeeded(payment_intent, payment_link_id)
        else:
            logger.info(
                "Received unhandled Stripe webhook event",
                event_type=event_type,
                event_id=event_id,
            )
            status = "ignored"

        if event_id:
            try:
                await self._record_webhook(event_id, event_type, payment_link_id=payment_link_id, outcome=status)
                await self.db.commit()
            except IntegrityError:
                # A concurrent delivery of the same event recorded it first.
                await self.db.rollback()
                logger.info(
                    "Stripe webhook recorded by a concurrent delivery",
                    event_id=event_id,
                    event_type=event_type,
                    outcome=status,
                )
                return WebhookResult(event_type=event_type, status="duplicate", payment_link_id=payment_link_id)

        return WebhookResult(event_type=event_type, status=status, payment_link_id=payment_link_id)

    async def _handle_payment_succeeded(
        self,
        payment_intent: Dict[str, Any],
        payment_link_id: Optional[str],
    ) -> str:
        if not payment_link_id:
            logger.info(
                "PaymentIntent succeeded without a payment link reference",
                payment_intent_id=payment_intent.get("id"),
            )
            return "ignored"

        try:
            link_uuid = UUID(str(payment_link_id))
        except ValueError:
            logger.warning("Malformed paymentLinkId in webhook metadata", payment_link_id=payment_link_id)
            return "ignored"

        try:
            outcome = await self._reconciler.confirm_by_payment_link_id(link_uuid)
        except NotFoundError:
            logger.warning("Webhook references unknown payment link", payment_link_id=payment_link_id)
            return "not_found"

        if outcome.status == ReconciliationStatus.APPLIED:
            logger.info(
                "Payment succeeded",
                payment_intent_id=payment_intent.get("id"),
                payment_link_id=payment_link_id,
                amount_cents=payment_intent.get("amount_received"),
            )
        return outcome.status.value


__all__ = ["PaymentService", "WebhookResult"]
