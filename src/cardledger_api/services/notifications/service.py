"""High-level notification service for card holder emails."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from loguru import logger

from cardledger_api.core.settings import get_settings
from cardledger_api.services.ledger.events import LedgerEvent, LedgerEventKind

from .backend import EmailBackend, SMTPEmailBackend
from .templates import (
    RenderedTemplate,
    render_balance_adjusted,
    render_cashback_earned,
    render_cashback_redeemed,
    render_store_credit_added,
    render_tier_changed,
)


@dataclass
class NotificationEvent:
    """Representation of a notification that was sent."""

    recipient: str
    subject: str
    body_text: str
    body_html: str | None
    event_type: str
    metadata: dict[str, Any]


_RENDERERS: dict[LedgerEventKind, Callable[[LedgerEvent], RenderedTemplate]] = {
    LedgerEventKind.CASHBACK_EARNED: render_cashback_earned,
    LedgerEventKind.CASHBACK_REDEEMED: render_cashback_redeemed,
    LedgerEventKind.BALANCE_ADJUSTED: render_balance_adjusted,
    LedgerEventKind.STORE_CREDIT_ADDED: render_store_credit_added,
    LedgerEventKind.TIER_CHANGED: render_tier_changed,
}


class NotificationService:
    """Turns committed ledger events into emails via a pluggable backend."""

    def __init__(self, backend: Optional[EmailBackend] = None) -> None:
        self._backend = backend or self._build_default_backend()
        self._events: list[NotificationEvent] = []

    @property
    def sent_events(self) -> list[NotificationEvent]:
        """Expose events (useful for tests when using in-memory backend)."""
        return self._events

    async def handle_ledger_event(self, event: LedgerEvent) -> None:
        if self._backend is None:
            return
        if not event.recipient_email:
            logger.debug("Skipping notification without recipient", event_kind=event.kind.value)
            return
        if event.kind == LedgerEventKind.CASHBACK_EARNED and event.cashback_cents <= 0:
            return

        template = _RENDERERS[event.kind](event)
        metadata = {
            "tenant_id": str(event.tenant_id),
            "customer_id": str(event.customer_id) if event.customer_id else None,
            "transaction_id": str(event.transaction_id) if event.transaction_id else None,
        }
        if event.kind == LedgerEventKind.TIER_CHANGED:
            metadata.update({"tier": event.tier, "previous_tier": event.previous_tier})

        await self._deliver(event.recipient_email, template, event_type=event.kind.value, metadata=metadata)

    def _build_default_backend(self) -> Optional[EmailBackend]:
        settings = get_settings()
        if not settings.smtp_host or not settings.smtp_sender_email:
            return None

        return SMTPEmailBackend(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender_email=settings.smtp_sender_email,
        )

    async def _deliver(
        self,
        recipient: str,
        template: RenderedTemplate,
        *,
        event_type: str,
        metadata: dict[str, Any],
    ) -> None:
        """Send using active backend and record emitted event."""
        if self._backend is None:
            return

        await self._backend.send_email(
            recipient,
            template.subject,
            template.text_body,
            body_html=template.html_body,
        )
        self._events.append(
            NotificationEvent(
                recipient=recipient,
                subject=template.subject,
                body_text=template.text_body,
                body_html=template.html_body,
                event_type=event_type,
                metadata=metadata,
            )
        )
        logger.info("Sent ledger notification", event_type=event_type, customer_id=metadata.get("customer_id"))
