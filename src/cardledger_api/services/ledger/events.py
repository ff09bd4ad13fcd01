"""Post-commit ledger events and their fire-and-forget dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Protocol
from uuid import UUID

from loguru import logger

from cardledger_api.observability.ledger import get_ledger_store


class LedgerEventKind(str, Enum):
    CASHBACK_EARNED = "cashback_earned"
    CASHBACK_REDEEMED = "cashback_redeemed"
    BALANCE_ADJUSTED = "balance_adjusted"
    STORE_CREDIT_ADDED = "store_credit_added"
    TIER_CHANGED = "tier_changed"


@dataclass(frozen=True)
class LedgerEvent:
    """Snapshot of a committed ledger effect, safe to use after the session closes."""

    kind: LedgerEventKind
    tenant_id: UUID
    customer_id: Optional[UUID]
    card_uid: str
    amount_cents: int = 0
    cashback_cents: int = 0
    balance_after_cents: int = 0
    transaction_id: Optional[UUID] = None
    recipient_email: Optional[str] = None
    recipient_name: Optional[str] = None
    tier: Optional[str] = None
    previous_tier: Optional[str] = None


class LedgerEventSink(Protocol):
    async def handle_ledger_event(self, event: LedgerEvent) -> None:
        ...


class LedgerEventDispatcher:
    """Deliver committed events to a sink; delivery failures never propagate."""

    def __init__(self, sink: LedgerEventSink | None = None) -> None:
        self._sink = sink

    async def dispatch(self, events: Iterable[LedgerEvent]) -> int:
        delivered = 0
        if self._sink is None:
            return delivered

        store = get_ledger_store()
        for event in events:
            try:
                await self._sink.handle_ledger_event(event)
            except Exception as exc:  # noqa: BLE001 - notifications must not affect committed money
                store.record_notification(event.kind.value, success=False)
                logger.opt(exception=exc).warning(
                    "Ledger notification dispatch failed",
                    event_kind=event.kind.value,
                    customer_id=str(event.customer_id) if event.customer_id else None,
                    transaction_id=str(event.transaction_id) if event.transaction_id else None,
                )
                continue
            store.record_notification(event.kind.value, success=True)
            delivered += 1
        return delivered


__all__ = ["LedgerEvent", "LedgerEventDispatcher", "LedgerEventKind", "LedgerEventSink"]
