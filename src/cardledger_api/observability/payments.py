"""In-memory observability helper for payment-link intents + Stripe webhook flows."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Dict

from cardledger_api.core.clock import utcnow


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class IntentEventLog:
    last_created_at: datetime | None = None
    last_purchase_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_reason: str | None = None


@dataclass
class WebhookEventLog:
    last_event_at: datetime | None = None
    last_event_type: str | None = None
    last_event_delivery_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_type: str | None = None
    last_failure_reason: str | None = None


@dataclass
class PaymentObservabilitySnapshot:
    intent_totals: Dict[str, int]
    webhook_totals: Dict[str, Dict[str, int]]
    intent_events: IntentEventLog
    webhook_events: WebhookEventLog

    def as_dict(self) -> Dict[str, object]:
        return {
            "intents": {
                "totals": self.intent_totals,
                "events": {
                    "last_created_at": _iso(self.intent_events.last_created_at),
                    "last_purchase_id": self.intent_events.last_purchase_id,
                    "last_failure_at": _iso(self.intent_events.last_failure_at),
                    "last_failure_reason": self.intent_events.last_failure_reason,
                },
            },
            "webhooks": {
                "totals": self.webhook_totals,
                "events": {
                    "last_event_at": _iso(self.webhook_events.last_event_at),
                    "last_event_type": self.webhook_events.last_event_type,
                    "last_event_delivery_id": self.webhook_events.last_event_delivery_id,
                    "last_failure_at": _iso(self.webhook_events.last_failure_at),
                    "last_failure_type": self.webhook_events.last_failure_type,
                    "last_failure_reason": self.webhook_events.last_failure_reason,
                },
            },
        }


@dataclass
class PaymentObservabilityStore:
    _lock: Lock = field(default_factory=Lock)
    _intent_totals: Counter = field(default_factory=Counter)
    _intent_events: IntentEventLog = field(default_factory=IntentEventLog)
    _webhook_totals: Dict[str, Counter] = field(
        default_factory=lambda: {"processed": Counter(), "failed": Counter()}
    )
    _webhook_events: WebhookEventLog = field(default_factory=WebhookEventLog)

    def record_checkout_success(self, purchase_id: str | None) -> None:
        with self._lock:
            self._intent_totals["created"] += 1
            self._intent_events.last_created_at = utcnow()
            self._intent_events.last_purchase_id = purchase_id

    def record_checkout_failure(self, reason: str) -> None:
        with self._lock:
            self._intent_totals["failed"] += 1
            self._intent_events.last_failure_at = utcnow()
            self._intent_events.last_failure_reason = reason

    def record_webhook(self, event_type: str, success: bool, delivery_id: str | None, error: str | None) -> None:
        with self._lock:
            bucket = "processed" if success else "failed"
            self._webhook_totals[bucket][event_type] += 1
            now = utcnow()
            self._webhook_events.last_event_at = now
            self._webhook_events.last_event_type = event_type
            self._webhook_events.last_event_delivery_id = delivery_id
            if not success:
                self._webhook_events.last_failure_at = now
                self._webhook_events.last_failure_type = event_type
                self._webhook_events.last_failure_reason = error

    def snapshot(self) -> PaymentObservabilitySnapshot:
        with self._lock:
            return PaymentObservabilitySnapshot(
                intent_totals=dict(self._intent_totals),
                webhook_totals={bucket: dict(counter) for bucket, counter in self._webhook_totals.items()},
                intent_events=IntentEventLog(**vars(self._intent_events)),
                webhook_events=WebhookEventLog(**vars(self._webhook_events)),
            )

    def reset(self) -> None:
        with self._lock:
            self._intent_totals.clear()
            for counter in self._webhook_totals.values():
                counter.clear()
            self._intent_events = IntentEventLog()
            self._webhook_events = WebhookEventLog()


_PAYMENT_STORE = PaymentObservabilityStore()


def get_payment_store() -> PaymentObservabilityStore:
    return _PAYMENT_STORE
