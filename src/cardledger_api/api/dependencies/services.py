"""Injectable collaborators for the ledger endpoints.

Tests override these through ``app.dependency_overrides`` to swap in
in-memory email backends, a fake processor or a fake redis store.
"""

from __future__ import annotations

from cardledger_api.services.ledger import LedgerEventDispatcher
from cardledger_api.services.notifications import NotificationService
from cardledger_api.services.payments import PaymentSessionStore, StripeService


def get_ledger_dispatcher() -> LedgerEventDispatcher:
    return LedgerEventDispatcher(NotificationService())


def get_stripe_service() -> StripeService:
    return StripeService()


def get_payment_session_store() -> PaymentSessionStore:
    return PaymentSessionStore()
