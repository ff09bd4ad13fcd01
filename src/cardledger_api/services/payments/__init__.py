"""Payment processing services."""

from .payment_service import PaymentService, WebhookResult
from .session_store import PaymentSession, PaymentSessionStore
from .stripe_service import StripeService

__all__ = ["PaymentService", "PaymentSession", "PaymentSessionStore", "StripeService", "WebhookResult"]
