"""SQLAlchemy models package."""

from .tenant import StaffRoleEnum, StaffUser, Store, Tenant  # noqa: F401
from .card import Card, CardStatusEnum, Customer  # noqa: F401
from .rules import CashbackRule, Offer, TierRule, TransactionCategoryEnum  # noqa: F401
from .ledger import LedgerTransaction, LedgerTransactionTypeEnum  # noqa: F401
from .purchase import (  # noqa: F401
    PaymentLink,
    PaymentMethodEnum,
    PurchaseKindEnum,
    PurchasePaymentStatusEnum,
    PurchaseTransaction,
)
from .webhook_event import WebhookEvent, WebhookProviderEnum  # noqa: F401
