"""Ledger and rewards-consistency core."""

from .defaults import DEFAULT_CASHBACK_RATES_BPS, DEFAULT_TIERS, initialize_default_rules
from .effects import ActorContext
from .errors import (
    ConcurrentModificationError,
    InsufficientFundsError,
    InvalidStateError,
    LedgerError,
    LedgerValidationError,
    NotFoundError,
    PaymentLinkUnavailableError,
    PolicyViolationError,
    UnauthorizedError,
)
from .events import LedgerEvent, LedgerEventDispatcher, LedgerEventKind
from .ledger_service import LedgerResult, LedgerService
from .purchases import CustomerInfo, PurchaseService, StagedPurchase
from .rates import RateBreakdown, RateResolver, compute_cashback
from .reconciler import PaymentReconciler, ReconciliationOutcome, ReconciliationStatus
from .tiers import TierEvaluation, TierEvaluator, TierProgress

__all__ = [
    "ActorContext",
    "ConcurrentModificationError",
    "CustomerInfo",
    "DEFAULT_CASHBACK_RATES_BPS",
    "DEFAULT_TIERS",
    "InsufficientFundsError",
    "InvalidStateError",
    "LedgerError",
    "LedgerEvent",
    "LedgerEventDispatcher",
    "LedgerEventKind",
    "LedgerResult",
    "LedgerService",
    "LedgerValidationError",
    "NotFoundError",
    "PaymentLinkUnavailableError",
    "PaymentReconciler",
    "PolicyViolationError",
    "PurchaseService",
    "RateBreakdown",
    "RateResolver",
    "ReconciliationOutcome",
    "ReconciliationStatus",
    "StagedPurchase",
    "TierEvaluation",
    "TierEvaluator",
    "TierProgress",
    "UnauthorizedError",
    "compute_cashback",
    "initialize_default_rules",
]
