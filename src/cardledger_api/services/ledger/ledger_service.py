"""Direct cashier transactions (EARN / REDEEM / ADJUST) as one atomic unit."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from cardledger_api.core.clock import Clock
from cardledger_api.models.ledger import LedgerTransaction, LedgerTransactionTypeEnum
from cardledger_api.models.rules import TransactionCategoryEnum
from cardledger_api.observability.ledger import get_ledger_store
from cardledger_api.observability.tracing import get_tracer

from .effects import ActorContext, apply_card_effect, check_card_usable, load_card_for_update
from .errors import LedgerError, LedgerValidationError, UnauthorizedError
from .events import LedgerEvent, LedgerEventDispatcher
from .rates import RateBreakdown, RateResolver, compute_cashback
from .tiers import TierEvaluation, TierEvaluator


@dataclass
class LedgerResult:
    transaction: LedgerTransaction
    tier: Optional[TierEvaluation]
    rate: Optional[RateBreakdown] = None
    events: list[LedgerEvent] = field(default_factory=list)


class LedgerService:
    """Validate, compute, and persist a balance change on a card."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        rate_resolver: RateResolver | None = None,
        tier_evaluator: TierEvaluator | None = None,
        dispatcher: LedgerEventDispatcher | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._db = db_session
        self._rates = rate_resolver or RateResolver(db_session, clock=clock)
        self._tiers = tier_evaluator or TierEvaluator(db_session)
        self._dispatcher = dispatcher or LedgerEventDispatcher()

    async def earn(self, **kwargs) -> LedgerResult:
        return await self.apply_transaction(transaction_type=LedgerTransactionTypeEnum.EARN, **kwargs)

    async def redeem(self, **kwargs) -> LedgerResult:
        return await self.apply_transaction(transaction_type=LedgerTransactionTypeEnum.REDEEM, **kwargs)

    async def adjust(self, **kwargs) -> LedgerResult:
        return await self.apply_transaction(transaction_type=LedgerTransactionTypeEnum.ADJUST, **kwargs)

    async def apply_transaction(
        self,
        *,
        card_uid: str,
        transaction_type: LedgerTransactionTypeEnum,
        amount_cents: int,
        store_id: UUID,
        actor: ActorContext,
        category: TransactionCategoryEnum | None = None,
        note: str | None = None,
        source_ip: str | None = None,
    ) -> LedgerResult:
        """Run one EARN, REDEEM, or ADJUST; commits on success, rolls back on any failure.

        Notifications are dispatched only after the commit and never undo it.
        """

        observability = get_ledger_store()
        try:
            self._validate_request(transaction_type, amount_cents)

            card = await load_card_for_update(self._db, card_uid)
            card, customer = await check_card_usable(
                self._db,
                card,
                card_uid=card_uid,
                actor=actor,
                store_id=store_id,
            )

            rate: RateBreakdown | None = None
            cashback = 0
            if transaction_type == LedgerTransactionTypeEnum.EARN:
                rate = await self._rates.resolve_cashback_rate(
                    card.tenant_id,
                    category or TransactionCategoryEnum.PURCHASE,
                    customer.tier,
                )
                cashback = compute_cashback(amount_cents, rate.rate_bps)

            with get_tracer().start_as_current_span(
                "ledger.apply_transaction",
                attributes={"ledger.transaction_type": transaction_type.value, "ledger.cashback_cents": cashback},
            ):
                effect = await apply_card_effect(
                    self._db,
                    card=card,
                    customer=customer,
                    transaction_type=transaction_type,
                    amount_cents=amount_cents,
                    cashback_cents=cashback,
                    category=category or (
                        TransactionCategoryEnum.PURCHASE
                        if transaction_type == LedgerTransactionTypeEnum.EARN
                        else None
                    ),
                    store_id=store_id,
                    cashier_id=actor.id,
                    tier_evaluator=self._tiers,
                    note=note,
                    source_ip=source_ip,
                )
            await self._db.commit()
        except LedgerError as exc:
            await self._db.rollback()
            observability.record_rejection(exc.code)
            self._log_rejection(exc, card_uid=card_uid, transaction_type=transaction_type, actor=actor)
            raise
        except Exception:
            await self._db.rollback()
            logger.exception(
                "Ledger transaction failed",
                card_uid=card_uid,
                transaction_type=transaction_type.value,
            )
            raise

        observability.record_transaction(transaction_type.value, cashback_cents=cashback)
        await self._dispatcher.dispatch(effect.events)
        return LedgerResult(
            transaction=effect.transaction,
            tier=effect.tier,
            rate=rate,
            events=effect.events,
        )

    @staticmethod
    def _validate_request(
        transaction_type: LedgerTransactionTypeEnum,
        amount_cents: int,
    ) -> None:
        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
            raise LedgerValidationError("Amount must be an integer number of minor units")
        if transaction_type == LedgerTransactionTypeEnum.ADJUST:
            if amount_cents == 0:
                raise LedgerValidationError("Adjustment amount must be non-zero")
        elif amount_cents <= 0:
            raise LedgerValidationError("Amount must be positive")

    @staticmethod
    def _log_rejection(
        exc: LedgerError,
        *,
        card_uid: str,
        transaction_type: LedgerTransactionTypeEnum,
        actor: ActorContext,
    ) -> None:
        context = {
            "card_uid": card_uid,
            "transaction_type": transaction_type.value,
            "actor_id": str(actor.id) if actor.id else None,
            "tenant_id": str(actor.tenant_id),
            "reason": exc.code,
        }
        if isinstance(exc, UnauthorizedError):
            logger.warning("Rejected cross-tenant ledger access", **context)
        else:
            logger.info("Ledger transaction rejected", detail=exc.message, **context)


__all__ = ["LedgerResult", "LedgerService"]
