"""Append-only ledger of balance movements on cards."""

from enum import Enum
from uuid import uuid4

from sqlalchemy import BigInteger, Column, DateTime, Enum as SqlEnum, ForeignKey, String, Text, event, func
from sqlalchemy.dialects.postgresql import UUID

from cardledger_api.core.clock import utcnow
from cardledger_api.db.base import Base
from .rules import TransactionCategoryEnum


class LedgerTransactionTypeEnum(str, Enum):
    EARN = "earn"
    REDEEM = "redeem"
    ADJUST = "adjust"


class LedgerTransaction(Base):
    """Immutable record of a single balance change with before/after snapshots."""

    __tablename__ = "ledger_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)
    card_id = Column(UUID(as_uuid=True), ForeignKey("cards.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    cashier_id = Column(UUID(as_uuid=True), ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True)
    purchase_id = Column(
        UUID(as_uuid=True),
        ForeignKey("purchase_transactions.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    type = Column(SqlEnum(LedgerTransactionTypeEnum, name="ledger_transaction_type_enum"), nullable=False)
    category = Column(
        SqlEnum(TransactionCategoryEnum, name="transaction_category_enum", create_type=False),
        nullable=True,
    )
    amount_cents = Column(BigInteger, nullable=False)
    cashback_cents = Column(BigInteger, nullable=False, default=0, server_default="0")
    balance_before_cents = Column(BigInteger, nullable=False)
    balance_after_cents = Column(BigInteger, nullable=False)
    note = Column(Text, nullable=True)
    source_ip = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    @property
    def balance_delta_cents(self) -> int:
        return int(self.balance_after_cents) - int(self.balance_before_cents)


@event.listens_for(LedgerTransaction, "before_update")
def _reject_ledger_mutation(mapper, connection, target) -> None:  # noqa: ANN001
    raise ValueError("Ledger transactions are immutable once written")
