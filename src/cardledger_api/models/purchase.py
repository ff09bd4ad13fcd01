"""Staged purchases and the single-use payment links that settle them."""

from enum import Enum
from uuid import uuid4

from sqlalchemy import BigInteger, Column, DateTime, Enum as SqlEnum, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from cardledger_api.core.clock import utcnow
from cardledger_api.db.base import Base
from .rules import TransactionCategoryEnum


class PurchaseKindEnum(str, Enum):
    REGULAR = "regular"
    STORE_CREDIT = "store_credit"


class PaymentMethodEnum(str, Enum):
    QR_PAYMENT = "qr_payment"
    CASH = "cash"
    CARD = "card"


class PurchasePaymentStatusEnum(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class PaymentLink(Base):
    """Opaque, expiring token a customer uses to pay a pending purchase."""

    __tablename__ = "payment_links"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    token = Column(String, nullable=False, unique=True, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class PurchaseTransaction(Base):
    """Purchase recorded by a cashier; balance effects apply once it completes."""

    __tablename__ = "purchase_transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    cashier_id = Column(UUID(as_uuid=True), ForeignKey("staff_users.id", ondelete="SET NULL"), nullable=True)
    card_uid = Column(String, nullable=True)
    kind = Column(
        SqlEnum(PurchaseKindEnum, name="purchase_kind_enum"),
        nullable=False,
        default=PurchaseKindEnum.REGULAR,
        server_default=PurchaseKindEnum.REGULAR.name,
    )
    payment_method = Column(SqlEnum(PaymentMethodEnum, name="payment_method_enum"), nullable=False)
    payment_status = Column(
        SqlEnum(PurchasePaymentStatusEnum, name="purchase_payment_status_enum"),
        nullable=False,
        default=PurchasePaymentStatusEnum.PENDING,
        server_default=PurchasePaymentStatusEnum.PENDING.name,
        index=True,
    )
    category = Column(
        SqlEnum(TransactionCategoryEnum, name="transaction_category_enum", create_type=False),
        nullable=False,
        default=TransactionCategoryEnum.PURCHASE,
    )
    amount_cents = Column(BigInteger, nullable=False)
    cashback_cents = Column(BigInteger, nullable=False, default=0, server_default="0")
    description = Column(Text, nullable=True)
    source_ip = Column(String, nullable=True)
    payment_link_id = Column(
        UUID(as_uuid=True),
        ForeignKey("payment_links.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )
    paid_at = Column(DateTime(timezone=True), nullable=True)
    reconciliation_error = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
