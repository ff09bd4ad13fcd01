"""Cards and the customers they are issued to."""

from enum import Enum
from uuid import uuid4

from sqlalchemy import BigInteger, CheckConstraint, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID

from cardledger_api.db.base import Base


class CardStatusEnum(str, Enum):
    UNASSIGNED = "unassigned"
    ACTIVE = "active"
    BLOCKED = "blocked"


class Customer(Base):
    """Card holder with lifetime spend used for tier qualification."""

    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    tier = Column(String, nullable=False, default="SILVER", server_default="SILVER")
    total_spend_cents = Column(BigInteger, nullable=False, default=0, server_default="0")
    version = Column(Integer, nullable=False, default=1, server_default="1")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("total_spend_cents >= 0", name="ck_customers_total_spend_non_negative"),
    )

    @property
    def display_name(self) -> str | None:
        parts = [part for part in (self.first_name, self.last_name) if part]
        return " ".join(parts) if parts else None


class Card(Base):
    """Physical QR card holding a cashback balance in minor units."""

    __tablename__ = "cards"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    card_uid = Column(String, nullable=False, unique=True, index=True)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)
    status = Column(
        SqlEnum(CardStatusEnum, name="card_status_enum"),
        nullable=False,
        default=CardStatusEnum.UNASSIGNED,
        server_default=CardStatusEnum.UNASSIGNED.name,
    )
    balance_cents = Column(BigInteger, nullable=False, default=0, server_default="0")
    version = Column(Integer, nullable=False, default=1, server_default="1")
    activated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_cards_balance_non_negative"),
    )
