"""Tenant-configured cashback rates, tier thresholds, and promotional offers."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import validates

from cardledger_api.db.base import Base


MAX_RATE_BPS = 10_000


class TransactionCategoryEnum(str, Enum):
    PURCHASE = "purchase"
    REPAIR = "repair"
    OTHER = "other"


def _validate_bps(field: str, value: int | None) -> int:
    if value is None:
        raise ValueError(f"{field} is required")
    bps = int(value)
    if bps < 0 or bps > MAX_RATE_BPS:
        raise ValueError(f"{field} must be between 0 and {MAX_RATE_BPS} basis points")
    return bps


class CashbackRule(Base):
    """Base cashback rate for a purchase category, optionally time-boxed."""

    __tablename__ = "cashback_rules"
    __table_args__ = (
        UniqueConstraint("tenant_id", "category", name="uq_cashback_rules_tenant_category"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    category = Column(SqlEnum(TransactionCategoryEnum, name="transaction_category_enum"), nullable=False)
    base_rate_bps = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    start_at = Column(DateTime(timezone=True), nullable=True)
    end_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @validates("base_rate_bps")
    def _check_base_rate(self, key: str, value: int) -> int:
        return _validate_bps(key, value)


class TierRule(Base):
    """Spend threshold and bonus rate for a tenant-defined loyalty tier."""

    __tablename__ = "tier_rules"
    __table_args__ = (
        UniqueConstraint("tenant_id", "tier", name="uq_tier_rules_tenant_tier"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    tier = Column(String, nullable=False)
    name = Column(String, nullable=False)
    min_total_spend_cents = Column(BigInteger, nullable=False, default=0, server_default="0")
    bonus_rate_bps = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @validates("bonus_rate_bps")
    def _check_bonus_rate(self, key: str, value: int) -> int:
        return _validate_bps(key, value)

    @validates("min_total_spend_cents")
    def _check_threshold(self, key: str, value: int) -> int:
        if value is None or int(value) < 0:
            raise ValueError("min_total_spend_cents must be non-negative")
        return int(value)

    @validates("tier")
    def _normalize_tier(self, key: str, value: str) -> str:
        return value.strip().upper()


class Offer(Base):
    """Promotional rate added on top of base and tier rates while active."""

    __tablename__ = "offers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    rate_multiplier_bps = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @validates("rate_multiplier_bps")
    def _check_rate(self, key: str, value: int) -> int:
        return _validate_bps(key, value)
