"""Tenant, store, and staff records that scope every ledger operation."""

from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, ForeignKey, String, func, true
from sqlalchemy.dialects.postgresql import UUID

from cardledger_api.db.base import Base


class StaffRoleEnum(str, Enum):
    TENANT_ADMIN = "tenant_admin"
    CASHIER = "cashier"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Store(Base):
    __tablename__ = "stores"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class StaffUser(Base):
    """Tenant staff member acting on cards (cashier or tenant admin)."""

    __tablename__ = "staff_users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    store_id = Column(UUID(as_uuid=True), ForeignKey("stores.id", ondelete="SET NULL"), nullable=True)
    email = Column(String, nullable=False, unique=True)
    display_name = Column(String, nullable=True)
    role = Column(
        SqlEnum(StaffRoleEnum, name="staff_role_enum"),
        nullable=False,
        default=StaffRoleEnum.CASHIER,
        server_default=StaffRoleEnum.CASHIER.name,
    )
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def is_tenant_admin(self) -> bool:
        return self.role == StaffRoleEnum.TENANT_ADMIN
