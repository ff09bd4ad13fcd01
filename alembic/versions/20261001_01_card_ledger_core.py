"""Card ledger core tables.

Revision ID: 20261001_01
Revises:
Create Date: 2026-10-01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "20261001_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid() -> sa.types.TypeEngine:
    return sa.dialects.postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    op.execute("CREATE TYPE staff_role_enum AS ENUM ('TENANT_ADMIN', 'CASHIER')")
    op.execute("CREATE TYPE card_status_enum AS ENUM ('UNASSIGNED', 'ACTIVE', 'BLOCKED')")
    op.execute("CREATE TYPE transaction_category_enum AS ENUM ('PURCHASE', 'REPAIR', 'OTHER')")
    op.execute("CREATE TYPE ledger_transaction_type_enum AS ENUM ('EARN', 'REDEEM', 'ADJUST')")
    op.execute("CREATE TYPE purchase_kind_enum AS ENUM ('REGULAR', 'STORE_CREDIT')")
    op.execute("CREATE TYPE payment_method_enum AS ENUM ('QR_PAYMENT', 'CASH', 'CARD')")
    op.execute("CREATE TYPE purchase_payment_status_enum AS ENUM ('PENDING', 'COMPLETED')")
    op.execute("CREATE TYPE webhook_provider_enum AS ENUM ('STRIPE')")

    op.create_table(
        "tenants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "stores",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("address", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_stores_tenant_id", "stores", ["tenant_id"])

    op.create_table(
        "staff_users",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("store_id", _uuid(), nullable=True),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("display_name", sa.String(), nullable=True),
        sa.Column(
            "role",
            sa.Enum(name="staff_role_enum", create_type=False),
            nullable=False,
            server_default="CASHIER",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_staff_users_tenant_id", "staff_users", ["tenant_id"])

    op.create_table(
        "customers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("tier", sa.String(), nullable=False, server_default="SILVER"),
        sa.Column("total_spend_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.CheckConstraint("total_spend_cents >= 0", name="ck_customers_total_spend_non_negative"),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"])

    op.create_table(
        "cards",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("card_uid", sa.String(), nullable=False),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("customer_id", _uuid(), nullable=True),
        sa.Column("store_id", _uuid(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(name="card_status_enum", create_type=False),
            nullable=False,
            server_default="UNASSIGNED",
        ),
        sa.Column("balance_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="SET NULL"),
        sa.CheckConstraint("balance_cents >= 0", name="ck_cards_balance_non_negative"),
    )
    op.create_index("ix_cards_card_uid", "cards", ["card_uid"], unique=True)
    op.create_index("ix_cards_tenant_id", "cards", ["tenant_id"])

    op.create_table(
        "cashback_rules",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("category", sa.Enum(name="transaction_category_enum", create_type=False), nullable=False),
        sa.Column("base_rate_bps", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "category", name="uq_cashback_rules_tenant_category"),
    )
    op.create_index("ix_cashback_rules_tenant_id", "cashback_rules", ["tenant_id"])

    op.create_table(
        "tier_rules",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("tier", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("min_total_spend_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("bonus_rate_bps", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("tenant_id", "tier", name="uq_tier_rules_tenant_tier"),
    )
    op.create_index("ix_tier_rules_tenant_id", "tier_rules", ["tenant_id"])

    op.create_table(
        "offers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("rate_multiplier_bps", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_offers_tenant_id", "offers", ["tenant_id"])

    op.create_table(
        "payment_links",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("token", sa.String(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_payment_links_token", "payment_links", ["token"], unique=True)
    op.create_index("ix_payment_links_tenant_id", "payment_links", ["tenant_id"])

    op.create_table(
        "purchase_transactions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("store_id", _uuid(), nullable=True),
        sa.Column("customer_id", _uuid(), nullable=True),
        sa.Column("cashier_id", _uuid(), nullable=True),
        sa.Column("card_uid", sa.String(), nullable=True),
        sa.Column(
            "kind",
            sa.Enum(name="purchase_kind_enum", create_type=False),
            nullable=False,
            server_default="REGULAR",
        ),
        sa.Column("payment_method", sa.Enum(name="payment_method_enum", create_type=False), nullable=False),
        sa.Column(
            "payment_status",
            sa.Enum(name="purchase_payment_status_enum", create_type=False),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("category", sa.Enum(name="transaction_category_enum", create_type=False), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("cashback_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("source_ip", sa.String(), nullable=True),
        sa.Column("payment_link_id", _uuid(), nullable=True, unique=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reconciliation_error", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["cashier_id"], ["staff_users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["payment_link_id"], ["payment_links.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_purchase_transactions_tenant_id", "purchase_transactions", ["tenant_id"])
    op.create_index("ix_purchase_transactions_payment_status", "purchase_transactions", ["payment_status"])

    op.create_table(
        "ledger_transactions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), nullable=False),
        sa.Column("store_id", _uuid(), nullable=True),
        sa.Column("card_id", _uuid(), nullable=False),
        sa.Column("customer_id", _uuid(), nullable=True),
        sa.Column("cashier_id", _uuid(), nullable=True),
        sa.Column("purchase_id", _uuid(), nullable=True, unique=True),
        sa.Column("type", sa.Enum(name="ledger_transaction_type_enum", create_type=False), nullable=False),
        sa.Column("category", sa.Enum(name="transaction_category_enum", create_type=False), nullable=True),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("cashback_cents", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("balance_before_cents", sa.BigInteger(), nullable=False),
        sa.Column("balance_after_cents", sa.BigInteger(), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("source_ip", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["card_id"], ["cards.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["cashier_id"], ["staff_users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["purchase_id"], ["purchase_transactions.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_ledger_transactions_tenant_id", "ledger_transactions", ["tenant_id"])
    op.create_index("ix_ledger_transactions_card_id", "ledger_transactions", ["card_id"])
    op.create_index("ix_ledger_transactions_customer_id", "ledger_transactions", ["customer_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("provider", sa.Enum(name="webhook_provider_enum", create_type=False), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=True),
        sa.Column("payment_link_id", sa.String(), nullable=True),
        sa.Column("outcome", sa.String(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("provider", "external_id", name="uq_webhook_events_provider_external"),
    )


def downgrade() -> None:
    op.drop_table("webhook_events")
    op.drop_index("ix_ledger_transactions_customer_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_card_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_tenant_id", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_index("ix_purchase_transactions_payment_status", table_name="purchase_transactions")
    op.drop_index("ix_purchase_transactions_tenant_id", table_name="purchase_transactions")
    op.drop_table("purchase_transactions")
    op.drop_index("ix_payment_links_tenant_id", table_name="payment_links")
    op.drop_index("ix_payment_links_token", table_name="payment_links")
    op.drop_table("payment_links")
    op.drop_index("ix_offers_tenant_id", table_name="offers")
    op.drop_table("offers")
    op.drop_index("ix_tier_rules_tenant_id", table_name="tier_rules")
    op.drop_table("tier_rules")
    op.drop_index("ix_cashback_rules_tenant_id", table_name="cashback_rules")
    op.drop_table("cashback_rules")
    op.drop_index("ix_cards_tenant_id", table_name="cards")
    op.drop_index("ix_cards_card_uid", table_name="cards")
    op.drop_table("cards")
    op.drop_index("ix_customers_tenant_id", table_name="customers")
    op.drop_table("customers")
    op.drop_index("ix_staff_users_tenant_id", table_name="staff_users")
    op.drop_table("staff_users")
    op.drop_index("ix_stores_tenant_id", table_name="stores")
    op.drop_table("stores")
    op.drop_table("tenants")

    op.execute("DROP TYPE IF EXISTS webhook_provider_enum")
    op.execute("DROP TYPE IF EXISTS purchase_payment_status_enum")
    op.execute("DROP TYPE IF EXISTS payment_method_enum")
    op.execute("DROP TYPE IF EXISTS purchase_kind_enum")
    op.execute("DROP TYPE IF EXISTS ledger_transaction_type_enum")
    op.execute("DROP TYPE IF EXISTS transaction_category_enum")
    op.execute("DROP TYPE IF EXISTS card_status_enum")
    op.execute("DROP TYPE IF EXISTS staff_role_enum")
