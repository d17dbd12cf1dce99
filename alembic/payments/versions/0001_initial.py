"""initial payments schema

Revision ID: 0001_payments
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_payments"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transaction_responses",
        sa.Column("record_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("payment_id", sa.String(), nullable=False),
        sa.Column("transaction_id", sa.String(), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("amount", sa.Numeric(15, 9), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=True),
        sa.Column("gateway_id", sa.String(), nullable=True),
        sa.Column("additional_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("record_id"),
        sa.UniqueConstraint("tenant_id", "transaction_id", name="uq_transaction_responses_tenant_transaction"),
    )
    op.create_index("ix_transaction_responses_tenant_payment", "transaction_responses", ["tenant_id", "payment_id"])
    op.create_index("ix_transaction_responses_account_id", "transaction_responses", ["account_id"])
    op.create_index("ix_transaction_responses_gateway_id", "transaction_responses", ["gateway_id"])

    op.create_table(
        "payment_methods",
        sa.Column("record_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("payment_method_id", sa.String(), nullable=False),
        sa.Column("gateway_token", sa.String(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("additional_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("record_id"),
    )
    op.create_index("ix_payment_methods_account_id", "payment_methods", ["account_id"])
    op.create_index("ix_payment_methods_payment_method_id", "payment_methods", ["payment_method_id"])
    # Token uniqueness only among active rows: soft-deleted rows stay for audit.
    op.create_index(
        "uq_payment_methods_active_token",
        "payment_methods",
        ["tenant_id", "gateway_token"],
        unique=True,
        postgresql_where=sa.text("NOT is_deleted"),
    )

    op.create_table(
        "hpp_requests",
        sa.Column("record_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("payment_id", sa.String(), nullable=True),
        sa.Column("transaction_id", sa.String(), nullable=True),
        sa.Column("additional_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("record_id"),
    )
    op.create_index("ix_hpp_requests_account_id", "hpp_requests", ["account_id"])
    op.create_index("ix_hpp_requests_transaction_id", "hpp_requests", ["transaction_id"])

    op.create_table(
        "account_customer_mappings",
        sa.Column("tenant_id", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("customer_id", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("tenant_id", "account_id"),
    )


def downgrade() -> None:
    op.drop_table("account_customer_mappings")
    op.drop_index("ix_hpp_requests_transaction_id", table_name="hpp_requests")
    op.drop_index("ix_hpp_requests_account_id", table_name="hpp_requests")
    op.drop_table("hpp_requests")
    op.drop_index("uq_payment_methods_active_token", table_name="payment_methods")
    op.drop_index("ix_payment_methods_payment_method_id", table_name="payment_methods")
    op.drop_index("ix_payment_methods_account_id", table_name="payment_methods")
    op.drop_table("payment_methods")
    op.drop_index("ix_transaction_responses_gateway_id", table_name="transaction_responses")
    op.drop_index("ix_transaction_responses_account_id", table_name="transaction_responses")
    op.drop_index("ix_transaction_responses_tenant_payment", table_name="transaction_responses")
    op.drop_table("transaction_responses")
