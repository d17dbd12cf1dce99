"""Response ledger database models.

`record_id` is the monotonic insertion sequence: "latest row" always means the
highest `record_id`, never the newest timestamp.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.common.db import Base, JSONData


class TransactionResponse(Base):
    """One submitted (or redirect-registered) transaction attempt."""

    __tablename__ = "transaction_responses"
    __table_args__ = (
        UniqueConstraint("tenant_id", "transaction_id", name="uq_transaction_responses_tenant_transaction"),
        Index("ix_transaction_responses_tenant_payment", "tenant_id", "payment_id"),
    )

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String)
    account_id: Mapped[str] = mapped_column(String, index=True)
    payment_id: Mapped[str] = mapped_column(String)
    transaction_id: Mapped[str] = mapped_column(String)
    transaction_type: Mapped[str] = mapped_column(String(32))
    amount: Mapped[Decimal | None] = mapped_column(Numeric(15, 9), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    gateway_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    additional_data: Mapped[dict] = mapped_column(JSONData, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class PaymentMethod(Base):
    """Local mirror of one gateway-registered instrument; soft-deleted only."""

    __tablename__ = "payment_methods"
    __table_args__ = (
        Index(
            "uq_payment_methods_active_token",
            "tenant_id",
            "gateway_token",
            unique=True,
            postgresql_where=text("NOT is_deleted"),
            sqlite_where=text("NOT is_deleted"),
        ),
    )

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String)
    account_id: Mapped[str] = mapped_column(String, index=True)
    payment_method_id: Mapped[str] = mapped_column(String, index=True)
    gateway_token: Mapped[str] = mapped_column(String)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    additional_data: Mapped[dict] = mapped_column(JSONData, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class HppRequest(Base):
    """Append-only log of redirect-flow (hosted payment page) attempts."""

    __tablename__ = "hpp_requests"

    record_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String)
    account_id: Mapped[str] = mapped_column(String, index=True)
    payment_id: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    additional_data: Mapped[dict] = mapped_column(JSONData, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class CustomerMapping(Base):
    """Account → gateway customer id; written once per account."""

    __tablename__ = "account_customer_mappings"

    tenant_id: Mapped[str] = mapped_column(String, primary_key=True)
    account_id: Mapped[str] = mapped_column(String, primary_key=True)
    customer_id: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
