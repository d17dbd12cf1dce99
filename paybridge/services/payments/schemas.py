"""Canonical views returned to callers, request payloads, and row→view builders."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from paybridge.common.status import PluginStatus
from paybridge.services.ledger.models import PaymentMethod, TransactionResponse
from paybridge.services.payments.properties import TransactionMetadata


# The billing platform limits the error code column to 32 characters.
ERROR_CODE_MAX_LENGTH = 32


class CallContext(BaseModel):
    """Per-request tenant scope resolved at the boundary."""

    tenant_id: str = Field(min_length=1)
    trace_id: str | None = None


class TransactionView(BaseModel):
    """Canonical view of one transaction as the billing platform sees it."""

    record_id: int | None = None
    payment_id: str
    transaction_id: str
    transaction_type: str
    amount: Decimal | None = None
    currency: str | None = None
    status: PluginStatus
    gateway_id: str | None = None
    gateway_error: str | None = None
    gateway_error_code: str | None = None
    first_payment_reference_id: str | None = None
    second_payment_reference_id: str | None = None
    created_date: datetime
    effective_date: datetime
    properties: dict[str, Any] = Field(default_factory=dict)

    @property
    def metadata(self) -> TransactionMetadata:
        return TransactionMetadata.from_data(self.properties)


class PaymentMethodView(BaseModel):
    payment_method_id: str
    external_payment_method_id: str | None = None
    is_default: bool = False
    properties: dict[str, Any] = Field(default_factory=dict)


class FormDescriptor(BaseModel):
    account_id: str
    form_url: str | None = None
    form_fields: dict[str, Any] = Field(default_factory=dict)


class TransactionRequest(BaseModel):
    account_id: str = Field(min_length=1)
    transaction_id: str = Field(min_length=1)
    payment_method_id: str | None = None
    amount: Decimal | None = Field(default=None, ge=0)
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    properties: dict[str, Any] = Field(default_factory=dict)


class PaymentMethodRequest(BaseModel):
    payment_method_id: str = Field(min_length=1)
    external_payment_method_id: str | None = None
    is_default: bool = False
    properties: dict[str, Any] = Field(default_factory=dict)


class FormRequest(BaseModel):
    custom_fields: dict[str, Any] = Field(default_factory=dict)
    properties: dict[str, Any] = Field(default_factory=dict)


def as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def truncate(value: str | None, max_length: int = ERROR_CODE_MAX_LENGTH) -> str | None:
    if value is None or len(value) <= max_length:
        return value
    return value[:max_length]


def gateway_transaction_id(row: TransactionResponse) -> str | None:
    """Gateway id of a row; redirect rows only learn it from their completion properties."""

    if row.gateway_id:
        return row.gateway_id
    return TransactionMetadata.from_data(row.additional_data).first_reference_id


def build_transaction_view(row: TransactionResponse) -> TransactionView:
    metadata = TransactionMetadata.from_data(row.additional_data)
    created = as_utc(row.created_at)
    return TransactionView(
        record_id=row.record_id,
        payment_id=row.payment_id,
        transaction_id=row.transaction_id,
        transaction_type=row.transaction_type,
        amount=row.amount,
        currency=row.currency,
        status=metadata.plugin_status(),
        gateway_id=gateway_transaction_id(row),
        gateway_error=metadata.gateway_error_message,
        gateway_error_code=truncate(metadata.gateway_error_code),
        first_payment_reference_id=metadata.first_reference_id,
        second_payment_reference_id=metadata.second_reference_id,
        created_date=created,
        effective_date=created,
        properties=dict(row.additional_data or {}),
    )


def build_payment_method_view(row: PaymentMethod) -> PaymentMethodView:
    return PaymentMethodView(
        payment_method_id=row.payment_method_id,
        external_payment_method_id=row.gateway_token,
        is_default=row.is_default,
        properties=dict(row.additional_data or {}),
    )
