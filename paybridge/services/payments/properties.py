"""Property keys and the typed view over a transaction's metadata map.

Rows store an open-ended JSON map. `TransactionMetadata` names the keys the
core branches on and keeps every other key in its extension map, so unknown
gateway fields survive a read/modify/write cycle.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from paybridge.common.status import PluginStatus, map_gateway_status
from paybridge.services.gateway.models import GatewayTransactionResult


PROPERTY_FALLBACK_VALUE = "NULL"

PROPERTY_AMOUNT = "amount"
PROPERTY_CURRENCY = "currency"
PROPERTY_DESCRIPTION = "description"
PROPERTY_PAYMENT_METHOD_TYPE = "payment_method_type"

PROPERTY_CUSTOMER_ID = "gateway_customer_id"
PROPERTY_NONCE = "gateway_nonce"
PROPERTY_INSTRUMENT_TYPE = "gateway_payment_instrument_type"
PROPERTY_GATEWAY_STATUS = "gateway_transaction_status"
PROPERTY_GATEWAY_SUCCESS = "gateway_transaction_success"
PROPERTY_GATEWAY_ERROR_MESSAGE = "gateway_error_message"
PROPERTY_GATEWAY_ERROR_CODE = "gateway_error_code"
PROPERTY_FIRST_REFERENCE_ID = "gateway_first_payment_reference_id"
PROPERTY_SECOND_REFERENCE_ID = "gateway_second_payment_reference_id"

PROPERTY_PAYMENT_ID = "payment_id"
PROPERTY_TRANSACTION_ID = "transaction_id"
PROPERTY_TRANSACTION_TYPE = "transaction_type"

PROPERTY_FROM_REDIRECT = "fromRedirect"
PROPERTY_REDIRECT_COMPLETED = "redirectCompleted"
PROPERTY_OVERRIDDEN_STATUS = "overriddenTransactionStatus"
PROPERTY_MESSAGE = "message"

EXPIRED_PAYMENT_MESSAGE = "Payment Expired - Cancelled by Janitor"

INITIAL_TRANSACTION_TYPES = ("AUTHORIZE", "PURCHASE", "CREDIT")
AUTHORIZATION_TRANSACTION_TYPES = ("AUTHORIZE", "PURCHASE")
TRANSACTION_TYPES = ("AUTHORIZE", "CAPTURE", "PURCHASE", "VOID", "REFUND", "CREDIT")


def _as_flag(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


class TransactionMetadata(BaseModel):
    """Named fields the core reads; everything else rides in `model_extra`."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    gateway_status: str | None = Field(default=None, alias=PROPERTY_GATEWAY_STATUS)
    gateway_success: bool | None = Field(default=None, alias=PROPERTY_GATEWAY_SUCCESS)
    instrument_type: str | None = Field(default=None, alias=PROPERTY_INSTRUMENT_TYPE)
    gateway_error_message: str | None = Field(default=None, alias=PROPERTY_GATEWAY_ERROR_MESSAGE)
    gateway_error_code: str | None = Field(default=None, alias=PROPERTY_GATEWAY_ERROR_CODE)
    first_reference_id: str | None = Field(default=None, alias=PROPERTY_FIRST_REFERENCE_ID)
    second_reference_id: str | None = Field(default=None, alias=PROPERTY_SECOND_REFERENCE_ID)
    from_redirect: bool = Field(default=False, alias=PROPERTY_FROM_REDIRECT)
    redirect_completed: bool = Field(default=False, alias=PROPERTY_REDIRECT_COMPLETED)
    overridden_status: PluginStatus | None = Field(default=None, alias=PROPERTY_OVERRIDDEN_STATUS)
    message: str | None = Field(default=None, alias=PROPERTY_MESSAGE)

    @field_validator("from_redirect", "redirect_completed", mode="before")
    @classmethod
    def _flag(cls, value: Any) -> bool:
        return _as_flag(value)

    @field_validator("gateway_status", "gateway_error_code", "first_reference_id", "second_reference_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @field_validator("overridden_status", mode="before")
    @classmethod
    def _status(cls, value: Any) -> PluginStatus | None:
        if value is None:
            return None
        try:
            return PluginStatus(str(value).upper())
        except ValueError:
            return None

    @classmethod
    def from_data(cls, data: Mapping[str, Any] | None) -> "TransactionMetadata":
        return cls.model_validate(dict(data or {}))

    @property
    def extensions(self) -> dict[str, Any]:
        return dict(self.model_extra or {})

    @property
    def is_incomplete_redirect(self) -> bool:
        return self.from_redirect and not self.redirect_completed

    def plugin_status(self) -> PluginStatus:
        """Canonical status: an administrative override wins, then the gateway status."""

        if self.overridden_status is not None:
            return self.overridden_status
        if self.gateway_status is not None:
            return map_gateway_status(self.gateway_status)
        if self.is_incomplete_redirect:
            return PluginStatus.PENDING
        return PluginStatus.UNDEFINED


def to_jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return str(value)


def normalize_properties(properties: Mapping[str, Any] | Iterable[tuple[str, Any]] | None) -> dict[str, Any]:
    """Caller properties as a JSON-safe dict; later duplicates win."""

    if properties is None:
        return {}
    items = properties.items() if isinstance(properties, Mapping) else properties
    return {str(key): to_jsonable(value) for key, value in items}


def persisted_properties(properties: Mapping[str, Any]) -> dict[str, Any]:
    """Properties worth storing: single-use nonces are dropped."""

    return {key: value for key, value in properties.items() if key != PROPERTY_NONCE}


def get_property(properties: Mapping[str, Any], key: str, default: str | None = PROPERTY_FALLBACK_VALUE) -> str | None:
    value = properties.get(key)
    if value is None:
        return default
    return str(value)


def metadata_from_result(result: GatewayTransactionResult) -> dict[str, Any]:
    """Metadata map persisted for a fresh gateway response."""

    data: dict[str, Any] = {
        PROPERTY_GATEWAY_STATUS: result.status,
        PROPERTY_GATEWAY_SUCCESS: result.success,
        PROPERTY_INSTRUMENT_TYPE: result.instrument_type,
        PROPERTY_FIRST_REFERENCE_ID: result.gateway_id,
        PROPERTY_SECOND_REFERENCE_ID: result.retrieval_reference_number,
    }
    if not result.success:
        data[PROPERTY_GATEWAY_ERROR_MESSAGE] = result.error_message
        data[PROPERTY_GATEWAY_ERROR_CODE] = result.error_code
    # Keep stored rows compact.
    return {key: value for key, value in data.items() if value is not None}
