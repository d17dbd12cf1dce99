"""Gateway-agnostic result shapes returned by every `GatewayClient`."""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PaymentMethodType(str, Enum):
    CARD = "CARD"
    ACH = "ACH"
    PAYPAL = "PAYPAL"


class GatewayTransactionResult(BaseModel):
    """Outcome of one money-moving gateway call."""

    gateway_id: str | None = None
    status: str | None = None
    success: bool
    amount: Decimal | None = None
    instrument_type: str | None = None
    retrieval_reference_number: str | None = None
    error_message: str | None = None
    error_code: str | None = None


class GatewayPaymentMethod(BaseModel):
    """One stored instrument as the gateway reports it."""

    token: str
    customer_id: str | None = None
    is_default: bool = False
    instrument_type: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class GatewayPaymentMethodResult(BaseModel):
    success: bool
    payment_method: GatewayPaymentMethod | None = None
    message: str | None = None
