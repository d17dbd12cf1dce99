"""Contract the payment core uses to talk to the gateway.

Every method may raise `paybridge.common.errors.GatewayError`.
"""

from decimal import Decimal
from typing import Protocol

from paybridge.services.gateway.models import (
    GatewayPaymentMethod,
    GatewayPaymentMethodResult,
    GatewayTransactionResult,
    PaymentMethodType,
)


class GatewayClient(Protocol):
    def sale(
        self,
        order_id: str,
        amount: Decimal,
        customer_id: str | None,
        nonce: str,
        submit_for_settlement: bool,
    ) -> GatewayTransactionResult: ...

    def submit_for_settlement(self, gateway_transaction_id: str, amount: Decimal | None) -> GatewayTransactionResult: ...

    def void(self, gateway_transaction_id: str) -> GatewayTransactionResult: ...

    def refund(self, gateway_transaction_id: str, amount: Decimal | None) -> GatewayTransactionResult: ...

    def credit(self, amount: Decimal, customer_id: str | None, nonce: str) -> GatewayTransactionResult: ...

    def create_payment_method(
        self,
        customer_id: str | None,
        token: str,
        nonce: str | None,
        payment_method_type: PaymentMethodType,
    ) -> GatewayPaymentMethodResult: ...

    def update_payment_method(self, current_token: str, new_token: str) -> GatewayPaymentMethodResult: ...

    def list_payment_methods(self, customer_id: str) -> list[GatewayPaymentMethod]: ...

    def delete_payment_method(self, token: str) -> GatewayPaymentMethodResult: ...

    def create_nonce_from_token(self, token: str) -> str | None: ...

    def get_transaction_status(self, gateway_transaction_id: str) -> str: ...
