"""Account-side collaborators: customer id mapping and payment-method registration."""

from typing import Any, Mapping, Protocol
from uuid import uuid4

from paybridge.common.logging import logger
from paybridge.services.gateway.models import GatewayPaymentMethod
from paybridge.services.ledger.service import ResponseLedger
from paybridge.services.payments.properties import PROPERTY_CUSTOMER_ID, PROPERTY_INSTRUMENT_TYPE


class AccountDirectory(Protocol):
    def get_customer_id(self, account_id: str, tenant_id: str) -> str | None: ...

    def set_customer_id(self, account_id: str, customer_id: str, tenant_id: str) -> None: ...

    def register_payment_method(
        self,
        account_id: str,
        payment_method: GatewayPaymentMethod,
        properties: Mapping[str, Any],
        tenant_id: str,
    ) -> str: ...


def payment_method_metadata(payment_method: GatewayPaymentMethod) -> dict[str, Any]:
    """Metadata mirrored locally for a gateway instrument."""

    data: dict[str, Any] = dict(payment_method.details)
    if payment_method.customer_id is not None:
        data[PROPERTY_CUSTOMER_ID] = payment_method.customer_id
    if payment_method.instrument_type is not None:
        data[PROPERTY_INSTRUMENT_TYPE] = payment_method.instrument_type
    return data


class LedgerAccountDirectory:
    """Keeps account mappings and registered instruments in the ledger database."""

    def __init__(self, ledger: ResponseLedger) -> None:
        self.ledger = ledger

    def get_customer_id(self, account_id: str, tenant_id: str) -> str | None:
        return self.ledger.get_customer_id(account_id, tenant_id)

    def set_customer_id(self, account_id: str, customer_id: str, tenant_id: str) -> None:
        logger.info("mapping account %s to gateway customer %s", account_id, customer_id)
        self.ledger.add_customer_id(account_id, customer_id, tenant_id)

    def register_payment_method(
        self,
        account_id: str,
        payment_method: GatewayPaymentMethod,
        properties: Mapping[str, Any],
        tenant_id: str,
    ) -> str:
        payment_method_id = str(uuid4())
        self.ledger.add_payment_method(
            tenant_id=tenant_id,
            account_id=account_id,
            payment_method_id=payment_method_id,
            gateway_token=payment_method.token,
            is_default=payment_method.is_default,
            additional_data={**properties, **payment_method_metadata(payment_method)},
        )
        return payment_method_id
