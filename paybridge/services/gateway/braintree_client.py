"""Braintree SDK adapter implementing `GatewayClient`.

Translates SDK results into gateway-agnostic models and wraps every SDK
failure into `GatewayError`. Nothing here retries: retry policy belongs to
the caller.
"""

import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

import braintree
from braintree.exceptions import NotFoundError as BraintreeNotFoundError

from paybridge.common.config import GatewaySettings
from paybridge.common.errors import GatewayError
from paybridge.common.logging import logger
from paybridge.common.metrics import gateway_calls_total, gateway_latency_seconds
from paybridge.common.tracing import get_tracer
from paybridge.services.gateway.models import (
    GatewayPaymentMethod,
    GatewayPaymentMethodResult,
    GatewayTransactionResult,
    PaymentMethodType,
)


tracer = get_tracer(__name__)

ENVIRONMENTS = {
    "sandbox": braintree.Environment.Sandbox,
    "production": braintree.Environment.Production,
    "development": braintree.Environment.Development,
}

# Statuses from which the gateway accepts a refund rather than a void.
REFUNDABLE_STATUSES = {"settled", "settling"}


def build_gateway(config: GatewaySettings) -> braintree.BraintreeGateway:
    """Create an SDK gateway from settings; timeouts are configured in milliseconds.

    The SDK hands `timeout` to `requests`, which takes a (connect, read) pair.
    """

    environment = ENVIRONMENTS.get(config.bt_environment.lower())
    if environment is None:
        raise ValueError(f"unknown gateway environment: {config.bt_environment}")
    return braintree.BraintreeGateway(
        braintree.Configuration(
            environment,
            merchant_id=config.bt_merchant_id,
            public_key=config.bt_public_key,
            private_key=config.bt_private_key,
            timeout=(config.connection_timeout_seconds, config.read_timeout_seconds),
        )
    )


def _transaction_of(result) -> Any:
    transaction = getattr(result, "transaction", None)
    if transaction is None:
        transaction = getattr(result, "target", None)
    return transaction


def to_transaction_result(result) -> GatewayTransactionResult:
    """Flatten an SDK transaction result, extracting the decline reason on failure."""

    transaction = _transaction_of(result)
    if transaction is None:
        # Validation errors come back without a transaction: nothing was created.
        raise GatewayError(getattr(result, "message", None) or "gateway returned no transaction")

    status = getattr(transaction, "status", None)
    error_message = None
    error_code = None
    if not result.is_success:
        if status == "processor_declined":
            error_message = getattr(transaction, "processor_response_text", None)
            error_code = getattr(transaction, "processor_response_code", None)
        elif status == "settlement_declined":
            error_message = getattr(transaction, "processor_settlement_response_text", None)
            error_code = getattr(transaction, "processor_settlement_response_code", None)
        elif status == "gateway_rejected":
            error_message = getattr(transaction, "network_response_text", None)
            if error_message is None:
                reason = getattr(transaction, "gateway_rejection_reason", None)
                error_message = None if reason is None else str(reason)
            error_code = getattr(transaction, "network_response_code", None)
        else:
            error_message = getattr(result, "message", None)

    amount = getattr(transaction, "amount", None)
    return GatewayTransactionResult(
        gateway_id=getattr(transaction, "id", None),
        status=None if status is None else str(status),
        success=bool(result.is_success),
        amount=None if amount is None else Decimal(str(amount)),
        instrument_type=getattr(transaction, "payment_instrument_type", None),
        retrieval_reference_number=getattr(transaction, "retrieval_reference_number", None),
        error_message=error_message,
        error_code=None if error_code is None else str(error_code),
    )


def _isoformat(value) -> str | None:
    return None if value is None else value.isoformat()


def to_payment_method(payment_method) -> GatewayPaymentMethod:
    """Keep the non-PII instrument details worth mirroring locally."""

    details: dict[str, Any] = {
        "image_url": getattr(payment_method, "image_url", None),
        "created_at": _isoformat(getattr(payment_method, "created_at", None)),
        "updated_at": _isoformat(getattr(payment_method, "updated_at", None)),
    }
    if isinstance(payment_method, braintree.CreditCard):
        instrument_type = "credit_card"
        verification = getattr(payment_method, "verification", None)
        details.update(
            {
                "bin": getattr(payment_method, "bin", None),
                "last4": getattr(payment_method, "last_4", None),
                "card_type": getattr(payment_method, "card_type", None),
                "cardholder_name": getattr(payment_method, "cardholder_name", None),
                "expiration_month": getattr(payment_method, "expiration_month", None),
                "expiration_year": getattr(payment_method, "expiration_year", None),
                "is_expired": getattr(payment_method, "expired", None),
                "country_of_issuance": getattr(payment_method, "country_of_issuance", None),
                "issuing_bank": getattr(payment_method, "issuing_bank", None),
                "verification_status": None if verification is None else getattr(verification, "status", None),
            }
        )
    elif isinstance(payment_method, braintree.PayPalAccount):
        # Email is PII and deliberately not mirrored.
        instrument_type = "paypal_account"
        details.update(
            {
                "billing_agreement_id": getattr(payment_method, "billing_agreement_id", None),
                "payer_id": getattr(payment_method, "payer_id", None),
                "revoked_at": _isoformat(getattr(payment_method, "revoked_at", None)),
            }
        )
    elif isinstance(payment_method, braintree.UsBankAccount):
        instrument_type = "us_bank_account"
        details.update(
            {
                "routing_number": getattr(payment_method, "routing_number", None),
                "last4": getattr(payment_method, "last_4", None),
                "account_type": getattr(payment_method, "account_type", None),
                "account_holder_name": getattr(payment_method, "account_holder_name", None),
                "bank_name": getattr(payment_method, "bank_name", None),
                "is_verified": getattr(payment_method, "verified", None),
            }
        )
    else:
        instrument_type = type(payment_method).__name__.lower()

    return GatewayPaymentMethod(
        token=payment_method.token,
        customer_id=getattr(payment_method, "customer_id", None),
        is_default=bool(getattr(payment_method, "default", False)),
        instrument_type=instrument_type,
        details={key: value for key, value in details.items() if value is not None},
    )


def to_payment_method_result(result) -> GatewayPaymentMethodResult:
    payment_method = getattr(result, "payment_method", None)
    return GatewayPaymentMethodResult(
        success=bool(result.is_success),
        payment_method=None if payment_method is None else to_payment_method(payment_method),
        message=getattr(result, "message", None),
    )


class BraintreeGatewayClient:
    """`GatewayClient` backed by the Braintree Python SDK."""

    def __init__(self, gateway, service_name: str = "paybridge", statement_descriptor: str | None = None) -> None:
        self.gateway = gateway
        self.service_name = service_name
        self.statement_descriptor = statement_descriptor

    @classmethod
    def from_settings(cls, config: GatewaySettings) -> "BraintreeGatewayClient":
        return cls(
            build_gateway(config),
            service_name=config.service_name,
            statement_descriptor=config.charge_statement_descriptor,
        )

    @contextmanager
    def _call(self, operation: str, failure_message: str):
        """Time, trace and count one SDK call; wrap anything unexpected into `GatewayError`."""

        start = time.perf_counter()
        with tracer.start_as_current_span(f"gateway.{operation}"):
            try:
                yield
            except GatewayError:
                gateway_calls_total.labels(service=self.service_name, operation=operation, outcome="error").inc()
                raise
            except Exception as exc:
                gateway_calls_total.labels(service=self.service_name, operation=operation, outcome="error").inc()
                logger.warning("gateway call failed operation=%s error=%s", operation, exc)
                raise GatewayError(f"{failure_message}: {exc}", operation=operation) from exc
            else:
                gateway_calls_total.labels(service=self.service_name, operation=operation, outcome="ok").inc()
            finally:
                gateway_latency_seconds.labels(service=self.service_name, operation=operation).observe(
                    time.perf_counter() - start
                )

    def sale(
        self,
        order_id: str,
        amount: Decimal,
        customer_id: str | None,
        nonce: str,
        submit_for_settlement: bool,
    ) -> GatewayTransactionResult:
        with self._call("sale", "Could not complete sale transaction"):
            request: dict[str, Any] = {
                "amount": amount,
                "order_id": order_id,
                "payment_method_nonce": nonce,
                "options": {"submit_for_settlement": submit_for_settlement},
            }
            if customer_id is not None:
                request["customer_id"] = customer_id
            if self.statement_descriptor:
                request["descriptor"] = {"name": self.statement_descriptor}
            return to_transaction_result(self.gateway.transaction.sale(request))

    def submit_for_settlement(self, gateway_transaction_id: str, amount: Decimal | None) -> GatewayTransactionResult:
        with self._call("submit_for_settlement", f"Could not capture transaction {gateway_transaction_id}"):
            return to_transaction_result(self.gateway.transaction.submit_for_settlement(gateway_transaction_id, amount))

    def void(self, gateway_transaction_id: str) -> GatewayTransactionResult:
        with self._call("void", f"Could not void transaction {gateway_transaction_id}"):
            return to_transaction_result(self.gateway.transaction.void(gateway_transaction_id))

    def refund(self, gateway_transaction_id: str, amount: Decimal | None) -> GatewayTransactionResult:
        """Refund once settlement has begun; before that only a full-amount void is possible."""

        with self._call("refund", f"Could not refund transaction {gateway_transaction_id}"):
            current = self.gateway.transaction.find(gateway_transaction_id)
            if str(current.status) in REFUNDABLE_STATUSES:
                return to_transaction_result(self.gateway.transaction.refund(gateway_transaction_id, amount))
            if amount is None or Decimal(str(current.amount)) == Decimal(amount):
                logger.info(
                    "refund of unsettled transaction %s converted to void status=%s",
                    gateway_transaction_id,
                    current.status,
                )
                return to_transaction_result(self.gateway.transaction.void(gateway_transaction_id))
            raise GatewayError(
                "Cannot refund transaction that has not yet begun settlement, and partial voids are not supported",
                operation="refund",
                gateway_transaction_id=gateway_transaction_id,
            )

    def credit(self, amount: Decimal, customer_id: str | None, nonce: str) -> GatewayTransactionResult:
        with self._call("credit", "Could not credit transaction"):
            request: dict[str, Any] = {"amount": amount, "payment_method_nonce": nonce}
            if customer_id is not None:
                request["customer_id"] = customer_id
            return to_transaction_result(self.gateway.transaction.credit(request))

    def create_payment_method(
        self,
        customer_id: str | None,
        token: str,
        nonce: str | None,
        payment_method_type: PaymentMethodType,
    ) -> GatewayPaymentMethodResult:
        with self._call("create_payment_method", "Error creating payment method"):
            request: dict[str, Any] = {
                "token": token,
                "customer_id": customer_id,
                "payment_method_nonce": nonce,
            }
            if payment_method_type == PaymentMethodType.CARD:
                request["options"] = {"verify_card": True}
            elif payment_method_type == PaymentMethodType.ACH:
                request["options"] = {
                    "us_bank_account_verification_method": braintree.UsBankAccountVerification.VerificationMethod.NetworkCheck
                }
            result = self.gateway.payment_method.create(request)
            if payment_method_type == PaymentMethodType.ACH and result.is_success:
                account = result.payment_method
                if not account.verified:
                    verifications = getattr(account, "verifications", None) or []
                    response_code = verifications[0].processor_response_code if verifications else None
                    raise GatewayError(
                        "Could not verify US bank account for ACH payment method",
                        operation="create_payment_method",
                        processor_response_code=response_code,
                    )
            return to_payment_method_result(result)

    def update_payment_method(self, current_token: str, new_token: str) -> GatewayPaymentMethodResult:
        """Re-token an instrument already vaulted at the gateway; its customer is left as is."""

        with self._call(
            "update_payment_method",
            f"Could not synchronize payment method {new_token} with gateway payment method {current_token}",
        ):
            return to_payment_method_result(self.gateway.payment_method.update(current_token, {"token": new_token}))

    def list_payment_methods(self, customer_id: str) -> list[GatewayPaymentMethod]:
        with self._call("list_payment_methods", f"Could not fetch payment methods for customer {customer_id}"):
            customer = self.gateway.customer.find(customer_id)
            return [to_payment_method(payment_method) for payment_method in customer.payment_methods]

    def delete_payment_method(self, token: str) -> GatewayPaymentMethodResult:
        with self._call("delete_payment_method", "Could not delete payment method"):
            return to_payment_method_result(self.gateway.payment_method.delete(token))

    def create_nonce_from_token(self, token: str) -> str | None:
        with self._call("create_nonce", f"Could not create nonce from payment method token {token}"):
            try:
                result = self.gateway.payment_method_nonce.create(token)
            except BraintreeNotFoundError:
                return None
            return result.payment_method_nonce.nonce

    def get_transaction_status(self, gateway_transaction_id: str) -> str:
        with self._call("get_transaction_status", f"Could not obtain status for transaction {gateway_transaction_id}"):
            return str(self.gateway.transaction.find(gateway_transaction_id).status)
