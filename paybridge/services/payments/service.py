"""Payment orchestration over the gateway and the response ledger.

Initial operations (AUTHORIZE, PURCHASE, CREDIT) are idempotent per
transaction id: a second call merges properties into the stored row and
returns it without touching the gateway. Follow-ups (CAPTURE, VOID, REFUND)
resolve the payment's latest authorization and always hit the gateway.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Mapping

from paybridge.common.config import GatewaySettings
from paybridge.common.errors import GatewayError, NotFoundError, PersistenceError, ValidationError
from paybridge.common.logging import bind_payment_context, logger
from paybridge.common.metrics import (
    ledger_write_failures_total,
    payment_requests_total,
    replayed_transactions_total,
)
from paybridge.common.tracing import get_tracer
from paybridge.services.gateway.client import GatewayClient
from paybridge.services.gateway.models import GatewayTransactionResult, PaymentMethodType
from paybridge.services.ledger.models import TransactionResponse
from paybridge.services.ledger.service import ResponseLedger
from paybridge.services.payments.accounts import AccountDirectory, LedgerAccountDirectory, payment_method_metadata
from paybridge.services.payments.properties import (
    AUTHORIZATION_TRANSACTION_TYPES,
    PROPERTY_AMOUNT,
    PROPERTY_CURRENCY,
    PROPERTY_CUSTOMER_ID,
    PROPERTY_DESCRIPTION,
    PROPERTY_FALLBACK_VALUE,
    PROPERTY_FROM_REDIRECT,
    PROPERTY_NONCE,
    PROPERTY_PAYMENT_ID,
    PROPERTY_PAYMENT_METHOD_TYPE,
    PROPERTY_REDIRECT_COMPLETED,
    PROPERTY_TRANSACTION_ID,
    PROPERTY_TRANSACTION_TYPE,
    TransactionMetadata,
    get_property,
    normalize_properties,
    persisted_properties,
)
from paybridge.services.payments.reconciler import StatusReconciler
from paybridge.services.payments.schemas import (
    CallContext,
    FormDescriptor,
    PaymentMethodView,
    TransactionView,
    build_payment_method_view,
    build_transaction_view,
    gateway_transaction_id,
)
from paybridge.services.payments.sync import PaymentMethodSynchronizer


tracer = get_tracer(__name__)

ConfigResolver = Callable[[str], GatewaySettings]


class PaymentService:
    """Owns the transaction lifecycle and the payment-method surface for one gateway."""

    def __init__(
        self,
        ledger: ResponseLedger,
        gateway: GatewayClient,
        config: GatewaySettings | ConfigResolver,
        accounts: AccountDirectory | None = None,
        clock: Callable[[], datetime] | None = None,
        service_name: str = "paybridge",
    ) -> None:
        self.ledger = ledger
        self.gateway = gateway
        if isinstance(config, GatewaySettings):
            self.config_resolver: ConfigResolver = lambda _tenant_id: config
        else:
            self.config_resolver = config
        self.accounts = accounts or LedgerAccountDirectory(ledger)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.service_name = service_name
        self.reconciler = StatusReconciler(ledger, gateway, self.clock, service_name)
        self.synchronizer = PaymentMethodSynchronizer(ledger, self.accounts, service_name)

    # Initial transactions

    def authorize_payment(
        self,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        payment_method_id: str | None,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        return self._initial_transaction(
            "AUTHORIZE", account_id, payment_id, transaction_id, payment_method_id, amount, currency, properties, context
        )

    def purchase_payment(
        self,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        payment_method_id: str | None,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        return self._initial_transaction(
            "PURCHASE", account_id, payment_id, transaction_id, payment_method_id, amount, currency, properties, context
        )

    def credit_payment(
        self,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        payment_method_id: str | None,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        return self._initial_transaction(
            "CREDIT", account_id, payment_id, transaction_id, payment_method_id, amount, currency, properties, context
        )

    def _initial_transaction(
        self,
        transaction_type: str,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        payment_method_id: str | None,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        bind_payment_context(context.tenant_id, payment_id, transaction_id)
        payment_requests_total.labels(service=self.service_name, transaction_type=transaction_type).inc()
        props = normalize_properties(properties)

        with tracer.start_as_current_span(f"payments.{transaction_type.lower()}") as span:
            span.set_attribute("payment.id", payment_id)
            span.set_attribute("transaction.id", transaction_id)
            existing = self.ledger.get_response(transaction_id, context.tenant_id)
            if existing is not None:
                return self._replay(existing, transaction_type, props, context)
            return self._execute_initial(
                transaction_type,
                account_id,
                payment_id,
                transaction_id,
                payment_method_id,
                amount,
                currency,
                props,
                context,
            )

    def _replay(
        self,
        existing: TransactionResponse,
        transaction_type: str,
        props: dict[str, Any],
        context: CallContext,
    ) -> TransactionView:
        """Answer a repeated initial call from the ledger; the gateway is never called."""

        metadata = TransactionMetadata.from_data(existing.additional_data)
        reason = "duplicate"
        if metadata.is_incomplete_redirect:
            props = {**props, PROPERTY_REDIRECT_COMPLETED: True}
            reason = "redirect_completion"
        logger.info(
            "transaction already submitted, merging properties transaction_id=%s reason=%s",
            existing.transaction_id,
            reason,
        )
        replayed_transactions_total.labels(
            service=self.service_name, transaction_type=transaction_type, reason=reason
        ).inc()
        self.ledger.update_response(existing.transaction_id, props, context.tenant_id)
        current = self.ledger.get_response(existing.transaction_id, context.tenant_id)
        return build_transaction_view(current or existing)

    def _execute_initial(
        self,
        transaction_type: str,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        payment_method_id: str | None,
        amount: Decimal | None,
        currency: str | None,
        props: dict[str, Any],
        context: CallContext,
    ) -> TransactionView:
        operation = transaction_type.lower()
        if amount is None:
            raise ValidationError("amount is required", operation, transaction_id=transaction_id)

        self._map_customer_id(account_id, props, context, operation)
        payment_method = self.ledger.get_payment_method(payment_method_id, context.tenant_id) if payment_method_id else None
        if payment_method is None:
            raise NotFoundError(
                "payment method not found",
                operation,
                payment_method_id=payment_method_id,
                account_id=account_id,
            )

        config = self.config_resolver(context.tenant_id)
        self.build_form_descriptor(
            account_id,
            {
                **props,
                PROPERTY_AMOUNT: amount,
                PROPERTY_CURRENCY: currency,
                PROPERTY_TRANSACTION_TYPE: transaction_type,
                PROPERTY_DESCRIPTION: config.charge_description,
            },
            {PROPERTY_PAYMENT_ID: payment_id, PROPERTY_TRANSACTION_ID: transaction_id},
            context,
        )

        nonce = self.gateway.create_nonce_from_token(payment_method.gateway_token)
        if nonce is None:
            raise NotFoundError(
                "payment method token unknown to gateway",
                operation,
                payment_method_id=payment_method_id,
            )
        customer_id = self.accounts.get_customer_id(account_id, context.tenant_id)

        if transaction_type == "CREDIT":
            result = self.gateway.credit(amount, customer_id, nonce)
        else:
            result = self.gateway.sale(
                transaction_id,
                amount,
                customer_id,
                nonce,
                submit_for_settlement=transaction_type == "PURCHASE",
            )
        return self._record(
            transaction_type, account_id, payment_id, transaction_id, amount, currency, result, props, context
        )

    def _map_customer_id(self, account_id: str, props: Mapping[str, Any], context: CallContext, operation: str) -> None:
        """Store the gateway customer id on first sight; a different later value is rejected."""

        customer_id = get_property(props, PROPERTY_CUSTOMER_ID)
        if customer_id is None or customer_id == PROPERTY_FALLBACK_VALUE:
            return
        existing = self.accounts.get_customer_id(account_id, context.tenant_id)
        if existing is None:
            self.accounts.set_customer_id(account_id, customer_id, context.tenant_id)
        elif existing != customer_id:
            raise ValidationError(
                "account already mapped to a different gateway customer",
                operation,
                account_id=account_id,
                customer_id=customer_id,
                existing_customer_id=existing,
            )

    # Follow-up transactions

    def capture_payment(
        self,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        return self._follow_up(
            "CAPTURE",
            account_id,
            payment_id,
            transaction_id,
            amount,
            currency,
            properties,
            context,
            lambda gateway_id: self.gateway.submit_for_settlement(gateway_id, amount),
        )

    def void_payment(
        self,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        return self._follow_up(
            "VOID",
            account_id,
            payment_id,
            transaction_id,
            None,
            None,
            properties,
            context,
            self.gateway.void,
        )

    def refund_payment(
        self,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        return self._follow_up(
            "REFUND",
            account_id,
            payment_id,
            transaction_id,
            amount,
            currency,
            properties,
            context,
            lambda gateway_id: self.gateway.refund(gateway_id, amount),
        )

    def _follow_up(
        self,
        transaction_type: str,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
        executor: Callable[[str], GatewayTransactionResult],
    ) -> TransactionView:
        bind_payment_context(context.tenant_id, payment_id, transaction_id)
        payment_requests_total.labels(service=self.service_name, transaction_type=transaction_type).inc()
        operation = transaction_type.lower()

        with tracer.start_as_current_span(f"payments.{operation}") as span:
            span.set_attribute("payment.id", payment_id)
            span.set_attribute("transaction.id", transaction_id)
            previous = self.ledger.get_successful_authorization_response(payment_id, context.tenant_id)
            gateway_id = gateway_transaction_id(previous) if previous is not None else None
            if gateway_id is None:
                raise NotFoundError(
                    "no authorization found for payment",
                    operation,
                    payment_id=payment_id,
                    transaction_id=transaction_id,
                )
            result = executor(gateway_id)
            return self._record(
                transaction_type,
                account_id,
                payment_id,
                transaction_id,
                amount,
                currency,
                result,
                normalize_properties(properties),
                context,
            )

    def _record(
        self,
        transaction_type: str,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        amount: Decimal | None,
        currency: str | None,
        result: GatewayTransactionResult,
        props: dict[str, Any],
        context: CallContext,
    ) -> TransactionView:
        try:
            row = self.ledger.add_response(
                context.tenant_id,
                account_id,
                payment_id,
                transaction_id,
                transaction_type,
                amount,
                currency,
                result,
                properties=persisted_properties(props),
                created_at=self.clock(),
            )
        except PersistenceError as exc:
            ledger_write_failures_total.labels(service=self.service_name, transaction_type=transaction_type).inc()
            logger.error(
                "payment went through but recording it failed gateway_id=%s transaction_id=%s",
                result.gateway_id,
                transaction_id,
            )
            raise PersistenceError(
                "Payment went through, but we encountered a database error",
                transaction_type.lower(),
                funds_moved=True,
                payment_id=payment_id,
                transaction_id=transaction_id,
                gateway_id=result.gateway_id,
            ) from exc
        logger.info(
            "transaction recorded type=%s gateway_id=%s gateway_status=%s success=%s",
            transaction_type,
            result.gateway_id,
            result.status,
            result.success,
        )
        return build_transaction_view(row)

    # Redirect flows

    def register_redirect_payment(
        self,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal | None,
        currency: str | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> TransactionView:
        """Pre-create the row of a hosted-page flow; the completion call arrives as a regular initial call."""

        bind_payment_context(context.tenant_id, payment_id, transaction_id)
        transaction_type = transaction_type.upper()
        if transaction_type not in AUTHORIZATION_TRANSACTION_TYPES:
            raise ValidationError(
                "redirect flows only support AUTHORIZE and PURCHASE",
                "register_redirect_payment",
                transaction_type=transaction_type,
            )
        existing = self.ledger.get_response(transaction_id, context.tenant_id)
        if existing is not None:
            return build_transaction_view(existing)

        props = normalize_properties(properties)
        self.build_form_descriptor(
            account_id,
            {**props, PROPERTY_AMOUNT: amount, PROPERTY_CURRENCY: currency, PROPERTY_TRANSACTION_TYPE: transaction_type},
            {PROPERTY_PAYMENT_ID: payment_id, PROPERTY_TRANSACTION_ID: transaction_id},
            context,
        )
        row = self.ledger.add_redirect_response(
            context.tenant_id,
            account_id,
            payment_id,
            transaction_id,
            transaction_type,
            amount,
            currency,
            {**props, PROPERTY_FROM_REDIRECT: True},
            created_at=self.clock(),
        )
        logger.info("redirect payment registered type=%s", transaction_type)
        return build_transaction_view(row)

    def build_form_descriptor(
        self,
        account_id: str,
        custom_fields: Mapping[str, Any] | None,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> FormDescriptor:
        props = normalize_properties(properties)
        fields = normalize_properties(custom_fields)
        self.ledger.add_hpp_request(
            context.tenant_id,
            account_id,
            get_property(props, PROPERTY_PAYMENT_ID, None),
            get_property(props, PROPERTY_TRANSACTION_ID, None),
            fields,
            created_at=self.clock(),
        )
        return FormDescriptor(account_id=account_id, form_fields=fields)

    # Reads

    def get_payment_info(
        self,
        account_id: str,
        payment_id: str,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> list[TransactionView]:
        bind_payment_context(context.tenant_id, payment_id)
        return self.reconciler.get_payment_info(payment_id, context.tenant_id, self.config_resolver(context.tenant_id))

    # Payment methods

    def add_payment_method(
        self,
        account_id: str,
        payment_method_id: str,
        external_payment_method_id: str | None,
        is_default: bool,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> PaymentMethodView:
        """Register an instrument at the gateway under our payment method id, then mirror it locally."""

        bind_payment_context(context.tenant_id)
        props = normalize_properties(properties)
        self._map_customer_id(account_id, props, context, "add_payment_method")
        customer_id = self.accounts.get_customer_id(account_id, context.tenant_id)

        if external_payment_method_id and external_payment_method_id != payment_method_id:
            # Already stored at the gateway: re-token it with our id.
            result = self.gateway.update_payment_method(external_payment_method_id, payment_method_id)
        else:
            type_name = (get_property(props, PROPERTY_PAYMENT_METHOD_TYPE, None) or PaymentMethodType.CARD.value).upper()
            try:
                payment_method_type = PaymentMethodType(type_name)
            except ValueError as exc:
                raise ValidationError(
                    "unsupported payment method type",
                    "add_payment_method",
                    payment_method_type=type_name,
                ) from exc
            nonce = get_property(props, PROPERTY_NONCE, None)
            result = self.gateway.create_payment_method(customer_id, payment_method_id, nonce, payment_method_type)

        if not result.success or result.payment_method is None:
            raise GatewayError(
                result.message or "gateway rejected payment method",
                "add_payment_method",
                payment_method_id=payment_method_id,
            )

        stored = persisted_properties(props)
        row = self.ledger.add_payment_method(
            context.tenant_id,
            account_id,
            payment_method_id,
            result.payment_method.token,
            is_default,
            {**stored, **payment_method_metadata(result.payment_method)},
            created_at=self.clock(),
        )
        logger.info("payment method added payment_method_id=%s", payment_method_id)
        return build_payment_method_view(row)

    def delete_payment_method(
        self,
        account_id: str,
        payment_method_id: str,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> None:
        bind_payment_context(context.tenant_id)
        row = self.ledger.get_payment_method(payment_method_id, context.tenant_id)
        if row is None:
            raise NotFoundError(
                "payment method not found",
                "delete_payment_method",
                payment_method_id=payment_method_id,
                account_id=account_id,
            )
        result = self.gateway.delete_payment_method(row.gateway_token)
        if not result.success:
            raise GatewayError(
                result.message or "gateway refused to delete payment method",
                "delete_payment_method",
                payment_method_id=payment_method_id,
            )
        self.ledger.mark_payment_method_deleted(payment_method_id, context.tenant_id, updated_at=self.clock())
        logger.info("payment method deleted payment_method_id=%s", payment_method_id)

    def get_payment_method_detail(
        self,
        account_id: str,
        payment_method_id: str,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> PaymentMethodView:
        row = self.ledger.get_payment_method(payment_method_id, context.tenant_id)
        if row is None:
            return PaymentMethodView(payment_method_id=payment_method_id)
        return build_payment_method_view(row)

    def get_payment_methods(
        self,
        account_id: str,
        refresh_from_gateway: bool,
        properties: Mapping[str, Any] | None,
        context: CallContext,
    ) -> list[PaymentMethodView]:
        bind_payment_context(context.tenant_id)
        if refresh_from_gateway:
            customer_id = self.accounts.get_customer_id(account_id, context.tenant_id)
            if customer_id is None:
                logger.info("no gateway customer mapped, skipping refresh account_id=%s", account_id)
            else:
                gateway_methods = self.gateway.list_payment_methods(customer_id)
                self.synchronizer.sync(account_id, gateway_methods, context.tenant_id)
        return [build_payment_method_view(row) for row in self.ledger.get_payment_methods(account_id, context.tenant_id)]
