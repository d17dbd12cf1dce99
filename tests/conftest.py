"""Shared fixtures: in-memory ledger, recording gateway double and a controllable clock."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from paybridge.common.config import GatewaySettings
from paybridge.common.db import Base
from paybridge.services.gateway.models import (
    GatewayPaymentMethod,
    GatewayPaymentMethodResult,
    GatewayTransactionResult,
)
from paybridge.services.ledger import models  # noqa: F401  registers tables
from paybridge.services.ledger.service import ResponseLedger
from paybridge.services.payments.schemas import CallContext
from paybridge.services.payments.service import PaymentService


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeGateway:
    """Records every call and answers like a healthy sandbox."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.statuses: dict[str, str] = {}
        self.amounts: dict[str, Decimal] = {}
        self.tokens: set[str] = set()
        self.customer_methods: dict[str, list[GatewayPaymentMethod]] = {}
        self.decline = False
        self._sequence = 0

    def call_names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def _transaction(self, status: str, amount: Decimal | None) -> GatewayTransactionResult:
        self._sequence += 1
        gateway_id = f"gw-{self._sequence}"
        self.statuses[gateway_id] = status
        if amount is not None:
            self.amounts[gateway_id] = amount
        return GatewayTransactionResult(
            gateway_id=gateway_id,
            status=status,
            success=status not in ("processor_declined", "gateway_rejected"),
            amount=amount,
            instrument_type="credit_card",
            retrieval_reference_number=f"rrn-{self._sequence}",
            error_message="Do Not Honor" if status == "processor_declined" else None,
            error_code="2000" if status == "processor_declined" else None,
        )

    def sale(self, order_id, amount, customer_id, nonce, submit_for_settlement):
        self.calls.append(("sale", order_id, amount, customer_id, nonce, submit_for_settlement))
        if self.decline:
            return self._transaction("processor_declined", amount)
        return self._transaction("submitted_for_settlement" if submit_for_settlement else "authorized", amount)

    def _existing(self, gateway_transaction_id: str, status: str) -> GatewayTransactionResult:
        # captures and voids act on the original gateway transaction
        self.statuses[gateway_transaction_id] = status
        return GatewayTransactionResult(
            gateway_id=gateway_transaction_id,
            status=status,
            success=True,
            amount=self.amounts.get(gateway_transaction_id),
            instrument_type="credit_card",
        )

    def submit_for_settlement(self, gateway_transaction_id, amount):
        self.calls.append(("submit_for_settlement", gateway_transaction_id, amount))
        return self._existing(gateway_transaction_id, "submitted_for_settlement")

    def void(self, gateway_transaction_id):
        self.calls.append(("void", gateway_transaction_id))
        return self._existing(gateway_transaction_id, "voided")

    def refund(self, gateway_transaction_id, amount):
        self.calls.append(("refund", gateway_transaction_id, amount))
        return self._transaction("submitted_for_settlement", amount)

    def credit(self, amount, customer_id, nonce):
        self.calls.append(("credit", amount, customer_id, nonce))
        return self._transaction("submitted_for_settlement", amount)

    def create_payment_method(self, customer_id, token, nonce, payment_method_type):
        self.calls.append(("create_payment_method", customer_id, token, nonce, payment_method_type))
        self.tokens.add(token)
        method = GatewayPaymentMethod(
            token=token,
            customer_id=customer_id,
            instrument_type="credit_card",
            details={"last4": "1111", "card_type": "Visa"},
        )
        self.customer_methods.setdefault(customer_id, []).append(method)
        return GatewayPaymentMethodResult(success=True, payment_method=method)

    def update_payment_method(self, current_token, new_token):
        self.calls.append(("update_payment_method", current_token, new_token))
        self.tokens.discard(current_token)
        self.tokens.add(new_token)
        # the instrument keeps whichever customer it was vaulted under
        method = GatewayPaymentMethod(token=new_token, customer_id="cust-1", instrument_type="paypal_account")
        return GatewayPaymentMethodResult(success=True, payment_method=method)

    def list_payment_methods(self, customer_id):
        self.calls.append(("list_payment_methods", customer_id))
        return list(self.customer_methods.get(customer_id, []))

    def delete_payment_method(self, token):
        self.calls.append(("delete_payment_method", token))
        self.tokens.discard(token)
        return GatewayPaymentMethodResult(success=True)

    def create_nonce_from_token(self, token):
        self.calls.append(("create_nonce_from_token", token))
        if token not in self.tokens:
            return None
        return f"nonce-{token}"

    def get_transaction_status(self, gateway_transaction_id):
        self.calls.append(("get_transaction_status", gateway_transaction_id))
        return self.statuses[gateway_transaction_id]


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def ledger(session_factory):
    return ResponseLedger(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return GatewaySettings(
        _env_file=None,
        pending_payment_expiration_period="P3D",
        pending_redirect_payment_without_completion_expiration_period="PT1H",
    )


@pytest.fixture
def context():
    return CallContext(tenant_id="tenant-1")


@pytest.fixture
def service(ledger, gateway, config, clock):
    return PaymentService(ledger, gateway, config, clock=clock)


@pytest.fixture
def card(service, context):
    """A card registered for account `acct-1` under gateway customer `cust-1`."""

    return service.add_payment_method(
        "acct-1",
        "pm-1",
        None,
        True,
        {"gateway_customer_id": "cust-1", "gateway_nonce": "fake-valid-nonce"},
        context,
    )
