"""Expiration policy for payments stuck in PENDING."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from paybridge.common.config import GatewaySettings
from paybridge.common.status import PluginStatus
from paybridge.services.payments.expiration import ExpiredPaymentPolicy
from paybridge.services.payments.properties import TransactionMetadata
from paybridge.services.payments.schemas import TransactionView


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
EPSILON = timedelta(seconds=1)


def _view(transaction_type="AUTHORIZE", properties=None, transaction_id="txn-1", created=T0):
    properties = {"gateway_transaction_status": "settlement_pending"} if properties is None else properties
    return TransactionView(
        payment_id="pay-1",
        transaction_id=transaction_id,
        transaction_type=transaction_type,
        amount=Decimal("10"),
        currency="USD",
        status=TransactionMetadata.from_data(properties).plugin_status(),
        created_date=created,
        effective_date=created,
        properties=properties,
    )


def _policy(now, **settings):
    config = GatewaySettings(_env_file=None, **settings)
    return ExpiredPaymentPolicy(config, clock=lambda: now)


def test_boundary_uses_default_window():
    """Not expired just before T+W, expired just after."""

    view = _view()
    window = timedelta(days=3)

    assert _policy(T0 + window - EPSILON).find_expired([view]) is None
    assert _policy(T0 + window + EPSILON).find_expired([view]) == view


def test_instrument_override_wins_over_default():
    view = _view(
        properties={
            "gateway_transaction_status": "settlement_pending",
            "gateway_payment_instrument_type": "us_bank_account",
        }
    )
    settings = {"pending_payment_expiration_period": "us_bank_account#P10D"}

    assert _policy(T0 + timedelta(days=4), **settings).find_expired([view]) is None
    assert _policy(T0 + timedelta(days=10) + EPSILON, **settings).find_expired([view]) == view


def test_incomplete_redirect_uses_redirect_window():
    view = _view(properties={"fromRedirect": True})
    assert view.status == PluginStatus.PENDING

    assert _policy(T0 + timedelta(hours=1) - EPSILON).find_expired([view]) is None
    assert _policy(T0 + timedelta(hours=1) + EPSILON).find_expired([view]) == view


def test_completed_redirect_falls_back_to_default_window():
    view = _view(
        properties={
            "fromRedirect": True,
            "redirectCompleted": True,
            "gateway_transaction_status": "settlement_pending",
        }
    )

    assert _policy(T0 + timedelta(hours=2)).find_expired([view]) is None


def test_only_pending_transactions_expire():
    view = _view(properties={"gateway_transaction_status": "authorized"})

    assert _policy(T0 + timedelta(days=30)).find_expired([view]) is None


def test_follow_up_transactions_block_expiration():
    """Once a capture, void or refund exists the payment is progressing."""

    transactions = [
        _view(transaction_id="txn-1"),
        _view(transaction_type="CAPTURE", transaction_id="txn-2"),
    ]

    assert _policy(T0 + timedelta(days=30)).find_expired(transactions) is None


def test_only_latest_transaction_is_considered():
    transactions = [
        _view(transaction_id="txn-1", properties={"gateway_transaction_status": "processor_declined"}),
        _view(transaction_id="txn-2", created=T0 + timedelta(days=1)),
    ]
    policy = _policy(T0 + timedelta(days=3, hours=12))

    assert policy.find_expired(transactions) is None
    assert _policy(T0 + timedelta(days=4) + EPSILON).find_expired(transactions).transaction_id == "txn-2"


def test_empty_history_never_expires():
    assert _policy(T0).find_expired([]) is None
