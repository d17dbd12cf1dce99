"""Read-path reconciliation: forced expiry and gateway status refresh."""

from decimal import Decimal

from paybridge.common.config import GatewaySettings
from paybridge.common.status import PluginStatus
from paybridge.services.gateway.models import GatewayTransactionResult
from paybridge.services.payments.schemas import CallContext
from paybridge.services.payments.service import PaymentService


def _pending_authorization(ledger, clock, gateway_id="gw-1", **properties):
    result = GatewayTransactionResult(gateway_id=gateway_id, status="settlement_pending", success=True)
    row = ledger.add_response(
        "tenant-1", "acct-1", "pay-1", "txn-1", "AUTHORIZE", Decimal("10"), "USD", result, created_at=clock()
    )
    if properties:
        ledger.update_response("txn-1", properties, "tenant-1")
    return row


def test_expired_pending_authorization_is_cancelled(ledger, gateway, clock, context):
    """Sole PENDING authorization, one hour window, read at T+2h: CANCELED on re-read."""

    config = GatewaySettings(_env_file=None, pending_payment_expiration_period="PT1H")
    service = PaymentService(ledger, gateway, config, clock=clock)
    _pending_authorization(ledger, clock)
    clock.advance(hours=2)

    transactions = service.get_payment_info("acct-1", "pay-1", {}, context)

    assert len(transactions) == 1
    assert transactions[0].status == PluginStatus.CANCELED
    assert transactions[0].properties["message"] == "Payment Expired - Cancelled by Janitor"
    assert gateway.calls == []
    stored = ledger.get_response("txn-1", "tenant-1").additional_data
    assert stored["overriddenTransactionStatus"] == "CANCELED"
    assert stored["gateway_transaction_status"] == "settlement_pending"


def test_pending_within_window_is_refreshed(service, ledger, gateway, clock, context):
    _pending_authorization(ledger, clock)
    gateway.statuses["gw-1"] = "settled"
    clock.advance(hours=2)

    transactions = service.get_payment_info("acct-1", "pay-1", {}, context)

    assert gateway.calls == [("get_transaction_status", "gw-1")]
    assert transactions[0].status == PluginStatus.PROCESSED
    assert transactions[0].properties["gateway_transaction_status"] == "settled"


def test_terminal_transactions_are_not_refreshed(service, gateway, context, card):
    service.purchase_payment("acct-1", "pay-1", "txn-1", "pm-1", Decimal("10"), "USD", {}, context)
    service.void_payment("acct-1", "pay-1", "txn-2", {}, context)
    gateway.statuses["gw-1"] = "voided"
    gateway.calls.clear()

    first = service.get_payment_info("acct-1", "pay-1", {}, context)
    # The purchase row still says submitted_for_settlement, so it is refreshed once.
    assert gateway.calls == [("get_transaction_status", "gw-1")]
    assert [t.properties["gateway_transaction_status"] for t in first] == ["voided", "voided"]

    gateway.calls.clear()
    service.get_payment_info("acct-1", "pay-1", {}, context)
    assert gateway.calls == []


def test_non_terminal_processed_transaction_is_refreshed(service, gateway, context, card):
    service.authorize_payment("acct-1", "pay-1", "txn-1", "pm-1", Decimal("10"), "USD", {}, context)
    gateway.statuses["gw-1"] = "authorization_expired"
    gateway.calls.clear()

    transactions = service.get_payment_info("acct-1", "pay-1", {}, context)

    assert gateway.calls == [("get_transaction_status", "gw-1")]
    assert transactions[0].status == PluginStatus.ERROR


def test_incomplete_redirect_is_not_refreshed_but_expires(service, gateway, clock, context):
    service.register_redirect_payment("acct-1", "pay-1", "txn-1", "PURCHASE", Decimal("10"), "USD", {}, context)

    clock.advance(minutes=30)
    waiting = service.get_payment_info("acct-1", "pay-1", {}, context)
    assert waiting[0].status == PluginStatus.PENDING
    assert gateway.calls == []

    clock.advance(minutes=31)
    expired = service.get_payment_info("acct-1", "pay-1", {}, context)
    assert expired[0].status == PluginStatus.CANCELED


def test_unknown_payment_has_no_transactions(service, gateway, context):
    assert service.get_payment_info("acct-1", "pay-unknown", {}, context) == []
    assert gateway.calls == []


def test_follow_up_rows_prevent_expiry(ledger, gateway, clock, context):
    config = GatewaySettings(_env_file=None, pending_payment_expiration_period="PT1H")
    service = PaymentService(ledger, gateway, config, clock=clock)
    _pending_authorization(ledger, clock)
    gateway.statuses["gw-1"] = "settlement_pending"
    ledger.add_response(
        "tenant-1",
        "acct-1",
        "pay-1",
        "txn-2",
        "VOID",
        None,
        None,
        GatewayTransactionResult(gateway_id="gw-1", status="voided", success=True),
        created_at=clock(),
    )
    clock.advance(days=1)

    transactions = service.get_payment_info("acct-1", "pay-1", {}, context)

    assert transactions[0].status == PluginStatus.PENDING
    assert ("get_transaction_status", "gw-1") in gateway.calls


def test_config_is_resolved_per_tenant(ledger, gateway, clock):
    """Each tenant can run its own expiration window."""

    configs = {
        "tenant-1": GatewaySettings(_env_file=None, pending_payment_expiration_period="PT1H"),
        "tenant-2": GatewaySettings(_env_file=None, pending_payment_expiration_period="P1D"),
    }
    service = PaymentService(ledger, gateway, configs.__getitem__, clock=clock)
    for tenant_id in configs:
        ledger.add_response(
            tenant_id,
            "acct-1",
            "pay-1",
            "txn-1",
            "AUTHORIZE",
            Decimal("10"),
            "USD",
            GatewayTransactionResult(gateway_id=f"gw-{tenant_id}", status="settlement_pending", success=True),
            created_at=clock(),
        )
        gateway.statuses[f"gw-{tenant_id}"] = "settlement_pending"
    clock.advance(hours=2)

    assert service.get_payment_info("acct-1", "pay-1", {}, CallContext(tenant_id="tenant-1"))[0].status == PluginStatus.CANCELED
    assert service.get_payment_info("acct-1", "pay-1", {}, CallContext(tenant_id="tenant-2"))[0].status == PluginStatus.PENDING
