"""HTTP surface: routing, tenant header and error-kind status codes."""

import pytest
from fastapi.testclient import TestClient

from paybridge.services.payments.api import create_app


HEADERS = {"X-Tenant-Id": "tenant-1"}


@pytest.fixture
def http(service):
    return TestClient(create_app(service))


def _add_card(http):
    resp = http.post(
        "/accounts/acct-1/payment-methods",
        json={
            "payment_method_id": "pm-1",
            "is_default": True,
            "properties": {"gateway_customer_id": "cust-1", "gateway_nonce": "fake-valid-nonce"},
        },
        headers=HEADERS,
    )
    assert resp.status_code == 200
    return resp.json()


def test_authorize_then_capture(http, gateway):
    _add_card(http)

    resp = http.post(
        "/payments/pay-1/authorize",
        json={
            "account_id": "acct-1",
            "transaction_id": "txn-1",
            "payment_method_id": "pm-1",
            "amount": "10.00",
            "currency": "USD",
        },
        headers=HEADERS,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "PROCESSED"
    assert body["transaction_type"] == "AUTHORIZE"

    resp = http.post(
        "/payments/pay-1/capture",
        json={"account_id": "acct-1", "transaction_id": "txn-2", "amount": "10.00", "currency": "USD"},
        headers=HEADERS,
    )
    assert resp.status_code == 200
    assert gateway.call_names()[-1] == "submit_for_settlement"

    resp = http.get("/payments/pay-1/transactions", headers=HEADERS)
    assert resp.status_code == 200
    assert [t["transaction_type"] for t in resp.json()] == ["AUTHORIZE", "CAPTURE"]


def test_missing_tenant_header_is_rejected(http):
    resp = http.get("/payments/pay-1/transactions")

    assert resp.status_code == 400


def test_not_found_maps_to_404(http):
    resp = http.post(
        "/payments/pay-1/void",
        json={"account_id": "acct-1", "transaction_id": "txn-2"},
        headers=HEADERS,
    )

    assert resp.status_code == 404
    assert resp.json()["kind"] == "NOT_FOUND"


def test_validation_error_maps_to_400(http):
    resp = http.post(
        "/accounts/acct-1/payment-methods",
        json={"payment_method_id": "pm-1", "properties": {"payment_method_type": "BITCOIN"}},
        headers=HEADERS,
    )

    assert resp.status_code == 400
    assert resp.json()["kind"] == "VALIDATION"


def test_unknown_operation_is_404(http):
    resp = http.post(
        "/payments/pay-1/chargeback",
        json={"account_id": "acct-1", "transaction_id": "txn-2"},
        headers=HEADERS,
    )

    assert resp.status_code == 404


def test_payment_method_routes(http, gateway):
    _add_card(http)

    listed = http.get("/accounts/acct-1/payment-methods", headers=HEADERS)
    assert [pm["payment_method_id"] for pm in listed.json()] == ["pm-1"]

    detail = http.get("/accounts/acct-1/payment-methods/pm-1", headers=HEADERS)
    assert detail.json()["external_payment_method_id"] == "pm-1"

    deleted = http.delete("/accounts/acct-1/payment-methods/pm-1", headers=HEADERS)
    assert deleted.status_code == 204
    assert http.get("/accounts/acct-1/payment-methods", headers=HEADERS).json() == []


def test_hpp_form(http, ledger):
    resp = http.post(
        "/accounts/acct-1/hpp-form",
        json={"custom_fields": {"amount": "9.99"}, "properties": {"payment_id": "pay-9", "transaction_id": "txn-9"}},
        headers=HEADERS,
    )

    assert resp.status_code == 200
    assert resp.json()["form_fields"] == {"amount": "9.99"}
    assert ledger.get_hpp_request("txn-9", "tenant-1") is not None


def test_metrics_endpoint(http):
    resp = http.get("/metrics")

    assert resp.status_code == 200
    assert "payment_requests_total" in resp.text
