"""Prometheus metric definitions."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


payment_requests_total = Counter(
    "payment_requests_total", "Total payment operations received", ["service", "transaction_type"]
)
gateway_calls_total = Counter(
    "gateway_calls_total", "Gateway calls by operation and outcome", ["service", "operation", "outcome"]
)
gateway_latency_seconds = Histogram(
    "gateway_latency_seconds", "Gateway call latency seconds", ["service", "operation"]
)
replayed_transactions_total = Counter(
    "replayed_transactions_total",
    "Initial operations answered from the ledger without a gateway call",
    ["service", "transaction_type", "reason"],
)
ledger_write_failures_total = Counter(
    "ledger_write_failures_total",
    "Ledger writes that failed after the gateway accepted the operation",
    ["service", "transaction_type"],
)
expired_transactions_total = Counter(
    "expired_transactions_total", "Pending transactions force-cancelled on read", ["service"]
)
reconciliation_refresh_total = Counter(
    "reconciliation_refresh_total", "Transactions refreshed from gateway status on read", ["service"]
)
payment_method_sync_total = Counter(
    "payment_method_sync_total", "Payment method sync actions", ["service", "action"]
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
