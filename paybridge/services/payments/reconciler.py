"""Read-path reconciliation of stored transactions against the gateway.

Each read may force-cancel a payment stuck in PENDING past its expiration
window, or refresh non-final rows with the gateway's current status. Every
change goes through the ledger's merge path, and callers always receive the
reloaded rows afterwards.
"""

from datetime import datetime, timezone
from typing import Callable

from paybridge.common.config import GatewaySettings
from paybridge.common.logging import logger
from paybridge.common.metrics import expired_transactions_total, reconciliation_refresh_total
from paybridge.common.status import PluginStatus, is_terminal
from paybridge.common.tracing import get_tracer
from paybridge.services.gateway.client import GatewayClient
from paybridge.services.ledger.service import ResponseLedger
from paybridge.services.payments.expiration import ExpiredPaymentPolicy
from paybridge.services.payments.properties import (
    EXPIRED_PAYMENT_MESSAGE,
    PROPERTY_GATEWAY_STATUS,
    PROPERTY_MESSAGE,
    PROPERTY_OVERRIDDEN_STATUS,
)
from paybridge.services.payments.schemas import TransactionView, build_transaction_view


tracer = get_tracer(__name__)

# Statuses that may still move on the gateway side.
REFRESHABLE_STATUSES = {PluginStatus.PENDING, PluginStatus.UNDEFINED}


class StatusReconciler:
    def __init__(
        self,
        ledger: ResponseLedger,
        gateway: GatewayClient,
        clock: Callable[[], datetime] | None = None,
        service_name: str = "paybridge",
    ) -> None:
        self.ledger = ledger
        self.gateway = gateway
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.service_name = service_name

    def get_payment_info(self, payment_id: str, tenant_id: str, config: GatewaySettings) -> list[TransactionView]:
        """Return the payment's transactions, reconciled with expiration and gateway state."""

        with tracer.start_as_current_span("payments.get_payment_info") as span:
            span.set_attribute("payment.id", payment_id)
            transactions = self._load(payment_id, tenant_id)
            if not transactions:
                return []

            expired = ExpiredPaymentPolicy(config, self.clock).find_expired(transactions)
            if expired is not None:
                self._cancel_expired(expired, tenant_id)
                return self._load(payment_id, tenant_id)

            if self._refresh(transactions, tenant_id):
                return self._load(payment_id, tenant_id)
            return transactions

    def _load(self, payment_id: str, tenant_id: str) -> list[TransactionView]:
        return [build_transaction_view(row) for row in self.ledger.get_responses(payment_id, tenant_id)]

    def _cancel_expired(self, transaction: TransactionView, tenant_id: str) -> None:
        logger.warning(
            "cancelling expired pending transaction payment_id=%s transaction_id=%s created=%s",
            transaction.payment_id,
            transaction.transaction_id,
            transaction.created_date.isoformat(),
        )
        row = self.ledger.get_response(transaction.transaction_id, tenant_id)
        if row is None:
            return
        self.ledger.update_response_row(
            row,
            {
                PROPERTY_OVERRIDDEN_STATUS: PluginStatus.CANCELED.value,
                PROPERTY_MESSAGE: EXPIRED_PAYMENT_MESSAGE,
            },
        )
        expired_transactions_total.labels(service=self.service_name).inc()

    @staticmethod
    def needs_refresh(transaction: TransactionView) -> bool:
        if transaction.status in REFRESHABLE_STATUSES:
            return True
        return transaction.status == PluginStatus.PROCESSED and not is_terminal(transaction.metadata.gateway_status)

    def _refresh(self, transactions: list[TransactionView], tenant_id: str) -> bool:
        refreshed = False
        for transaction in transactions:
            if not self.needs_refresh(transaction):
                continue
            if transaction.gateway_id is None:
                # Redirect flow still waiting for the customer: nothing to ask the gateway.
                continue
            status = self.gateway.get_transaction_status(transaction.gateway_id)
            logger.info(
                "refreshed gateway status transaction_id=%s gateway_id=%s status=%s",
                transaction.transaction_id,
                transaction.gateway_id,
                status,
            )
            self.ledger.update_response(transaction.transaction_id, {PROPERTY_GATEWAY_STATUS: status}, tenant_id)
            reconciliation_refresh_total.labels(service=self.service_name).inc()
            refreshed = True
        return refreshed
