"""Converge the local payment-method mirror with the gateway's customer instruments."""

from dataclasses import dataclass, field

from paybridge.common.logging import logger
from paybridge.common.metrics import payment_method_sync_total
from paybridge.services.gateway.models import GatewayPaymentMethod
from paybridge.services.ledger.service import ResponseLedger
from paybridge.services.payments.accounts import AccountDirectory, payment_method_metadata


@dataclass
class SyncSummary:
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


class PaymentMethodSynchronizer:
    """Gateway is the source of truth: the local active set ends up equal to it by token."""

    def __init__(self, ledger: ResponseLedger, accounts: AccountDirectory, service_name: str = "paybridge") -> None:
        self.ledger = ledger
        self.accounts = accounts
        self.service_name = service_name

    def sync(self, account_id: str, gateway_methods: list[GatewayPaymentMethod], tenant_id: str) -> SyncSummary:
        summary = SyncSummary()
        local_by_token = {row.gateway_token: row for row in self.ledger.get_payment_methods(account_id, tenant_id)}

        for method in gateway_methods:
            metadata = payment_method_metadata(method)
            existing = local_by_token.pop(method.token, None)
            if existing is None:
                payment_method_id = self.accounts.register_payment_method(account_id, method, {}, tenant_id)
                summary.created.append(payment_method_id)
                self._count("created")
                continue
            self.ledger.update_payment_method(
                existing.payment_method_id,
                metadata,
                existing.gateway_token,
                tenant_id,
                is_default=method.is_default,
            )
            summary.updated.append(existing.payment_method_id)
            self._count("updated")

        # Whatever is left exists locally but no longer on the gateway.
        for row in local_by_token.values():
            self.ledger.mark_payment_method_deleted(row.payment_method_id, tenant_id)
            summary.deleted.append(row.payment_method_id)
            self._count("deleted")

        logger.info(
            "payment methods synced account_id=%s created=%d updated=%d deleted=%d",
            account_id,
            len(summary.created),
            len(summary.updated),
            len(summary.deleted),
        )
        return summary

    def _count(self, action: str) -> None:
        payment_method_sync_total.labels(service=self.service_name, action=action).inc()
