"""Expiration policy for transactions stuck in PENDING.

Only the latest transaction of a payment is evaluated, and only while the
payment has nothing but AUTHORIZE/PURCHASE rows: a capture, void or refund
means the payment is already progressing and must not be auto-expired.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

from paybridge.common.config import GatewaySettings
from paybridge.common.status import PluginStatus
from paybridge.services.payments.properties import AUTHORIZATION_TRANSACTION_TYPES
from paybridge.services.payments.schemas import TransactionView, as_utc


class ExpiredPaymentPolicy:
    def __init__(self, config: GatewaySettings, clock: Callable[[], datetime] | None = None) -> None:
        self.config = config
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def find_expired(self, transactions: list[TransactionView]) -> TransactionView | None:
        """Return the transaction to force-cancel, if any."""

        if not transactions or not self._only_auths_or_purchases(transactions):
            return None
        transaction = transactions[-1]
        if transaction.status != PluginStatus.PENDING:
            return None
        if as_utc(self.clock()) > self.expiration_date(transaction):
            return transaction
        return None

    def expiration_date(self, transaction: TransactionView) -> datetime:
        return as_utc(transaction.created_date) + self.allowed_window(transaction)

    def allowed_window(self, transaction: TransactionView) -> timedelta:
        """Redirect flows without completion first, then per-instrument overrides, then the default."""

        metadata = transaction.metadata
        if metadata.is_incomplete_redirect:
            return self.config.pending_redirect_expiration_period()
        return self.config.pending_expiration_period(metadata.instrument_type)

    @staticmethod
    def _only_auths_or_purchases(transactions: list[TransactionView]) -> bool:
        return all(t.transaction_type in AUTHORIZATION_TRANSACTION_TYPES for t in transactions)
