"""Structured JSON logging with tenant/payment context fields."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from paybridge.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
tenant_id_ctx: ContextVar[str] = ContextVar("tenant_id", default="")
payment_id_ctx: ContextVar[str] = ContextVar("payment_id", default="")
transaction_id_ctx: ContextVar[str] = ContextVar("transaction_id", default="")


class ContextFilter(logging.Filter):
    """Inject service and correlation identifiers into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.tenant_id = tenant_id_ctx.get()
        record.payment_id = payment_id_ctx.get()
        record.transaction_id = transaction_id_ctx.get()
        return True


def configure_logging() -> None:
    """Configure root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(tenant_id)s "
        "%(payment_id)s %(transaction_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)


def bind_payment_context(tenant_id: str, payment_id: str | None = None, transaction_id: str | None = None) -> None:
    """Set correlation ids for the remainder of the current request."""

    tenant_id_ctx.set(tenant_id)
    payment_id_ctx.set(payment_id or "")
    transaction_id_ctx.set(transaction_id or "")


logger = logging.getLogger("paybridge")
