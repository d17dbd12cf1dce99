"""Error taxonomy surfaced by the payment core.

Every error carries a `kind` so callers can branch without isinstance checks,
plus the operation and ids needed to log and alert.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    GATEWAY = "GATEWAY"
    PERSISTENCE = "PERSISTENCE"
    VALIDATION = "VALIDATION"
    NOT_FOUND = "NOT_FOUND"


class PaymentPluginError(Exception):
    """Base class for every failure raised by the payment core."""

    kind: ErrorKind

    def __init__(self, message: str, operation: str | None = None, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.context = {key: value for key, value in context.items() if value is not None}

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "operation": self.operation,
            **{key: str(value) for key, value in self.context.items()},
        }

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = " ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"


class GatewayError(PaymentPluginError):
    """Network, auth or protocol failure talking to the gateway."""

    kind = ErrorKind.GATEWAY


class PersistenceError(PaymentPluginError):
    """Store unavailable or write failure.

    `funds_moved` is set when the failure happened after the gateway accepted
    the operation: money moved but the local bookkeeping is unknown.
    """

    kind = ErrorKind.PERSISTENCE

    def __init__(self, message: str, operation: str | None = None, funds_moved: bool = False, **context: Any) -> None:
        super().__init__(message, operation, **context)
        self.funds_moved = funds_moved

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "funds_moved": self.funds_moved}


class ValidationError(PaymentPluginError):
    """Request rejected before any gateway call."""

    kind = ErrorKind.VALIDATION


class NotFoundError(PaymentPluginError):
    """A referenced prior transaction or payment method does not exist."""

    kind = ErrorKind.NOT_FOUND
