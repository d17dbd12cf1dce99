"""Gateway transaction status → canonical plugin status."""

from enum import Enum


class PluginStatus(str, Enum):
    PROCESSED = "PROCESSED"
    PENDING = "PENDING"
    ERROR = "ERROR"
    UNDEFINED = "UNDEFINED"
    # Only ever set by an administrative override, never by the mapper.
    CANCELED = "CANCELED"


PROCESSED_STATUSES: frozenset[str] = frozenset(
    {
        "submitted_for_settlement",
        "authorizing",
        "authorized",
        "settling",
        "settled",
        "settlement_confirmed",
        "voided",
    }
)
PENDING_STATUSES: frozenset[str] = frozenset({"settlement_pending"})
ERROR_STATUSES: frozenset[str] = frozenset(
    {
        "failed",
        "processor_declined",
        "settlement_declined",
        "authorization_expired",
        "gateway_rejected",
    }
)
TERMINAL_STATUSES: frozenset[str] = frozenset({"settled", "voided"})


def map_gateway_status(gateway_status: str | None) -> PluginStatus:
    """Total mapping; anything unrecognized is UNDEFINED, never success."""

    if gateway_status is None:
        return PluginStatus.UNDEFINED
    normalized = str(gateway_status).strip().lower()
    if normalized in PROCESSED_STATUSES:
        return PluginStatus.PROCESSED
    if normalized in PENDING_STATUSES:
        return PluginStatus.PENDING
    if normalized in ERROR_STATUSES:
        return PluginStatus.ERROR
    return PluginStatus.UNDEFINED


def is_terminal(gateway_status: str | None) -> bool:
    """True once the gateway will no longer move the transaction (settled or voided)."""

    if gateway_status is None:
        return False
    return str(gateway_status).strip().lower() in TERMINAL_STATUSES
