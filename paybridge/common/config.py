"""Central environment-driven settings for the gateway integration.

The process loads one `GatewaySettings` at startup. Per-tenant overrides are
plain `GatewaySettings` instances handed to the payment service through a
resolver, so nothing below the HTTP boundary reads process-wide state.
"""

from datetime import timedelta

from pydantic import PrivateAttr, TypeAdapter, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PENDING_PAYMENT_EXPIRATION_PERIOD = "P3D"
DEFAULT_PENDING_REDIRECT_EXPIRATION_PERIOD = "PT1H"
DEFAULT_CHARGE_DESCRIPTION = "Billing charge"

ENTRY_DELIMITER = "|"
KEY_VALUE_DELIMITER = "#"
DESCRIPTOR_MAX_LENGTH = 22

_duration = TypeAdapter(timedelta)


def parse_period(value: str) -> timedelta:
    """Parse an ISO-8601 duration such as `P3d` or `PT1h` (case-insensitive)."""

    return _duration.validate_python(value.strip().upper())


def parse_period_overrides(value: str | None) -> dict[str, str]:
    """Split `type#period|type#period` into a raw mapping; malformed entries are dropped."""

    overrides: dict[str, str] = {}
    if not value:
        return overrides
    for entry in value.split(ENTRY_DELIMITER):
        parts = entry.split(KEY_VALUE_DELIMITER)
        if len(parts) > 1:
            overrides[parts[0]] = parts[1]
    return overrides


def truncate_descriptor(value: str, max_length: int = DESCRIPTOR_MAX_LENGTH) -> str:
    if len(value) <= max_length:
        return value
    return value[: max_length - 3] + "..."


class GatewaySettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "paybridge"
    log_level: str = "INFO"
    database_dsn: str = "sqlite:///./paybridge.db"
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"

    bt_environment: str = "sandbox"
    bt_merchant_id: str = ""
    bt_public_key: str = ""
    bt_private_key: str = ""
    connection_timeout: int = 30000
    read_timeout: int = 60000

    pending_payment_expiration_period: str = DEFAULT_PENDING_PAYMENT_EXPIRATION_PERIOD
    pending_redirect_payment_without_completion_expiration_period: str = (
        DEFAULT_PENDING_REDIRECT_EXPIRATION_PERIOD
    )

    charge_description: str = DEFAULT_CHARGE_DESCRIPTION
    charge_statement_descriptor: str | None = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    _default_expiration: timedelta = PrivateAttr(default=timedelta(days=3))
    _redirect_expiration: timedelta = PrivateAttr(default=timedelta(hours=1))
    _expiration_overrides: dict[str, timedelta] = PrivateAttr(default_factory=dict)

    @field_validator("charge_description", "charge_statement_descriptor")
    @classmethod
    def _truncate(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return truncate_descriptor(value)

    def model_post_init(self, __context) -> None:
        raw = self.pending_payment_expiration_period
        overrides = parse_period_overrides(raw)
        self._default_expiration = parse_period(DEFAULT_PENDING_PAYMENT_EXPIRATION_PERIOD)
        if raw and not overrides:
            # No per-instrument override, just a global setting
            try:
                self._default_expiration = parse_period(raw)
            except ValidationError:
                pass
        for instrument_type, period in overrides.items():
            try:
                self._expiration_overrides[instrument_type.lower()] = parse_period(period)
            except ValidationError:
                continue

        self._redirect_expiration = parse_period(DEFAULT_PENDING_REDIRECT_EXPIRATION_PERIOD)
        try:
            self._redirect_expiration = parse_period(
                self.pending_redirect_payment_without_completion_expiration_period
            )
        except ValidationError:
            pass

    def pending_expiration_period(self, instrument_type: str | None = None) -> timedelta:
        """Window after which a PENDING payment is force-cancelled."""

        if instrument_type is not None:
            override = self._expiration_overrides.get(instrument_type.lower())
            if override is not None:
                return override
        return self._default_expiration

    def pending_redirect_expiration_period(self) -> timedelta:
        return self._redirect_expiration

    @property
    def connection_timeout_seconds(self) -> float:
        return self.connection_timeout / 1000.0

    @property
    def read_timeout_seconds(self) -> float:
        return self.read_timeout / 1000.0


settings = GatewaySettings()
