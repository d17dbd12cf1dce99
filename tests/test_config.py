"""Configuration parsing: expiration periods and descriptors."""

from datetime import timedelta

from paybridge.common.config import GatewaySettings, parse_period_overrides, truncate_descriptor


def test_default_expiration_periods():
    config = GatewaySettings(_env_file=None)

    assert config.pending_expiration_period() == timedelta(days=3)
    assert config.pending_redirect_expiration_period() == timedelta(hours=1)


def test_global_period_is_case_insensitive():
    config = GatewaySettings(_env_file=None, pending_payment_expiration_period="p2d")

    assert config.pending_expiration_period() == timedelta(days=2)
    assert config.pending_expiration_period("credit_card") == timedelta(days=2)


def test_per_instrument_overrides():
    """Overrides apply by instrument type; everything else falls back to the default."""

    config = GatewaySettings(
        _env_file=None,
        pending_payment_expiration_period="us_bank_account#P10D|paypal_account#PT2H",
    )

    assert config.pending_expiration_period("us_bank_account") == timedelta(days=10)
    assert config.pending_expiration_period("PayPal_Account") == timedelta(hours=2)
    assert config.pending_expiration_period("credit_card") == timedelta(days=3)


def test_invalid_period_falls_back_to_default():
    config = GatewaySettings(
        _env_file=None,
        pending_payment_expiration_period="not-a-period",
        pending_redirect_payment_without_completion_expiration_period="garbage",
    )

    assert config.pending_expiration_period() == timedelta(days=3)
    assert config.pending_redirect_expiration_period() == timedelta(hours=1)


def test_malformed_override_entries_are_dropped():
    assert parse_period_overrides("card#P1D|broken|ach#P5D") == {"card": "P1D", "ach": "P5D"}
    assert parse_period_overrides(None) == {}


def test_descriptor_truncation():
    assert truncate_descriptor("Short") == "Short"
    assert truncate_descriptor("A very long statement descriptor") == "A very long stateme..."
    assert len(truncate_descriptor("A very long statement descriptor")) == 22


def test_timeouts_in_seconds():
    config = GatewaySettings(_env_file=None, connection_timeout=1500, read_timeout=2000)

    assert config.connection_timeout_seconds == 1.5
    assert config.read_timeout_seconds == 2.0
