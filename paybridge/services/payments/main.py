"""Process entrypoint: wires settings, store, gateway and HTTP surface."""

from paybridge.common.config import settings
from paybridge.common.db import make_session_factory
from paybridge.common.logging import configure_logging
from paybridge.common.startup import log_startup_config
from paybridge.common.tracing import instrument_app, setup_tracing
from paybridge.services.gateway.braintree_client import BraintreeGatewayClient
from paybridge.services.ledger.service import ResponseLedger
from paybridge.services.payments.api import create_app
from paybridge.services.payments.service import PaymentService

configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_DSN",
        "BT_ENVIRONMENT",
        "BT_MERCHANT_ID",
        "BT_PUBLIC_KEY",
        "BT_PRIVATE_KEY",
        "PENDING_PAYMENT_EXPIRATION_PERIOD",
        "PENDING_REDIRECT_PAYMENT_WITHOUT_COMPLETION_EXPIRATION_PERIOD",
    ],
)

SessionLocal = make_session_factory(settings.database_dsn)
ledger = ResponseLedger(SessionLocal)
gateway = BraintreeGatewayClient.from_settings(settings)
# Single-tenant deployment: every tenant resolves to the process settings.
service = PaymentService(ledger, gateway, settings, service_name=settings.service_name)

app = create_app(service)
instrument_app(app)
