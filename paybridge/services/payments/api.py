"""HTTP routes over `PaymentService`.

Tenant scope arrives in the `X-Tenant-Id` header; error kinds map onto HTTP
status codes so callers can tell a decline-free retry from a dead request.
"""

from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse

from paybridge.common.errors import ErrorKind, PaymentPluginError
from paybridge.common.logging import logger, trace_id_ctx
from paybridge.common.metrics import metrics_response
from paybridge.services.payments.schemas import (
    CallContext,
    FormDescriptor,
    FormRequest,
    PaymentMethodRequest,
    PaymentMethodView,
    TransactionRequest,
    TransactionView,
)
from paybridge.services.payments.service import PaymentService


ERROR_STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.GATEWAY: 502,
    ErrorKind.PERSISTENCE: 500,
}

INITIAL_OPERATIONS = ("authorize", "purchase", "credit")
FOLLOW_UP_OPERATIONS = ("capture", "void", "refund")


def _context(tenant_id: str | None, trace_id: str | None) -> CallContext:
    if not tenant_id:
        raise HTTPException(status_code=400, detail="missing X-Tenant-Id header")
    trace_id = trace_id or str(uuid4())
    trace_id_ctx.set(trace_id)
    return CallContext(tenant_id=tenant_id, trace_id=trace_id)


def create_app(service: PaymentService, **app_kwargs) -> FastAPI:
    app = FastAPI(title="Paybridge Payments", **app_kwargs)

    @app.exception_handler(PaymentPluginError)
    async def payment_error_handler(_: Request, exc: PaymentPluginError):
        status_code = ERROR_STATUS_CODES.get(exc.kind, 500)
        if status_code >= 500:
            logger.error("payment operation failed error=%s", exc)
        else:
            logger.info("payment operation rejected error=%s", exc)
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.post("/payments/{payment_id}/{operation}", response_model=TransactionView)
    def execute_transaction(
        payment_id: str,
        operation: str,
        req: TransactionRequest,
        x_tenant_id: str | None = Header(default=None),
        x_trace_id: str | None = Header(default=None),
    ):
        """Run one transaction of the payment lifecycle."""

        context = _context(x_tenant_id, x_trace_id)
        if operation in INITIAL_OPERATIONS:
            handler = getattr(service, f"{operation}_payment")
            return handler(
                req.account_id,
                payment_id,
                req.transaction_id,
                req.payment_method_id,
                req.amount,
                req.currency,
                req.properties,
                context,
            )
        if operation == "void":
            return service.void_payment(req.account_id, payment_id, req.transaction_id, req.properties, context)
        if operation in FOLLOW_UP_OPERATIONS:
            handler = getattr(service, f"{operation}_payment")
            return handler(
                req.account_id,
                payment_id,
                req.transaction_id,
                req.amount,
                req.currency,
                req.properties,
                context,
            )
        raise HTTPException(status_code=404, detail=f"unknown operation {operation}")

    @app.get("/payments/{payment_id}/transactions", response_model=list[TransactionView])
    def get_payment_info(
        payment_id: str,
        account_id: str = "",
        x_tenant_id: str | None = Header(default=None),
        x_trace_id: str | None = Header(default=None),
    ):
        """Transaction history, reconciled against the gateway on read."""

        return service.get_payment_info(account_id, payment_id, {}, _context(x_tenant_id, x_trace_id))

    @app.post("/accounts/{account_id}/payment-methods", response_model=PaymentMethodView)
    def add_payment_method(
        account_id: str,
        req: PaymentMethodRequest,
        x_tenant_id: str | None = Header(default=None),
        x_trace_id: str | None = Header(default=None),
    ):
        return service.add_payment_method(
            account_id,
            req.payment_method_id,
            req.external_payment_method_id,
            req.is_default,
            req.properties,
            _context(x_tenant_id, x_trace_id),
        )

    @app.get("/accounts/{account_id}/payment-methods", response_model=list[PaymentMethodView])
    def get_payment_methods(
        account_id: str,
        refresh: bool = False,
        x_tenant_id: str | None = Header(default=None),
        x_trace_id: str | None = Header(default=None),
    ):
        """Local payment methods, optionally converged with the gateway first."""

        return service.get_payment_methods(account_id, refresh, {}, _context(x_tenant_id, x_trace_id))

    @app.get("/accounts/{account_id}/payment-methods/{payment_method_id}", response_model=PaymentMethodView)
    def get_payment_method_detail(
        account_id: str,
        payment_method_id: str,
        x_tenant_id: str | None = Header(default=None),
        x_trace_id: str | None = Header(default=None),
    ):
        return service.get_payment_method_detail(account_id, payment_method_id, {}, _context(x_tenant_id, x_trace_id))

    @app.delete("/accounts/{account_id}/payment-methods/{payment_method_id}", status_code=204)
    def delete_payment_method(
        account_id: str,
        payment_method_id: str,
        x_tenant_id: str | None = Header(default=None),
        x_trace_id: str | None = Header(default=None),
    ):
        service.delete_payment_method(account_id, payment_method_id, {}, _context(x_tenant_id, x_trace_id))

    @app.post("/accounts/{account_id}/hpp-form", response_model=FormDescriptor)
    def build_form_descriptor(
        account_id: str,
        req: FormRequest,
        x_tenant_id: str | None = Header(default=None),
        x_trace_id: str | None = Header(default=None),
    ):
        """Persist a hosted-page request and return the form to render."""

        return service.build_form_descriptor(
            account_id, req.custom_fields, req.properties, _context(x_tenant_id, x_trace_id)
        )

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app
