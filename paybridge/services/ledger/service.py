"""Response ledger: durable append/merge store for the payment core.

Every write is an insert except metadata merges, which only ever add or
overwrite keys. All store failures surface as `PersistenceError`.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterator, Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paybridge.common.errors import PersistenceError
from paybridge.common.logging import logger
from paybridge.services.gateway.models import GatewayTransactionResult
from paybridge.services.ledger.models import (
    CustomerMapping,
    HppRequest,
    PaymentMethod,
    TransactionResponse,
)
from paybridge.services.payments.properties import (
    AUTHORIZATION_TRANSACTION_TYPES,
    metadata_from_result,
    normalize_properties,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _snapshot(row: TransactionResponse) -> TransactionResponse:
    """Detached copy of a row, used to hand back pre-merge state."""

    copy = TransactionResponse(
        **{column.key: getattr(row, column.key) for column in TransactionResponse.__table__.columns}
    )
    copy.additional_data = dict(row.additional_data or {})
    return copy


class ResponseLedger:
    """Owns transaction responses, payment-method mirrors, HPP requests and customer mappings."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self, operation: str, **context: Any) -> Iterator[Session]:
        try:
            with self.session_factory() as db:
                yield db
        except SQLAlchemyError as exc:
            logger.error("ledger operation failed operation=%s context=%s error=%s", operation, context, exc)
            raise PersistenceError(f"ledger {operation} failed: {exc}", operation=operation, **context) from exc

    # Responses

    def add_response(
        self,
        tenant_id: str,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal | None,
        currency: str | None,
        result: GatewayTransactionResult,
        properties: Mapping[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> TransactionResponse:
        """Insert the row for a fresh gateway response. Never an upsert.

        Caller properties are kept alongside the gateway metadata; gateway
        keys win on collision.
        """

        return self._insert_response(
            tenant_id=tenant_id,
            account_id=account_id,
            payment_id=payment_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            currency=currency,
            gateway_id=result.gateway_id,
            additional_data={**normalize_properties(properties), **metadata_from_result(result)},
            created_at=created_at or _utcnow(),
        )

    def add_redirect_response(
        self,
        tenant_id: str,
        account_id: str,
        payment_id: str,
        transaction_id: str,
        transaction_type: str,
        amount: Decimal | None,
        currency: str | None,
        additional_data: Mapping[str, Any],
        created_at: datetime | None = None,
    ) -> TransactionResponse:
        """Pre-create the row of a redirect flow before the gateway has confirmed anything."""

        return self._insert_response(
            tenant_id=tenant_id,
            account_id=account_id,
            payment_id=payment_id,
            transaction_id=transaction_id,
            transaction_type=transaction_type,
            amount=amount,
            currency=currency,
            gateway_id=None,
            additional_data=normalize_properties(additional_data),
            created_at=created_at or _utcnow(),
        )

    def _insert_response(self, **values: Any) -> TransactionResponse:
        with self._session(
            "add_response",
            tenant_id=values["tenant_id"],
            transaction_id=values["transaction_id"],
        ) as db:
            row = TransactionResponse(**values)
            db.add(row)
            db.commit()
            return row

    def get_response(self, transaction_id: str, tenant_id: str) -> TransactionResponse | None:
        with self._session("get_response", tenant_id=tenant_id, transaction_id=transaction_id) as db:
            return self._latest_response(db, transaction_id, tenant_id)

    @staticmethod
    def _latest_response(db: Session, transaction_id: str, tenant_id: str, lock: bool = False):
        query = (
            select(TransactionResponse)
            .where(
                TransactionResponse.transaction_id == transaction_id,
                TransactionResponse.tenant_id == tenant_id,
            )
            .order_by(TransactionResponse.record_id.desc())
            .limit(1)
        )
        if lock:
            query = query.with_for_update()
        return db.execute(query).scalar_one_or_none()

    def get_responses(self, payment_id: str, tenant_id: str) -> list[TransactionResponse]:
        """All rows for a payment in insertion order."""

        with self._session("get_responses", tenant_id=tenant_id, payment_id=payment_id) as db:
            return list(
                db.execute(
                    select(TransactionResponse)
                    .where(
                        TransactionResponse.payment_id == payment_id,
                        TransactionResponse.tenant_id == tenant_id,
                    )
                    .order_by(TransactionResponse.record_id.asc())
                ).scalars()
            )

    def update_response(
        self, transaction_id: str, properties: Mapping[str, Any] | None, tenant_id: str
    ) -> TransactionResponse | None:
        """Merge properties into the latest row for a transaction.

        Returns the pre-merge row, or None when the transaction was never
        submitted.
        """

        additional = normalize_properties(properties)
        with self._session("update_response", tenant_id=tenant_id, transaction_id=transaction_id) as db:
            row = self._latest_response(db, transaction_id, tenant_id, lock=True)
            if row is None:
                return None
            previous = _snapshot(row)
            row.additional_data = {**(row.additional_data or {}), **additional}
            db.commit()
            return previous

    def update_response_row(self, row: TransactionResponse, overrides: Mapping[str, Any]) -> None:
        """Merge overrides into a row addressed by record id (administrative overrides)."""

        additional = normalize_properties(overrides)
        with self._session(
            "update_response_row", tenant_id=row.tenant_id, transaction_id=row.transaction_id
        ) as db:
            current = db.get(TransactionResponse, row.record_id, with_for_update=True)
            if current is None:
                raise PersistenceError(
                    "transaction response vanished",
                    operation="update_response_row",
                    record_id=row.record_id,
                )
            current.additional_data = {**(current.additional_data or {}), **additional}
            db.commit()

    def get_successful_authorization_response(self, payment_id: str, tenant_id: str) -> TransactionResponse | None:
        """Latest AUTHORIZE or PURCHASE row for a payment."""

        with self._session("get_successful_authorization_response", tenant_id=tenant_id, payment_id=payment_id) as db:
            return db.execute(
                select(TransactionResponse)
                .where(
                    TransactionResponse.payment_id == payment_id,
                    TransactionResponse.transaction_type.in_(AUTHORIZATION_TRANSACTION_TYPES),
                    TransactionResponse.tenant_id == tenant_id,
                )
                .order_by(TransactionResponse.record_id.desc())
                .limit(1)
            ).scalar_one_or_none()

    # Payment methods

    def add_payment_method(
        self,
        tenant_id: str,
        account_id: str,
        payment_method_id: str,
        gateway_token: str,
        is_default: bool,
        additional_data: Mapping[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> PaymentMethod:
        now = created_at or _utcnow()
        with self._session("add_payment_method", tenant_id=tenant_id, payment_method_id=payment_method_id) as db:
            row = PaymentMethod(
                tenant_id=tenant_id,
                account_id=account_id,
                payment_method_id=payment_method_id,
                gateway_token=gateway_token,
                is_default=is_default,
                is_deleted=False,
                additional_data=normalize_properties(additional_data),
                created_at=now,
                updated_at=now,
            )
            db.add(row)
            db.commit()
            return row

    def get_payment_method(self, payment_method_id: str, tenant_id: str) -> PaymentMethod | None:
        """Active (non-deleted) row for a payment method id."""

        with self._session("get_payment_method", tenant_id=tenant_id, payment_method_id=payment_method_id) as db:
            return db.execute(
                select(PaymentMethod)
                .where(
                    PaymentMethod.payment_method_id == payment_method_id,
                    PaymentMethod.tenant_id == tenant_id,
                    PaymentMethod.is_deleted.is_(False),
                )
                .order_by(PaymentMethod.record_id.desc())
                .limit(1)
            ).scalar_one_or_none()

    def get_payment_methods(self, account_id: str, tenant_id: str) -> list[PaymentMethod]:
        with self._session("get_payment_methods", tenant_id=tenant_id, account_id=account_id) as db:
            return list(
                db.execute(
                    select(PaymentMethod)
                    .where(
                        PaymentMethod.account_id == account_id,
                        PaymentMethod.tenant_id == tenant_id,
                        PaymentMethod.is_deleted.is_(False),
                    )
                    .order_by(PaymentMethod.record_id.asc())
                ).scalars()
            )

    def update_payment_method(
        self,
        payment_method_id: str,
        additional_data: Mapping[str, Any],
        gateway_token: str,
        tenant_id: str,
        is_default: bool | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        """Merge metadata into an active row; fields the caller does not send are preserved."""

        additional = normalize_properties(additional_data)
        with self._session("update_payment_method", tenant_id=tenant_id, payment_method_id=payment_method_id) as db:
            rows = db.execute(
                select(PaymentMethod).where(
                    PaymentMethod.payment_method_id == payment_method_id,
                    PaymentMethod.gateway_token == gateway_token,
                    PaymentMethod.tenant_id == tenant_id,
                    PaymentMethod.is_deleted.is_(False),
                )
            ).scalars()
            for row in rows:
                row.additional_data = {**(row.additional_data or {}), **additional}
                if is_default is not None:
                    row.is_default = is_default
                row.updated_at = updated_at or _utcnow()
            db.commit()

    def mark_payment_method_deleted(
        self, payment_method_id: str, tenant_id: str, updated_at: datetime | None = None
    ) -> None:
        """Soft delete; rows stay for audit."""

        with self._session(
            "mark_payment_method_deleted", tenant_id=tenant_id, payment_method_id=payment_method_id
        ) as db:
            rows = db.execute(
                select(PaymentMethod).where(
                    PaymentMethod.payment_method_id == payment_method_id,
                    PaymentMethod.tenant_id == tenant_id,
                    PaymentMethod.is_deleted.is_(False),
                )
            ).scalars()
            for row in rows:
                row.is_deleted = True
                row.updated_at = updated_at or _utcnow()
            db.commit()

    # HPP requests

    def add_hpp_request(
        self,
        tenant_id: str,
        account_id: str,
        payment_id: str | None,
        transaction_id: str | None,
        additional_data: Mapping[str, Any] | None,
        created_at: datetime | None = None,
    ) -> HppRequest:
        with self._session("add_hpp_request", tenant_id=tenant_id, transaction_id=transaction_id) as db:
            row = HppRequest(
                tenant_id=tenant_id,
                account_id=account_id,
                payment_id=payment_id,
                transaction_id=transaction_id,
                additional_data=normalize_properties(additional_data),
                created_at=created_at or _utcnow(),
            )
            db.add(row)
            db.commit()
            return row

    def get_hpp_request(self, transaction_id: str, tenant_id: str) -> HppRequest | None:
        with self._session("get_hpp_request", tenant_id=tenant_id, transaction_id=transaction_id) as db:
            return db.execute(
                select(HppRequest)
                .where(HppRequest.transaction_id == transaction_id, HppRequest.tenant_id == tenant_id)
                .order_by(HppRequest.record_id.desc())
                .limit(1)
            ).scalar_one_or_none()

    # Customer mappings

    def get_customer_id(self, account_id: str, tenant_id: str) -> str | None:
        with self._session("get_customer_id", tenant_id=tenant_id, account_id=account_id) as db:
            mapping = db.get(CustomerMapping, (tenant_id, account_id))
            return None if mapping is None else mapping.customer_id

    def add_customer_id(self, account_id: str, customer_id: str, tenant_id: str) -> None:
        with self._session("add_customer_id", tenant_id=tenant_id, account_id=account_id) as db:
            db.add(
                CustomerMapping(
                    tenant_id=tenant_id,
                    account_id=account_id,
                    customer_id=customer_id,
                    created_at=_utcnow(),
                )
            )
            db.commit()
