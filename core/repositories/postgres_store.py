"""
PostgreSQL implementation of the ledger repository port.

Every session runs inside one PostgresClient.transaction(): SERIALIZABLE for
writes, REPEATABLE READ READ ONLY for snapshot reads. Invoice appends are
additionally guarded by a compare-and-swap on invoices.version, so a stale
read turns into a ConflictError instead of a lost update.

Rows come back as dicts and are parsed into core.models types here - the
engine never sees raw rows. A row that fails its model is a StorageError.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, TypeVar
from uuid import UUID, uuid4

import psycopg2
import psycopg2.errors
from psycopg2.extras import Json
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from clients.postgres_client import PostgresClient, Transaction
from core.exceptions import ConflictError, InvalidStateError, NotFoundError, StorageError
from core.models import (
    CatalogService,
    Garment, GarmentDetail, GarmentService, GarmentServiceCreate, GarmentStage,
    GarmentHistoryCreate, GarmentHistoryEntry,
    Invoice, InvoiceCreate, InvoiceLineItem, InvoiceStatus,
    Order, Payment, ServicePaymentStatus,
)
from core.repository import LedgerSession, LedgerStore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# UniqueViolation: two writers allocated the same invoice number
_CONFLICT_ERRORS = (
    psycopg2.errors.SerializationFailure,
    psycopg2.errors.DeadlockDetected,
    psycopg2.errors.UniqueViolation,
)


def _json_or_none(value):
    return None if value is None else Json(value)


def _parse(model: type[ModelT], row: dict) -> ModelT:
    """Parse a row into a model. A row that doesn't fit is corrupt stored data."""
    try:
        return model.model_validate(row)
    except PydanticValidationError as e:
        logger.error("Malformed %s row %s: %s", model.__name__, row.get("id"), e)
        raise StorageError(f"Malformed {model.__name__} row {row.get('id')}") from e


class PostgresLedgerSession(LedgerSession):
    """Ledger session bound to one open PostgreSQL transaction."""

    def __init__(self, tx: Transaction):
        self.tx = tx

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_garment(self, garment_id: UUID, shop_id: UUID) -> GarmentDetail | None:
        garment_row = self.tx.execute_single(
            "SELECT * FROM garments WHERE id = %s AND shop_id = %s",
            (garment_id, shop_id)
        )
        if garment_row is None:
            return None

        garment = _parse(Garment, garment_row)

        order_row = self.tx.execute_single(
            "SELECT * FROM orders WHERE id = %s AND shop_id = %s",
            (garment.order_id, shop_id)
        )
        if order_row is None:
            return None

        service_rows = self.tx.execute(
            """
            SELECT * FROM garment_services
            WHERE garment_id = %s
            ORDER BY created_at ASC
            """,
            (garment_id,)
        )

        return GarmentDetail(
            garment=garment,
            order=_parse(Order, order_row),
            services=[_parse(GarmentService, row) for row in service_rows],
        )

    def get_order(self, order_id: UUID, shop_id: UUID) -> Order | None:
        row = self.tx.execute_single(
            "SELECT * FROM orders WHERE id = %s AND shop_id = %s",
            (order_id, shop_id)
        )
        return _parse(Order, row) if row else None

    def get_catalog_service(self, service_id: UUID, shop_id: UUID) -> CatalogService | None:
        row = self.tx.execute_single(
            "SELECT * FROM services WHERE id = %s AND shop_id = %s",
            (service_id, shop_id)
        )
        return _parse(CatalogService, row) if row else None

    def list_order_invoices(
        self,
        order_id: UUID,
        status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        if status is None:
            rows = self.tx.execute(
                """
                SELECT * FROM invoices
                WHERE order_id = %s
                ORDER BY created_at DESC
                """,
                (order_id,)
            )
        else:
            rows = self.tx.execute(
                """
                SELECT * FROM invoices
                WHERE order_id = %s AND status = %s
                ORDER BY created_at DESC
                """,
                (order_id, status.value)
            )
        return [_parse(Invoice, row) for row in rows]

    def get_invoice_with_payments(
        self,
        invoice_id: UUID,
        shop_id: UUID,
    ) -> tuple[Invoice, list[Payment]] | None:
        invoice_row = self.tx.execute_single(
            "SELECT * FROM invoices WHERE id = %s AND shop_id = %s",
            (invoice_id, shop_id)
        )
        if invoice_row is None:
            return None

        payment_rows = self.tx.execute(
            """
            SELECT * FROM payments
            WHERE invoice_id = %s
            ORDER BY processed_at ASC NULLS LAST
            """,
            (invoice_id,)
        )

        return (
            _parse(Invoice, invoice_row),
            [_parse(Payment, row) for row in payment_rows],
        )

    def get_order_services(self, order_id: UUID, service_ids: list[UUID]) -> list[GarmentService]:
        rows = self.tx.execute(
            """
            SELECT gs.* FROM garment_services gs
            JOIN garments g ON g.id = gs.garment_id
            WHERE g.order_id = %s AND gs.id = ANY(%s::uuid[])
            ORDER BY gs.created_at ASC
            """,
            (order_id, list(service_ids))
        )
        return [_parse(GarmentService, row) for row in rows]

    def latest_invoice_number(self, shop_id: UUID, prefix: str) -> str | None:
        return self.tx.execute_scalar(
            """
            SELECT invoice_number FROM invoices
            WHERE shop_id = %s AND invoice_number LIKE %s
            ORDER BY invoice_number DESC
            LIMIT 1
            """,
            (shop_id, f"{prefix}%")
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert_service(self, garment_id: UUID, data: GarmentServiceCreate) -> GarmentService:
        now = now_utc()
        row = self.tx.execute_single(
            """
            INSERT INTO garment_services (
                id, garment_id, service_id,
                name, description, unit, unit_price_cents, quantity,
                is_done, is_removed, payment_status, paid_amount_cents, invoice_id,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s,
                %s, %s, %s, %s, %s,
                false, false, %s, 0, NULL,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), garment_id, data.service_id,
                data.name, data.description, data.unit, data.unit_price_cents, data.quantity,
                ServicePaymentStatus.UNPAID.value,
                now, now
            )
        )
        return _parse(GarmentService, row)

    def insert_history(self, entry: GarmentHistoryCreate) -> GarmentHistoryEntry:
        row = self.tx.execute_single(
            """
            INSERT INTO garment_history (
                id, garment_id, changed_by, field_name,
                old_value, new_value, change_type, related_service_id, changed_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), entry.garment_id, entry.changed_by, entry.field_name,
                _json_or_none(entry.old_value), _json_or_none(entry.new_value),
                entry.change_type.value, entry.related_service_id, now_utc()
            )
        )
        return _parse(GarmentHistoryEntry, row)

    def append_line_item(self, invoice: Invoice, item: InvoiceLineItem) -> Invoice:
        row = self.tx.execute_single(
            """
            UPDATE invoices
            SET line_items = COALESCE(line_items, '[]'::jsonb) || %s::jsonb,
                amount_cents = amount_cents + %s,
                version = version + 1,
                updated_at = %s
            WHERE id = %s AND version = %s
            RETURNING *
            """,
            (
                Json([item.model_dump(mode="json")]),
                item.line_total_cents,
                now_utc(),
                invoice.id,
                invoice.version,
            )
        )
        if row is None:
            raise ConflictError(
                f"Invoice {invoice.invoice_number} changed since version {invoice.version}"
            )
        return _parse(Invoice, row)

    def create_invoice(self, shop_id: UUID, data: InvoiceCreate) -> Invoice:
        now = now_utc()
        row = self.tx.execute_single(
            """
            INSERT INTO invoices (
                id, shop_id, order_id, client_id,
                invoice_number, invoice_type, status,
                amount_cents, deposit_amount_cents, line_items,
                description, due_date, version,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s,
                %s, %s, %s,
                %s, %s, %s,
                %s, %s, 1,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), shop_id, data.order_id, data.client_id,
                data.invoice_number, data.invoice_type.value, InvoiceStatus.PENDING.value,
                data.amount_cents, data.deposit_amount_cents,
                Json([item.model_dump(mode="json") for item in data.line_items]),
                data.description, data.due_date,
                now, now
            )
        )
        return _parse(Invoice, row)

    def link_service_to_invoice(self, service_id: UUID, invoice_id: UUID) -> GarmentService:
        row = self.tx.execute_single(
            """
            UPDATE garment_services
            SET invoice_id = %s, updated_at = %s
            WHERE id = %s AND invoice_id IS NULL
            RETURNING *
            """,
            (invoice_id, now_utc(), service_id)
        )
        if row is not None:
            return _parse(GarmentService, row)

        existing = self.tx.execute_single(
            "SELECT invoice_id FROM garment_services WHERE id = %s",
            (service_id,)
        )
        if existing is None:
            raise NotFoundError(f"Service {service_id} not found")
        raise InvalidStateError(
            f"Service {service_id} is already billed on invoice {existing['invoice_id']}"
        )

    def update_garment_stage(self, garment_id: UUID, stage: GarmentStage) -> Garment:
        row = self.tx.execute_single(
            """
            UPDATE garments
            SET stage = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (stage.value, now_utc(), garment_id)
        )
        if row is None:
            raise NotFoundError(f"Garment {garment_id} not found")
        return _parse(Garment, row)

    def set_service_done(self, service_id: UUID, is_done: bool) -> GarmentService:
        row = self.tx.execute_single(
            """
            UPDATE garment_services
            SET is_done = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (is_done, now_utc(), service_id)
        )
        if row is None:
            raise NotFoundError(f"Service {service_id} not found")
        return _parse(GarmentService, row)

    def mark_service_removed(
        self,
        service_id: UUID,
        removed_by: UUID,
        reason: str | None,
    ) -> GarmentService:
        now = now_utc()
        row = self.tx.execute_single(
            """
            UPDATE garment_services
            SET is_removed = true, removed_at = %s, removed_by = %s,
                removal_reason = %s, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (now, removed_by, reason or "Service removed by user", now, service_id)
        )
        if row is None:
            raise NotFoundError(f"Service {service_id} not found")
        return _parse(GarmentService, row)

    def mark_service_restored(self, service_id: UUID) -> GarmentService:
        row = self.tx.execute_single(
            """
            UPDATE garment_services
            SET is_removed = false, removed_at = NULL, removed_by = NULL,
                removal_reason = NULL, updated_at = %s
            WHERE id = %s
            RETURNING *
            """,
            (now_utc(), service_id)
        )
        if row is None:
            raise NotFoundError(f"Service {service_id} not found")
        return _parse(GarmentService, row)


class PostgresLedgerStore(LedgerStore):
    """LedgerStore over a pooled PostgresClient."""

    def __init__(self, postgres: PostgresClient, isolation_level: str = "SERIALIZABLE"):
        self.postgres = postgres
        self.isolation_level = isolation_level

    @contextmanager
    def transaction(self, readonly: bool = False) -> Iterator[PostgresLedgerSession]:
        """
        Open a session, translating driver errors into ledger errors.

        Serialization failures and deadlocks become ConflictError (retryable);
        any other driver error becomes StorageError. The transaction is
        already rolled back by the time either is raised.
        """
        isolation_level = "REPEATABLE READ" if readonly else self.isolation_level
        try:
            with self.postgres.transaction(isolation_level=isolation_level, readonly=readonly) as tx:
                yield PostgresLedgerSession(tx)
        except _CONFLICT_ERRORS as e:
            logger.warning("Transaction conflict: %s", e.__class__.__name__)
            raise ConflictError("Concurrent update detected, transaction rolled back") from e
        except psycopg2.Error as e:
            logger.error("Storage failure: %s", e)
            raise StorageError(f"Storage failure: {e.__class__.__name__}") from e
