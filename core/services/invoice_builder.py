"""
Supplemental invoice builder.

An order's first invoice is created at intake. Services added later that
can't go on a pending invoice are billed on a supplemental invoice: one line
item per service, amount = sum of line totals, deposit 0, status pending.
Every included service is then linked to the new invoice, which is what
stops it from ever being billed twice.
"""

import logging
from datetime import date
from uuid import UUID

from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import SupplementalInvoiceCreated
from core.exceptions import InvalidStateError, NotFoundError, ValidationError
from core.models import (
    GarmentService, Invoice, InvoiceCreate, InvoiceLineItem, InvoiceType,
    ServicePaymentStatus,
)
from core.repository import LedgerSession, LedgerStore
from core.retry import run_with_conflict_retry
from utils.timezone import now_utc, to_local
from utils.user_context import get_current_shop_id

logger = logging.getLogger(__name__)

_SUPPLEMENTAL_TYPES = {InvoiceType.ADDITIONAL, InvoiceType.ADJUSTMENT}


class SupplementalInvoiceBuilder:
    """Builds and persists additional/adjustment invoices for an order."""

    def __init__(self, store: LedgerStore, config: LedgerConfig, event_bus: EventBus):
        self.store = store
        self.config = config
        self.event_bus = event_bus

    def next_invoice_number(self, session: LedgerSession, shop_id: UUID) -> str:
        """
        Allocate the next invoice number for a shop.

        Format: INV-YYYYMMDD-XXXX where XXXX is a sequence number. The date
        is the shop's local date, same as in invoice descriptions.
        """
        today = to_local(now_utc(), self.config.display_timezone).strftime("%Y%m%d")
        prefix = f"{self.config.invoice_number_prefix}-{today}-"

        # Highest existing number for today
        existing = session.latest_invoice_number(shop_id, prefix)

        if existing is None:
            sequence = 1
        else:
            try:
                sequence = int(existing.split("-")[-1]) + 1
            except (ValueError, IndexError):
                sequence = 1

        return f"{prefix}{sequence:04d}"

    def _check_billable(self, service_ids: list[UUID], found: list[GarmentService]) -> None:
        by_id = {s.id: s for s in found}

        for service_id in service_ids:
            service = by_id.get(service_id)
            if service is None:
                raise InvalidStateError(
                    f"Service {service_id} does not belong to this order"
                )
            if service.is_removed:
                raise InvalidStateError(f"Service {service_id} has been removed")
            if service.payment_status != ServicePaymentStatus.UNPAID:
                raise InvalidStateError(
                    f"Service {service_id} is already {service.payment_status.value}"
                )
            if service.invoice_id is not None:
                raise InvalidStateError(
                    f"Service {service_id} is already billed on invoice {service.invoice_id}"
                )

    def build_in(
        self,
        session: LedgerSession,
        order_id: UUID,
        service_ids: list[UUID],
        invoice_type: InvoiceType = InvoiceType.ADDITIONAL,
        notes: str | None = None,
        due_date: date | None = None,
    ) -> tuple[Invoice, list[GarmentService]]:
        """
        Create a supplemental invoice inside an open session.

        The caller owns the transaction and publishes events after commit.

        Args:
            session: Open ledger session
            order_id: Order the services belong to
            service_ids: Services to bill, in line item order
            invoice_type: ADDITIONAL or ADJUSTMENT
            notes: Invoice description
            due_date: Optional due date

        Returns:
            (created invoice in PENDING status, the services as linked to it)

        Raises:
            ValidationError: Empty service list or non-supplemental type
            NotFoundError: Order not found in the current shop
            InvalidStateError: A service is missing, removed, paid or already billed
        """
        if not service_ids:
            raise ValidationError("At least one service is required")
        if invoice_type not in _SUPPLEMENTAL_TYPES:
            raise ValidationError(
                f"Supplemental invoices must be additional or adjustment, got {invoice_type.value}"
            )

        # Duplicate ids would bill a service twice
        unique_ids = list(dict.fromkeys(service_ids))
        shop_id = get_current_shop_id()

        order = session.get_order(order_id, shop_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        services = session.get_order_services(order_id, unique_ids)
        self._check_billable(unique_ids, services)

        by_id = {s.id: s for s in services}
        line_items = [InvoiceLineItem.for_service(by_id[sid]) for sid in unique_ids]

        invoice = session.create_invoice(
            shop_id,
            InvoiceCreate(
                order_id=order.id,
                client_id=order.client_id,
                invoice_number=self.next_invoice_number(session, shop_id),
                invoice_type=invoice_type,
                line_items=line_items,
                description=notes,
                due_date=due_date,
            )
        )

        linked = [session.link_service_to_invoice(sid, invoice.id) for sid in unique_ids]

        logger.info(
            "Built %s invoice %s for order %s (%d services, %d cents)",
            invoice_type.value, invoice.invoice_number, order.order_number,
            len(unique_ids), invoice.amount_cents
        )
        return invoice, linked

    def create_supplemental_invoice(
        self,
        order_id: UUID,
        service_ids: list[UUID],
        invoice_type: InvoiceType = InvoiceType.ADDITIONAL,
        notes: str | None = None,
        due_date: date | None = None,
    ) -> Invoice:
        """
        Create a supplemental invoice for a caller-chosen batch of services.

        Runs in its own transaction, retried on concurrency conflicts.
        Same arguments and errors as build_in().
        """
        def unit_of_work() -> Invoice:
            with self.store.transaction() as session:
                invoice, _ = self.build_in(
                    session, order_id, service_ids,
                    invoice_type=invoice_type, notes=notes, due_date=due_date
                )
            return invoice

        invoice = run_with_conflict_retry(
            unit_of_work,
            self.config.max_conflict_retries,
            "create_supplemental_invoice"
        )

        self.event_bus.publish(SupplementalInvoiceCreated.create(invoice))
        return invoice
