"""
Service attachment and invoice reconciliation.

Adding a service to a garment is simple until some of the garment's services
have already been paid for. Then the new service has to reach billing:

- a pending invoice exists on the order: the service is appended to it
- no pending invoice and auto-create requested: a supplemental invoice is built
- otherwise: nothing is billed, and the caller gets a recommendation

Insert, history, billing and stage recomputation run in one transaction.
A concurrency conflict reruns the whole reconciliation in a fresh one.
"""

import logging
from datetime import date
from typing import Any
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from core import history
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import LedgerEvent, ServiceAttached, SupplementalInvoiceCreated
from core.exceptions import InvalidStateError, NotFoundError, ValidationError
from core.models import (
    AttachServiceRequest, AttachServiceResult, GarmentDetail, GarmentService,
    GarmentServiceCreate, InvoiceAction, InvoiceActionType, InvoiceLineItem,
    InvoiceStatus, InvoiceType,
)
from core.repository import LedgerSession, LedgerStore
from core.retry import run_with_conflict_retry
from core.services.garment_stage_service import apply_stage
from core.services.invoice_builder import SupplementalInvoiceBuilder
from utils.timezone import format_display_date, now_utc
from utils.user_context import get_current_shop_id

logger = logging.getLogger(__name__)

RECOMMEND_MESSAGE = (
    "This garment has paid services. Consider creating an invoice for the new service."
)


def has_paid_services(services: list[GarmentService]) -> bool:
    """Whether any service on the garment has received money, removed ones included."""
    return any(s.paid_amount_cents > 0 for s in services)


def _parse_request(request: AttachServiceRequest | dict[str, Any]) -> AttachServiceRequest:
    if isinstance(request, AttachServiceRequest):
        return request
    try:
        return AttachServiceRequest.model_validate(request)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid service: {e.errors()[0]['msg']}") from e


class ServiceAttachmentReconciler:
    """Attaches services to garments and reconciles them with billing."""

    def __init__(
        self,
        store: LedgerStore,
        builder: SupplementalInvoiceBuilder,
        config: LedgerConfig,
        event_bus: EventBus,
    ):
        self.store = store
        self.builder = builder
        self.config = config
        self.event_bus = event_bus

    def _resolve_service_data(
        self,
        session: LedgerSession,
        request: AttachServiceRequest,
        shop_id: UUID,
    ) -> GarmentServiceCreate:
        if request.custom_service is not None:
            custom = request.custom_service
            return GarmentServiceCreate(
                name=custom.name.strip(),
                description=custom.description,
                unit=custom.unit,
                unit_price_cents=custom.unit_price_cents,
                quantity=custom.quantity,
            )

        catalog = session.get_catalog_service(request.service_id, shop_id)
        if catalog is None:
            raise NotFoundError(f"Catalog service {request.service_id} not found")
        try:
            return catalog.to_garment_service()
        except PydanticValidationError as e:
            raise InvalidStateError(
                f"Catalog service {catalog.name} has invalid defaults: {e.errors()[0]['msg']}"
            ) from e

    def _default_notes(self, detail: GarmentDetail) -> str:
        today = format_display_date(now_utc(), self.config.display_timezone)
        return f"Additional services added to {detail.garment.name} on {today}"

    def _bill(
        self,
        session: LedgerSession,
        detail: GarmentDetail,
        service: GarmentService,
        auto_create_invoice: bool,
        invoice_notes: str | None,
        due_date: date | None,
        events: list[LedgerEvent],
    ) -> tuple[InvoiceAction, GarmentService]:
        """Bill a new service. Returns the action and the service as billed."""
        pending = session.list_order_invoices(detail.order.id, status=InvoiceStatus.PENDING)

        if pending:
            invoice = session.append_line_item(pending[0], InvoiceLineItem.for_service(service))
            linked = session.link_service_to_invoice(service.id, invoice.id)
            logger.info(
                "Added service %s to pending invoice %s (now %d cents)",
                service.id, invoice.invoice_number, invoice.amount_cents
            )
            return InvoiceAction(
                type=InvoiceActionType.ADDED_TO_EXISTING,
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                service_id=service.id,
            ), linked

        if auto_create_invoice:
            invoice, linked = self.builder.build_in(
                session,
                detail.order.id,
                [service.id],
                invoice_type=InvoiceType.ADDITIONAL,
                notes=invoice_notes or self._default_notes(detail),
                due_date=due_date,
            )
            events.append(SupplementalInvoiceCreated.create(invoice))
            return InvoiceAction(
                type=InvoiceActionType.CREATED_NEW,
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                service_id=service.id,
            ), linked[0]

        return InvoiceAction(
            type=InvoiceActionType.RECOMMENDED,
            service_id=service.id,
            message=RECOMMEND_MESSAGE,
        ), service

    def _attach_once(
        self,
        garment_id: UUID,
        request: AttachServiceRequest,
        auto_create_invoice: bool,
        invoice_notes: str | None,
        due_date: date | None,
    ) -> tuple[AttachServiceResult, list[LedgerEvent]]:
        shop_id = get_current_shop_id()
        events: list[LedgerEvent] = []

        with self.store.transaction() as session:
            detail = session.get_garment(garment_id, shop_id)
            if detail is None:
                raise NotFoundError(f"Garment {garment_id} not found")

            service_data = self._resolve_service_data(session, request, shop_id)

            service = session.insert_service(garment_id, service_data)
            session.insert_history(history.service_added(service))

            requires_payment = has_paid_services(detail.services)
            invoice_action = None
            if requires_payment:
                invoice_action, service = self._bill(
                    session, detail, service,
                    auto_create_invoice, invoice_notes, due_date, events
                )

            stage, stage_event = apply_stage(
                session, detail.garment, [*detail.services, service]
            )
            if stage_event is not None:
                events.append(stage_event)

        result = AttachServiceResult(
            service=service,
            invoice_action=invoice_action,
            requires_payment=requires_payment,
            stage=stage,
        )
        events.insert(0, ServiceAttached.create(service, invoice_action))
        return result, events

    def attach_service(
        self,
        garment_id: UUID,
        request: AttachServiceRequest | dict[str, Any],
        auto_create_invoice: bool = False,
        invoice_notes: str | None = None,
        due_date: date | None = None,
    ) -> AttachServiceResult:
        """
        Add a service to a garment and reconcile it with billing.

        Args:
            garment_id: Garment to add the service to
            request: Catalog reference or custom service (model or raw dict)
            auto_create_invoice: Build a supplemental invoice when the garment
                has paid services and the order has no pending invoice
            invoice_notes: Description for a supplemental invoice
            due_date: Due date for a supplemental invoice

        Returns:
            AttachServiceResult with the new service, the billing action
            (None when nothing on the garment is paid) and the stage

        Raises:
            ValidationError: Malformed request, before anything is read
            NotFoundError: Garment or catalog service not found in the current shop
            InvalidStateError: Billing refused the service, or the catalog
                entry has defaults a garment service can't take
            ConflictError: Concurrent updates persisted past the retry budget
            StorageError: Backend failure; nothing was written
        """
        parsed = _parse_request(request)

        result, events = run_with_conflict_retry(
            lambda: self._attach_once(
                garment_id, parsed, auto_create_invoice, invoice_notes, due_date
            ),
            self.config.max_conflict_retries,
            "attach_service"
        )

        action = result.invoice_action.type.value if result.invoice_action else "none"
        logger.info(
            "Attached service %s to garment %s (billing: %s, stage: %s)",
            result.service.id, garment_id, action, result.stage.value
        )

        self.event_bus.publish_all(events)
        return result
