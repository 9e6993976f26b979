"""
Repository port for the ledger engine.

The engine never talks to a database directly. It opens a session through
LedgerStore.transaction() and composes the session's individually-atomic
operations into one unit of work: either every write in the block lands,
or none does.

Implementations must:
- parse rows into the core.models types before returning them, raising
  StorageError for rows that don't fit;
- scope every garment/order/invoice/catalog lookup to the given shop;
- run write sessions with serializable semantics (or equivalent), and read
  sessions against one consistent snapshot;
- raise core.exceptions.ConflictError on lost optimistic-concurrency races
  and serialization failures, and StorageError on any other backend failure.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from uuid import UUID

from core.models import (
    CatalogService,
    Garment, GarmentDetail, GarmentService, GarmentServiceCreate, GarmentStage,
    GarmentHistoryCreate, GarmentHistoryEntry,
    Invoice, InvoiceCreate, InvoiceLineItem, InvoiceStatus,
    Order, Payment,
)


class LedgerSession(ABC):
    """Operations available inside one store transaction."""

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_garment(self, garment_id: UUID, shop_id: UUID) -> GarmentDetail | None:
        """Garment with its order and all services (removed included), or None."""

    @abstractmethod
    def get_order(self, order_id: UUID, shop_id: UUID) -> Order | None:
        """Order by id within the shop, or None."""

    @abstractmethod
    def get_catalog_service(self, service_id: UUID, shop_id: UUID) -> CatalogService | None:
        """Catalog entry by id within the shop, or None."""

    @abstractmethod
    def list_order_invoices(
        self,
        order_id: UUID,
        status: InvoiceStatus | None = None,
    ) -> list[Invoice]:
        """An order's invoices, optionally filtered by status, newest first."""

    @abstractmethod
    def get_invoice_with_payments(
        self,
        invoice_id: UUID,
        shop_id: UUID,
    ) -> tuple[Invoice, list[Payment]] | None:
        """An invoice and all of its payments from the same snapshot, or None."""

    @abstractmethod
    def get_order_services(self, order_id: UUID, service_ids: list[UUID]) -> list[GarmentService]:
        """The requested services that sit on garments of the given order."""

    @abstractmethod
    def latest_invoice_number(self, shop_id: UUID, prefix: str) -> str | None:
        """Highest invoice number in the shop starting with prefix, or None."""

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    @abstractmethod
    def insert_service(self, garment_id: UUID, data: GarmentServiceCreate) -> GarmentService:
        """Insert an unbilled, not-done service on a garment."""

    @abstractmethod
    def insert_history(self, entry: GarmentHistoryCreate) -> GarmentHistoryEntry:
        """Append a garment history entry."""

    @abstractmethod
    def append_line_item(self, invoice: Invoice, item: InvoiceLineItem) -> Invoice:
        """
        Append a line item and add its total to amount_cents.

        Compare-and-swap on invoice.version: raises ConflictError if the
        stored invoice changed since it was read.
        """

    @abstractmethod
    def create_invoice(self, shop_id: UUID, data: InvoiceCreate) -> Invoice:
        """Create a pending invoice."""

    @abstractmethod
    def link_service_to_invoice(self, service_id: UUID, invoice_id: UUID) -> GarmentService:
        """
        Set a service's invoice_id and return the updated service.

        Raises InvalidStateError if the service is already linked to an invoice.
        """

    @abstractmethod
    def update_garment_stage(self, garment_id: UUID, stage: GarmentStage) -> Garment:
        """Persist a garment's stage."""

    @abstractmethod
    def set_service_done(self, service_id: UUID, is_done: bool) -> GarmentService:
        """Mark a service complete or not complete."""

    @abstractmethod
    def mark_service_removed(
        self,
        service_id: UUID,
        removed_by: UUID,
        reason: str | None,
    ) -> GarmentService:
        """Soft-remove a service. It stays on record for invoice history."""

    @abstractmethod
    def mark_service_restored(self, service_id: UUID) -> GarmentService:
        """Undo a soft-remove, clearing the removal details."""


class LedgerStore(ABC):
    """Factory for ledger sessions."""

    @abstractmethod
    def transaction(self, readonly: bool = False) -> AbstractContextManager[LedgerSession]:
        """
        Open a session.

        Write sessions commit on clean exit and roll back on any exception.
        Read-only sessions see one consistent snapshot.
        """
