"""Core domain models."""

from core.models.garment import (
    Garment, GarmentDetail, GarmentStage, GarmentService, GarmentServiceCreate,
    ServicePaymentStatus, CustomServiceSpec, AttachServiceRequest,
)
from core.models.order import Order
from core.models.catalog import CatalogService
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceLineItem, InvoiceStatus, InvoiceType,
)
from core.models.payment import Payment, PaymentStatus
from core.models.history import GarmentHistoryCreate, GarmentHistoryEntry, HistoryChangeType
from core.models.balance import InvoiceBalance, PaymentSummary, PaymentProgress
from core.models.attachment import AttachServiceResult, InvoiceAction, InvoiceActionType

__all__ = [
    # Garment
    "Garment", "GarmentDetail", "GarmentStage", "GarmentService", "GarmentServiceCreate",
    "ServicePaymentStatus", "CustomServiceSpec", "AttachServiceRequest",
    # Order
    "Order",
    # Catalog
    "CatalogService",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceLineItem", "InvoiceStatus", "InvoiceType",
    # Payment
    "Payment", "PaymentStatus",
    # History
    "GarmentHistoryCreate", "GarmentHistoryEntry", "HistoryChangeType",
    # Balance
    "InvoiceBalance", "PaymentSummary", "PaymentProgress",
    # Attachment
    "AttachServiceResult", "InvoiceAction", "InvoiceActionType",
]
