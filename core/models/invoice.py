"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents. An order accumulates several invoices over time: the
initial one, then additional/adjustment invoices for services added later.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    PENDING = "pending"
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class InvoiceType(str, Enum):
    """Why the invoice exists."""

    INITIAL = "initial"
    ADDITIONAL = "additional"  # Services added after the initial invoice
    ADJUSTMENT = "adjustment"  # Price corrections


class InvoiceLineItem(BaseModel):
    """One billed garment service, frozen at billing time."""

    service_id: UUID
    name: str
    quantity: int = Field(..., ge=1)
    unit_price_cents: int = Field(..., ge=0)
    line_total_cents: int = Field(..., ge=0)

    @model_validator(mode="after")
    def total_matches(self) -> "InvoiceLineItem":
        """line_total_cents must equal quantity x unit price."""
        if self.line_total_cents != self.quantity * self.unit_price_cents:
            raise ValueError("line_total_cents must equal quantity * unit_price_cents")
        return self

    @classmethod
    def for_service(cls, service) -> "InvoiceLineItem":
        """Build the line item for a GarmentService."""
        return cls(
            service_id=service.id,
            name=service.name,
            quantity=service.quantity,
            unit_price_cents=service.unit_price_cents,
            line_total_cents=service.quantity * service.unit_price_cents,
        )


class InvoiceCreate(BaseModel):
    """Data required to create an invoice."""

    order_id: UUID
    client_id: UUID
    invoice_number: str
    invoice_type: InvoiceType
    line_items: list[InvoiceLineItem] = Field(..., min_length=1)
    deposit_amount_cents: int = Field(0, ge=0)
    description: str | None = Field(None, max_length=2000)
    due_date: date | None = None

    @property
    def amount_cents(self) -> int:
        """Sum of line totals."""
        return sum(item.line_total_cents for item in self.line_items)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    shop_id: UUID
    order_id: UUID
    client_id: UUID
    invoice_number: str
    invoice_type: InvoiceType = InvoiceType.INITIAL
    status: InvoiceStatus
    amount_cents: int
    deposit_amount_cents: int = 0
    line_items: list[InvoiceLineItem] = Field(default_factory=list)
    description: str | None = None
    due_date: date | None = None
    version: int = 1
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
