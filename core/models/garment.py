"""Garment and garment service domain models.

All prices are stored in cents (integer) to avoid floating point issues.
$10.00 = 1000 cents.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from core.models.order import Order


class GarmentStage(str, Enum):
    """Workflow stage of a garment. DONE is only ever set by pickup confirmation."""

    NEW = "New"
    IN_PROGRESS = "In Progress"
    READY_FOR_PICKUP = "Ready For Pickup"
    DONE = "Done"


class ServicePaymentStatus(str, Enum):
    """How much of a single garment service has been paid."""

    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class CustomServiceSpec(BaseModel):
    """An inline (non-catalog) service added to a garment."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=1000)
    unit: str = Field(..., min_length=1, max_length=50)
    unit_price_cents: int = Field(..., ge=0)
    quantity: int = Field(..., ge=1)

    @model_validator(mode="after")
    def reject_blank_name(self) -> "CustomServiceSpec":
        """Whitespace-only names are as empty as empty ones."""
        if not self.name.strip():
            raise ValueError("Service name must not be blank")
        return self


class AttachServiceRequest(BaseModel):
    """Data required to add a service to a garment: catalog reference or inline spec."""

    service_id: UUID | None = None
    custom_service: CustomServiceSpec | None = None

    @model_validator(mode="after")
    def exactly_one_source(self) -> "AttachServiceRequest":
        """Ensure exactly one of service_id / custom_service is given."""
        if (self.service_id is None) == (self.custom_service is None):
            raise ValueError("Provide exactly one of service_id or custom_service")
        return self


class GarmentServiceCreate(BaseModel):
    """Resolved service data ready to be inserted on a garment."""

    service_id: UUID | None = None
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    unit: str
    unit_price_cents: int = Field(..., ge=0)
    quantity: int = Field(..., ge=1)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents


class GarmentService(BaseModel):
    """Full garment service entity as stored."""

    id: UUID
    garment_id: UUID
    service_id: UUID | None = None
    name: str
    description: str | None = None
    unit: str
    unit_price_cents: int
    quantity: int
    is_done: bool = False
    is_removed: bool = False
    payment_status: ServicePaymentStatus = ServicePaymentStatus.UNPAID
    paid_amount_cents: int = 0
    invoice_id: UUID | None = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @property
    def line_total_cents(self) -> int:
        """Quantity x unit price in cents."""
        return self.quantity * self.unit_price_cents


class Garment(BaseModel):
    """Full garment entity as stored."""

    id: UUID
    shop_id: UUID
    order_id: UUID
    name: str
    stage: GarmentStage
    due_date: date | None = None
    event_date: date | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class GarmentDetail(BaseModel):
    """A garment loaded together with its order and all of its services."""

    garment: Garment
    order: Order
    services: list[GarmentService]
