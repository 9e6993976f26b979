"""Result of attaching a service to a garment."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from core.models.garment import GarmentService, GarmentStage


class InvoiceActionType(str, Enum):
    """What billing did with a newly attached service."""

    ADDED_TO_EXISTING = "added_to_existing"
    CREATED_NEW = "created_new"
    RECOMMENDED = "recommended"  # Nothing written, staff should decide


class InvoiceAction(BaseModel):
    """Billing outcome for a newly attached service."""

    type: InvoiceActionType
    invoice_id: UUID | None = None
    invoice_number: str | None = None
    service_id: UUID | None = None
    message: str | None = None


class AttachServiceResult(BaseModel):
    """Everything the caller needs after attach_service() commits."""

    service: GarmentService
    invoice_action: InvoiceAction | None = None
    requires_payment: bool
    stage: GarmentStage
