"""Payment domain model.

A payment belongs to one invoice. Refunds are tracked against the payment
they reverse via refunded_amount_cents (partial or full).
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, field_validator


class PaymentStatus(str, Enum):
    """Gateway outcome. Only COMPLETED payments count toward totals."""

    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class Payment(BaseModel):
    """Full payment entity as stored."""

    id: UUID
    invoice_id: UUID
    amount_cents: int
    status: PaymentStatus
    refunded_amount_cents: int = 0
    processed_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("refunded_amount_cents", mode="before")
    @classmethod
    def null_refund_is_zero(cls, value):
        """Rows written before refunds existed carry NULL."""
        return 0 if value is None else value

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED
