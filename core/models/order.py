"""Order domain model."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class Order(BaseModel):
    """A shop + client engagement. Owns garments and their invoices."""

    id: UUID
    shop_id: UUID
    client_id: UUID
    order_number: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
