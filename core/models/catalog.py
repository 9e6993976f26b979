"""Service catalog domain model.

Catalog entries carry the defaults copied onto a garment when a catalog
service is added. Prices are cents (integer).
"""

from uuid import UUID

from pydantic import BaseModel

from core.models.garment import GarmentServiceCreate


class CatalogService(BaseModel):
    """A shop's service catalog entry (e.g. "Hem pants")."""

    id: UUID
    shop_id: UUID
    name: str
    description: str | None = None
    default_unit: str
    default_unit_price_cents: int
    default_qty: int

    model_config = {"from_attributes": True}

    def to_garment_service(self) -> GarmentServiceCreate:
        """Copy catalog defaults into garment service creation data."""
        return GarmentServiceCreate(
            service_id=self.id,
            name=self.name,
            description=self.description,
            unit=self.default_unit,
            unit_price_cents=self.default_unit_price_cents,
            quantity=self.default_qty,
        )
