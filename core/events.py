"""
Domain events for the garment ledger.

Immutable event objects that represent committed state changes. A service
publishes what happened once its transaction has committed, and handlers
react without the publisher knowing who's listening.

Event Categories:
- ServiceEvent: Garment service lifecycle (attach)
- InvoiceEvent: Supplemental invoice lifecycle (create)
- GarmentEvent: Garment workflow (stage change)

Events carry the full domain object so handlers don't need to re-fetch state.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import uuid4

from utils.timezone import now_utc


@dataclass(frozen=True, kw_only=True)
class LedgerEvent:
    """Base class for all ledger domain events."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = field(default_factory=now_utc)


# =============================================================================
# SERVICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class ServiceEvent(LedgerEvent):
    """Events related to garment services."""
    pass


@dataclass(frozen=True)
class ServiceAttached(ServiceEvent):
    """A service was attached to a garment, with whatever invoice action followed."""
    service: Any = None  # GarmentService
    invoice_action: Any = None  # InvoiceAction | None

    @classmethod
    def create(cls, service: Any, invoice_action: Any = None) -> "ServiceAttached":
        return cls(service=service, invoice_action=invoice_action)


# =============================================================================
# INVOICE EVENTS
# =============================================================================


@dataclass(frozen=True)
class InvoiceEvent(LedgerEvent):
    """Events related to invoice lifecycle."""
    pass


@dataclass(frozen=True)
class SupplementalInvoiceCreated(InvoiceEvent):
    """An additional or adjustment invoice was created for an order."""
    invoice: Any = None

    @classmethod
    def create(cls, invoice: Any) -> "SupplementalInvoiceCreated":
        return cls(invoice=invoice)


# =============================================================================
# GARMENT EVENTS
# =============================================================================


@dataclass(frozen=True)
class GarmentEvent(LedgerEvent):
    """Events related to garment workflow."""
    pass


@dataclass(frozen=True)
class GarmentStageChanged(GarmentEvent):
    """A garment's derived stage changed."""
    garment: Any = None
    old_stage: Any = None  # GarmentStage

    @classmethod
    def create(cls, garment: Any, old_stage: Any) -> "GarmentStageChanged":
        return cls(garment=garment, old_stage=old_stage)
