"""
Garment history entries for every service and stage change.

The history is the shop-facing audit trail of a garment:
- Append-only (entries never modified or deleted)
- User-attributed (who made the change)
- Detailed (captures old and new values)

Entries are built here and written through the same ledger session as the
change they describe, so a rolled-back change leaves no history behind.
"""

from typing import Any
from uuid import UUID

from core.models import GarmentHistoryCreate, GarmentService, GarmentStage, HistoryChangeType
from utils.user_context import get_current_user_id


def _service_snapshot(service: GarmentService) -> dict[str, Any]:
    return {
        "name": service.name,
        "quantity": service.quantity,
        "unit_price_cents": service.unit_price_cents,
        "line_total_cents": service.line_total_cents,
    }


def service_added(service: GarmentService, changed_by: UUID | None = None) -> GarmentHistoryCreate:
    """A service was added to a garment."""
    return GarmentHistoryCreate(
        garment_id=service.garment_id,
        changed_by=changed_by or get_current_user_id(),
        field_name="services",
        change_type=HistoryChangeType.SERVICE_ADDED,
        new_value={
            "name": service.name,
            "quantity": service.quantity,
            "unit_price_cents": service.unit_price_cents,
        },
        related_service_id=service.id,
    )


def service_removed(
    service: GarmentService,
    reason: str | None,
    changed_by: UUID | None = None,
) -> GarmentHistoryCreate:
    """A service was soft-removed from a garment."""
    return GarmentHistoryCreate(
        garment_id=service.garment_id,
        changed_by=changed_by or get_current_user_id(),
        field_name="services",
        change_type=HistoryChangeType.SERVICE_REMOVED,
        old_value={**_service_snapshot(service), "status": "active"},
        new_value={**_service_snapshot(service), "status": "removed", "removal_reason": reason},
        related_service_id=service.id,
    )


def service_restored(service: GarmentService, changed_by: UUID | None = None) -> GarmentHistoryCreate:
    """A soft-removed service was brought back."""
    return GarmentHistoryCreate(
        garment_id=service.garment_id,
        changed_by=changed_by or get_current_user_id(),
        field_name="services",
        change_type=HistoryChangeType.SERVICE_RESTORED,
        old_value={"name": service.name, "status": "removed"},
        new_value={"name": service.name, "status": "active"},
        related_service_id=service.id,
    )


def service_completion_changed(
    before: GarmentService,
    after: GarmentService,
    changed_by: UUID | None = None,
) -> GarmentHistoryCreate:
    """A service was marked done or reopened."""
    change_type = (
        HistoryChangeType.SERVICE_COMPLETED if after.is_done
        else HistoryChangeType.SERVICE_REOPENED
    )
    return GarmentHistoryCreate(
        garment_id=after.garment_id,
        changed_by=changed_by or get_current_user_id(),
        field_name="is_done",
        change_type=change_type,
        old_value=before.is_done,
        new_value=after.is_done,
        related_service_id=after.id,
    )


def stage_changed(
    garment_id: UUID,
    old_stage: GarmentStage,
    new_stage: GarmentStage,
    changed_by: UUID | None = None,
) -> GarmentHistoryCreate:
    """A garment moved to a different workflow stage."""
    return GarmentHistoryCreate(
        garment_id=garment_id,
        changed_by=changed_by or get_current_user_id(),
        field_name="stage",
        change_type=HistoryChangeType.FIELD_UPDATE,
        old_value=old_stage.value,
        new_value=new_stage.value,
    )
