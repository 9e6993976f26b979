"""Garment history domain models.

Garment history is the per-garment audit trail shown to shop staff:
append-only, user-attributed, with old and new values.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class HistoryChangeType(str, Enum):
    """Kind of change recorded against a garment."""

    SERVICE_ADDED = "service_added"
    SERVICE_REMOVED = "service_removed"
    SERVICE_RESTORED = "service_restored"
    SERVICE_COMPLETED = "service_completed"
    SERVICE_REOPENED = "service_reopened"
    FIELD_UPDATE = "field_update"


class GarmentHistoryCreate(BaseModel):
    """Data required to record a history entry."""

    garment_id: UUID
    changed_by: UUID
    field_name: str
    change_type: HistoryChangeType
    old_value: Any | None = None
    new_value: Any | None = None
    related_service_id: UUID | None = None


class GarmentHistoryEntry(GarmentHistoryCreate):
    """Full history entry as stored."""

    id: UUID
    changed_at: datetime

    model_config = {"from_attributes": True}
