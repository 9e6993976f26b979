"""Garment stage derivation from service completion."""

from typing import Iterable

from core.models import GarmentService, GarmentStage


def resolve_stage(services: Iterable[GarmentService]) -> GarmentStage:
    """
    Derive a garment's stage from its services.

    Removed services are ignored. No completed services (including no
    services at all) is NEW, all completed is READY_FOR_PICKUP, anything in
    between is IN_PROGRESS. Never returns DONE - that stage is reached only
    through pickup confirmation.

    Order-independent and idempotent.
    """
    active = [s for s in services if not s.is_removed]
    total = len(active)
    completed = sum(1 for s in active if s.is_done)

    if completed == 0:
        return GarmentStage.NEW
    if completed == total:
        return GarmentStage.READY_FOR_PICKUP
    return GarmentStage.IN_PROGRESS
