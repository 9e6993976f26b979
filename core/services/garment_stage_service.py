"""
Garment stage service.

A garment's stage follows its services: nothing done is New, some done is
In Progress, everything done is Ready For Pickup. Every mutation of a
garment's services recomputes the stage in the same transaction as the
mutation itself. Done is set by pickup confirmation elsewhere and is never
recomputed here.
"""

import logging
from uuid import UUID

from core import history
from core.config import LedgerConfig
from core.event_bus import EventBus
from core.events import GarmentStageChanged, LedgerEvent
from core.exceptions import InvalidStateError, NotFoundError
from core.models import Garment, GarmentDetail, GarmentService, GarmentStage
from core.repository import LedgerSession, LedgerStore
from core.retry import run_with_conflict_retry
from core.stages import resolve_stage
from utils.user_context import get_current_shop_id, get_current_user_id

logger = logging.getLogger(__name__)


def apply_stage(
    session: LedgerSession,
    garment: Garment,
    services: list[GarmentService],
) -> tuple[GarmentStage, LedgerEvent | None]:
    """
    Recompute and persist a garment's stage inside an open session.

    Writes the stage and a field_update history entry only when it changed.

    Returns:
        (stage, GarmentStageChanged to publish after commit, or None)
    """
    if garment.stage == GarmentStage.DONE:
        return garment.stage, None

    new_stage = resolve_stage(services)
    if new_stage == garment.stage:
        return new_stage, None

    updated = session.update_garment_stage(garment.id, new_stage)
    session.insert_history(history.stage_changed(garment.id, garment.stage, new_stage))

    logger.info("Garment %s stage %s -> %s", garment.id, garment.stage.value, new_stage.value)
    return new_stage, GarmentStageChanged.create(updated, garment.stage)


def _replace(services: list[GarmentService], updated: GarmentService) -> list[GarmentService]:
    return [updated if s.id == updated.id else s for s in services]


class GarmentStageService:
    """Stage resolution and the service mutations that drive it."""

    def __init__(self, store: LedgerStore, config: LedgerConfig, event_bus: EventBus):
        self.store = store
        self.config = config
        self.event_bus = event_bus

    def _load(self, session: LedgerSession, garment_id: UUID) -> GarmentDetail:
        detail = session.get_garment(garment_id, get_current_shop_id())
        if detail is None:
            raise NotFoundError(f"Garment {garment_id} not found")
        return detail

    def _find_service(self, detail: GarmentDetail, service_id: UUID) -> GarmentService:
        for service in detail.services:
            if service.id == service_id:
                return service
        raise NotFoundError(f"Service {service_id} not found on garment {detail.garment.id}")

    def _run(self, operation: str, unit_of_work) -> GarmentStage:
        stage, events = run_with_conflict_retry(
            unit_of_work,
            self.config.max_conflict_retries,
            operation
        )
        self.event_bus.publish_all(events)
        return stage

    def resolve_stage(self, garment_id: UUID, persist: bool = True) -> GarmentStage:
        """
        Derive a garment's stage from its current services.

        Args:
            garment_id: Garment to resolve
            persist: Write the stage (and history) if it changed. With
                persist=False this is a read-only query.

        Returns:
            Resolved stage (the stored DONE for garments already picked up)

        Raises:
            NotFoundError: Garment not found in the current shop
        """
        if not persist:
            with self.store.transaction(readonly=True) as session:
                detail = self._load(session, garment_id)
                if detail.garment.stage == GarmentStage.DONE:
                    return GarmentStage.DONE
                return resolve_stage(detail.services)

        def unit_of_work():
            with self.store.transaction() as session:
                detail = self._load(session, garment_id)
                stage, event = apply_stage(session, detail.garment, detail.services)
            return stage, [event] if event else []

        return self._run("resolve_stage", unit_of_work)

    def set_service_done(self, garment_id: UUID, service_id: UUID, is_done: bool) -> GarmentStage:
        """
        Mark a service complete or reopen it, then recompute the stage.

        Setting the current value again is a no-op.

        Raises:
            NotFoundError: Garment or service not found
            InvalidStateError: Service has been removed
        """
        def unit_of_work():
            with self.store.transaction() as session:
                detail = self._load(session, garment_id)
                service = self._find_service(detail, service_id)

                if service.is_removed:
                    raise InvalidStateError(f"Service {service_id} has been removed")
                if service.is_done == is_done:
                    return detail.garment.stage, []

                updated = session.set_service_done(service_id, is_done)
                session.insert_history(history.service_completion_changed(service, updated))

                stage, event = apply_stage(
                    session, detail.garment, _replace(detail.services, updated)
                )
            return stage, [event] if event else []

        return self._run("set_service_done", unit_of_work)

    def remove_service(
        self,
        garment_id: UUID,
        service_id: UUID,
        reason: str | None = None,
    ) -> GarmentStage:
        """
        Soft-remove a service, then recompute the stage.

        Removed services stay on record for invoice history but no longer
        count toward the stage.

        Raises:
            NotFoundError: Garment or service not found
            InvalidStateError: Service already removed or already completed
        """
        def unit_of_work():
            with self.store.transaction() as session:
                detail = self._load(session, garment_id)
                service = self._find_service(detail, service_id)

                if service.is_removed:
                    raise InvalidStateError(f"Service {service_id} is already removed")
                if service.is_done:
                    raise InvalidStateError(
                        f"Service {service_id} is completed and cannot be removed"
                    )

                updated = session.mark_service_removed(service_id, get_current_user_id(), reason)
                session.insert_history(history.service_removed(service, reason))

                stage, event = apply_stage(
                    session, detail.garment, _replace(detail.services, updated)
                )
            return stage, [event] if event else []

        return self._run("remove_service", unit_of_work)

    def restore_service(self, garment_id: UUID, service_id: UUID) -> GarmentStage:
        """
        Bring a soft-removed service back, then recompute the stage.

        Raises:
            NotFoundError: Garment or service not found
            InvalidStateError: Service is not removed
        """
        def unit_of_work():
            with self.store.transaction() as session:
                detail = self._load(session, garment_id)
                service = self._find_service(detail, service_id)

                if not service.is_removed:
                    raise InvalidStateError(f"Service {service_id} is not removed")

                updated = session.mark_service_restored(service_id)
                session.insert_history(history.service_restored(updated))

                stage, event = apply_stage(
                    session, detail.garment, _replace(detail.services, updated)
                )
            return stage, [event] if event else []

        return self._run("restore_service", unit_of_work)
