"""Tests for GarmentStageService - stage resolution and the mutations that drive it."""

from uuid import uuid4

import pytest

from core.exceptions import ConflictError, InvalidStateError, NotFoundError, StorageError
from core.models import GarmentStage, HistoryChangeType


@pytest.fixture
def stages(services):
    return services.stages


def _history(store, change_type):
    return [h for h in store.history if h.change_type == change_type]


class TestResolveStage:

    def test_persists_changed_stage(self, store, garment, stages, as_test_user):
        """Stale stored stage is corrected and the change recorded."""
        store.add_service(garment, is_done=True)
        store.add_service(garment)

        assert stages.resolve_stage(garment.id) == GarmentStage.IN_PROGRESS
        assert store.garments[garment.id].stage == GarmentStage.IN_PROGRESS

        entries = _history(store, HistoryChangeType.FIELD_UPDATE)
        assert len(entries) == 1
        assert (entries[0].old_value, entries[0].new_value) == ("New", "In Progress")

    def test_idempotent(self, store, garment, stages, as_test_user):
        """Resolving twice writes history once."""
        store.add_service(garment, is_done=True)

        stages.resolve_stage(garment.id)
        stages.resolve_stage(garment.id)

        assert len(_history(store, HistoryChangeType.FIELD_UPDATE)) == 1

    def test_without_persist_is_read_only(self, store, garment, stages, as_test_user):
        store.add_service(garment, is_done=True)

        assert stages.resolve_stage(garment.id, persist=False) == GarmentStage.READY_FOR_PICKUP
        assert store.garments[garment.id].stage == GarmentStage.NEW
        assert store.readonly_opened == 1

    def test_done_garment_untouched(self, store, order, stages, as_test_user):
        garment = store.add_garment(order, stage=GarmentStage.DONE)
        store.add_service(garment)

        assert stages.resolve_stage(garment.id) == GarmentStage.DONE
        assert stages.resolve_stage(garment.id, persist=False) == GarmentStage.DONE
        assert store.history == []

    def test_unknown_garment(self, stages, as_test_user):
        with pytest.raises(NotFoundError):
            stages.resolve_stage(uuid4())

    def test_publishes_stage_change(self, store, garment, stages, published, as_test_user):
        store.add_service(garment, is_done=True)

        stages.resolve_stage(garment.id)

        assert [type(e).__name__ for e in published] == ["GarmentStageChanged"]
        assert published[0].old_stage == GarmentStage.NEW


class TestSetServiceDone:

    def test_completing_last_service_makes_ready(self, store, garment, stages, as_test_user):
        done = store.add_service(garment, is_done=True)
        open_service = store.add_service(garment)

        stage = stages.set_service_done(garment.id, open_service.id, True)

        assert stage == GarmentStage.READY_FOR_PICKUP
        assert store.services[open_service.id].is_done is True
        assert store.services[done.id].is_done is True
        assert store.garments[garment.id].stage == GarmentStage.READY_FOR_PICKUP

    def test_completion_history(self, store, garment, stages, test_user_id, as_test_user):
        service = store.add_service(garment)

        stages.set_service_done(garment.id, service.id, True)

        entries = _history(store, HistoryChangeType.SERVICE_COMPLETED)
        assert len(entries) == 1
        assert entries[0].related_service_id == service.id
        assert entries[0].changed_by == test_user_id
        assert (entries[0].old_value, entries[0].new_value) == (False, True)

    def test_reopening_moves_back(self, store, order, stages, as_test_user):
        garment = store.add_garment(order, stage=GarmentStage.READY_FOR_PICKUP)
        a = store.add_service(garment, is_done=True)
        store.add_service(garment, is_done=True)

        stage = stages.set_service_done(garment.id, a.id, False)

        assert stage == GarmentStage.IN_PROGRESS
        assert len(_history(store, HistoryChangeType.SERVICE_REOPENED)) == 1

    def test_same_value_is_noop(self, store, garment, stages, as_test_user):
        service = store.add_service(garment)

        assert stages.set_service_done(garment.id, service.id, False) == GarmentStage.NEW
        assert store.history == []

    def test_removed_service_rejected(self, store, garment, stages, as_test_user):
        service = store.add_service(garment, is_removed=True)

        with pytest.raises(InvalidStateError):
            stages.set_service_done(garment.id, service.id, True)

    def test_service_on_other_garment(self, store, order, garment, stages, as_test_user):
        other = store.add_garment(order, name="Jacket")
        service = store.add_service(other)

        with pytest.raises(NotFoundError):
            stages.set_service_done(garment.id, service.id, True)

    def test_stage_write_failure_rolls_back_completion(self, store, garment, stages, as_test_user):
        service = store.add_service(garment)
        store.fail_on = {"update_garment_stage"}

        with pytest.raises(StorageError):
            stages.set_service_done(garment.id, service.id, True)

        assert store.services[service.id].is_done is False
        assert store.history == []


class TestRemoveService:

    def test_removing_last_open_service_makes_ready(self, store, garment, stages, as_test_user):
        store.add_service(garment, is_done=True)
        open_service = store.add_service(garment)

        stage = stages.remove_service(garment.id, open_service.id, reason="Client changed mind")

        assert stage == GarmentStage.READY_FOR_PICKUP
        assert store.services[open_service.id].is_removed is True

    def test_removal_history(self, store, garment, stages, as_test_user):
        service = store.add_service(garment, name="Hem")

        stages.remove_service(garment.id, service.id, reason="Not needed")

        entries = _history(store, HistoryChangeType.SERVICE_REMOVED)
        assert len(entries) == 1
        assert entries[0].old_value["status"] == "active"
        assert entries[0].new_value["status"] == "removed"
        assert entries[0].new_value["removal_reason"] == "Not needed"

    def test_completed_service_cannot_be_removed(self, store, garment, stages, as_test_user):
        service = store.add_service(garment, is_done=True)

        with pytest.raises(InvalidStateError):
            stages.remove_service(garment.id, service.id)

    def test_already_removed(self, store, garment, stages, as_test_user):
        service = store.add_service(garment, is_removed=True)

        with pytest.raises(InvalidStateError):
            stages.remove_service(garment.id, service.id)

    def test_other_shop(self, store, garment, stages, as_test_user_b):
        service = store.add_service(garment)

        with pytest.raises(NotFoundError):
            stages.remove_service(garment.id, service.id)


class TestRestoreService:

    def test_restoring_open_service_reopens_garment(self, store, order, stages, as_test_user):
        """A finished garment with a restored open service is back In Progress."""
        garment = store.add_garment(order, stage=GarmentStage.READY_FOR_PICKUP)
        store.add_service(garment, is_done=True)
        removed = store.add_service(garment, is_removed=True)

        assert stages.restore_service(garment.id, removed.id) == GarmentStage.IN_PROGRESS
        assert store.services[removed.id].is_removed is False
        assert store.garments[garment.id].stage == GarmentStage.IN_PROGRESS

    def test_restore_history(self, store, garment, stages, test_user_id, as_test_user):
        removed = store.add_service(garment, name="Bustle", is_removed=True)

        stages.restore_service(garment.id, removed.id)

        entries = _history(store, HistoryChangeType.SERVICE_RESTORED)
        assert len(entries) == 1
        assert entries[0].changed_by == test_user_id
        assert entries[0].related_service_id == removed.id
        assert entries[0].new_value == {"name": "Bustle", "status": "active"}

    def test_remove_then_restore_round_trip(self, store, garment, stages, as_test_user):
        done = store.add_service(garment, is_done=True)
        open_service = store.add_service(garment)

        assert stages.remove_service(garment.id, open_service.id) == GarmentStage.READY_FOR_PICKUP
        assert stages.restore_service(garment.id, open_service.id) == GarmentStage.IN_PROGRESS
        assert store.services[done.id].is_done is True

    def test_active_service_rejected(self, store, garment, stages, as_test_user):
        service = store.add_service(garment)

        with pytest.raises(InvalidStateError, match="not removed"):
            stages.restore_service(garment.id, service.id)

        assert _history(store, HistoryChangeType.SERVICE_RESTORED) == []

    def test_other_shop(self, store, garment, stages, as_test_user_b):
        service = store.add_service(garment, is_removed=True)

        with pytest.raises(NotFoundError):
            stages.restore_service(garment.id, service.id)

    def test_history_failure_rolls_back_restore(self, store, garment, stages, as_test_user):
        service = store.add_service(garment, is_removed=True)
        store.fail_on = {"insert_history"}

        with pytest.raises(StorageError):
            stages.restore_service(garment.id, service.id)

        assert store.services[service.id].is_removed is True


class TestConflicts:

    def test_conflicts_surface_after_budget(self, store, garment, stages, config, as_test_user):
        service = store.add_service(garment)
        store.conflict_on = {"set_service_done"}

        with pytest.raises(ConflictError):
            stages.set_service_done(garment.id, service.id, True)

        assert store.transactions_opened == config.max_conflict_retries + 1
        assert store.services[service.id].is_done is False

    def test_remove_retried_then_surfaced(self, store, garment, stages, config, as_test_user):
        service = store.add_service(garment)
        store.conflict_on = {"mark_service_removed"}

        with pytest.raises(ConflictError):
            stages.remove_service(garment.id, service.id)

        assert store.transactions_opened == config.max_conflict_retries + 1
