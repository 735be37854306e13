"""Unit tests for task_service module."""

from datetime import UTC, datetime, timedelta

import pytest

from plantvision.core.errors import ConflictError, ForbiddenError, NotFoundError
from plantvision.domain.create_models import TaskCreate
from plantvision.domain.task import TaskPriority, TaskStatus
from plantvision.domain.update_models import TaskStatusUpdate, TaskUpdate
from plantvision.services import task_service
from tests.unit.seed import add_task, audit_entries


def _create_payload(world, **overrides) -> TaskCreate:
    fields = {
        "title": "Check boiler pressure",
        "assigned_to": world.worker_a.id,
        "equipment_id": world.boiler_id,
        "priority": TaskPriority.HIGH,
    }
    fields.update(overrides)
    return TaskCreate(**fields)


@pytest.mark.unit
class TestCreateTask:
    """Tests for create_task function."""

    async def test_manager_creates_pending_task(self, store, world, deps_for):
        task = await task_service.create_task(deps=deps_for(world.manager_a), payload=_create_payload(world))

        assert task["status"] == TaskStatus.PENDING
        assert task["assigned_by"] == world.manager_a.id
        assert task["assigned_username"] == "worker_a"
        assert task["equipment_code"] == "BOILER-001"

        entries = await audit_entries(store, action="CREATE", resource_type="task")
        assert entries[0]["resource_id"] == task["id"]
        assert entries[0]["ip_address"] == "10.0.0.1"

    async def test_worker_cannot_create(self, world, deps_for):
        with pytest.raises(ForbiddenError):
            await task_service.create_task(deps=deps_for(world.worker_a), payload=_create_payload(world))

    async def test_manager_cannot_assign_outside_area(self, store, world, deps_for):
        """Naming equipment in another area is refused outright."""
        payload = _create_payload(world, assigned_to=world.worker_b.id, equipment_id=world.turbine_id)

        with pytest.raises(ForbiddenError, match="outside your plant area"):
            await task_service.create_task(deps=deps_for(world.manager_a), payload=payload)

        assert await store.count_records(collection="tasks") == 0

    async def test_inactive_assignee_rejected(self, world, deps_for):
        payload = _create_payload(world, assigned_to=world.inactive_id)

        with pytest.raises(NotFoundError, match="Assigned user not found or inactive"):
            await task_service.create_task(deps=deps_for(world.manager_a), payload=payload)

    async def test_unknown_equipment_rejected(self, world, deps_for):
        with pytest.raises(NotFoundError, match="Equipment not found"):
            await task_service.create_task(
                deps=deps_for(world.admin), payload=_create_payload(world, equipment_id="missing")
            )


@pytest.mark.unit
class TestListAndGetTasks:
    """Tests for list_tasks and get_task functions."""

    async def test_filters_only_narrow_scope(self, store, world, deps_for):
        """A worker asking for someone else's tasks gets nothing, not their tasks."""
        await add_task(
            store, assigned_to=world.worker_a2.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )

        page = await task_service.list_tasks(deps=deps_for(world.worker_a), assigned_to=world.worker_a2.id)

        assert page.items == []
        assert page.pagination.total == 0

    async def test_overdue_only_counts_open_tasks(self, store, world, deps_for):
        past = "2020-01-01T00:00:00.000000Z"
        overdue = await add_task(
            store,
            assigned_to=world.worker_a.id,
            assigned_by=world.manager_a.id,
            equipment_id=world.boiler_id,
            due_date=past,
        )
        await add_task(
            store,
            assigned_to=world.worker_a.id,
            assigned_by=world.manager_a.id,
            equipment_id=world.boiler_id,
            status=TaskStatus.COMPLETED,
            due_date=past,
        )

        page = await task_service.list_tasks(deps=deps_for(world.manager_a), overdue=True)

        assert [item["id"] for item in page.items] == [overdue["id"]]

    async def test_get_out_of_scope_task_is_not_found(self, store, world, deps_for):
        task = await add_task(
            store, assigned_to=world.worker_b.id, assigned_by=world.manager_b.id, equipment_id=world.turbine_id
        )

        with pytest.raises(NotFoundError):
            await task_service.get_task(deps=deps_for(world.manager_a), task_id=task["id"])

        found = await task_service.get_task(deps=deps_for(world.admin), task_id=task["id"])
        assert found["id"] == task["id"]
        assert len(await audit_entries(store, action="VIEW", resource_id=task["id"])) == 1


@pytest.mark.unit
class TestUpdateTaskStatus:
    """Tests for update_task_status function."""

    async def test_audits_changed_fields(self, store, world, deps_for):
        task = await add_task(
            store, assigned_to=world.worker_a.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )

        updated = await task_service.update_task_status(
            deps=deps_for(world.worker_a),
            task_id=task["id"],
            request=TaskStatusUpdate(status=TaskStatus.IN_PROGRESS),
        )

        entry = (await audit_entries(store, action="UPDATE", resource_id=task["id"]))[0]
        assert entry["old_values"]["status"] == "pending"
        assert entry["new_values"]["status"] == "in_progress"
        assert entry["new_values"]["started_at"] == updated["started_at"]
        assert "updated" not in entry["new_values"]

    async def test_worker_cannot_reopen_cancelled_task(self, store, world, deps_for):
        task = await add_task(
            store,
            assigned_to=world.worker_a.id,
            assigned_by=world.manager_a.id,
            equipment_id=world.boiler_id,
            status=TaskStatus.CANCELLED,
        )

        with pytest.raises(ForbiddenError):
            await task_service.update_task_status(
                deps=deps_for(world.worker_a),
                task_id=task["id"],
                request=TaskStatusUpdate(status=TaskStatus.PENDING),
            )

        reopened = await task_service.update_task_status(
            deps=deps_for(world.manager_a),
            task_id=task["id"],
            request=TaskStatusUpdate(status=TaskStatus.PENDING),
        )
        assert reopened["status"] == TaskStatus.PENDING


@pytest.mark.unit
class TestUpdateAndDeleteTask:
    """Tests for update_task and delete_task functions."""

    async def test_update_records_only_changed_fields(self, store, world, deps_for):
        task = await add_task(
            store, assigned_to=world.worker_a.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )
        due = datetime(2030, 1, 1, tzinfo=UTC)

        updated = await task_service.update_task(
            deps=deps_for(world.manager_a),
            task_id=task["id"],
            payload=TaskUpdate(title="Inspect unit", priority=TaskPriority.URGENT, due_date=due),
        )

        assert updated["priority"] == TaskPriority.URGENT
        assert updated["due_date"] == "2030-01-01T00:00:00.000000Z"
        entry = (await audit_entries(store, action="UPDATE", resource_id=task["id"]))[0]
        assert set(entry["new_values"]) == {"priority", "due_date"}

    async def test_noop_update_writes_nothing(self, store, world, deps_for):
        task = await add_task(
            store, assigned_to=world.worker_a.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )

        result = await task_service.update_task(
            deps=deps_for(world.manager_a), task_id=task["id"], payload=TaskUpdate(title="Inspect unit")
        )

        assert result["updated"] == task["updated"]
        assert await audit_entries(store, action="UPDATE") == []

    async def test_update_other_area_forbidden(self, store, world, deps_for):
        task = await add_task(
            store, assigned_to=world.worker_b.id, assigned_by=world.manager_b.id, equipment_id=world.turbine_id
        )

        with pytest.raises(ForbiddenError):
            await task_service.update_task(
                deps=deps_for(world.manager_a), task_id=task["id"], payload=TaskUpdate(title="Mine now")
            )

    async def test_completed_task_cannot_be_deleted(self, store, world, deps_for):
        task = await add_task(
            store,
            assigned_to=world.worker_a.id,
            assigned_by=world.manager_a.id,
            equipment_id=world.boiler_id,
            status=TaskStatus.COMPLETED,
        )

        with pytest.raises(ConflictError, match="Cannot delete completed tasks"):
            await task_service.delete_task(deps=deps_for(world.manager_a), task_id=task["id"])

    async def test_delete_removes_task_and_audits(self, store, world, deps_for):
        task = await add_task(
            store, assigned_to=world.worker_a.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )

        await task_service.delete_task(deps=deps_for(world.admin), task_id=task["id"])

        assert await store.count_records(collection="tasks") == 0
        entry = (await audit_entries(store, action="DELETE", resource_id=task["id"]))[0]
        assert entry["old_values"]["title"] == "Inspect unit"

    async def test_delete_missing_task(self, world, deps_for):
        with pytest.raises(NotFoundError):
            await task_service.delete_task(deps=deps_for(world.admin), task_id="missing")


@pytest.mark.unit
class TestTaskStats:
    """Tests for get_task_stats function."""

    async def test_counts_within_scope(self, store, world, deps_for):
        yesterday = (datetime.now(UTC) - timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
        for status in (TaskStatus.PENDING, TaskStatus.COMPLETED, TaskStatus.COMPLETED):
            await add_task(
                store,
                assigned_to=world.worker_a.id,
                assigned_by=world.manager_a.id,
                equipment_id=world.boiler_id,
                status=status,
                due_date=yesterday,
            )
        await add_task(
            store, assigned_to=world.worker_b.id, assigned_by=world.manager_b.id, equipment_id=world.turbine_id
        )

        stats = await task_service.get_task_stats(deps=deps_for(world.manager_a))

        assert stats.by_status == {"pending": 1, "completed": 2}
        assert stats.total == 3
        assert stats.overdue == 1
        assert stats.completion_rate == pytest.approx(66.7)
