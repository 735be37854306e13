"""Unit tests for user_service module."""

import pytest

from plantvision.core.errors import ForbiddenError, InvalidInputError, NotFoundError
from plantvision.domain.task import TaskStatus
from plantvision.domain.user import UserRole
from plantvision.services import user_service
from tests.unit.seed import add_photo, add_task, audit_entries


@pytest.mark.unit
class TestListUsers:
    """Tests for list_users and list_workers functions."""

    async def test_manager_sees_own_area_without_hashes(self, world, deps_for):
        page = await user_service.list_users(deps=deps_for(world.manager_a))

        usernames = {item["username"] for item in page.items}
        assert usernames == {"retired", "manager_a", "worker_a", "worker_a2"}
        assert all("password_hash" not in item for item in page.items)

    async def test_search_and_active_filter(self, world, deps_for):
        page = await user_service.list_users(deps=deps_for(world.admin), search="WORKER_A", is_active=True)

        assert {item["username"] for item in page.items} == {"worker_a", "worker_a2"}

    async def test_worker_rejected(self, world, deps_for):
        with pytest.raises(ForbiddenError):
            await user_service.list_users(deps=deps_for(world.worker_a))

    async def test_workers_list_is_active_and_scoped(self, world, deps_for):
        workers = await user_service.list_workers(deps=deps_for(world.manager_a))

        assert [worker["username"] for worker in workers] == ["worker_a", "worker_a2"]


@pytest.mark.unit
class TestGetUser:
    """Tests for get_user and get_user_activity functions."""

    async def test_statistics(self, store, world, deps_for):
        await add_photo(store, user_id=world.worker_a.id, equipment_id=world.boiler_id)
        for status in (TaskStatus.COMPLETED, TaskStatus.PENDING):
            await add_task(
                store,
                assigned_to=world.worker_a.id,
                assigned_by=world.manager_a.id,
                equipment_id=world.boiler_id,
                status=status,
            )

        user = await user_service.get_user(deps=deps_for(world.manager_a), user_id=world.worker_a.id)

        assert user["statistics"] == {
            "photo_count": 1,
            "task_count": 2,
            "completed_task_count": 1,
            "completion_rate": 50.0,
        }

    async def test_user_in_other_area_not_found(self, world, deps_for):
        with pytest.raises(NotFoundError):
            await user_service.get_user(deps=deps_for(world.manager_a), user_id=world.worker_b.id)

    async def test_activity_groups_by_day(self, store, world, deps_for):
        await add_photo(store, user_id=world.worker_a.id, equipment_id=world.boiler_id)
        await add_photo(store, user_id=world.worker_a.id, equipment_id=world.boiler_id)
        await add_task(
            store, assigned_to=world.worker_a.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )
        await deps_for(world.worker_a).audit_event("VIEW", "equipment", world.boiler_id)

        activity = await user_service.get_user_activity(
            deps=deps_for(world.manager_a), user_id=world.worker_a.id, days=7
        )

        assert sum(activity.photos_by_day.values()) == 2
        assert [(item.status, item.count) for item in activity.task_activity] == [("pending", 1)]
        assert [entry["action"] for entry in activity.recent_actions] == ["VIEW"]

    async def test_activity_days_bounds(self, world, deps_for):
        with pytest.raises(InvalidInputError):
            await user_service.get_user_activity(deps=deps_for(world.admin), user_id=world.worker_a.id, days=0)


@pytest.mark.unit
class TestSetUserActive:
    """Tests for set_user_active function."""

    async def test_deactivate_and_audit(self, store, world, deps_for):
        result = await user_service.set_user_active(
            deps=deps_for(world.manager_a), user_id=world.worker_a.id, is_active=False
        )

        assert result["is_active"] is False
        entry = (await audit_entries(store, action="DEACTIVATE"))[0]
        assert entry["old_values"] == {"is_active": True}
        assert entry["new_values"] == {"is_active": False}

    async def test_cannot_deactivate_self(self, world, deps_for):
        with pytest.raises(InvalidInputError, match="Cannot deactivate your own account"):
            await user_service.set_user_active(deps=deps_for(world.admin), user_id=world.admin.id, is_active=False)

    async def test_reactivate(self, store, world, deps_for):
        result = await user_service.set_user_active(
            deps=deps_for(world.admin), user_id=world.inactive_id, is_active=True
        )

        assert result["is_active"] is True
        assert len(await audit_entries(store, action="ACTIVATE")) == 1


@pytest.mark.unit
class TestUserOverview:
    """Tests for get_user_overview function."""

    async def test_overview_counts(self, store, world, deps_for):
        await store.update_record(
            collection="users", record_id=world.worker_a.id, data={"last_login_at": "2999-01-01T00:00:00.000000Z"}
        )

        overview = await user_service.get_user_overview(deps=deps_for(world.admin))

        assert overview.total_users == 7
        assert overview.active_users == 6
        assert overview.inactive_users == 1
        assert overview.by_role == {UserRole.ADMIN: 1, UserRole.MANAGER: 2, UserRole.WORKER: 4}
        assert overview.recent_logins == 1
