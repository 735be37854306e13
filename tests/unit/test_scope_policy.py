"""Unit tests for scope_policy module."""

import pytest

from plantvision.core.errors import ForbiddenError
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.user import Caller, UserRole
from plantvision.services import scope_policy
from plantvision.services.scope_policy import combine_filters, eq
from tests.unit.seed import BOILER_AREA, TURBINE_AREA, add_photo, add_task


@pytest.fixture
def admin():
    return Caller(id="u-admin", role=UserRole.ADMIN, plant_area=BOILER_AREA)


@pytest.fixture
def manager():
    return Caller(id="u-manager", role=UserRole.MANAGER, plant_area=BOILER_AREA)


@pytest.fixture
def unscoped_manager():
    return Caller(id="u-roaming", role=UserRole.MANAGER, plant_area=None)


@pytest.fixture
def worker():
    return Caller(id="u-worker", role=UserRole.WORKER, plant_area=BOILER_AREA)


@pytest.mark.unit
class TestFilterHelpers:
    """Tests for eq and combine_filters."""

    def test_eq_escapes_quotes(self):
        """Embedded quotes cannot terminate the filter value."""
        assert eq("username", 'bob" || id != "') == 'username = "bob\\" || id != \\""'

    def test_eq_renders_booleans_as_literals(self):
        assert eq("is_active", True) == "is_active = true"
        assert eq("is_active", False) == "is_active = false"

    def test_combine_filters_skips_empty_parts(self):
        assert combine_filters("", None, 'a = "1"', "") == '(a = "1")'
        assert combine_filters('a = "1"', 'b = "2"') == '(a = "1") && (b = "2")'
        assert combine_filters() == ""


@pytest.mark.unit
class TestScopeFilters:
    """Tests for the per-resource scope filters."""

    def test_admin_sees_all_equipment_regardless_of_area(self, admin):
        """Admins are never area-scoped, even when their profile names an area."""
        assert scope_policy.equipment_scope(admin) == ""

    def test_manager_equipment_scoped_to_area(self, manager, unscoped_manager):
        assert scope_policy.equipment_scope(manager) == f'location_area = "{BOILER_AREA}"'
        assert scope_policy.equipment_scope(unscoped_manager) == ""

    def test_worker_photo_scope_adds_ownership_and_area(self, worker):
        scope = scope_policy.photo_scope(worker)
        assert 'user_id = "u-worker"' in scope
        assert f'location_area = "{BOILER_AREA}"' in scope
        assert f'status != "{PhotoStatus.DELETED}"' in scope

    def test_admin_photo_scope_still_hides_deleted(self, admin):
        assert scope_policy.photo_scope(admin) == f'(status != "{PhotoStatus.DELETED}")'

    def test_worker_task_scope_adds_ownership(self, worker, manager):
        assert 'assigned_to = "u-worker"' in scope_policy.task_scope(worker)
        assert "assigned_to" not in scope_policy.task_scope(manager)

    def test_worker_user_scope_is_self_only(self, worker, manager):
        assert scope_policy.user_scope(worker) == 'id = "u-worker"'
        assert scope_policy.user_scope(manager) == f'plant_area = "{BOILER_AREA}"'


@pytest.mark.unit
class TestGuards:
    """Tests for ensure_area_access and require_role."""

    def test_area_access_allows_matching_area(self, manager):
        scope_policy.ensure_area_access(manager, BOILER_AREA, resource="equipment")

    def test_area_access_rejects_other_area(self, manager):
        with pytest.raises(ForbiddenError, match="outside your plant area"):
            scope_policy.ensure_area_access(manager, TURBINE_AREA, resource="equipment")

    def test_area_access_ignores_admin_and_unscoped(self, admin, unscoped_manager):
        scope_policy.ensure_area_access(admin, TURBINE_AREA, resource="equipment")
        scope_policy.ensure_area_access(unscoped_manager, TURBINE_AREA, resource="equipment")

    def test_require_role(self, worker, manager):
        scope_policy.require_role(manager, UserRole.MANAGER, UserRole.ADMIN)
        with pytest.raises(ForbiddenError, match="Insufficient permissions"):
            scope_policy.require_role(worker, UserRole.MANAGER, UserRole.ADMIN)


@pytest.mark.unit
class TestScopeAgainstStore:
    """Scope filters applied to real listings agree between page and count."""

    async def test_worker_sees_only_own_tasks_in_area(self, store, world):
        """A worker never sees a colleague's task, even in the same area."""
        mine = await add_task(
            store, assigned_to=world.worker_a.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )
        await add_task(
            store, assigned_to=world.worker_a2.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
        )
        await add_task(
            store, assigned_to=world.worker_b.id, assigned_by=world.manager_b.id, equipment_id=world.turbine_id
        )

        records, total = await store.list_page(
            collection="task_details", filter_query=scope_policy.task_scope(world.worker_a)
        )

        assert total == 1
        assert [record["id"] for record in records] == [mine["id"]]

    async def test_manager_photo_listing_excludes_other_areas_and_deleted(self, store, world):
        await add_photo(store, user_id=world.worker_a.id, equipment_id=world.boiler_id)
        await add_photo(store, user_id=world.worker_a2.id, equipment_id=world.boiler_id)
        await add_photo(store, user_id=world.worker_a.id, equipment_id=world.boiler_id, status=PhotoStatus.DELETED)
        await add_photo(store, user_id=world.worker_b.id, equipment_id=world.turbine_id)

        scope = scope_policy.photo_scope(world.manager_a)
        records, total = await store.list_page(collection="photo_details", filter_query=scope)

        assert total == len(records) == 2
        assert {record["location_area"] for record in records} == {BOILER_AREA}

    async def test_page_and_count_agree_across_pages(self, store, world):
        for _ in range(5):
            await add_task(
                store, assigned_to=world.worker_a.id, assigned_by=world.manager_a.id, equipment_id=world.boiler_id
            )

        scope = scope_policy.task_scope(world.manager_a)
        first, total = await store.list_page(collection="task_details", per_page=2, filter_query=scope, sort="-created")
        last, _ = await store.list_page(
            collection="task_details", page=3, per_page=2, filter_query=scope, sort="-created"
        )

        assert total == 5
        assert len(first) == 2
        assert len(last) == 1
