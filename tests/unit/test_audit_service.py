"""Unit tests for audit_service module."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from plantvision.core.db_client import format_timestamp
from plantvision.core.errors import ForbiddenError, InvalidInputError
from plantvision.domain.audit import AuditAction, AuditEvent, ResourceType
from plantvision.services import audit_service
from plantvision.services.audit_service import AuditTrail
from tests.unit.mocks import InMemoryStore
from tests.unit.seed import audit_entries


class SlowAuditStore(InMemoryStore):
    """Store whose audit inserts wait until released."""

    def __init__(self) -> None:
        super().__init__()
        self.release = asyncio.Event()

    async def create_record(self, *, collection, data):
        if collection == "audit_logs":
            await self.release.wait()
        return await super().create_record(collection=collection, data=data)


def _event(action=AuditAction.VIEW, **fields) -> AuditEvent:
    return AuditEvent(action=action, resource_type=ResourceType.TASK, resource_id="t1", **fields)


async def _backdate(store: InMemoryStore, entry_id: str, days: int) -> None:
    created = format_timestamp(datetime.now(UTC) - timedelta(days=days))
    store.tables["audit_logs"][entry_id]["created"] = created


@pytest.mark.unit
class TestAuditTrail:
    """Tests for recording entries."""

    async def test_record_normalises_case(self, store):
        trail = AuditTrail(store, blocking=True)
        entry = await trail.record(
            AuditEvent(action="login_success", resource_type="AUTH", metadata={"username": "admin"})
        )

        assert entry["action"] == "LOGIN_SUCCESS"
        assert entry["resource_type"] == "auth"
        assert entry["metadata"] == {"username": "admin"}

    async def test_failed_write_returns_none(self, store):
        """A store failure is logged and swallowed, never raised."""
        store.fail_on.add("audit_logs")
        trail = AuditTrail(store, blocking=True)

        assert await trail.record(_event()) is None
        await trail.emit(_event())
        assert await store.count_records(collection="audit_logs") == 0

    async def test_emit_does_not_wait_for_write(self):
        slow = SlowAuditStore()
        trail = AuditTrail(slow)

        await asyncio.wait_for(trail.emit(_event()), timeout=1)
        assert trail.pending_count == 1
        assert await slow.count_records(collection="audit_logs") == 0

        slow.release.set()
        await trail.flush()

        assert trail.pending_count == 0
        assert await slow.count_records(collection="audit_logs") == 1

    async def test_background_failure_is_contained(self, store):
        store.fail_on.add("audit_logs")
        trail = AuditTrail(store)

        await trail.emit(_event())
        await trail.flush()

        assert trail.pending_count == 0


@pytest.mark.unit
class TestAuditQueries:
    """Tests for listing and statistics."""

    async def test_list_filters_and_joins_username(self, store, world, audit):
        await audit.emit(_event(user_id=world.manager_a.id))
        await audit.emit(_event(action=AuditAction.UPDATE, user_id=world.manager_a.id))
        await audit.emit(_event(user_id=world.worker_a.id))

        page = await audit_service.list_audit_logs(store=store, user_id=world.manager_a.id, action="view")

        assert page.pagination.total == 1
        assert page.items[0]["username"] == "manager_a"

    async def test_list_keeps_entries_of_deleted_users(self, store, audit):
        """Entries with no matching user still appear, with null names."""
        await audit.emit(_event(user_id=None))

        page = await audit_service.list_audit_logs(store=store)

        assert page.pagination.total == 1
        assert page.items[0]["username"] is None

    async def test_list_is_newest_first(self, store, audit):
        for action in (AuditAction.CREATE, AuditAction.UPDATE, AuditAction.DELETE):
            await audit.emit(_event(action=action))

        page = await audit_service.list_audit_logs(store=store, limit=2)

        assert [item["action"] for item in page.items] == ["DELETE", "UPDATE"]
        assert page.pagination.pages == 2

    async def test_stats_group_by_lowercase_action(self, store, audit):
        await audit.emit(_event(action=AuditAction.VIEW))
        await audit.emit(_event(action=AuditAction.VIEW))
        await audit.emit(_event(action=AuditAction.LOGIN_FAILED))

        stats = await audit_service.get_audit_stats(store=store, period_days=30)

        assert stats.by_action == {"view": 2, "login_failed": 1}
        assert stats.total_actions == 3

    async def test_stats_respect_window(self, store, audit):
        old = await audit.record(_event())
        await audit.emit(_event())
        await _backdate(store, old["id"], days=40)

        stats = await audit_service.get_audit_stats(store=store, start=audit_service.window_start(30))

        assert stats.total_actions == 1


@pytest.mark.unit
class TestCleanup:
    """Tests for the retention sweep."""

    async def test_cleanup_deletes_old_entries_and_records_itself(self, store, world, audit):
        old = await audit.record(_event())
        await audit.emit(_event())
        await _backdate(store, old["id"], days=400)

        deleted = await audit_service.cleanup_audit_logs(
            store=store, audit=audit, caller=world.admin, retention_days=365
        )

        assert deleted == 1
        cleanup = await audit_entries(store, action="CLEANUP")
        assert len(cleanup) == 1
        assert cleanup[0]["user_id"] == world.admin.id
        assert cleanup[0]["metadata"] == {"retention_days": 365, "deleted_count": 1}

    async def test_cleanup_is_idempotent(self, store, world, audit):
        """Running twice deletes nothing the second time; each run is still recorded."""
        old = await audit.record(_event())
        await _backdate(store, old["id"], days=400)

        first = await audit_service.cleanup_audit_logs(store=store, audit=audit, caller=world.admin)
        second = await audit_service.cleanup_audit_logs(store=store, audit=audit, caller=world.admin)

        assert (first, second) == (1, 0)
        assert len(await audit_entries(store, action="CLEANUP")) == 2

    async def test_scheduled_cleanup_has_no_user(self, store, audit):
        await audit_service.cleanup_audit_logs(store=store, audit=audit, caller=None, retention_days=30)

        entry = (await audit_entries(store, action="CLEANUP"))[0]
        assert entry["user_id"] is None
        assert entry["metadata"]["trigger"] == "scheduled"

    async def test_non_admin_rejected(self, store, world, audit):
        with pytest.raises(ForbiddenError, match="Only administrators"):
            await audit_service.cleanup_audit_logs(store=store, audit=audit, caller=world.manager_a)

    @pytest.mark.parametrize("days", [29, 3651])
    async def test_retention_bounds(self, store, world, audit, days):
        with pytest.raises(InvalidInputError, match="between 30 and 3650"):
            await audit_service.cleanup_audit_logs(
                store=store, audit=audit, caller=world.admin, retention_days=days
            )
