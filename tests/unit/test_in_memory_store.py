"""Unit tests for the in-memory store fake used by the service tests."""

import pytest

from plantvision.core.db_client import DatabaseError
from tests.unit.mocks import LAYOUTS


@pytest.mark.unit
class TestInMemoryStoreConstraints:
    """The fake rejects the same writes SQLite does."""

    def test_layouts_read_from_schema(self):
        tasks = LAYOUTS["tasks"]

        assert {"title", "assigned_to", "priority", "status"} <= tasks.not_null
        assert "due_date" not in tasks.not_null
        assert tasks.allowed["status"] == {"pending", "in_progress", "completed", "cancelled"}
        assert tasks.columns["priority"] == "medium"

    async def test_not_null_on_update(self, store, world):
        with pytest.raises(DatabaseError, match="NOT NULL constraint failed: users.first_name"):
            await store.update_record(collection="users", record_id=world.worker_a.id, data={"first_name": None})

        stored = await store.get_record(collection="users", record_id=world.worker_a.id)
        assert stored["first_name"] == "Worker_a"

    async def test_not_null_on_create(self, store):
        with pytest.raises(DatabaseError, match="NOT NULL constraint failed: plants.plant_name"):
            await store.create_record(collection="plants", data={"plant_code": "P-2"})

    async def test_check_constraint(self, store, world):
        with pytest.raises(DatabaseError, match="CHECK constraint failed: status"):
            await store.update_record(collection="equipment", record_id=world.boiler_id, data={"status": "exploded"})
