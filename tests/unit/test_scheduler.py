"""Unit tests for scheduler module."""

from unittest.mock import AsyncMock, patch

import pytest

from plantvision.core import scheduler
from plantvision.core.scheduler import retry_job_with_backoff, run_audit_cleanup, start_scheduler


@pytest.fixture
def mock_asyncio_sleep():
    """Mock asyncio.sleep to avoid actual delays in retry tests."""
    with patch("plantvision.core.scheduler.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep


@pytest.mark.unit
class TestRetryJobWithBackoff:
    """Tests for retry_job_with_backoff function."""

    async def test_success_first_attempt(self, mock_asyncio_sleep):
        job = AsyncMock()

        assert await retry_job_with_backoff(job, "test_job") is True
        job.assert_awaited_once()
        mock_asyncio_sleep.assert_not_awaited()

    async def test_retries_then_succeeds(self, mock_asyncio_sleep):
        job = AsyncMock(side_effect=[RuntimeError("db locked"), None])

        assert await retry_job_with_backoff(job, "test_job", base_delay=2.0) is True
        assert job.await_count == 2
        mock_asyncio_sleep.assert_awaited_once_with(1.0)

    async def test_gives_up_after_max_retries(self, mock_asyncio_sleep):
        job = AsyncMock(side_effect=RuntimeError("still broken"))

        assert await retry_job_with_backoff(job, "test_job", max_retries=3, base_delay=2.0) is False
        assert job.await_count == 3
        assert [call.args[0] for call in mock_asyncio_sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.unit
class TestAuditCleanupJob:
    """Tests for the scheduled audit sweep."""

    async def test_run_audit_cleanup_records_scheduled_entry(self, store, audit, monkeypatch):
        monkeypatch.setattr(scheduler.settings, "audit_retention_days", 90)

        await run_audit_cleanup(store=store, audit=audit)

        entries = await store.list_records(collection="audit_logs")
        assert len(entries) == 1
        assert entries[0]["metadata"] == {"retention_days": 90, "deleted_count": 0, "trigger": "scheduled"}

    def test_disabled_job_does_not_start_scheduler(self, store, audit, monkeypatch):
        monkeypatch.setattr(scheduler.settings, "enable_audit_cleanup_job", False)

        start_scheduler(store=store, audit=audit)

        assert not scheduler.scheduler.running
        assert scheduler.scheduler.get_jobs() == []
