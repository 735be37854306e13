"""Audit trail: best-effort append plus query, stats and retention cleanup.

Recording never fails the caller's operation. By default entries are written
in the background (fire-and-forget), trading a small window of audit loss on
crash for request latency that does not depend on the audit write. Setting
``blocking=True`` awaits each write instead (still without raising).
"""

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from plantvision.core.config import constants
from plantvision.core.db_client import Store, format_timestamp
from plantvision.core.errors import ForbiddenError, InvalidInputError
from plantvision.core.logging import span
from plantvision.domain.audit import AuditAction, AuditEvent, ResourceType
from plantvision.domain.user import Caller, UserRole
from plantvision.models.service_models import AuditStats, Page, Pagination
from plantvision.services.scope_policy import combine_filters, eq


logger = logging.getLogger(__name__)

AUDIT_COLLECTION = "audit_logs"
AUDIT_VIEW = "audit_log_details"


class AuditTrail:
    """Appends audit entries without ever propagating a failure."""

    def __init__(self, store: Store, *, blocking: bool = False) -> None:
        self._store = store
        self._blocking = blocking
        self._pending: set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def record(self, event: AuditEvent) -> dict[str, Any] | None:
        """Write one entry now. Returns the stored entry, or None if the write failed."""
        try:
            with span("audit_service.record"):
                return await self._store.create_record(collection=AUDIT_COLLECTION, data=event.model_dump())
        except Exception as e:
            logger.error(
                "audit_record_failed",
                extra={
                    "action": event.action,
                    "resource_type": event.resource_type,
                    "resource_id": event.resource_id,
                    "error": str(e),
                },
            )
            return None

    async def emit(self, event: AuditEvent) -> None:
        """Record an entry without letting its outcome affect the caller."""
        if self._blocking:
            await self.record(event)
            return
        task = asyncio.create_task(self.record(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> None:
        """Wait for background writes scheduled so far (used at shutdown and in tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


def _window_filter(start: datetime | None, end: datetime | None) -> str:
    return combine_filters(
        f'created >= "{format_timestamp(start)}"' if start else "",
        f'created <= "{format_timestamp(end)}"' if end else "",
    )


def build_audit_filter(
    *,
    user_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> str:
    return combine_filters(
        eq("user_id", user_id) if user_id else "",
        eq("action", action.upper()) if action else "",
        eq("resource_type", resource_type.lower()) if resource_type else "",
        eq("resource_id", resource_id) if resource_id else "",
        _window_filter(start, end),
    )


async def list_audit_logs(
    *,
    store: Store,
    page: int = 1,
    limit: int = constants.DEFAULT_AUDIT_PAGE_SIZE,
    user_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> Page:
    """List audit entries newest first, each with the acting user's name."""
    with span("audit_service.list_audit_logs"):
        filter_query = build_audit_filter(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            start=start,
            end=end,
        )
        records, total = await store.list_page(
            collection=AUDIT_VIEW, page=page, per_page=limit, filter_query=filter_query, sort="-created"
        )
        return Page(items=records, pagination=Pagination.build(page=page, limit=limit, total=total))


async def get_audit_stats(
    *,
    store: Store,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    period_days: int | None = None,
) -> AuditStats:
    """Count entries grouped by action; keys are lower-case action names."""
    with span("audit_service.get_audit_stats"):
        filter_query = build_audit_filter(user_id=user_id, start=start, end=end)
        counts = await store.count_by(collection=AUDIT_COLLECTION, field="action", filter_query=filter_query)
        by_action = {action.lower(): count for action, count in counts.items()}
        return AuditStats(by_action=by_action, total_actions=sum(by_action.values()), period_days=period_days)


def window_start(days: int) -> datetime:
    return datetime.now(UTC) - timedelta(days=days)


async def sweep_audit_logs(*, store: Store, retention_days: int) -> int:
    """Delete entries older than ``retention_days`` and return how many were removed."""
    with span("audit_service.sweep_audit_logs"):
        cutoff = format_timestamp(window_start(retention_days))
        deleted = await store.delete_records(collection=AUDIT_COLLECTION, filter_query=f'created < "{cutoff}"')
        logger.info("Audit retention sweep", extra={"retention_days": retention_days, "deleted_count": deleted})
        return deleted


async def cleanup_audit_logs(
    *,
    store: Store,
    audit: AuditTrail,
    caller: Caller | None,
    retention_days: int = 365,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> int:
    """Run a retention sweep and record it as a CLEANUP entry written after the sweep.

    ``caller`` is None for the scheduled job.

    Raises:
        ForbiddenError: If the caller is not an admin
        InvalidInputError: If retention_days is outside the allowed bounds
    """
    with span("audit_service.cleanup_audit_logs"):
        # Guard: Only admins may delete audit history
        if caller is not None and caller.role != UserRole.ADMIN:
            msg = "Only administrators can cleanup audit logs"
            raise ForbiddenError(msg)

        # Guard: Retention bounds
        if not constants.AUDIT_RETENTION_MIN_DAYS <= retention_days <= constants.AUDIT_RETENTION_MAX_DAYS:
            msg = (
                f"Retention days must be between {constants.AUDIT_RETENTION_MIN_DAYS} "
                f"and {constants.AUDIT_RETENTION_MAX_DAYS}"
            )
            raise InvalidInputError(msg)

        deleted = await sweep_audit_logs(store=store, retention_days=retention_days)

        metadata: dict[str, Any] = {"retention_days": retention_days, "deleted_count": deleted}
        if caller is None:
            metadata["trigger"] = "scheduled"
        await audit.emit(
            AuditEvent(
                user_id=caller.id if caller else None,
                action=AuditAction.CLEANUP,
                resource_type=ResourceType.AUDIT_LOGS,
                metadata=metadata,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        )
        return deleted
