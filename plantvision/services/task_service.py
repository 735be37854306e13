"""Task service: creation, scoped listing, status transitions and maintenance."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from plantvision.core.config import constants
from plantvision.core.db_client import RecordNotFoundError, StoreSession, format_timestamp, utc_now
from plantvision.core.errors import ConflictError, NotFoundError
from plantvision.core.logging import span
from plantvision.domain.audit import AuditAction, ResourceType
from plantvision.domain.create_models import TaskCreate
from plantvision.domain.task import TaskPriority, TaskStatus
from plantvision.domain.update_models import TaskStatusUpdate, TaskUpdate
from plantvision.domain.user import UserRole
from plantvision.models.service_models import Page, Pagination, TaskStats
from plantvision.services.deps import Deps, changed_values
from plantvision.services.scope_policy import combine_filters, ensure_area_access, eq, require_role, task_scope
from plantvision.services.task_state_machine import apply_transition


logger = logging.getLogger(__name__)

TASK_VIEW = "task_details"

OPEN_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS)


def overdue_filter(now: str) -> str:
    """Open tasks whose due date has passed."""
    open_status = " || ".join(eq("status", status) for status in OPEN_STATUSES)
    return combine_filters(f'due_date < "{now}"', open_status)


def _normalize(changes: dict[str, Any]) -> dict[str, Any]:
    return {key: format_timestamp(value) if isinstance(value, datetime) else value for key, value in changes.items()}


async def _require_active_user(session: StoreSession, user_id: str) -> dict[str, Any]:
    user = await session.get_first_record(
        collection="users", filter_query=combine_filters(eq("id", user_id), eq("is_active", True))
    )
    if user is None:
        msg = "Assigned user not found or inactive"
        raise NotFoundError(msg)
    return user


async def _get_task_for_write(session: StoreSession, task_id: str) -> dict[str, Any]:
    try:
        return await session.get_record(collection=TASK_VIEW, record_id=task_id)
    except RecordNotFoundError as e:
        msg = f"Task {task_id} not found"
        raise NotFoundError(msg) from e


async def create_task(*, deps: Deps, payload: TaskCreate) -> dict[str, Any]:
    """Create a pending task for an active assignee on equipment in the caller's area.

    Raises:
        ForbiddenError: If the caller is a worker or the equipment is outside their area
        NotFoundError: If the assignee or equipment does not exist
    """
    with span("task_service.create_task"):
        caller = deps.caller
        require_role(caller, UserRole.MANAGER, UserRole.ADMIN)

        async with deps.store.transaction() as tx:
            await _require_active_user(tx, payload.assigned_to)

            try:
                equipment = await tx.get_record(collection="equipment", record_id=payload.equipment_id)
            except RecordNotFoundError as e:
                msg = "Equipment not found"
                raise NotFoundError(msg) from e

            # Guard: Managers may only assign work in their own area
            ensure_area_access(caller, equipment.get("location_area"), resource="equipment")

            data = _normalize(
                {
                    "title": payload.title,
                    "description": payload.description,
                    "assigned_to": payload.assigned_to,
                    "assigned_by": caller.id,
                    "equipment_id": payload.equipment_id,
                    "priority": payload.priority,
                    "status": TaskStatus.PENDING,
                    "due_date": payload.due_date,
                }
            )
            created = await tx.create_record(collection="tasks", data=data)
            task = await tx.get_record(collection=TASK_VIEW, record_id=created["id"])

        logger.info("Created task", extra={"task_id": task["id"], "assigned_to": payload.assigned_to})
        await deps.audit_event(AuditAction.CREATE, ResourceType.TASK, task["id"], new_values=data)
        return task


def build_task_filter(
    *,
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    assigned_to: str | None = None,
    equipment_id: str | None = None,
    overdue: bool = False,
) -> str:
    return combine_filters(
        eq("status", status) if status else "",
        eq("priority", priority) if priority else "",
        eq("assigned_to", assigned_to) if assigned_to else "",
        eq("equipment_id", equipment_id) if equipment_id else "",
        overdue_filter(utc_now()) if overdue else "",
    )


async def list_tasks(
    *,
    deps: Deps,
    page: int = 1,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    assigned_to: str | None = None,
    equipment_id: str | None = None,
    overdue: bool = False,
) -> Page:
    """List tasks visible to the caller, newest first."""
    with span("task_service.list_tasks"):
        filter_query = combine_filters(
            task_scope(deps.caller),
            build_task_filter(
                status=status,
                priority=priority,
                assigned_to=assigned_to,
                equipment_id=equipment_id,
                overdue=overdue,
            ),
        )
        records, total = await deps.store.list_page(
            collection=TASK_VIEW, page=page, per_page=limit, filter_query=filter_query, sort="-created"
        )
        return Page(items=records, pagination=Pagination.build(page=page, limit=limit, total=total))


async def get_task(*, deps: Deps, task_id: str) -> dict[str, Any]:
    """Fetch one task; tasks outside the caller's scope are reported as not found."""
    with span("task_service.get_task"):
        task = await deps.store.get_first_record(
            collection=TASK_VIEW, filter_query=combine_filters(eq("id", task_id), task_scope(deps.caller))
        )
        if task is None:
            msg = f"Task {task_id} not found"
            raise NotFoundError(msg)

        await deps.audit_event(AuditAction.VIEW, ResourceType.TASK, task_id)
        return task


async def update_task_status(*, deps: Deps, task_id: str, request: TaskStatusUpdate) -> dict[str, Any]:
    """Move a task along its lifecycle and audit the changed fields."""
    with span("task_service.update_task_status"):
        before, after = await apply_transition(store=deps.store, caller=deps.caller, task_id=task_id, request=request)

        changes = {key: after.get(key) for key in after if after.get(key) != before.get(key) and key != "updated"}
        old_values = {key: before.get(key) for key in changes}
        await deps.audit_event(
            AuditAction.UPDATE, ResourceType.TASK, task_id, old_values=old_values, new_values=changes
        )
        return after


async def update_task(*, deps: Deps, task_id: str, payload: TaskUpdate) -> dict[str, Any]:
    """Edit task details (not status).

    Raises:
        ForbiddenError: If the caller is a worker or the task is outside their area
        NotFoundError: If the task or a new assignee does not exist
    """
    with span("task_service.update_task"):
        caller = deps.caller
        require_role(caller, UserRole.MANAGER, UserRole.ADMIN)

        async with deps.store.transaction() as tx:
            task = await _get_task_for_write(tx, task_id)
            ensure_area_access(caller, task.get("location_area"), resource="task")

            changes = _normalize(payload.changes())
            if "assigned_to" in changes:
                await _require_active_user(tx, changes["assigned_to"])

            old_values, new_values = changed_values(task, changes)
            if not new_values:
                return task

            await tx.update_record(collection="tasks", record_id=task_id, data=new_values)
            updated = await tx.get_record(collection=TASK_VIEW, record_id=task_id)

        await deps.audit_event(
            AuditAction.UPDATE, ResourceType.TASK, task_id, old_values=old_values, new_values=new_values
        )
        return updated


async def delete_task(*, deps: Deps, task_id: str) -> None:
    """Delete a task that has not been completed.

    Raises:
        ForbiddenError: If the caller is a worker or the task is outside their area
        NotFoundError: If the task does not exist
        ConflictError: If the task is completed
    """
    with span("task_service.delete_task"):
        caller = deps.caller
        require_role(caller, UserRole.MANAGER, UserRole.ADMIN)

        async with deps.store.transaction() as tx:
            task = await _get_task_for_write(tx, task_id)
            ensure_area_access(caller, task.get("location_area"), resource="task")

            # Guard: Completed work is part of the inspection record
            if task["status"] == TaskStatus.COMPLETED:
                msg = "Cannot delete completed tasks"
                raise ConflictError(msg)

            await tx.delete_record(collection="tasks", record_id=task_id)

        logger.info("Deleted task", extra={"task_id": task_id, "user_id": caller.id})
        await deps.audit_event(
            AuditAction.DELETE,
            ResourceType.TASK,
            task_id,
            old_values={
                "title": task["title"],
                "status": task["status"],
                "assigned_to": task["assigned_to"],
                "equipment_id": task["equipment_id"],
            },
        )


async def get_task_stats(*, deps: Deps, period_days: int = constants.TASK_COMPLETION_WINDOW_DAYS) -> TaskStats:
    """Task counts within the caller's scope and the completion rate over a recent window."""
    with span("task_service.get_task_stats"):
        scope = task_scope(deps.caller)
        since = format_timestamp(datetime.now(UTC) - timedelta(days=period_days))
        recent = combine_filters(scope, f'created >= "{since}"')

        async with deps.store.snapshot() as snap:
            by_status = await snap.count_by(collection=TASK_VIEW, field="status", filter_query=scope)
            by_priority = await snap.count_by(collection=TASK_VIEW, field="priority", filter_query=scope)
            overdue = await snap.count_records(
                collection=TASK_VIEW, filter_query=combine_filters(scope, overdue_filter(utc_now()))
            )
            created_recently = await snap.count_records(collection=TASK_VIEW, filter_query=recent)
            completed_recently = await snap.count_records(
                collection=TASK_VIEW, filter_query=combine_filters(recent, eq("status", TaskStatus.COMPLETED))
            )

        rate = round(completed_recently / created_recently * 100, 1) if created_recently else 0.0
        return TaskStats(
            by_status=by_status,
            by_priority=by_priority,
            total=sum(by_status.values()),
            overdue=overdue,
            created_recently=created_recently,
            completed_recently=completed_recently,
            completion_rate=rate,
            period_days=period_days,
        )
