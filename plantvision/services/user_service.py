"""User service for manager-facing user administration."""

import logging
from collections import Counter
from datetime import UTC, datetime, timedelta
from typing import Any

from plantvision.core.config import constants
from plantvision.core.db_client import format_timestamp, sanitize_param
from plantvision.core.errors import InvalidInputError, NotFoundError
from plantvision.core.logging import log_caller_event, span
from plantvision.domain.audit import AuditAction, ResourceType
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.task import TaskStatus
from plantvision.domain.user import UserRole, public_user
from plantvision.models.service_models import (
    Page,
    Pagination,
    TaskActivity,
    UserActivity,
    UserOverview,
    UserStatistics,
)
from plantvision.services import audit_service
from plantvision.services.deps import Deps
from plantvision.services.scope_policy import combine_filters, eq, require_role, user_scope


logger = logging.getLogger(__name__)

SEARCH_FIELDS = ("username", "email", "first_name", "last_name", "employee_id")


def _percentage(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


async def _find_scoped_user(deps: Deps, user_id: str) -> dict[str, Any]:
    user = await deps.store.get_first_record(
        collection="users", filter_query=combine_filters(eq("id", user_id), user_scope(deps.caller))
    )
    if user is None:
        msg = "User not found"
        raise NotFoundError(msg)
    return user


async def list_users(
    *,
    deps: Deps,
    page: int = 1,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    role: UserRole | None = None,
    plant_area: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
) -> Page:
    """List users visible to the caller, newest first, without credential fields."""
    with span("user_service.list_users"):
        require_role(deps.caller, UserRole.MANAGER, UserRole.ADMIN)
        term = sanitize_param(search) if search else ""
        filter_query = combine_filters(
            user_scope(deps.caller),
            eq("role", role) if role else "",
            eq("plant_area", plant_area) if plant_area else "",
            eq("is_active", is_active) if is_active is not None else "",
            " || ".join(f'{field} ~ "{term}"' for field in SEARCH_FIELDS) if term else "",
        )
        records, total = await deps.store.list_page(
            collection="users", page=page, per_page=limit, filter_query=filter_query, sort="-created"
        )
        items = [public_user(record) for record in records]
        return Page(items=items, pagination=Pagination.build(page=page, limit=limit, total=total))


async def get_user(*, deps: Deps, user_id: str) -> dict[str, Any]:
    """Fetch a user profile with photo and task statistics."""
    with span("user_service.get_user"):
        require_role(deps.caller, UserRole.MANAGER, UserRole.ADMIN)
        user = await _find_scoped_user(deps, user_id)

        async with deps.store.snapshot() as snap:
            photo_count = await snap.count_records(
                collection="photos",
                filter_query=combine_filters(eq("user_id", user_id), f'status != "{PhotoStatus.DELETED}"'),
            )
            tasks_by_status = await snap.count_by(
                collection="tasks", field="status", filter_query=eq("assigned_to", user_id)
            )

        task_count = sum(tasks_by_status.values())
        completed = tasks_by_status.get(TaskStatus.COMPLETED, 0)
        statistics = UserStatistics(
            photo_count=photo_count,
            task_count=task_count,
            completed_task_count=completed,
            completion_rate=_percentage(completed, task_count),
        )

        await deps.audit_event(AuditAction.VIEW, ResourceType.USER, user_id)
        return {**public_user(user), "statistics": statistics.model_dump()}


async def list_workers(*, deps: Deps) -> list[dict[str, Any]]:
    """Active workers the caller can assign tasks to, ordered by first name."""
    with span("user_service.list_workers"):
        require_role(deps.caller, UserRole.MANAGER, UserRole.ADMIN)
        filter_query = combine_filters(
            user_scope(deps.caller), eq("role", UserRole.WORKER), eq("is_active", True)
        )
        records = await deps.store.list_records(
            collection="users", per_page=constants.ACTIVITY_RECORD_LIMIT, filter_query=filter_query, sort="first_name"
        )
        return [
            {
                "id": record["id"],
                "username": record["username"],
                "first_name": record["first_name"],
                "last_name": record["last_name"],
                "employee_id": record.get("employee_id"),
                "plant_area": record.get("plant_area"),
            }
            for record in records
        ]


async def get_user_activity(
    *, deps: Deps, user_id: str, days: int = constants.USER_ACTIVITY_DEFAULT_DAYS
) -> UserActivity:
    """Per-day photo uploads, task activity and recent audit entries for one user."""
    with span("user_service.get_user_activity"):
        require_role(deps.caller, UserRole.MANAGER, UserRole.ADMIN)
        if not 1 <= days <= constants.AUDIT_STATS_MAX_DAYS:
            msg = f"Days must be between 1 and {constants.AUDIT_STATS_MAX_DAYS}"
            raise InvalidInputError(msg)

        await _find_scoped_user(deps, user_id)

        end = datetime.now(UTC)
        start = end - timedelta(days=days)
        since = format_timestamp(start)

        async with deps.store.snapshot() as snap:
            photos = await snap.list_records(
                collection="photos",
                per_page=constants.ACTIVITY_RECORD_LIMIT,
                filter_query=combine_filters(eq("user_id", user_id), f'created >= "{since}"'),
                sort="created",
            )
            tasks = await snap.list_records(
                collection="tasks",
                per_page=constants.ACTIVITY_RECORD_LIMIT,
                filter_query=combine_filters(eq("assigned_to", user_id), f'updated >= "{since}"'),
                sort="updated",
            )

        photos_by_day = dict(sorted(Counter(photo["created"][:10] for photo in photos).items()))
        task_counts = Counter((task["updated"][:10], task["status"]) for task in tasks)
        task_activity = [
            TaskActivity(date=date, status=status, count=count) for (date, status), count in sorted(task_counts.items())
        ]

        recent = await audit_service.list_audit_logs(
            store=deps.store, user_id=user_id, start=start, limit=constants.RECENT_ACTIVITY_LIMIT
        )
        return UserActivity(
            period_days=days,
            start_date=format_timestamp(start),
            end_date=format_timestamp(end),
            photos_by_day=photos_by_day,
            task_activity=task_activity,
            recent_actions=recent.items,
        )


async def set_user_active(*, deps: Deps, user_id: str, is_active: bool) -> dict[str, Any]:
    """Activate or deactivate a user; nobody may deactivate themselves.

    Raises:
        InvalidInputError: If the caller tries to deactivate their own account
        NotFoundError: If the user is outside the caller's scope
    """
    with span("user_service.set_user_active"):
        caller = deps.caller
        require_role(caller, UserRole.MANAGER, UserRole.ADMIN)

        # Guard: Prevent self-lockout
        if user_id == caller.id and not is_active:
            msg = "Cannot deactivate your own account"
            raise InvalidInputError(msg)

        user = await _find_scoped_user(deps, user_id)
        updated = await deps.store.update_record(collection="users", record_id=user_id, data={"is_active": is_active})

        log_caller_event(logger, "info", "User status changed", caller, target_user_id=user_id, is_active=is_active)
        await deps.audit_event(
            AuditAction.ACTIVATE if is_active else AuditAction.DEACTIVATE,
            ResourceType.USER,
            user_id,
            old_values={"is_active": user["is_active"]},
            new_values={"is_active": is_active},
        )
        return public_user(updated)


async def get_user_overview(*, deps: Deps) -> UserOverview:
    """Role and activity counts for the users in the caller's scope."""
    with span("user_service.get_user_overview"):
        require_role(deps.caller, UserRole.MANAGER, UserRole.ADMIN)
        scope = user_scope(deps.caller)
        since = format_timestamp(datetime.now(UTC) - timedelta(days=constants.RECENT_LOGIN_WINDOW_DAYS))

        async with deps.store.snapshot() as snap:
            by_role = await snap.count_by(collection="users", field="role", filter_query=scope)
            active = await snap.count_records(
                collection="users", filter_query=combine_filters(scope, eq("is_active", True))
            )
            recent_logins = await snap.count_records(
                collection="users", filter_query=combine_filters(scope, f'last_login_at >= "{since}"')
            )

        total = sum(by_role.values())
        return UserOverview(
            total_users=total,
            active_users=active,
            inactive_users=total - active,
            by_role=by_role,
            recent_logins=recent_logins,
            login_rate=_percentage(recent_logins, total),
        )
