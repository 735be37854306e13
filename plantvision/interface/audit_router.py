"""Audit trail query and retention endpoints."""

from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from plantvision.core.config import constants
from plantvision.core.db_client import format_timestamp
from plantvision.domain.audit import AuditAction, ResourceType
from plantvision.interface.dependencies import require_admin, require_manager
from plantvision.interface.responses import ok, paged
from plantvision.services import audit_service
from plantvision.services.deps import Deps


router = APIRouter(prefix=f"{constants.API_PREFIX}/audit", tags=["audit"])

PageQuery = Annotated[int, Query(ge=1)]
LimitQuery = Annotated[int, Query(ge=1, le=constants.MAX_PAGE_SIZE)]
DaysQuery = Annotated[int, Query(ge=1, le=constants.AUDIT_STATS_MAX_DAYS)]


def _period(days: int) -> tuple[datetime, dict[str, Any]]:
    start = audit_service.window_start(days)
    return start, {
        "days": days,
        "start_date": format_timestamp(start),
        "end_date": format_timestamp(datetime.now(UTC)),
    }


@router.get("/logs")
async def list_logs(
    page: PageQuery = 1,
    limit: LimitQuery = constants.DEFAULT_AUDIT_PAGE_SIZE,
    user_id: str | None = Query(default=None, alias="userId"),
    action: str | None = Query(default=None, min_length=1),
    resource_type: str | None = Query(default=None, alias="resourceType", min_length=1),
    resource_id: str | None = Query(default=None, alias="resourceId"),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    deps: Deps = Depends(require_manager),
) -> dict[str, Any]:
    result = await audit_service.list_audit_logs(
        store=deps.store,
        page=page,
        limit=limit,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        start=start_date,
        end=end_date,
    )
    return paged("logs", result)


@router.get("/stats")
async def audit_stats(
    days: DaysQuery = constants.AUDIT_STATS_DEFAULT_DAYS,
    user_id: str | None = Query(default=None, alias="userId"),
    deps: Deps = Depends(require_manager),
) -> dict[str, Any]:
    start, period = _period(days)
    stats = await audit_service.get_audit_stats(store=deps.store, user_id=user_id, start=start, period_days=days)
    return ok({"period": period, "action_counts": stats.by_action, "total_actions": stats.total_actions})


@router.get("/user/{user_id}")
async def user_audit_logs(
    user_id: str,
    page: PageQuery = 1,
    limit: LimitQuery = constants.DEFAULT_AUDIT_PAGE_SIZE,
    action: str | None = Query(default=None, min_length=1),
    days: DaysQuery = constants.AUDIT_STATS_DEFAULT_DAYS,
    deps: Deps = Depends(require_manager),
) -> dict[str, Any]:
    """One user's entries and per-action counts over the last ``days`` days."""
    start, period = _period(days)
    logs = await audit_service.list_audit_logs(
        store=deps.store, page=page, limit=limit, user_id=user_id, action=action, start=start
    )
    stats = await audit_service.get_audit_stats(store=deps.store, user_id=user_id, start=start, period_days=days)
    return paged("logs", logs, user_id=user_id, period=period, stats=stats.by_action)


@router.get("/resource/{resource_type}/{resource_id}")
async def resource_audit_logs(
    resource_type: str,
    resource_id: str,
    page: PageQuery = 1,
    limit: LimitQuery = constants.DEFAULT_AUDIT_PAGE_SIZE,
    deps: Deps = Depends(require_manager),
) -> dict[str, Any]:
    logs = await audit_service.list_audit_logs(
        store=deps.store, page=page, limit=limit, resource_type=resource_type, resource_id=resource_id
    )
    return paged("logs", logs, resource_type=resource_type.lower(), resource_id=resource_id)


@router.post("/cleanup")
async def cleanup(
    retention_days: int = Query(
        default=365,
        alias="retentionDays",
        ge=constants.AUDIT_RETENTION_MIN_DAYS,
        le=constants.AUDIT_RETENTION_MAX_DAYS,
    ),
    deps: Deps = Depends(require_admin),
) -> dict[str, Any]:
    """Delete entries older than the retention window; the sweep is itself audited."""
    deleted = await audit_service.cleanup_audit_logs(
        store=deps.store,
        audit=deps.audit,
        caller=deps.caller,
        retention_days=retention_days,
        ip_address=deps.ip_address,
        user_agent=deps.user_agent,
    )
    return ok(
        {"message": "Audit logs cleanup completed", "deleted_count": deleted, "retention_days": retention_days}
    )


@router.get("/actions")
async def list_actions(_deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok([action.value for action in AuditAction])


@router.get("/resource-types")
async def list_resource_types(_deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok([resource_type.value for resource_type in ResourceType])
