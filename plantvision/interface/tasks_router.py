"""Maintenance task endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from plantvision.core.config import constants
from plantvision.domain.create_models import TaskCreate
from plantvision.domain.task import TaskPriority, TaskStatus
from plantvision.domain.update_models import TaskStatusUpdate, TaskUpdate
from plantvision.interface.dependencies import get_deps, require_manager
from plantvision.interface.responses import ok, paged
from plantvision.services import task_service
from plantvision.services.deps import Deps


router = APIRouter(prefix=f"{constants.API_PREFIX}/tasks", tags=["tasks"])


@router.post("", status_code=201)
async def create_task(payload: TaskCreate, deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok(await task_service.create_task(deps=deps, payload=payload), message="Task created successfully")


@router.get("")
async def list_tasks(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=constants.DEFAULT_PAGE_SIZE, ge=1, le=constants.MAX_PAGE_SIZE),
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
    equipment_id: str | None = Query(default=None, alias="equipmentId"),
    overdue: bool = False,
    deps: Deps = Depends(get_deps),
) -> dict[str, Any]:
    result = await task_service.list_tasks(
        deps=deps,
        page=page,
        limit=limit,
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        equipment_id=equipment_id,
        overdue=overdue,
    )
    return paged("tasks", result)


@router.get("/stats")
async def task_stats(
    days: int = Query(default=constants.TASK_COMPLETION_WINDOW_DAYS, ge=1, le=constants.AUDIT_STATS_MAX_DAYS),
    deps: Deps = Depends(get_deps),
) -> dict[str, Any]:
    return ok(await task_service.get_task_stats(deps=deps, period_days=days))


@router.get("/{task_id}")
async def get_task(task_id: str, deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    return ok(await task_service.get_task(deps=deps, task_id=task_id))


@router.put("/{task_id}/status")
async def update_task_status(
    task_id: str, payload: TaskStatusUpdate, deps: Deps = Depends(get_deps)
) -> dict[str, Any]:
    """Move a task along its lifecycle; completed tasks reject every change."""
    task = await task_service.update_task_status(deps=deps, task_id=task_id, request=payload)
    return ok(task, message="Task status updated successfully")


@router.put("/{task_id}")
async def update_task(task_id: str, payload: TaskUpdate, deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok(await task_service.update_task(deps=deps, task_id=task_id, payload=payload), message="Task updated")


@router.delete("/{task_id}")
async def delete_task(task_id: str, deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    await task_service.delete_task(deps=deps, task_id=task_id)
    return ok(message="Task deleted successfully")
