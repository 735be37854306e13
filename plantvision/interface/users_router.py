"""User administration endpoints (managers and admins)."""

from typing import Any

from fastapi import APIRouter, Depends, Query

from plantvision.core.config import constants
from plantvision.domain.update_models import UserStatusUpdate
from plantvision.domain.user import UserRole
from plantvision.interface.dependencies import require_manager
from plantvision.interface.responses import ok, paged
from plantvision.services import user_service
from plantvision.services.deps import Deps


router = APIRouter(prefix=f"{constants.API_PREFIX}/users", tags=["users"])


@router.get("")
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=constants.DEFAULT_PAGE_SIZE, ge=1, le=constants.MAX_PAGE_SIZE),
    role: UserRole | None = None,
    plant_area: str | None = Query(default=None, alias="plantArea", min_length=1),
    is_active: bool | None = Query(default=None, alias="isActive"),
    search: str | None = Query(default=None, min_length=1),
    deps: Deps = Depends(require_manager),
) -> dict[str, Any]:
    result = await user_service.list_users(
        deps=deps, page=page, limit=limit, role=role, plant_area=plant_area, is_active=is_active, search=search
    )
    return paged("users", result)


@router.get("/workers/list")
async def list_workers(deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok(await user_service.list_workers(deps=deps))


@router.get("/stats/overview")
async def user_overview(deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok(await user_service.get_user_overview(deps=deps))


@router.get("/{user_id}")
async def get_user(user_id: str, deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok(await user_service.get_user(deps=deps, user_id=user_id))


@router.get("/{user_id}/activity")
async def user_activity(
    user_id: str,
    days: int = Query(default=constants.USER_ACTIVITY_DEFAULT_DAYS, ge=1, le=constants.AUDIT_STATS_MAX_DAYS),
    deps: Deps = Depends(require_manager),
) -> dict[str, Any]:
    return ok(await user_service.get_user_activity(deps=deps, user_id=user_id, days=days))


@router.put("/{user_id}/status")
async def set_user_status(
    user_id: str, payload: UserStatusUpdate, deps: Deps = Depends(require_manager)
) -> dict[str, Any]:
    user = await user_service.set_user_active(deps=deps, user_id=user_id, is_active=payload.is_active)
    state = "activated" if payload.is_active else "deactivated"
    return ok(user, message=f"User {state} successfully")
