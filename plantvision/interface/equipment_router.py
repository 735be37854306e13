"""Equipment catalogue endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query

from plantvision.core.config import constants
from plantvision.domain.equipment import EquipmentStatus
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.task import TaskStatus
from plantvision.domain.update_models import EquipmentUpdate
from plantvision.interface.dependencies import get_deps, require_manager
from plantvision.interface.responses import ok, paged
from plantvision.services import equipment_service
from plantvision.services.deps import Deps


router = APIRouter(prefix=f"{constants.API_PREFIX}/equipment", tags=["equipment"])


@router.get("")
async def list_equipment(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=constants.DEFAULT_EQUIPMENT_PAGE_SIZE, ge=1, le=constants.MAX_PAGE_SIZE),
    plant_id: str | None = Query(default=None, alias="plantId"),
    equipment_type: str | None = Query(default=None, alias="equipmentType", min_length=1),
    status: EquipmentStatus | None = None,
    search: str | None = Query(default=None, min_length=1),
    deps: Deps = Depends(get_deps),
) -> dict[str, Any]:
    result = await equipment_service.list_equipment(
        deps=deps,
        page=page,
        limit=limit,
        plant_id=plant_id,
        equipment_type=equipment_type,
        status=status,
        search=search,
    )
    return paged("equipment", result)


@router.get("/types")
async def list_equipment_types(deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    return ok(await equipment_service.list_equipment_types(deps=deps))


@router.get("/qr/{qr_code}")
async def get_equipment_by_qr(qr_code: str, deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    """Resolve a scanned QR code (the scan itself is audited)."""
    return ok(await equipment_service.get_equipment_by_qr(deps=deps, qr_code=qr_code))


@router.get("/{equipment_id}")
async def get_equipment(equipment_id: str, deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    return ok(await equipment_service.get_equipment(deps=deps, equipment_id=equipment_id))


@router.put("/{equipment_id}")
async def update_equipment(
    equipment_id: str, payload: EquipmentUpdate, deps: Deps = Depends(require_manager)
) -> dict[str, Any]:
    equipment = await equipment_service.update_equipment(deps=deps, equipment_id=equipment_id, payload=payload)
    return ok(equipment, message="Equipment updated successfully")


@router.get("/{equipment_id}/photos")
async def list_equipment_photos(
    equipment_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=constants.DEFAULT_PAGE_SIZE, ge=1, le=constants.MAX_PAGE_SIZE),
    status: PhotoStatus | None = None,
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    deps: Deps = Depends(get_deps),
) -> dict[str, Any]:
    result = await equipment_service.list_equipment_photos(
        deps=deps, equipment_id=equipment_id, page=page, limit=limit, status=status, start=start_date, end=end_date
    )
    return paged("photos", result)


@router.get("/{equipment_id}/tasks")
async def list_equipment_tasks(
    equipment_id: str,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=constants.DEFAULT_PAGE_SIZE, ge=1, le=constants.MAX_PAGE_SIZE),
    status: TaskStatus | None = None,
    deps: Deps = Depends(get_deps),
) -> dict[str, Any]:
    result = await equipment_service.list_equipment_tasks(
        deps=deps, equipment_id=equipment_id, page=page, limit=limit, status=status
    )
    return paged("tasks", result)
