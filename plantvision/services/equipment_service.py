"""Equipment service: scoped catalogue lookups, scan-code lookup and status upkeep."""

import logging
from datetime import datetime
from typing import Any

from plantvision.core.config import constants
from plantvision.core.db_client import RecordNotFoundError, sanitize_param
from plantvision.core.errors import NotFoundError
from plantvision.core.logging import span
from plantvision.domain.audit import AuditAction, ResourceType
from plantvision.domain.equipment import EquipmentStatus
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.task import TaskStatus
from plantvision.domain.update_models import EquipmentUpdate
from plantvision.domain.user import UserRole
from plantvision.models.service_models import Page, Pagination
from plantvision.services import photo_service, task_service
from plantvision.services.deps import Deps, changed_values
from plantvision.services.scope_policy import (
    combine_filters,
    ensure_area_access,
    eq,
    equipment_scope,
    photo_scope,
    require_role,
    task_scope,
)


logger = logging.getLogger(__name__)

EQUIPMENT_VIEW = "equipment_details"


def search_filter(search: str | None) -> str:
    """Case-insensitive match on code, name or description."""
    if not search:
        return ""
    term = sanitize_param(search)
    return " || ".join(f'{field} ~ "{term}"' for field in ("equipment_code", "equipment_name", "description"))


async def list_equipment(
    *,
    deps: Deps,
    page: int = 1,
    limit: int = constants.DEFAULT_EQUIPMENT_PAGE_SIZE,
    plant_id: str | None = None,
    equipment_type: str | None = None,
    status: EquipmentStatus | None = None,
    search: str | None = None,
) -> Page:
    """List equipment in the caller's area, ordered by equipment code."""
    with span("equipment_service.list_equipment"):
        filter_query = combine_filters(
            equipment_scope(deps.caller),
            eq("plant_id", plant_id) if plant_id else "",
            eq("equipment_type", equipment_type) if equipment_type else "",
            eq("status", status) if status else "",
            search_filter(search),
        )
        records, total = await deps.store.list_page(
            collection=EQUIPMENT_VIEW, page=page, per_page=limit, filter_query=filter_query, sort="equipment_code"
        )
        return Page(items=records, pagination=Pagination.build(page=page, limit=limit, total=total))


async def find_equipment(*, deps: Deps, equipment_id: str) -> dict[str, Any]:
    """Scoped lookup without side effects; out-of-scope equipment is not found."""
    equipment = await deps.store.get_first_record(
        collection=EQUIPMENT_VIEW,
        filter_query=combine_filters(eq("id", equipment_id), equipment_scope(deps.caller)),
    )
    if equipment is None:
        msg = "Equipment not found"
        raise NotFoundError(msg)
    return equipment


async def get_equipment(*, deps: Deps, equipment_id: str) -> dict[str, Any]:
    """Fetch equipment with the number of photos and tasks the caller can see for it."""
    with span("equipment_service.get_equipment"):
        equipment = await find_equipment(deps=deps, equipment_id=equipment_id)

        async with deps.store.snapshot() as snap:
            photo_count = await snap.count_records(
                collection="photo_details",
                filter_query=combine_filters(photo_scope(deps.caller), eq("equipment_id", equipment_id)),
            )
            task_count = await snap.count_records(
                collection="task_details",
                filter_query=combine_filters(task_scope(deps.caller), eq("equipment_id", equipment_id)),
            )

        await deps.audit_event(AuditAction.VIEW, ResourceType.EQUIPMENT, equipment_id)
        return {**equipment, "photo_count": photo_count, "task_count": task_count}


async def get_equipment_by_qr(*, deps: Deps, qr_code: str) -> dict[str, Any]:
    """Resolve a scanned code to equipment in the caller's area."""
    with span("equipment_service.get_equipment_by_qr"):
        equipment = await deps.store.get_first_record(
            collection=EQUIPMENT_VIEW,
            filter_query=combine_filters(eq("qr_code", qr_code), equipment_scope(deps.caller)),
        )
        if equipment is None:
            msg = "Equipment not found"
            raise NotFoundError(msg)

        await deps.audit_event(
            AuditAction.QR_SCAN, ResourceType.EQUIPMENT, equipment["id"], metadata={"qr_code": qr_code}
        )
        return equipment


async def list_equipment_types(*, deps: Deps) -> list[str]:
    """Distinct equipment types in the caller's area."""
    with span("equipment_service.list_equipment_types"):
        return await deps.store.distinct_values(
            collection="equipment", field="equipment_type", filter_query=equipment_scope(deps.caller)
        )


async def update_equipment(*, deps: Deps, equipment_id: str, payload: EquipmentUpdate) -> dict[str, Any]:
    """Change equipment status, description or specifications.

    Raises:
        ForbiddenError: If the caller is a worker or the equipment is outside their area
        NotFoundError: If the equipment does not exist
    """
    with span("equipment_service.update_equipment"):
        caller = deps.caller
        require_role(caller, UserRole.MANAGER, UserRole.ADMIN)

        async with deps.store.transaction() as tx:
            try:
                equipment = await tx.get_record(collection="equipment", record_id=equipment_id)
            except RecordNotFoundError as e:
                msg = "Equipment not found"
                raise NotFoundError(msg) from e

            ensure_area_access(caller, equipment.get("location_area"), resource="equipment")

            old_values, new_values = changed_values(equipment, payload.changes())
            if new_values:
                await tx.update_record(collection="equipment", record_id=equipment_id, data=new_values)
            updated = await tx.get_record(collection=EQUIPMENT_VIEW, record_id=equipment_id)

        if new_values:
            logger.info("Updated equipment", extra={"equipment_id": equipment_id, "fields": list(new_values)})
            await deps.audit_event(
                AuditAction.UPDATE, ResourceType.EQUIPMENT, equipment_id, old_values=old_values, new_values=new_values
            )
        return updated


async def list_equipment_photos(
    *,
    deps: Deps,
    equipment_id: str,
    page: int = 1,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    status: PhotoStatus | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> Page:
    """Photos of one piece of equipment, after checking the equipment is in scope."""
    with span("equipment_service.list_equipment_photos"):
        await find_equipment(deps=deps, equipment_id=equipment_id)
        return await photo_service.list_photos(
            deps=deps, page=page, limit=limit, equipment_id=equipment_id, status=status, start=start, end=end
        )


async def list_equipment_tasks(
    *,
    deps: Deps,
    equipment_id: str,
    page: int = 1,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    status: TaskStatus | None = None,
) -> Page:
    """Tasks on one piece of equipment, after checking the equipment is in scope."""
    with span("equipment_service.list_equipment_tasks"):
        await find_equipment(deps=deps, equipment_id=equipment_id)
        return await task_service.list_tasks(
            deps=deps, page=page, limit=limit, equipment_id=equipment_id, status=status
        )
