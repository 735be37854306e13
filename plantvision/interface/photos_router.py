"""Photo evidence endpoints and signed file downloads."""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile

from plantvision.core.blob_store import BlobStore
from plantvision.core.config import constants, settings
from plantvision.core.errors import ForbiddenError, UpstreamError
from plantvision.domain.create_models import PhotoUploadMetadata
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.update_models import PhotoRejection
from plantvision.interface.dependencies import get_blobs, get_deps, require_manager
from plantvision.interface.responses import ok, paged
from plantvision.services import photo_service
from plantvision.services.deps import Deps


router = APIRouter(prefix=f"{constants.API_PREFIX}/photos", tags=["photos"])
files_router = APIRouter(prefix=f"{constants.API_PREFIX}/files", tags=["files"])
logger = logging.getLogger(__name__)


@router.post("/upload", status_code=201)
async def upload_photo(
    photo: UploadFile = File(...),
    equipment_id: str = Form(..., alias="equipmentId"),
    latitude: float = Form(...),
    longitude: float = Form(...),
    captured_at: datetime = Form(..., alias="capturedAt"),
    gps_accuracy: float | None = Form(default=None, alias="gpsAccuracy"),
    device_info: str | None = Form(default=None, alias="deviceInfo"),
    notes: str | None = Form(default=None),
    deps: Deps = Depends(get_deps),
) -> dict[str, Any]:
    """Upload one photo (multipart field ``photo``) with its GPS and capture metadata."""
    metadata = PhotoUploadMetadata(
        equipment_id=equipment_id,
        latitude=latitude,
        longitude=longitude,
        captured_at=captured_at,
        gps_accuracy=gps_accuracy,
        device_info=device_info,
        notes=notes,
    )
    # Read at most limit + 1 bytes
    data = await photo.read(settings.max_upload_size_bytes + 1)
    created = await photo_service.upload_photo(
        deps=deps,
        metadata=metadata,
        filename=photo.filename or "photo",
        content_type=photo.content_type,
        data=data,
    )
    return ok(created, message="Photo uploaded successfully")


@router.get("")
async def list_photos(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=constants.DEFAULT_PAGE_SIZE, ge=1, le=constants.MAX_PAGE_SIZE),
    equipment_id: str | None = Query(default=None, alias="equipmentId"),
    status: PhotoStatus | None = None,
    user_id: str | None = Query(default=None, alias="userId"),
    start_date: datetime | None = Query(default=None, alias="startDate"),
    end_date: datetime | None = Query(default=None, alias="endDate"),
    deps: Deps = Depends(get_deps),
) -> dict[str, Any]:
    result = await photo_service.list_photos(
        deps=deps,
        page=page,
        limit=limit,
        equipment_id=equipment_id,
        status=status,
        user_id=user_id,
        start=start_date,
        end=end_date,
    )
    return paged("photos", result)


@router.get("/{photo_id}")
async def get_photo(photo_id: str, deps: Deps = Depends(get_deps)) -> dict[str, Any]:
    return ok(await photo_service.get_photo(deps=deps, photo_id=photo_id))


@router.put("/{photo_id}/approve")
async def approve_photo(photo_id: str, deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    return ok(await photo_service.approve_photo(deps=deps, photo_id=photo_id), message="Photo approved successfully")


@router.put("/{photo_id}/reject")
async def reject_photo(
    photo_id: str, payload: PhotoRejection, deps: Deps = Depends(require_manager)
) -> dict[str, Any]:
    photo = await photo_service.reject_photo(deps=deps, photo_id=photo_id, reason=payload.reason)
    return ok(photo, message="Photo rejected successfully")


@router.delete("/{photo_id}")
async def delete_photo(photo_id: str, deps: Deps = Depends(require_manager)) -> dict[str, Any]:
    await photo_service.delete_photo(deps=deps, photo_id=photo_id)
    return ok(message="Photo deleted successfully")


@files_router.get("/{token}")
async def download_file(token: str, blobs: BlobStore | None = Depends(get_blobs)) -> Response:
    """Serve a blob behind a signed, expiring link; the link itself is the credential."""
    if blobs is None:
        msg = "File storage is not configured"
        raise UpstreamError(msg)
    try:
        data, content_type = await photo_service.read_signed_blob(blobs=blobs, token=token)
    except PermissionError as e:
        raise ForbiddenError(str(e)) from e
    return Response(content=data, media_type=content_type, headers={"Cache-Control": "private, max-age=300"})
