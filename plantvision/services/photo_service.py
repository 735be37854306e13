"""Photo service: evidence upload, scoped listing and manager review."""

import hashlib
import logging
import mimetypes
import re
import uuid
from datetime import datetime
from typing import Any

from plantvision.core.blob_store import BlobNotFoundError, BlobStore
from plantvision.core.config import constants, settings
from plantvision.core.db_client import ConcurrentUpdateError, RecordNotFoundError, format_timestamp, utc_now
from plantvision.core.errors import (
    ConflictError,
    InvalidInputError,
    NotFoundError,
    UpstreamError,
)
from plantvision.core.logging import span
from plantvision.domain.audit import AuditAction, ResourceType
from plantvision.domain.create_models import PhotoUploadMetadata
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.user import Caller, UserRole
from plantvision.models.service_models import Page, Pagination
from plantvision.services.deps import Deps
from plantvision.services.scope_policy import combine_filters, ensure_area_access, eq, photo_scope, require_role


logger = logging.getLogger(__name__)

PHOTO_VIEW = "photo_details"


def checksum(data: bytes) -> str:
    """SHA-256 hex digest of the uploaded bytes."""
    return hashlib.sha256(data).hexdigest()


def _blob_key(filename: str) -> str:
    safe_name = re.sub(r"[^A-Za-z0-9._-]", "_", filename.rsplit("/", 1)[-1].rsplit("\\", 1)[-1]) or "photo"
    return f"{settings.photos_prefix}{uuid.uuid4().hex}-{safe_name}"


def with_urls(photo: dict[str, Any], blobs: BlobStore | None) -> dict[str, Any]:
    """Attach short-lived signed download links to a photo record."""
    if blobs is None:
        return photo
    ttl = settings.signed_url_ttl_seconds
    thumbnail_key = photo.get("thumbnail_key")
    return {
        **photo,
        "photo_url": blobs.signed_url(photo["blob_key"], ttl),
        "thumbnail_url": blobs.signed_url(thumbnail_key, ttl) if thumbnail_key else None,
    }


def validate_upload(*, content_type: str | None, size: int) -> None:
    """Reject uploads with a disallowed type or an out-of-range size.

    Raises:
        InvalidInputError: If the file is empty, too large or not an allowed image type
    """
    if content_type not in settings.allowed_image_types:
        msg = f"Invalid file type. Allowed types: {', '.join(settings.allowed_image_types)}"
        raise InvalidInputError(msg)
    if size == 0:
        msg = "Photo file is empty"
        raise InvalidInputError(msg)
    if size > settings.max_upload_size_bytes:
        msg = f"Photo exceeds the {settings.max_upload_size_mb}MB upload limit"
        raise InvalidInputError(msg)


async def upload_photo(
    *,
    deps: Deps,
    metadata: PhotoUploadMetadata,
    filename: str,
    content_type: str | None,
    data: bytes,
) -> dict[str, Any]:
    """Store an uploaded photo and create its pending review record.

    Raises:
        InvalidInputError: If the file fails type/size validation
        NotFoundError: If the equipment does not exist
        ForbiddenError: If the equipment is outside the caller's plant area
        UpstreamError: If blob storage is unavailable
    """
    with span("photo_service.upload_photo"):
        caller = deps.caller
        validate_upload(content_type=content_type, size=len(data))

        try:
            equipment = await deps.store.get_record(collection="equipment", record_id=metadata.equipment_id)
        except RecordNotFoundError as e:
            msg = "Equipment not found"
            raise NotFoundError(msg) from e

        ensure_area_access(caller, equipment.get("location_area"), resource="equipment")

        if deps.blobs is None:
            msg = "Photo storage is not configured"
            raise UpstreamError(msg)

        key = _blob_key(filename)
        try:
            await deps.blobs.put(key, data, content_type or "application/octet-stream")
        except OSError as e:
            logger.error("photo_blob_upload_failed", extra={"key": key, "error": str(e)})
            msg = "Failed to store photo"
            raise UpstreamError(msg) from e

        record_data = {
            "user_id": caller.id,
            "equipment_id": metadata.equipment_id,
            "filename": filename,
            "blob_key": key,
            "thumbnail_key": None,
            "mime_type": content_type,
            "file_size": len(data),
            "latitude": metadata.latitude,
            "longitude": metadata.longitude,
            "gps_accuracy": metadata.gps_accuracy,
            "captured_at": format_timestamp(metadata.captured_at),
            "device_info": metadata.device_info,
            "notes": metadata.notes,
            "checksum": checksum(data),
            "status": PhotoStatus.PENDING,
        }
        created = await deps.store.create_record(collection="photos", data=record_data)
        photo = await deps.store.get_record(collection=PHOTO_VIEW, record_id=created["id"])

        logger.info(
            "Uploaded photo",
            extra={"photo_id": photo["id"], "equipment_id": metadata.equipment_id, "user_id": caller.id},
        )
        await deps.audit_event(
            AuditAction.CREATE,
            ResourceType.PHOTO,
            photo["id"],
            new_values={
                "equipment_id": metadata.equipment_id,
                "filename": filename,
                "file_size": len(data),
                "checksum": record_data["checksum"],
            },
        )
        return with_urls(photo, deps.blobs)


def build_photo_filter(
    *,
    equipment_id: str | None = None,
    status: PhotoStatus | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> str:
    return combine_filters(
        eq("equipment_id", equipment_id) if equipment_id else "",
        eq("status", status) if status else "",
        eq("user_id", user_id) if user_id else "",
        f'captured_at >= "{format_timestamp(start)}"' if start else "",
        f'captured_at <= "{format_timestamp(end)}"' if end else "",
    )


async def list_photos(
    *,
    deps: Deps,
    page: int = 1,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    equipment_id: str | None = None,
    status: PhotoStatus | None = None,
    user_id: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> Page:
    """List photos visible to the caller, newest first, with signed URLs."""
    with span("photo_service.list_photos"):
        filter_query = combine_filters(
            photo_scope(deps.caller),
            build_photo_filter(equipment_id=equipment_id, status=status, user_id=user_id, start=start, end=end),
        )
        records, total = await deps.store.list_page(
            collection=PHOTO_VIEW, page=page, per_page=limit, filter_query=filter_query, sort="-created"
        )
        items = [with_urls(record, deps.blobs) for record in records]
        return Page(items=items, pagination=Pagination.build(page=page, limit=limit, total=total))


async def _find_scoped_photo(deps: Deps, photo_id: str) -> dict[str, Any]:
    photo = await deps.store.get_first_record(
        collection=PHOTO_VIEW, filter_query=combine_filters(eq("id", photo_id), photo_scope(deps.caller))
    )
    if photo is None:
        msg = f"Photo {photo_id} not found"
        raise NotFoundError(msg)
    return photo


async def get_photo(*, deps: Deps, photo_id: str) -> dict[str, Any]:
    """Fetch one photo; deleted or out-of-scope photos are reported as not found."""
    with span("photo_service.get_photo"):
        photo = await _find_scoped_photo(deps, photo_id)
        await deps.audit_event(AuditAction.VIEW, ResourceType.PHOTO, photo_id)
        return with_urls(photo, deps.blobs)


async def _transition_photo(
    *,
    deps: Deps,
    photo_id: str,
    target: PhotoStatus,
    extra: dict[str, Any],
    from_statuses: tuple[PhotoStatus, ...],
) -> tuple[dict[str, Any], dict[str, Any]]:
    caller: Caller = deps.caller
    require_role(caller, UserRole.MANAGER, UserRole.ADMIN)

    try:
        async with deps.store.transaction() as tx:
            photo = await tx.get_first_record(
                collection=PHOTO_VIEW, filter_query=combine_filters(eq("id", photo_id), photo_scope(caller))
            )
            if photo is None:
                msg = f"Photo {photo_id} not found"
                raise NotFoundError(msg)

            if photo["status"] not in from_statuses:
                msg = f"Photo is {photo['status']} and cannot become {target}"
                raise ConflictError(msg)

            await tx.update_record(
                collection="photos",
                record_id=photo_id,
                data={"status": target, **extra},
                expected={"status": photo["status"]},
            )
            updated = await tx.get_record(collection=PHOTO_VIEW, record_id=photo_id)
    except ConcurrentUpdateError as e:
        msg = f"Photo {photo_id} was modified concurrently"
        raise ConflictError(msg) from e

    return photo, updated


async def approve_photo(*, deps: Deps, photo_id: str) -> dict[str, Any]:
    """Approve a pending photo."""
    with span("photo_service.approve_photo"):
        review = {"approved_by": deps.caller.id, "approved_at": utc_now()}
        before, after = await _transition_photo(
            deps=deps,
            photo_id=photo_id,
            target=PhotoStatus.APPROVED,
            extra=review,
            from_statuses=(PhotoStatus.PENDING,),
        )
        await deps.audit_event(
            AuditAction.APPROVE,
            ResourceType.PHOTO,
            photo_id,
            old_values={"status": before["status"]},
            new_values={"status": PhotoStatus.APPROVED, **review},
        )
        return with_urls(after, deps.blobs)


async def reject_photo(*, deps: Deps, photo_id: str, reason: str) -> dict[str, Any]:
    """Reject a pending photo with a reason."""
    with span("photo_service.reject_photo"):
        # Guard: A rejection must say why
        if not reason or not reason.strip():
            msg = "Rejection reason is required"
            raise InvalidInputError(msg)

        review = {"approved_by": deps.caller.id, "approved_at": utc_now(), "rejection_reason": reason.strip()}
        before, after = await _transition_photo(
            deps=deps,
            photo_id=photo_id,
            target=PhotoStatus.REJECTED,
            extra=review,
            from_statuses=(PhotoStatus.PENDING,),
        )
        await deps.audit_event(
            AuditAction.REJECT,
            ResourceType.PHOTO,
            photo_id,
            old_values={"status": before["status"]},
            new_values={"status": PhotoStatus.REJECTED, **review},
        )
        return with_urls(after, deps.blobs)


async def delete_photo(*, deps: Deps, photo_id: str) -> None:
    """Soft-delete a photo; it disappears from every listing."""
    with span("photo_service.delete_photo"):
        before, _ = await _transition_photo(
            deps=deps,
            photo_id=photo_id,
            target=PhotoStatus.DELETED,
            extra={},
            from_statuses=(PhotoStatus.PENDING, PhotoStatus.APPROVED, PhotoStatus.REJECTED),
        )
        await deps.audit_event(
            AuditAction.DELETE,
            ResourceType.PHOTO,
            photo_id,
            old_values={"status": before["status"]},
            new_values={"status": PhotoStatus.DELETED},
        )


async def read_signed_blob(*, blobs: BlobStore, token: str) -> tuple[bytes, str]:
    """Resolve a signed download token to the blob bytes and a content type.

    Raises:
        PermissionError: If the token is invalid or expired
        NotFoundError: If the blob no longer exists
    """
    key = blobs.resolve_signed_key(token)
    try:
        data = await blobs.get(key)
    except BlobNotFoundError as e:
        msg = "File not found"
        raise NotFoundError(msg) from e
    content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return data, content_type
