"""Success envelope helpers shared by the routers."""

from typing import Any

from pydantic import BaseModel

from plantvision.models.service_models import Page


def ok(data: Any = None, **extra: Any) -> dict[str, Any]:
    """Wrap a payload as ``{"success": true, "data": ...}``."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    body: dict[str, Any] = {"success": True, "data": data}
    body.update(extra)
    return body


def paged(key: str, page: Page, **extra: Any) -> dict[str, Any]:
    """Envelope for a listing: items under ``key`` next to the pagination block."""
    return ok({key: page.items, "pagination": page.pagination.model_dump(), **extra})
