"""Role and plant-area scoping.

Every function here is pure: it maps a caller to a store filter string. The
same string is used for a page query and its count query, so the two cannot
disagree about what the caller may see. Explicit request filters are AND-ed on
top and can only narrow the result.
"""

from plantvision.core.db_client import sanitize_param
from plantvision.core.errors import ForbiddenError
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.user import Caller, UserRole


def eq(field: str, value: str | int | float | bool) -> str:
    """Build an equality condition with the value escaped."""
    if isinstance(value, bool):
        return f"{field} = {'true' if value else 'false'}"
    return f'{field} = "{sanitize_param(value)}"'


def combine_filters(*filters: str | None) -> str:
    """AND together the non-empty filters, parenthesising each."""
    parts = [f"({f})" for f in filters if f]
    return " && ".join(parts)


def _area_filter(caller: Caller, field: str = "location_area") -> str:
    if caller.role != UserRole.ADMIN and caller.plant_area:
        return eq(field, caller.plant_area)
    return ""


def equipment_scope(caller: Caller) -> str:
    """Equipment visible to the caller (filters ``equipment``/``equipment_details``)."""
    return _area_filter(caller)


def photo_scope(caller: Caller) -> str:
    """Photos visible to the caller (filters ``photo_details``); deleted photos are never visible."""
    ownership = eq("user_id", caller.id) if caller.is_worker else ""
    return combine_filters(f'status != "{PhotoStatus.DELETED}"', ownership, _area_filter(caller))


def task_scope(caller: Caller) -> str:
    """Tasks visible to the caller (filters ``task_details``)."""
    ownership = eq("assigned_to", caller.id) if caller.is_worker else ""
    return combine_filters(ownership, _area_filter(caller))


def user_scope(caller: Caller) -> str:
    """Users visible to the caller; workers only ever see themselves."""
    if caller.is_worker:
        return eq("id", caller.id)
    return _area_filter(caller, field="plant_area")


def ensure_area_access(caller: Caller, location_area: str | None, *, resource: str) -> None:
    """Reject a write that names a resource outside the caller's plant area.

    Raises:
        ForbiddenError: If the caller is area-scoped and the area differs
    """
    if caller.role == UserRole.ADMIN or not caller.plant_area:
        return
    if location_area != caller.plant_area:
        msg = f"Access denied: {resource} is outside your plant area"
        raise ForbiddenError(msg)


def require_role(caller: Caller, *roles: UserRole) -> None:
    """Raises ForbiddenError unless the caller holds one of ``roles``."""
    if caller.role not in roles:
        msg = "Insufficient permissions"
        raise ForbiddenError(msg)
