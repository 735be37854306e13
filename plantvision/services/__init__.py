from plantvision.services import (
    audit_service,
    auth_service,
    equipment_service,
    photo_service,
    scope_policy,
    task_service,
    task_state_machine,
    user_service,
)


__all__ = [
    "audit_service",
    "auth_service",
    "equipment_service",
    "photo_service",
    "scope_policy",
    "task_service",
    "task_state_machine",
    "user_service",
]
