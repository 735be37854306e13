"""Domain models and DTOs."""

from plantvision.domain.audit import AuditAction, AuditEvent, ResourceType
from plantvision.domain.create_models import LoginRequest, PhotoUploadMetadata, RefreshRequest, TaskCreate
from plantvision.domain.equipment import EquipmentStatus
from plantvision.domain.photo import PhotoStatus
from plantvision.domain.task import TaskPriority, TaskStatus
from plantvision.domain.update_models import (
    EquipmentUpdate,
    PasswordChange,
    PhotoRejection,
    ProfileUpdate,
    TaskStatusUpdate,
    TaskUpdate,
    UserStatusUpdate,
)
from plantvision.domain.user import Caller, User, UserRole


__all__ = [
    "AuditAction",
    "AuditEvent",
    "Caller",
    "EquipmentStatus",
    "EquipmentUpdate",
    "LoginRequest",
    "PasswordChange",
    "PhotoRejection",
    "PhotoStatus",
    "PhotoUploadMetadata",
    "ProfileUpdate",
    "RefreshRequest",
    "ResourceType",
    "TaskCreate",
    "TaskPriority",
    "TaskStatus",
    "TaskStatusUpdate",
    "TaskUpdate",
    "User",
    "UserRole",
    "UserStatusUpdate",
]
