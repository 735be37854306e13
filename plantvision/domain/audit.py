"""Audit trail domain models and enums."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class AuditAction(StrEnum):
    """Actions recorded in the audit trail."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    PASSWORD_CHANGE = "PASSWORD_CHANGE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    ACTIVATE = "ACTIVATE"
    DEACTIVATE = "DEACTIVATE"
    QR_SCAN = "QR_SCAN"
    UNAUTHORIZED_ACCESS = "UNAUTHORIZED_ACCESS"
    CLEANUP = "CLEANUP"


class ResourceType(StrEnum):
    """Kinds of resource an audit entry can reference."""

    USER = "user"
    PHOTO = "photo"
    TASK = "task"
    EQUIPMENT = "equipment"
    PLANT = "plant"
    AUTH = "auth"
    AUDIT_LOGS = "audit_logs"
    ENDPOINT = "endpoint"


class AuditEvent(BaseModel):
    """One audit trail entry before it is stored."""

    user_id: str | None = Field(default=None, description="Acting user (null for anonymous/system)")
    action: str = Field(..., description="Action name, stored upper-case")
    resource_type: str = Field(..., description="Resource kind, stored lower-case")
    resource_id: str | None = Field(default=None, description="Affected resource ID")
    old_values: dict[str, Any] | None = Field(default=None, description="Previous values of changed fields")
    new_values: dict[str, Any] | None = Field(default=None, description="New values of changed fields")
    metadata: dict[str, Any] | None = Field(default=None, description="Free-form context")
    ip_address: str | None = Field(default=None, description="Client address")
    user_agent: str | None = Field(default=None, description="Client user agent")

    @field_validator("action")
    @classmethod
    def upper_action(cls, v: str) -> str:
        return str(v).upper()

    @field_validator("resource_type")
    @classmethod
    def lower_resource_type(cls, v: str) -> str:
        return str(v).lower()
