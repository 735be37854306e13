"""User domain models and enums."""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class UserRole(StrEnum):
    """User role, ordered by privilege."""

    WORKER = "worker"
    MANAGER = "manager"
    ADMIN = "admin"


class User(BaseModel):
    """Public user profile (never carries the password hash)."""

    id: str = Field(..., description="Unique user ID")
    created: str = Field(..., description="Creation timestamp (ISO format)")
    updated: str = Field(..., description="Last update timestamp (ISO format)")
    username: str = Field(..., description="Unique login name")
    email: str = Field(..., description="Unique email address")
    first_name: str = Field(..., description="Given name")
    last_name: str = Field(..., description="Family name")
    role: UserRole = Field(..., description="Role governing permissions")
    employee_id: str | None = Field(default=None, description="Employer-assigned identifier")
    department: str | None = Field(default=None, description="Department name")
    plant_area: str | None = Field(default=None, description="Plant area the user is scoped to (null = unscoped)")
    phone: str | None = Field(default=None, description="Contact phone number")
    is_active: bool = Field(default=True, description="Inactive users cannot authenticate")
    last_login_at: str | None = Field(default=None, description="Last successful login (ISO format)")
    preferences: dict[str, Any] = Field(default_factory=dict, description="Client preferences")


class Caller(BaseModel):
    """Identity of the authenticated principal making a request."""

    id: str = Field(..., description="User ID")
    role: UserRole = Field(..., description="Role of the caller")
    plant_area: str | None = Field(default=None, description="Caller's plant area (null = unscoped)")
    is_active: bool = Field(default=True, description="Whether the account is active")

    @property
    def is_worker(self) -> bool:
        return self.role == UserRole.WORKER

    @property
    def is_privileged(self) -> bool:
        """Managers and admins."""
        return self.role in (UserRole.MANAGER, UserRole.ADMIN)


def public_user(record: dict[str, Any]) -> dict[str, Any]:
    """Strip credential fields from a user record."""
    return User.model_validate(record).model_dump(mode="json")


def caller_from_record(record: dict[str, Any]) -> Caller:
    return Caller(
        id=record["id"],
        role=record["role"],
        plant_area=record.get("plant_area"),
        is_active=bool(record.get("is_active", False)),
    )
