"""Pydantic models for updating records in database."""

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator, model_validator

from plantvision.core.config import constants
from plantvision.domain.create_models import RequestModel
from plantvision.domain.equipment import EquipmentStatus
from plantvision.domain.task import TaskPriority, TaskStatus


def reject_null(value: Any) -> Any:
    """Omitting a field leaves it unchanged; sending null for a required column is malformed."""
    if value is None:
        msg = "Field may not be null"
        raise ValueError(msg)
    return value


class PartialUpdate(RequestModel):
    """Update body that must change at least one field."""

    @model_validator(mode="after")
    def require_one_field(self) -> "PartialUpdate":
        if not self.changes():
            msg = "At least one field must be provided"
            raise ValueError(msg)
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly supplied by the client."""
        return self.model_dump(exclude_unset=True)


class TaskStatusUpdate(RequestModel):
    """Requested task status transition."""

    status: TaskStatus = Field(..., description="Target status")
    completion_notes: str | None = Field(
        default=None, max_length=constants.COMPLETION_NOTES_MAX_LENGTH, description="Notes recorded on completion"
    )
    completion_photo_id: str | None = Field(default=None, description="Photo proving completion")


class TaskUpdate(PartialUpdate):
    """Editable task details."""

    title: str | None = Field(default=None, min_length=1, max_length=255, description="Short task title")
    description: str | None = Field(default=None, max_length=5000, description="Detailed instructions")
    priority: TaskPriority | None = Field(default=None, description="Task urgency")
    due_date: datetime | None = Field(default=None, description="Due date")
    assigned_to: str | None = Field(default=None, description="New assignee user ID")

    @field_validator("title", "priority", "assigned_to")
    @classmethod
    def required_columns_not_null(cls, value: Any) -> Any:
        return reject_null(value)


class PhotoRejection(RequestModel):
    """Reason given when rejecting a photo."""

    reason: str = Field(
        ..., min_length=1, max_length=constants.REJECTION_REASON_MAX_LENGTH, description="Why the photo was rejected"
    )


class EquipmentUpdate(PartialUpdate):
    """Mutable equipment fields."""

    status: EquipmentStatus | None = Field(default=None, description="Operational status")
    description: str | None = Field(default=None, max_length=5000, description="Free-text description")
    specifications: dict[str, Any] | None = Field(default=None, description="Technical specifications")

    @field_validator("status", "specifications")
    @classmethod
    def required_columns_not_null(cls, value: Any) -> Any:
        return reject_null(value)


class UserStatusUpdate(RequestModel):
    """Activate or deactivate a user."""

    is_active: bool = Field(..., description="New active flag")


class ProfileUpdate(PartialUpdate):
    """Self-service profile fields."""

    first_name: str | None = Field(default=None, min_length=1, max_length=100, description="Given name")
    last_name: str | None = Field(default=None, min_length=1, max_length=100, description="Family name")
    phone: str | None = Field(default=None, max_length=20, description="Contact phone number")
    preferences: dict[str, Any] | None = Field(default=None, description="Client preferences")

    @field_validator("first_name", "last_name", "preferences")
    @classmethod
    def required_columns_not_null(cls, value: Any) -> Any:
        return reject_null(value)


class PasswordChange(RequestModel):
    """Password change request."""

    current_password: str = Field(..., min_length=1, description="Current password")
    new_password: str = Field(
        ..., min_length=constants.MIN_PASSWORD_LENGTH, max_length=128, description="Replacement password"
    )
    confirm_password: str | None = Field(default=None, description="Repeat of the replacement password")

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordChange":
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            msg = "Password confirmation does not match"
            raise ValueError(msg)
        return self
