"""Pydantic models for requests that create records or sessions."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from plantvision.core.config import constants
from plantvision.domain.task import TaskPriority


class RequestModel(BaseModel):
    """Base for request bodies: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)


class LoginRequest(RequestModel):
    """Credentials presented at login."""

    username: str = Field(..., min_length=1, description="Login name")
    password: str = Field(..., min_length=1, description="Plain password")
    fcm_token: str | None = Field(default=None, description="Device push token to remember")


class RefreshRequest(RequestModel):
    """Refresh token exchange."""

    refresh_token: str = Field(..., min_length=1, description="Previously issued refresh token")


class TaskCreate(RequestModel):
    """Pydantic model for creating a task record."""

    title: str = Field(..., min_length=1, max_length=255, description="Short task title")
    description: str | None = Field(default=None, max_length=5000, description="Detailed instructions")
    assigned_to: str = Field(..., description="Assignee user ID")
    equipment_id: str = Field(..., description="Equipment the task concerns")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task urgency")
    due_date: datetime | None = Field(default=None, description="Optional due date")


class PhotoUploadMetadata(RequestModel):
    """Metadata accompanying an uploaded photo."""

    equipment_id: str = Field(..., description="Equipment photographed")
    latitude: float = Field(..., ge=-90, le=90, description="GPS latitude")
    longitude: float = Field(..., ge=-180, le=180, description="GPS longitude")
    gps_accuracy: float | None = Field(default=None, ge=0, description="GPS accuracy in metres")
    captured_at: datetime = Field(..., description="When the photo was taken")
    device_info: str | None = Field(
        default=None, max_length=constants.DEVICE_INFO_MAX_LENGTH, description="Capturing device"
    )
    notes: str | None = Field(default=None, max_length=constants.PHOTO_NOTES_MAX_LENGTH, description="Worker notes")
