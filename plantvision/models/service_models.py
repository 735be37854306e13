"""Pydantic models for service layer return types.

These models provide type safety at service boundaries for aggregated results;
single records travel as plain dictionaries straight from the store.
"""

import math
from typing import Any

from pydantic import BaseModel


class Pagination(BaseModel):
    """Page position of a listing."""

    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit) if limit else 0)


class Page(BaseModel):
    """One page of records plus the total count under the same filter."""

    items: list[dict[str, Any]]
    pagination: Pagination


class TaskStats(BaseModel):
    """Task counts for the caller's scope."""

    by_status: dict[str, int]
    by_priority: dict[str, int]
    total: int
    overdue: int
    created_recently: int
    completed_recently: int
    completion_rate: float
    period_days: int


class AuditStats(BaseModel):
    """Audit entry counts grouped by action (lower-case keys)."""

    by_action: dict[str, int]
    total_actions: int
    period_days: int | None = None


class UserStatistics(BaseModel):
    """Per-user photo and task counts."""

    photo_count: int
    task_count: int
    completed_task_count: int
    completion_rate: float


class TaskActivity(BaseModel):
    """Tasks of one status touched on one day."""

    date: str
    status: str
    count: int


class UserActivity(BaseModel):
    """Per-day activity of one user over a window."""

    period_days: int
    start_date: str
    end_date: str
    photos_by_day: dict[str, int]
    task_activity: list[TaskActivity]
    recent_actions: list[dict[str, Any]]


class UserOverview(BaseModel):
    """User population summary for managers."""

    total_users: int
    active_users: int
    inactive_users: int
    by_role: dict[str, int]
    recent_logins: int
    login_rate: float
