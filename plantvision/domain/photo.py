"""Photo domain enums."""

from enum import StrEnum


class PhotoStatus(StrEnum):
    """Photo review lifecycle state."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELETED = "deleted"  # Terminal soft delete
