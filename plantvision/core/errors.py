"""Error taxonomy shared by services and the HTTP boundary."""

from enum import Enum

from pydantic import BaseModel


class ErrorCategory(Enum):
    """Categories of errors surfaced to API clients."""

    INVALID_INPUT = "invalid_input"
    AUTHENTICATION_FAILED = "authentication_failed"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UPSTREAM_FAILURE = "upstream_failure"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Request errors
    ERR_INVALID_INPUT = "ERR_INVALID_INPUT"
    ERR_AUTHENTICATION_FAILED = "ERR_AUTHENTICATION_FAILED"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # State errors
    ERR_CONFLICT = "ERR_CONFLICT"
    ERR_INVALID_STATE_TRANSITION = "ERR_INVALID_STATE_TRANSITION"
    ERR_TASK_IMMUTABLE = "ERR_TASK_IMMUTABLE"

    # Generic errors
    ERR_UPSTREAM_FAILURE = "ERR_UPSTREAM_FAILURE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Error envelope returned to API clients."""

    success: bool = False
    error: str
    code: str
    details: list[dict] | None = None


class PlantVisionError(Exception):
    """Base class for errors that map onto an HTTP response."""

    category: ErrorCategory = ErrorCategory.UPSTREAM_FAILURE
    code: str = ErrorCode.ERR_UNKNOWN
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, code=self.code)


class InvalidInputError(PlantVisionError):
    """Malformed or out-of-range input."""

    category = ErrorCategory.INVALID_INPUT
    code = ErrorCode.ERR_INVALID_INPUT
    status_code = 400


class AuthenticationError(PlantVisionError):
    """Missing, invalid or expired credentials, or an inactive account."""

    category = ErrorCategory.AUTHENTICATION_FAILED
    code = ErrorCode.ERR_AUTHENTICATION_FAILED
    status_code = 401


class ForbiddenError(PlantVisionError):
    """Caller's role or plant area does not permit the operation."""

    category = ErrorCategory.PERMISSION_DENIED
    code = ErrorCode.ERR_PERMISSION_DENIED
    status_code = 403


class NotFoundError(PlantVisionError):
    """Resource is absent or outside the caller's scope."""

    category = ErrorCategory.NOT_FOUND
    code = ErrorCode.ERR_NOT_FOUND
    status_code = 404


class ConflictError(PlantVisionError):
    """Operation conflicts with the resource's current state."""

    category = ErrorCategory.CONFLICT
    code = ErrorCode.ERR_CONFLICT
    status_code = 409


class InvalidTransitionError(ConflictError):
    """Requested status change is not in the transition table."""

    code = ErrorCode.ERR_INVALID_STATE_TRANSITION

    def __init__(self, from_status: str, to_status: str) -> None:
        super().__init__(f"Cannot transition from {from_status} to {to_status}")
        self.from_status = from_status
        self.to_status = to_status


class ImmutableTaskError(ConflictError):
    """Completed tasks accept no further status changes."""

    code = ErrorCode.ERR_TASK_IMMUTABLE

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task {task_id} is completed and cannot change status")
        self.task_id = task_id


class UpstreamError(PlantVisionError):
    """A collaborator (store, blob storage) failed."""

    code = ErrorCode.ERR_UPSTREAM_FAILURE
    status_code = 500
