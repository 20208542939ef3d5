"""
Guest Queue Service Errors

Every error carries a machine-readable ``error_code`` and the HTTP status the
routers translate it to.
"""

from uuid import UUID

from fastapi import HTTPException


class QueueServiceError(Exception):
    """Base exception for queue service errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 400,
        detail: str | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class QueueValidationError(QueueServiceError):
    """Missing or malformed input (department, date, identifiers)."""

    def __init__(self, message: str):
        super().__init__(message=message, error_code="VALIDATION_ERROR", status_code=400)


class TicketNotFoundError(QueueServiceError):
    """Raised when no active ticket matches the lookup."""

    def __init__(self, queue_number: str | None = None):
        message = f"Queue {queue_number} not found" if queue_number else "Queue not found"
        super().__init__(message=message, error_code="QUEUE_NOT_FOUND", status_code=404)


class GuestUserNotFoundError(QueueServiceError):
    def __init__(self, guest_user_id: UUID | None = None):
        message = (
            f"Guest user {guest_user_id} not found" if guest_user_id else "Guest user not found"
        )
        super().__init__(message=message, error_code="GUEST_USER_NOT_FOUND", status_code=404)


class InvalidTicketStateError(QueueServiceError):
    """Raised when a ticket is not in a state that allows the requested action."""

    def __init__(self, message: str, current_status: str | None = None):
        if current_status:
            message = f"{message} Current status: {current_status}"
        super().__init__(message=message, error_code="INVALID_TICKET_STATE", status_code=409)


class AmbiguousQueueNumberError(QueueServiceError):
    """Two departments share a prefix and the caller did not say which one."""

    def __init__(self, queue_number: str, departments: list[str]):
        super().__init__(
            message=(
                f"Queue number {queue_number} exists in several departments "
                f"({', '.join(sorted(departments))}). Pass the department to disambiguate."
            ),
            error_code="AMBIGUOUS_QUEUE_NUMBER",
            status_code=409,
        )


class QueueConflictError(QueueServiceError):
    """A uniqueness rule was hit by a concurrent request."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            message=message, error_code="QUEUE_CONFLICT", status_code=409, detail=detail
        )


class QueuePersistenceError(QueueServiceError):
    """Database failure; ``detail`` carries the raw driver message."""

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            message=message, error_code="PERSISTENCE_ERROR", status_code=500, detail=detail
        )


def to_http_exception(e: QueueServiceError) -> HTTPException:
    """Convert a service error to the HTTPException the routers raise."""
    detail: dict[str, str] = {"error": e.error_code, "message": e.message}
    if e.detail:
        detail["detail"] = e.detail
    return HTTPException(status_code=e.status_code, detail=detail)
