"""Custom exception hierarchy and handlers."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    status_code = 400
    code = "app_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundException(AppException):
    """Raised when entity is not found."""

    status_code = 404
    code = "not_found"


class ConflictException(AppException):
    """Raised when entity conflicts with current state."""

    status_code = 409
    code = "conflict"


class UnauthorizedException(AppException):
    """Raised when user has no rights for operation."""

    status_code = 403
    code = "forbidden"


class ValidationException(AppException):
    """Raised when a field is missing or malformed.

    ``details`` maps field names to human-readable problems.
    """

    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, fields: dict[str, str] | None = None) -> None:
        super().__init__(message, details=dict(fields or {}))

    @property
    def fields(self) -> dict[str, str]:
        return self.details or {}


class CapacityExceededException(AppException):
    """Raised when a schedule has no free seats left."""

    status_code = 409
    code = "capacity_exceeded"


class DuplicateBookingException(AppException):
    """Raised when a student already holds a confirmed seat on the schedule."""

    status_code = 409
    code = "duplicate_booking"


class CancellationWindowExpiredException(AppException):
    """Raised when a booking is cancelled too close to the lesson start."""

    status_code = 422
    code = "cancellation_window_expired"

    def __init__(self, hours_remaining: float, threshold_hours: float) -> None:
        self.hours_remaining = hours_remaining
        self.threshold_hours = threshold_hours
        super().__init__(
            f"Bookings can only be cancelled at least {threshold_hours:g} hours before the lesson "
            f"starts ({max(hours_remaining, 0):.1f} hours remaining)",
            details={
                "hours_remaining": round(hours_remaining, 2),
                "threshold_hours": threshold_hours,
            },
        )


class InvalidStateTransitionException(AppException):
    """Raised when an entity is asked to leave a state it cannot leave."""

    status_code = 409
    code = "invalid_state_transition"

    def __init__(self, entity: str, entity_id: Any, from_status: str, action: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        self.from_status = from_status
        self.action = action
        super().__init__(f"Cannot {action} {entity} in status '{from_status}'")


async def app_exception_handler(_: Request, exc: AppException) -> JSONResponse:
    """Handle custom domain exceptions."""
    if isinstance(exc, InvalidStateTransitionException):
        logger.warning(
            "Invalid state transition: %s %s %s -> %s",
            exc.entity,
            exc.entity_id,
            exc.from_status,
            exc.action,
        )
    content: dict[str, Any] = {"code": exc.code, "message": exc.message}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content={"error": content})


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTP exceptions in unified shape."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "http_error", "message": str(exc.detail)}},
    )


async def unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.exception("Unhandled error: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


def register_exception_handlers(app) -> None:
    """Register global exception handlers."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
