from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse


class AppError(Exception):
    """Base application error with consistent schema."""

    def __init__(
        self,
        message: str,
        code: str = "ERROR",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, code="UNAUTHORIZED", status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, code="FORBIDDEN", status_code=status.HTTP_403_FORBIDDEN)


class RateLimitedError(AppError):
    def __init__(self, message: str = "Too many requests"):
        super().__init__(message, code="RATE_LIMITED", status_code=status.HTTP_429_TOO_MANY_REQUESTS)


class ValidationError(AppError):
    """Bad input shape or missing fields. Never retried automatically."""

    def __init__(self, message: str = "Validation error", fields: list[str] | None = None):
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"fields": fields or []},
        )
        self.fields = fields or []


class NotFoundError(AppError):
    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND", status_code=status.HTTP_404_NOT_FOUND)


class StateConflictError(AppError):
    """A state machine guard was violated."""

    def __init__(self, message: str = "Conflict", code: str = "STATE_CONFLICT", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, status_code=status.HTTP_409_CONFLICT, details=details)


class AlreadyStartedError(StateConflictError):
    def __init__(self, message: str = "Cannot edit event after start time"):
        super().__init__(message, code="EVENT_STARTED")


class NotStartedError(StateConflictError):
    def __init__(self, message: str = "Event has not started"):
        super().__init__(message, code="EVENT_NOT_STARTED")


class EventCompletedError(StateConflictError):
    def __init__(self, message: str = "Event is already completed"):
        super().__init__(message, code="EVENT_COMPLETED")


class NoCodeError(StateConflictError):
    def __init__(self, message: str = "Event has no attendance code"):
        super().__init__(message, code="NO_ATTENDANCE_CODE")


class CodeInUseError(StateConflictError):
    def __init__(self, message: str = "Attendance code is active on another event"):
        super().__init__(message, code="CODE_IN_USE")


class AlreadyAttendedError(StateConflictError):
    def __init__(self, message: str = "User has already attended this event"):
        super().__init__(message, code="ALREADY_ATTENDED")


class ExhaustionError(AppError):
    def __init__(self, message: str = "Retries exhausted", code: str = "EXHAUSTED"):
        super().__init__(message, code=code, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


class CodeGenerationExhaustedError(ExhaustionError):
    def __init__(self, message: str = "Failed to generate unique code"):
        super().__init__(message, code="CODE_GENERATION_EXHAUSTED")


class StorageError(AppError):
    """Transaction or I/O failure from the document store; safe to retry with backoff."""

    def __init__(self, message: str = "Storage unavailable"):
        super().__init__(message, code="STORAGE_ERROR", status_code=status.HTTP_503_SERVICE_UNAVAILABLE)


def error_response(request: Request, exc: AppError) -> ORJSONResponse:
    body = {
        "error": {
            "message": exc.message,
            "code": exc.code,
            "details": exc.details,
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(status_code=exc.status_code, content=body)


async def app_exception_handler(request: Request, exc: AppError) -> ORJSONResponse:
    return error_response(request, exc)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    body = {
        "error": {
            "message": "Validation error",
            "code": "VALIDATION_ERROR",
            "details": {"errors": exc.errors()},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> ORJSONResponse:
    from eventledger.core.logging import get_logger
    get_logger(__name__).exception("unhandled_exception", exc_info=exc)
    body = {
        "error": {
            "message": "Internal server error",
            "code": "INTERNAL_ERROR",
            "details": {},
        }
    }
    if hasattr(request.state, "request_id"):
        body["request_id"] = request.state.request_id
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=body,
    )
