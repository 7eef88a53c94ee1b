import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from app.errors import ErrorType, ERROR_STATUS_MAP, error_type_for_status, is_retryable
from app.schemas.generation import ApiError

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Custom exception that services can raise."""

    def __init__(
        self,
        error_type: ErrorType,
        message: str,
        *,
        status: int | None = None,
        retryable: bool = False,
        request_id: str | None = None,
        details: Any = None,
    ):
        self.error_type = error_type
        self.message = message
        self.status = status
        self.retryable = retryable
        self.request_id = request_id
        self.details = details
        super().__init__(message)

    def to_api_error(self) -> ApiError:
        return ApiError(
            code=self.error_type.value,
            message=self.message,
            status=self.status,
            retryable=self.retryable,
            request_id=self.request_id,
            details=self.details,
        )


class ParseError(AppException):
    """Input text could not be turned into a label/value series."""

    def __init__(self, message: str, **kwargs):
        super().__init__(ErrorType.PARSE_ERROR, message, **kwargs)


class PromptValidationError(AppException):
    """AI response is not a usable chart configuration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(ErrorType.INVALID_RESPONSE, message, **kwargs)


class TransportError(AppException):
    """Network or HTTP failure talking to the AI provider."""

    @classmethod
    def from_status(cls, status: int, message: str | None = None, **kwargs) -> "TransportError":
        error_type = error_type_for_status(status)
        return cls(
            error_type,
            message or f"HTTP {status}",
            status=status,
            retryable=is_retryable(error_type, status),
            **kwargs,
        )


class RequestTimeoutError(AppException):
    def __init__(self, message: str = "Request timed out", **kwargs):
        super().__init__(ErrorType.TIMEOUT, message, **kwargs)


class RequestCancelledError(AppException):
    def __init__(self, message: str = "Request was cancelled", **kwargs):
        super().__init__(ErrorType.REQUEST_CANCELLED, message, **kwargs)


class CircuitOpenError(AppException):
    def __init__(self, message: str = "Circuit breaker is open", **kwargs):
        super().__init__(ErrorType.CIRCUIT_OPEN, message, **kwargs)


async def app_exception_handler(_request: Request, exc: AppException) -> JSONResponse:
    """Global handler for AppException - converts to proper HTTP response."""
    status_code = ERROR_STATUS_MAP.get(exc.error_type, 500)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.error_type.value}
    )


async def generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Global handler for unhandled exceptions - returns 500."""
    logger.error(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )
