"""Centralized error handling for the API.

This module provides standardized error codes, exception-to-response mapping,
and a global exception handler for FastAPI.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Type

import structlog
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_410_GONE,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from export_service.core.logging import get_request_id
from export_service.core.metrics import MetricsCollector
from export_service.models.export_job import InvalidTransitionError
from export_service.services.exceptions import (
    ExportError,
    ExportExpiredError,
    ExportForbiddenError,
    ExportInternalError,
    ExportNotFoundError,
    ExportStateError,
    StaleGenerationError,
)

logger = structlog.get_logger(__name__)


class ErrorCode:
    """Standardized error codes for API responses.

    These codes provide machine-readable identifiers for error conditions
    that clients can use to implement error handling logic.
    """

    # Client Errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    AUTH_FAILED = "AUTH_FAILED"
    EXPORT_FORBIDDEN = "EXPORT_FORBIDDEN"
    EXPORT_NOT_FOUND = "EXPORT_NOT_FOUND"
    EXPORT_CONFLICT = "EXPORT_CONFLICT"
    EXPORT_EXPIRED = "EXPORT_EXPIRED"
    INVALID_EXPORT_STATE = "INVALID_EXPORT_STATE"

    # Server Errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    COMPONENT_UNAVAILABLE = "COMPONENT_UNAVAILABLE"


ERROR_CODE_TO_STATUS: Dict[str, int] = {
    ErrorCode.VALIDATION_ERROR: HTTP_400_BAD_REQUEST,
    ErrorCode.AUTH_FAILED: HTTP_401_UNAUTHORIZED,
    ErrorCode.EXPORT_FORBIDDEN: HTTP_403_FORBIDDEN,
    ErrorCode.EXPORT_NOT_FOUND: HTTP_404_NOT_FOUND,
    ErrorCode.EXPORT_CONFLICT: HTTP_409_CONFLICT,
    ErrorCode.EXPORT_EXPIRED: HTTP_410_GONE,
    ErrorCode.INVALID_EXPORT_STATE: HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INTERNAL_ERROR: HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.COMPONENT_UNAVAILABLE: HTTP_503_SERVICE_UNAVAILABLE,
}


ERROR_SUGGESTIONS: Dict[str, str] = {
    ErrorCode.VALIDATION_ERROR: "Check the request body and query parameters against the API schema",
    ErrorCode.AUTH_FAILED: "Provide a valid API key in the X-API-Key header",
    ErrorCode.EXPORT_FORBIDDEN: "Only the user who requested an export can access it",
    ErrorCode.EXPORT_NOT_FOUND: "The export ID does not exist. List exports with GET /api/v1/exports",
    ErrorCode.EXPORT_CONFLICT: "The export changed while the request was processed. Retry the request",
    ErrorCode.EXPORT_EXPIRED: (
        "The export file is no longer available. Create a new export to download the data again"
    ),
    ErrorCode.INVALID_EXPORT_STATE: (
        "Check the export status: only completed exports can be downloaded, only pending or "
        "processing exports cancelled, and only failed exports retried"
    ),
    ErrorCode.INTERNAL_ERROR: "An unexpected error occurred. Contact administrator if the issue persists",
    ErrorCode.COMPONENT_UNAVAILABLE: "A required system component is unavailable. Check /health for status",
}


# Order matters: subclasses must come before their base classes
EXCEPTION_TO_ERROR_CODE: Dict[Type[Exception], str] = {
    ExportNotFoundError: ErrorCode.EXPORT_NOT_FOUND,
    ExportForbiddenError: ErrorCode.EXPORT_FORBIDDEN,
    ExportExpiredError: ErrorCode.EXPORT_EXPIRED,
    ExportStateError: ErrorCode.INVALID_EXPORT_STATE,
    InvalidTransitionError: ErrorCode.INVALID_EXPORT_STATE,
    StaleGenerationError: ErrorCode.EXPORT_CONFLICT,
    ExportInternalError: ErrorCode.INTERNAL_ERROR,
    # ExportError must be last (after its subclasses)
    ExportError: ErrorCode.INTERNAL_ERROR,
}


class APIError(Exception):
    """Structured API error that can be converted to ErrorDetail response."""

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
    ):
        """Initialize an API error.

        Args:
            error_code: Machine-readable error code from ErrorCode class.
            message: Human-readable error message.
            details: Optional additional details about the error.
            suggestion: Optional suggestion for resolution. If not provided,
                        the default suggestion for the error code is used.
        """
        self.error_code = error_code
        self.message = message
        self.details = details
        self.suggestion = suggestion or ERROR_SUGGESTIONS.get(error_code)
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return ERROR_CODE_TO_STATUS.get(self.error_code, HTTP_500_INTERNAL_SERVER_ERROR)


def map_exception_to_api_error(exc: Exception) -> APIError:
    """Map export pipeline exceptions to APIError.

    Dictionary order ensures subclasses are checked before their base classes.
    """
    for exc_type, error_code in EXCEPTION_TO_ERROR_CODE.items():
        if isinstance(exc, exc_type):
            if error_code == ErrorCode.INTERNAL_ERROR:
                # Internal details stay in the logs
                return APIError(error_code, "Export is in an inconsistent state")
            return APIError(error_code, str(exc))
    return APIError(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred")


def _build_error_response(
    error_code: str,
    message: str,
    details: Optional[str] = None,
    suggestion: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a standardized error response dictionary matching ErrorDetail."""
    request_id = get_request_id()
    timestamp = datetime.now(timezone.utc).isoformat()

    response: Dict[str, Any] = {
        "error_code": error_code,
        "message": message,
        "timestamp": timestamp,
    }

    if details:
        response["details"] = details
    if request_id:
        response["request_id"] = request_id
    if suggestion:
        response["suggestion"] = suggestion

    return response


def _error_response(
    request: Request,
    error: APIError,
    status_code: int,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    MetricsCollector.record_error(error.error_code, _endpoint(request))
    return JSONResponse(
        status_code=status_code,
        content=_build_error_response(
            error_code=error.error_code,
            message=error.message,
            details=error.details,
            suggestion=error.suggestion,
        ),
        headers=headers,
    )


def _endpoint(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", "/unmatched")


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for FastAPI.

    Converts all exceptions to standardized ErrorDetail responses with
    consistent structure, proper HTTP status codes, and request tracing.
    """
    if isinstance(exc, APIError):
        logger.warning(
            "api_error",
            error_code=exc.error_code,
            message=exc.message,
            path=request.url.path,
        )
        return _error_response(request, exc, exc.status_code)

    if isinstance(exc, HTTPException):
        if isinstance(exc.detail, dict) and "error_code" in exc.detail:
            error = APIError(
                exc.detail["error_code"],
                exc.detail.get("message", str(exc.detail)),
                details=exc.detail.get("details"),
            )
        else:
            error = APIError(
                _status_to_error_code(exc.status_code),
                str(exc.detail) if exc.detail else "An error occurred",
            )
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            error_code=error.error_code,
            path=request.url.path,
        )
        return _error_response(request, error, exc.status_code, headers=getattr(exc, "headers", None))

    if isinstance(exc, RequestValidationError):
        error = APIError(
            ErrorCode.VALIDATION_ERROR,
            "Request validation failed",
            details="; ".join(
                f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
                for err in exc.errors()
            ),
        )
        logger.warning("request_validation_failed", path=request.url.path, details=error.details)
        return _error_response(request, error, HTTP_422_UNPROCESSABLE_ENTITY)

    if isinstance(exc, (ExportError, InvalidTransitionError)):
        error = map_exception_to_api_error(exc)
        log = logger.error if error.status_code >= 500 else logger.warning
        log(
            "export_error",
            error_code=error.error_code,
            error_type=type(exc).__name__,
            message=str(exc),
            path=request.url.path,
        )
        return _error_response(request, error, error.status_code)

    logger.error(
        "unhandled_exception",
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        exc_info=True,
    )
    return _error_response(
        request,
        APIError(ErrorCode.INTERNAL_ERROR, "An unexpected error occurred"),
        HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _status_to_error_code(status_code: int) -> str:
    """Infer error code from HTTP status code."""
    if status_code == HTTP_400_BAD_REQUEST:
        return ErrorCode.VALIDATION_ERROR
    elif status_code == HTTP_401_UNAUTHORIZED:
        return ErrorCode.AUTH_FAILED
    elif status_code == HTTP_403_FORBIDDEN:
        return ErrorCode.EXPORT_FORBIDDEN
    elif status_code == HTTP_404_NOT_FOUND:
        return ErrorCode.EXPORT_NOT_FOUND
    elif status_code == HTTP_410_GONE:
        return ErrorCode.EXPORT_EXPIRED
    elif status_code == HTTP_422_UNPROCESSABLE_ENTITY:
        return ErrorCode.INVALID_EXPORT_STATE
    elif status_code == HTTP_503_SERVICE_UNAVAILABLE:
        return ErrorCode.COMPONENT_UNAVAILABLE
    else:
        return ErrorCode.INTERNAL_ERROR
