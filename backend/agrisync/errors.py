"""
Error types and FastAPI exception handlers.

Every error leaves the API as an ErrorResponse body. Sync conflicts are not
errors: they are ordinary per-item results of a push.
"""

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_POLYGON = "INVALID_POLYGON"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    NOT_A_CONFLICT = "NOT_A_CONFLICT"
    CONCURRENT_UPDATE = "CONCURRENT_UPDATE"
    INFRASTRUCTURE_ERROR = "INFRASTRUCTURE_ERROR"


class ErrorDetail(BaseModel):
    field: Optional[str] = Field(default=None, description="Field path where error occurred")
    message: str
    value: Optional[Any] = None


class ErrorResponse(BaseModel):
    code: ErrorCode
    message: str
    details: Optional[List[ErrorDetail]] = None


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, details: Optional[List[ErrorDetail]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class InvalidPolygon(AppError):
    """Fewer than three vertices or a coordinate out of range."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = ErrorCode.INVALID_POLYGON


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND


class NotAConflict(AppError):
    """Raised when resolving a sync log entry whose status is not 'conflict'."""

    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.NOT_A_CONFLICT


class ConcurrentUpdate(AppError):
    """The row changed under a direct write (version check failed); reload and retry."""

    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.CONCURRENT_UPDATE


class BadRequest(AppError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = ErrorCode.VALIDATION_ERROR


class BatchTooLarge(AppError):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    code = ErrorCode.BATCH_TOO_LARGE


class AlreadyExists(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.ALREADY_EXISTS


class InfrastructureError(AppError):
    """Storage unavailable; the whole batch was rolled back and may be retried."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = ErrorCode.INFRASTRUCTURE_ERROR


def details_from_pydantic(errors: List[Dict[str, Any]]) -> List[ErrorDetail]:
    details = []
    for error in errors:
        loc = ".".join(str(x) for x in error.get("loc", []))
        value = error.get("input")
        details.append(
            ErrorDetail(
                field=loc or None,
                message=error.get("msg", "Invalid value"),
                value=value if isinstance(value, (str, int, float, bool, type(None))) else None,
            )
        )
    return details


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json", exclude_none=True),
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    body = ErrorResponse(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        details=details_from_pydantic(exc.errors()),
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=body.model_dump(mode="json", exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
