"""
Exception handlers for the fixtrail backend.

This module converts exceptions raised by the view-layer endpoints into
structured JSON error responses:

- AppException (including TransportError and StorageError) keeps its own
  error code, message, status and details.
- FastAPI request validation failures become VALIDATION_ERROR responses
  listing the offending fields.
- Anything else is logged with its stack trace and answered with a generic
  INTERNAL_ERROR, never exposing internal details.
"""

import logging
import uuid
from typing import Any, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from errors.codes import ErrorCode, get_default_status_code
from errors.exceptions import AppException

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Structured error response returned by every failing endpoint."""
    error_code: str
    message: str
    details: Optional[dict[str, Any]] = None
    request_id: str


def get_request_id(request: Request) -> str:
    """
    Get the request ID set by RequestIDMiddleware, or generate one.

    Args:
        request: The FastAPI request object

    Returns:
        The request ID string
    """
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return request_id
    return str(uuid.uuid4())


def _error_json(status_code: int, response: ErrorResponse) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=response.model_dump(exclude_none=True),
    )


async def handle_app_exception(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle known application exceptions and convert to structured response.

    Args:
        request: The FastAPI request object
        exc: The AppException that was raised

    Returns:
        JSONResponse with structured error format
    """
    request_id = get_request_id(request)

    logger.warning(
        f"Application error: {exc.message}",
        extra={"extra_data": {
            "error_code": exc.error_code.value,
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method,
        }}
    )

    return _error_json(exc.status_code, ErrorResponse(
        error_code=exc.error_code.value,
        message=exc.message,
        details=exc.details,
        request_id=request_id,
    ))


async def handle_validation_exception(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request payload validation failures.

    Each pydantic error is reduced to its field location and message so the
    view can point at the offending input.
    """
    request_id = get_request_id(request)
    fields = {
        ".".join(str(part) for part in error.get("loc", ()) if part != "body"): error.get("msg", "")
        for error in exc.errors()
    }

    logger.info(
        "Request validation failed",
        extra={"extra_data": {"fields": fields, "path": request.url.path}}
    )

    return _error_json(get_default_status_code(ErrorCode.VALIDATION_ERROR), ErrorResponse(
        error_code=ErrorCode.VALIDATION_ERROR.value,
        message="Invalid request payload",
        details={"fields": fields},
        request_id=request_id,
    ))


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions safely without exposing internal details.

    Args:
        request: The FastAPI request object
        exc: The unexpected exception that was raised

    Returns:
        JSONResponse with a generic error message
    """
    request_id = get_request_id(request)

    logger.error(
        "Unexpected error occurred",
        extra={"extra_data": {
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        }},
        exc_info=exc,
    )

    return _error_json(500, ErrorResponse(
        error_code=ErrorCode.INTERNAL_ERROR.value,
        message="An unexpected error occurred. Please try again later.",
        request_id=request_id,
    ))


def register_exception_handlers(app) -> None:
    """
    Register all exception handlers with the FastAPI application.

    Args:
        app: The FastAPI application instance
    """
    app.add_exception_handler(AppException, handle_app_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_exception)
    app.add_exception_handler(Exception, handle_unexpected_exception)

    logger.debug("Exception handlers registered")
