"""
Error handling module for the fixtrail backend.

This module provides structured error handling with:
- ErrorCode enum for standardized error codes
- AppException, TransportError and StorageError exception classes
- Error response model and exception handlers for FastAPI integration
"""

from errors.codes import ErrorCode
from errors.exceptions import AppException, StorageError, TransportError
from errors.handlers import (
    ErrorResponse,
    handle_app_exception,
    handle_unexpected_exception,
    handle_validation_exception,
    register_exception_handlers,
)

__all__ = [
    "ErrorCode",
    "AppException",
    "StorageError",
    "TransportError",
    "ErrorResponse",
    "handle_app_exception",
    "handle_unexpected_exception",
    "handle_validation_exception",
    "register_exception_handlers",
]
