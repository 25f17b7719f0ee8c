"""
Exception classes for the fixtrail backend.

AppException carries an error code, a human-readable message, an HTTP status
and optional details. Two subclasses mark the failure families the tracking
pipeline distinguishes:

- TransportError: the tracking service could not be reached, answered with a
  non-success status, timed out or returned an unparsable body. Surfaced as
  a failed refresh cycle.
- StorageError: the local trajectory cache could not be read or written.
  Logged and swallowed by the cache, never surfaced to the view.

Point-level input defects (bad coordinates, bad timestamps) are not
exceptions at all: the cleaner drops them.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    Example:
        raise AppException(
            error_code=ErrorCode.VALIDATION_ERROR,
            message="Refresh interval out of range",
            details={"field": "interval_ms", "reason": "Must be 2000-30000"}
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


class TransportError(AppException):
    """Failure talking to the tracking service."""


class StorageError(AppException):
    """Failure reading or writing the local trajectory cache."""


# Convenience factory functions for common error types

def validation_error(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a validation error exception."""
    return AppException(
        error_code=ErrorCode.VALIDATION_ERROR,
        message=message,
        details=details
    )


def resource_not_found(
    message: str,
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a resource not found exception."""
    return AppException(
        error_code=ErrorCode.RESOURCE_NOT_FOUND,
        message=message,
        details=details
    )


def tracking_service_unavailable(
    message: str = "Tracking service unavailable",
    details: Optional[dict[str, Any]] = None
) -> TransportError:
    """Create a transport error for a failed tracking service call."""
    return TransportError(
        error_code=ErrorCode.TRACKING_SERVICE_UNAVAILABLE,
        message=message,
        details=details
    )


def tracking_service_timeout(
    message: str = "Tracking service timed out",
    details: Optional[dict[str, Any]] = None
) -> TransportError:
    """Create a transport error for a timed out tracking service call."""
    return TransportError(
        error_code=ErrorCode.TRACKING_SERVICE_TIMEOUT,
        message=message,
        details=details
    )


def cache_unavailable(
    message: str = "Trajectory cache unavailable",
    details: Optional[dict[str, Any]] = None
) -> StorageError:
    """Create a storage error for a failed cache operation."""
    return StorageError(
        error_code=ErrorCode.CACHE_UNAVAILABLE,
        message=message,
        details=details
    )


def internal_error(
    message: str = "An unexpected error occurred",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create an internal error exception."""
    return AppException(
        error_code=ErrorCode.INTERNAL_ERROR,
        message=message,
        details=details
    )
