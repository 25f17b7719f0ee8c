"""
Error code catalog for the fixtrail backend.

This module defines the error codes used throughout the application,
covering request validation errors, tracking service (transport) failures,
local cache (storage) failures and internal errors.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used in the application.

    Each error code maps to a default HTTP status code:
    - Validation errors (4xx): Client request issues
    - Tracking service errors (5xx): Ingestion service unreachable,
      returning non-success statuses, timing out or sending garbage
    - Storage errors (5xx): Local trajectory cache unavailable
    - Internal errors (5xx): Server-side issues
    """

    # Validation errors (4xx)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Request payload validation failed (HTTP 400)"""

    INVALID_REQUEST = "INVALID_REQUEST"
    """Malformed request structure (HTTP 400)"""

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    """Requested resource does not exist (HTTP 404)"""

    # Tracking service errors (5xx)
    TRACKING_SERVICE_UNAVAILABLE = "TRACKING_SERVICE_UNAVAILABLE"
    """Ingestion service failed or answered with an error (HTTP 502)"""

    TRACKING_SERVICE_TIMEOUT = "TRACKING_SERVICE_TIMEOUT"
    """Ingestion service did not answer in time (HTTP 504)"""

    # Storage errors (5xx)
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"
    """Local trajectory cache unavailable (HTTP 503)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_REQUEST: 400,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.TRACKING_SERVICE_UNAVAILABLE: 502,
    ErrorCode.TRACKING_SERVICE_TIMEOUT: 504,
    ErrorCode.CACHE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
