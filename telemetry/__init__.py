"""
Telemetry module for structured logging and observability.

This module provides:
- JSONFormatter for structured JSON log output
- TelemetryService for logging, metrics and optional tracing
- correlation_context for background work such as refresh cycles
"""

from telemetry.service import (
    JSONFormatter,
    TelemetryService,
    correlation_context,
    get_request_id,
    get_telemetry_service,
    initialize_telemetry,
)

__all__ = [
    "JSONFormatter",
    "TelemetryService",
    "correlation_context",
    "get_request_id",
    "get_telemetry_service",
    "initialize_telemetry",
]
