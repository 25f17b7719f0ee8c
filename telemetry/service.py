"""
Telemetry service for structured logging and observability.

This module provides structured JSON logging with correlation ids, optional
OpenTelemetry tracing and lightweight metrics recorded as log entries.
HTTP requests are correlated through RequestIDMiddleware; refresh cycles run
under their own "cycle-<n>" correlation id so every log line of one cycle can
be grouped together.
"""

import logging
import json
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Iterator, Optional, Dict

from middleware.request_id import request_id_var


class JSONFormatter(logging.Formatter):
    """
    Log formatter that outputs one JSON object per line.

    Each entry contains timestamp, level, message, logger and request_id,
    plus module/function/line, any 'extra_data' attached to the record and
    the formatted exception if present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "request_id": request_id_var.get(""),
        }

        if record.module:
            log_data["module"] = record.module
        if record.funcName and record.funcName != "<module>":
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data.update(extra_data)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if record.stack_info:
            log_data["stack_trace"] = record.stack_info

        return json.dumps(log_data, default=str)


class TelemetryService:
    """
    Centralized telemetry service for logging, metrics, and tracing.

    This service provides:
    - Structured JSON logging on stdout
    - OpenTelemetry tracing when an OTLP endpoint is configured
    - Metrics recorded as debug log entries
    - One structured record per refresh cycle
    """

    def __init__(self, settings: Optional[Any] = None):
        """
        Initialize the telemetry service.

        Args:
            settings: Application settings providing log_level, otel_endpoint
                and otel_service_name
        """
        self.settings = settings
        self.tracer = None
        self._logger: logging.Logger = logging.getLogger("telemetry")
        self._setup_logging()
        self._setup_tracing()

    def _setup_logging(self) -> None:
        """Install the JSON formatter on the root logger."""
        log_level_str = getattr(self.settings, "log_level", None) or "INFO"
        log_level = getattr(logging, log_level_str.upper(), logging.INFO)

        root_logger = logging.getLogger()
        root_logger.setLevel(log_level)

        # Remove existing handlers to avoid duplicate logs
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setLevel(log_level)
        stdout_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(stdout_handler)

        self._logger.info("Telemetry service initialized", extra={
            "extra_data": {"log_level": log_level_str}
        })

    def _setup_tracing(self) -> None:
        """Configure OpenTelemetry tracing if an endpoint is configured."""
        otel_endpoint = getattr(self.settings, "otel_endpoint", None)
        if not otel_endpoint:
            self._logger.debug("OpenTelemetry endpoint not configured, tracing disabled")
            return

        try:
            from opentelemetry import trace
            from opentelemetry.sdk.trace import TracerProvider
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.resources import Resource, SERVICE_NAME
        except ImportError as e:
            self._logger.warning(
                "OpenTelemetry packages not installed, tracing disabled",
                extra={"extra_data": {"error": str(e)}}
            )
            return

        service_name = getattr(self.settings, "otel_service_name", "fixtrail")
        provider = TracerProvider(resource=Resource(attributes={SERVICE_NAME: service_name}))
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=otel_endpoint)))
        trace.set_tracer_provider(provider)
        self.tracer = trace.get_tracer(service_name)

        self._logger.info("OpenTelemetry tracing configured", extra={
            "extra_data": {
                "otel_endpoint": otel_endpoint,
                "service_name": service_name
            }
        })

    def log_cycle(
        self,
        device_id: str,
        status: str,
        duration_ms: float,
        history_points: int = 0,
        trajectory_points: int = 0,
        used_cache: bool = False,
        error: Optional[str] = None
    ) -> None:
        """
        Log the outcome of one refresh cycle.

        Args:
            device_id: Device the cycle was run for
            status: Final status ("ready", "failed" or "stale")
            duration_ms: Wall time of the cycle in milliseconds
            history_points: Raw history points returned by the tracking service
            trajectory_points: Points left after cleaning
            used_cache: Whether the cached trajectory replaced an empty history
            error: Error description for failed cycles
        """
        cycle_data: Dict[str, Any] = {
            "device_id": device_id,
            "cycle_status": status,
            "duration_ms": round(duration_ms, 2),
            "history_points": history_points,
            "trajectory_points": trajectory_points,
            "used_cache": used_cache,
        }
        if error:
            cycle_data["error"] = error

        level = logging.WARNING if status == "failed" else logging.INFO
        self._logger.log(level, f"Refresh cycle {status} for {device_id}", extra={
            "extra_data": cycle_data
        })
        self.record_metric("refresh_cycle_duration_ms", duration_ms, tags={"status": status})

    def record_metric(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Record a custom metric as a debug log entry.

        Args:
            name: Name of the metric
            value: Metric value
            tags: Optional tags for metric dimensions
        """
        metric_data: Dict[str, Any] = {
            "metric_name": name,
            "metric_value": value,
        }
        if tags:
            metric_data["tags"] = tags

        self._logger.debug(f"Metric: {name}={value}", extra={"extra_data": metric_data})

    def create_span(self, name: str, attributes: Optional[Dict[str, Any]] = None):
        """
        Create a tracing span, or a no-op context manager if tracing is off.

        Args:
            name: Name of the span
            attributes: Optional attributes set on the span once entered
        """
        if self.tracer:
            return _SpanContextManager(self.tracer.start_as_current_span(name), attributes or {})
        return _NoOpSpanContextManager()


class _SpanContextManager:
    """Context manager wrapper that adds attributes to a span after entering."""

    def __init__(self, span_context, attributes: Dict[str, Any]):
        self._span_context = span_context
        self._attributes = attributes
        self._span = None

    def __enter__(self):
        self._span = self._span_context.__enter__()
        if self._span is not None and hasattr(self._span, "set_attribute"):
            for key, value in self._attributes.items():
                self._span.set_attribute(key, value)
        return self._span

    def __exit__(self, exc_type, exc_val, exc_tb):
        return self._span_context.__exit__(exc_type, exc_val, exc_tb)


class _NoOpSpanContextManager:
    """No-op span used when tracing is not configured."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def record_exception(self, exception: BaseException) -> None:
        pass


# Global telemetry service instance
_telemetry_service: Optional[TelemetryService] = None


def get_telemetry_service() -> Optional[TelemetryService]:
    """Get the global telemetry service instance, or None if not initialized."""
    return _telemetry_service


def initialize_telemetry(settings: Optional[Any] = None) -> TelemetryService:
    """
    Initialize the global telemetry service.

    Args:
        settings: Application settings for configuration

    Returns:
        The initialized telemetry service
    """
    global _telemetry_service
    _telemetry_service = TelemetryService(settings)
    return _telemetry_service


@contextmanager
def correlation_context(correlation_id: str) -> Iterator[str]:
    """
    Run a block of work under a correlation id.

    Used for background work such as refresh cycles, which do not pass
    through RequestIDMiddleware.
    """
    token = request_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        request_id_var.reset(token)


def get_request_id() -> str:
    """Get the current correlation id, or empty string if not set."""
    return request_id_var.get("")
