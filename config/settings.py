"""
Configuration management for the fixtrail backend.

This module provides centralized configuration loading and validation using
Pydantic settings. Values are loaded from environment variables or .env
files; the ENVIRONMENT variable selects an environment-specific .env file
that overrides the base one.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class CacheBackend(str, Enum):
    """Supported local trajectory cache backends."""
    FILE = "file"
    REDIS = "redis"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the .env files to load for the given environment.

    The base .env file is loaded first, then the environment-specific file
    overrides it.
    """
    return (".env", f".env.{environment.value}")


def _validate_http_url(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    value = value.strip()
    if not (value.startswith("http://") or value.startswith("https://")):
        raise ValueError(f"{field_name} must be a valid HTTP/HTTPS URL")
    return value


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every field has a development-friendly default; invalid values make
    startup fail with a descriptive ConfigurationError.
    """

    # Environment
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Tracking service (ingestion API)
    tracking_api_base_url: str = Field(
        default="http://localhost:4000",
        description="Base URL of the GPS ingestion service"
    )
    default_device_id: str = Field(
        default="BSF_UNIT_01",
        description="Device selected when the backend starts"
    )
    latest_timeout_seconds: float = Field(
        default=12.0,
        gt=0,
        le=60,
        description="Timeout for latest-fix requests"
    )
    history_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=60,
        description="Timeout for history requests"
    )

    # Polling
    auto_refresh_enabled: bool = Field(
        default=True,
        description="Start timer-driven refresh cycles at startup"
    )
    refresh_interval_ms: int = Field(
        default=5000,
        ge=2000,
        le=30000,
        description="Interval between timer-driven refresh cycles"
    )

    # Trajectory cleaning
    cleaner_min_year: int = Field(
        default=2009,
        ge=1970,
        le=2100,
        description="Reject fixes timestamped before this calendar year"
    )
    cleaner_jump_km_threshold: float = Field(
        default=200.0,
        gt=0,
        description="Max jump between consecutive fixes less than a minute apart"
    )
    cleaner_max_future_sec: int = Field(
        default=86400,
        ge=0,
        description="Tolerated device clock skew ahead of the current time"
    )

    # Marker animation
    animation_duration_ms: int = Field(
        default=700,
        ge=0,
        le=10000,
        description="Duration of the marker glide between fixes"
    )
    animation_frame_rate_hz: int = Field(
        default=60,
        ge=1,
        le=240,
        description="Frames per second emitted while the marker glides"
    )

    # Local trajectory cache
    cache_backend: CacheBackend = Field(
        default=CacheBackend.FILE,
        description="Trajectory cache backend: 'file' or 'redis'"
    )
    cache_dir: str = Field(
        default=".fixtrail_cache",
        description="Directory used by the file cache backend"
    )
    redis_url: Optional[str] = Field(
        default=None,
        description="Redis connection URL for the redis cache backend"
    )
    cache_ttl_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Expiry of redis trajectory snapshots, none by default"
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    otel_endpoint: Optional[str] = Field(
        default=None,
        description="OpenTelemetry collector endpoint URL"
    )
    otel_service_name: str = Field(
        default="fixtrail",
        description="Service name for OpenTelemetry traces"
    )

    # CORS for the map views
    cors_origins: List[str] = Field(
        default=["http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("tracking_api_base_url")
    @classmethod
    def validate_tracking_api_base_url(cls, v: str) -> str:
        """Validate the ingestion service URL and drop any trailing slash."""
        return _validate_http_url(v, "tracking_api_base_url").rstrip("/")

    @field_validator("default_device_id")
    @classmethod
    def validate_default_device_id(cls, v: str) -> str:
        v = v.strip()
        if len(v) > 100:
            raise ValueError("default_device_id cannot exceed 100 characters")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Validate CORS origins format and reject wildcard patterns."""
        validated_origins = []
        for origin in v:
            origin = origin.strip()
            if "*" in origin:
                raise ValueError(
                    f"Wildcard patterns are not allowed in CORS origins: {origin}. "
                    "Specify exact map view origins."
                )
            validated_origins.append(_validate_http_url(origin, "cors_origins"))
        return validated_origins

    @model_validator(mode="after")
    def validate_cache_config(self) -> "Settings":
        """Validate that the redis backend has a URL outside development."""
        if self.cache_backend == CacheBackend.REDIS and not self.redis_url:
            if self.environment != Environment.DEVELOPMENT:
                raise ValueError(
                    "redis_url is required when cache_backend is 'redis' "
                    "in non-development environments"
                )
        return self


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    Args:
        environment: Optional environment override. If not provided, detected
            from the ENVIRONMENT variable.

    Returns:
        Settings: Validated settings for the environment.

    Raises:
        ConfigurationError: If settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = tuple(f for f in _get_env_files(environment) if Path(f).exists())

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=env_files or None,
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", []))
                if error.get("type", "") == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name or "settings"] = error.get("msg", str(error))

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


# Global settings cache
_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Settings are loaded once and cached for subsequent calls.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache so the next get_settings() reloads them."""
    global _settings_cache
    _settings_cache = None


def validate_startup(settings: Optional[Settings] = None) -> None:
    """
    Validate settings that can only be checked against the runtime environment.

    Raises:
        ConfigurationError: If any check fails.
    """
    settings = settings or get_settings()
    validation_errors = {}

    if settings.cache_backend == CacheBackend.FILE:
        cache_dir = Path(settings.cache_dir)
        if cache_dir.exists() and not cache_dir.is_dir():
            validation_errors["cache_dir"] = f"Not a directory: {settings.cache_dir}"

    if settings.environment == Environment.PRODUCTION:
        localhost_only = all(
            "localhost" in origin or "127.0.0.1" in origin
            for origin in settings.cors_origins
        )
        if localhost_only:
            validation_errors["cors_origins"] = (
                "Production environment requires non-localhost CORS origins. "
                "Configure your map view domain(s)."
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
