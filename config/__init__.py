# Configuration module for the fixtrail backend
from .settings import (
    CacheBackend,
    ConfigurationError,
    Environment,
    Settings,
    get_settings,
    validate_startup,
)

__all__ = [
    "CacheBackend",
    "ConfigurationError",
    "Environment",
    "Settings",
    "get_settings",
    "validate_startup",
]
