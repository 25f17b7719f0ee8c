"""
Health check module for the fixtrail backend.

This module reports the reachability of the tracking service and the local
trajectory cache.
"""

from health.service import (
    HealthCheckService,
    HealthStatus,
    DependencyHealth,
)

__all__ = [
    "HealthCheckService",
    "HealthStatus",
    "DependencyHealth",
]
