"""
Health check service for the fixtrail backend.

This module provides the HealthCheckService class that reports the
reachability of the tracking service and of the local trajectory cache.
Every dependency check is bounded by a timeout and reports its response time.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

TRACKING_SERVICE = "tracking_service"
CACHE = "cache"


@dataclass
class DependencyHealth:
    """
    Health status of a single dependency.

    Attributes:
        name: The name of the dependency (e.g., "tracking_service", "cache")
        healthy: Whether the dependency is healthy and responding
        response_time_ms: The time taken to check the dependency in milliseconds
        error: Optional error message if the dependency check failed
    """
    name: str
    healthy: bool
    response_time_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "healthy": self.healthy,
            "response_time_ms": round(self.response_time_ms, 2),
        }
        if self.error is not None:
            result["error"] = self.error
        return result


@dataclass
class HealthStatus:
    """
    Overall health status of the service.

    Attributes:
        status: Overall status - "healthy", "degraded", or "unhealthy"
        timestamp: When the health check was performed
        dependencies: List of individual dependency health statuses
    """
    status: str
    timestamp: datetime
    dependencies: list[DependencyHealth] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z"),
            "dependencies": [dep.to_dict() for dep in self.dependencies],
        }


class HealthCheckService:
    """
    Service for checking the health of the backend's dependencies.

    The tracking service is critical: without it no cycle can succeed, so
    its failure makes the backend "unhealthy". The cache only degrades the
    backend, since cycles still succeed without the empty-history fallback.

    Attributes:
        tracking_client: Client exposing an async ``health_check()``
        cache: Optional trajectory cache exposing an async ``health_check()``
        check_timeout: Timeout in seconds for dependency checks (default: 5.0)
    """

    CRITICAL_DEPENDENCIES = (TRACKING_SERVICE,)

    def __init__(
        self,
        tracking_client: Any,
        cache: Optional[Any] = None,
        check_timeout: float = 5.0
    ):
        self.tracking_client = tracking_client
        self.cache = cache
        self.check_timeout = check_timeout

    async def check_readiness(self) -> HealthStatus:
        """
        Check all dependencies for readiness.

        Checks run concurrently and each one is bounded by ``check_timeout``.

        Returns:
            HealthStatus: The aggregate health status with individual dependency statuses
        """
        checks = [self._check_dependency(TRACKING_SERVICE, self.tracking_client.health_check)]
        if self.cache is not None:
            checks.append(self._check_dependency(CACHE, self.cache.health_check))

        dependencies = list(await asyncio.gather(*checks))

        return HealthStatus(
            status=self._determine_overall_status(dependencies),
            timestamp=datetime.now(timezone.utc),
            dependencies=dependencies
        )

    async def check_health(self) -> dict[str, Any]:
        """
        Basic health check - service is accepting requests.

        Returns:
            dict: A simple status response indicating the service is up
        """
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        }

    async def _check_dependency(
        self,
        name: str,
        probe: Callable[[], Awaitable[bool]]
    ) -> DependencyHealth:
        """
        Run one dependency probe with timeout.

        Args:
            name: Dependency name used in the report
            probe: Async callable returning True when the dependency is reachable

        Returns:
            DependencyHealth: The health status of the dependency
        """
        start_time = time.perf_counter()

        try:
            result = await asyncio.wait_for(probe(), timeout=self.check_timeout)
            elapsed_ms = (time.perf_counter() - start_time) * 1000

            if result:
                logger.debug(f"{name} health check passed in {elapsed_ms:.2f}ms")
                return DependencyHealth(name=name, healthy=True, response_time_ms=elapsed_ms)

            logger.warning(f"{name} health check returned False after {elapsed_ms:.2f}ms")
            return DependencyHealth(
                name=name,
                healthy=False,
                response_time_ms=elapsed_ms,
                error=f"{name} health check returned False"
            )

        except asyncio.TimeoutError:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"{name} health check timed out after {self.check_timeout} seconds"
            logger.warning(error_msg)
            return DependencyHealth(name=name, healthy=False, response_time_ms=elapsed_ms, error=error_msg)

        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            error_msg = f"{name} health check failed: {str(e)}"
            logger.error(error_msg)
            return DependencyHealth(name=name, healthy=False, response_time_ms=elapsed_ms, error=error_msg)

    def _determine_overall_status(self, dependencies: list[DependencyHealth]) -> str:
        """
        Determine the overall health status based on dependency health.

        - "healthy": All dependencies are healthy
        - "degraded": Only non-critical dependencies are unhealthy
        - "unhealthy": A critical dependency is unhealthy
        """
        unhealthy = [dep.name for dep in dependencies if not dep.healthy]
        if not unhealthy:
            return "healthy"
        if any(name in self.CRITICAL_DEPENDENCIES for name in unhealthy):
            return "unhealthy"
        return "degraded"
