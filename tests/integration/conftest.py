"""
Integration test configuration and fixtures.

The application runs with its real controller, cache and client stack.
Only the tracking service is replaced, by an in-process fake answering
through httpx.MockTransport.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from cache.file_store import FileTrajectoryCache
from config.settings import Settings
from main import create_app
from polling.client import TrackingApiClient

logger = logging.getLogger(__name__)

TEST_TRACKING_BASE_URL = "http://tracking.test"
TEST_DEVICE_ID = "BSF_UNIT_01"
BASE_TS = 1_700_000_000


@dataclass
class FakeTrackingService:
    """
    In-process stand-in for the GPS ingestion service.

    Each device has an optional latest fix and a history list. Status
    overrides make individual endpoints fail.
    """
    latest: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    history: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    latest_status: Optional[int] = None
    history_status: Optional[int] = None
    health_status: int = 200
    requests: List[str] = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append(path)

        if path == "/health":
            return httpx.Response(self.health_status, json={"status": "ok"})

        parts = path.strip("/").split("/")
        if len(parts) != 3 or parts[0] != "device":
            return httpx.Response(404)
        device_id, query = parts[1], parts[2]

        if query == "latest":
            if self.latest_status is not None:
                return httpx.Response(self.latest_status, json={"error": "boom"})
            if device_id not in self.latest:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=self.latest[device_id])

        if query == "history":
            if self.history_status is not None:
                return httpx.Response(self.history_status, json={"error": "boom"})
            return httpx.Response(200, json={"coordinates": self.history.get(device_id, [])})

        return httpx.Response(404)


@pytest.fixture
def tracking_service() -> FakeTrackingService:
    """Fake tracking service seeded with one device near Roorkee."""
    return FakeTrackingService(
        latest={
            TEST_DEVICE_ID: {
                "device_id": TEST_DEVICE_ID,
                "lat": 29.8680,
                "lon": 77.8925,
                "timestamp": BASE_TS + 30,
                "speed": 12.5,
                "battery": 87,
            }
        },
        history={
            TEST_DEVICE_ID: [
                {"lat": 29.8650, "lon": 77.8900, "ts": BASE_TS},
                {"lat": 29.8660, "lon": 77.8910, "ts": BASE_TS + 10},
                {"lat": 29.8670, "lon": 77.8915, "ts": BASE_TS + 20},
            ]
        },
    )


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with the timer off and instant marker moves."""
    return Settings(
        tracking_api_base_url=TEST_TRACKING_BASE_URL,
        default_device_id=TEST_DEVICE_ID,
        auto_refresh_enabled=False,
        animation_duration_ms=0,
        cache_dir=str(tmp_path / "cache"),
    )


@pytest.fixture
def trajectory_cache(tmp_path) -> FileTrajectoryCache:
    return FileTrajectoryCache(tmp_path / "cache")


@pytest.fixture
def app(test_settings, tracking_service, trajectory_cache):
    """Application wired to the fake tracking service."""
    client = TrackingApiClient(
        TEST_TRACKING_BASE_URL,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(tracking_service.handler)),
    )
    return create_app(settings=test_settings, client=client, cache=trajectory_cache)


@pytest.fixture
def api_client(app):
    """TestClient with the application lifespan running."""
    with TestClient(app) as client:
        yield client
