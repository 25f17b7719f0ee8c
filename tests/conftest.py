"""
Shared pytest fixtures and configuration for all tests.
"""
import os
import pytest
from typing import Any, Dict, List
from unittest.mock import MagicMock, AsyncMock

# Hypothesis configuration for property-based testing
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # Disable deadline for async tests
    print_blob=True,
)

# CI profile: more thorough testing for continuous integration
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples for quick debugging
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],  # Skip shrinking for speed
)

# Fast profile: quick smoke tests
settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


# 2023-11-14T22:13:20Z, well inside the accepted timestamp window
BASE_TS = 1_700_000_000


@pytest.fixture
def base_ts() -> int:
    return BASE_TS


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock Redis client for unit tests."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.setex = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.ping = AsyncMock(return_value=True)
    mock.aclose = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def sample_history() -> List[Dict[str, Any]]:
    """Raw history points of a device moving around Roorkee, one of them out of order."""
    return [
        {"lat": 29.8660, "lon": 77.8905, "ts": BASE_TS},
        {"lat": 29.8670, "lon": 77.8915, "ts": BASE_TS + 20},
        {"lat": 29.8665, "lon": 77.8910, "ts": BASE_TS + 10},
        {"lat": 29.8680, "lon": 77.8925, "ts": BASE_TS + 30},
    ]


@pytest.fixture
def sample_latest() -> Dict[str, Any]:
    """Latest-fix payload as returned by the tracking service."""
    return {
        "device_id": "BSF_UNIT_01",
        "lat": 29.8680,
        "lon": 77.8925,
        "timestamp": BASE_TS + 30,
        "speed": 12.5,
        "battery": 87,
    }


@pytest.fixture
def sample_error_response() -> dict:
    """Sample error response structure for testing."""
    return {
        "error_code": "VALIDATION_ERROR",
        "message": "Invalid request payload",
        "details": {"fields": {"device_id": "String should have at most 100 characters"}},
        "request_id": "req_test123"
    }
