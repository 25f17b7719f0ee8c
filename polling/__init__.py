"""
Refresh cycles against the tracking service.

This package provides the tracking service client and the controller that
turns its answers into the state shown by the map views.
"""

from polling.client import TrackingApiClient, unwrap_history
from polling.controller import (
    BLANK_DEVICE_MESSAGE,
    ControllerState,
    CycleStatus,
    PollingController,
)

__all__ = [
    "TrackingApiClient",
    "unwrap_history",
    "BLANK_DEVICE_MESSAGE",
    "ControllerState",
    "CycleStatus",
    "PollingController",
]
