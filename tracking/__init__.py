"""
Trajectory core: fix models, timestamp normalization and cleaning.

This package turns raw location samples from field devices into cleaned,
time-ordered trajectories suitable for display.
"""

from tracking.cleaner import CleanerOptions, TrajectoryCleaner, clean_trajectory
from tracking.geo import haversine_km, is_valid_coordinate
from tracking.models import Fix, TrackPoint, Trajectory
from tracking.timestamps import (
    HISTORY_TIMESTAMP_KEYS,
    LATEST_TIMESTAMP_KEYS,
    TimestampNormalizer,
    normalize_timestamp,
)

__all__ = [
    "CleanerOptions",
    "TrajectoryCleaner",
    "clean_trajectory",
    "haversine_km",
    "is_valid_coordinate",
    "Fix",
    "TrackPoint",
    "Trajectory",
    "HISTORY_TIMESTAMP_KEYS",
    "LATEST_TIMESTAMP_KEYS",
    "TimestampNormalizer",
    "normalize_timestamp",
]
