"""
Trajectory cleaning for raw device location samples.

The TrajectoryCleaner turns a noisy, possibly out-of-order set of raw samples
into a trajectory that is safe to draw:

1. Points with non-finite or out-of-range coordinates are dropped.
2. Points with a missing timestamp, a timestamp before the configured minimum
   year, or a timestamp too far in the future are dropped.
3. The remaining points are stably sorted by timestamp.
4. Isolated spatial spikes are rejected: a point further than the jump
   threshold from the last accepted point, reached in less than the spike
   window, is discarded. Rejected points never become the comparison
   baseline, so one corrupt sample cannot re-anchor the trail.

Cleaning never raises. Point-level defects are filtered out silently; a
malformed or empty input produces an empty trajectory.
"""

import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from tracking.geo import haversine_km, is_valid_coordinate
from tracking.models import TrackPoint, Trajectory
from tracking.timestamps import MILLISECONDS_THRESHOLD, normalize_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CleanerOptions:
    """
    Tuning options for trajectory cleaning.

    Attributes:
        min_year: Reject timestamps before Jan 1 (UTC) of this year
        jump_km_threshold: Max distance between consecutive kept points
            when they are less than spike_window_sec apart
        max_future_sec: Tolerated clock skew ahead of the current time
        spike_window_sec: Elapsed time under which a large jump is a spike
    """

    min_year: int = 2009
    jump_km_threshold: float = 200.0
    max_future_sec: int = 86400
    spike_window_sec: int = 60

    @property
    def min_timestamp(self) -> int:
        """Epoch seconds of the min_year boundary."""
        return int(datetime(self.min_year, 1, 1, tzinfo=timezone.utc).timestamp())


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _coerce_timestamp(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
        if not math.isfinite(number):
            return None
        if number > MILLISECONDS_THRESHOLD:
            number = number / 1000
        return math.floor(number)
    return normalize_timestamp(value)


def _field(raw: Any, *names: str) -> Any:
    """Read the first present field from a mapping or an attribute holder."""
    for name in names:
        if isinstance(raw, Mapping):
            if raw.get(name) is not None:
                return raw[name]
        else:
            value = getattr(raw, name, None)
            if value is not None:
                return value
    return None


class TrajectoryCleaner:
    """
    Filters and orders raw samples into a trustworthy trajectory.

    Example:
        cleaner = TrajectoryCleaner(CleanerOptions(jump_km_threshold=150))
        trajectory = cleaner.clean([{"lat": 29.86, "lon": 77.89, "ts": 1700000000}])
    """

    def __init__(self, options: Optional[CleanerOptions] = None):
        self.options = options or CleanerOptions()

    def clean(
        self,
        raw_points: Any,
        options: Optional[CleanerOptions] = None,
        now: Optional[float] = None,
    ) -> Trajectory:
        """
        Clean a raw sample set into a trajectory.

        Args:
            raw_points: Iterable of mappings with lat/lon/ts (or timestamp)
                keys, or objects exposing those attributes
            options: Per-call override of the cleaner options
            now: Current epoch seconds, defaults to the wall clock

        Returns:
            A new trajectory, ascending in time
        """
        opts = options or self.options
        current = time.time() if now is None else now

        candidates = self._valid_points(raw_points, opts, current)
        # sorted() is stable, equal timestamps keep their input order
        candidates = sorted(candidates, key=lambda p: p.ts)
        kept = self._reject_spikes(candidates, opts)

        if len(kept) != len(candidates):
            logger.debug(
                f"Rejected {len(candidates) - len(kept)} spike(s)",
                extra={"extra_data": {
                    "candidates": len(candidates),
                    "kept": len(kept),
                }}
            )
        return tuple(kept)

    def _valid_points(
        self,
        raw_points: Any,
        opts: CleanerOptions,
        now: float,
    ) -> list[TrackPoint]:
        if raw_points is None or isinstance(raw_points, (str, bytes, Mapping)):
            return []
        try:
            iterator: Iterable[Any] = iter(raw_points)
        except TypeError:
            return []

        lower = opts.min_timestamp
        upper = now + opts.max_future_sec
        points: list[TrackPoint] = []
        dropped = 0

        for raw in iterator:
            lat = _coerce_float(_field(raw, "lat"))
            lon = _coerce_float(_field(raw, "lon"))
            if lat is None or lon is None or not is_valid_coordinate(lat, lon):
                dropped += 1
                continue

            ts = _coerce_timestamp(_field(raw, "ts", "timestamp"))
            if ts is None or ts < lower or ts > upper:
                dropped += 1
                continue

            points.append(TrackPoint(lat=lat, lon=lon, ts=ts))

        if dropped:
            logger.debug(f"Dropped {dropped} invalid point(s)")
        return points

    def _reject_spikes(self, points: list[TrackPoint], opts: CleanerOptions) -> list[TrackPoint]:
        kept: list[TrackPoint] = []
        last: Optional[TrackPoint] = None

        for point in points:
            if last is not None:
                distance = haversine_km(last.lat, last.lon, point.lat, point.lon)
                dt = point.ts - last.ts
                if distance > opts.jump_km_threshold and dt < opts.spike_window_sec:
                    # Baseline stays on the last accepted point
                    continue
            kept.append(point)
            last = point

        return kept


def clean_trajectory(
    raw_points: Any,
    options: Optional[CleanerOptions] = None,
    now: Optional[float] = None,
) -> Trajectory:
    """Clean raw points with a one-off cleaner."""
    return TrajectoryCleaner(options).clean(raw_points, now=now)
