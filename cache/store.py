"""
Local trajectory cache abstraction.

The cache keeps the last cleaned trajectory of every device so a refresh
cycle can still show a trail when the tracking service answers with an empty
history. It is a best-effort optimization, not a correctness requirement:

- save() replaces the whole snapshot for a device; failures are logged and
  swallowed, never propagated.
- load() returns an empty trajectory for missing, corrupt or non-sequence
  data; malformed records inside a snapshot are skipped.
- clear() removes the snapshot for a device; failures are logged and
  swallowed.

Backends only implement raw read/write/delete of a JSON document and report
their failures as StorageError; the error policy lives here.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Optional

from errors.exceptions import StorageError
from tracking.models import TrackPoint, Trajectory

logger = logging.getLogger(__name__)


def serialize_trajectory(trajectory: Trajectory) -> str:
    """Serialize a trajectory to the persisted JSON list of {lat, lon, ts}."""
    return json.dumps([point.to_dict() for point in trajectory])


def _record_to_point(record: Any) -> Optional[TrackPoint]:
    if not isinstance(record, dict):
        return None
    lat, lon, ts = record.get("lat"), record.get("lon"), record.get("ts")
    if isinstance(lat, bool) or isinstance(lon, bool) or isinstance(ts, bool):
        return None
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return None
    if not isinstance(ts, int):
        return None
    try:
        lat, lon = float(lat), float(lon)
    except OverflowError:
        return None
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return None
    return TrackPoint(lat=lat, lon=lon, ts=ts)


def deserialize_trajectory(payload: Optional[str]) -> Trajectory:
    """
    Deserialize a persisted snapshot.

    Args:
        payload: Raw JSON document, or None if nothing was stored

    Returns:
        The stored trajectory, or an empty one for missing or corrupt data
    """
    if not payload:
        return ()
    try:
        records = json.loads(payload)
    except ValueError:
        logger.warning("Discarding corrupt trajectory snapshot")
        return ()
    if not isinstance(records, list):
        logger.warning(
            "Discarding trajectory snapshot that is not a sequence",
            extra={"extra_data": {"snapshot_type": type(records).__name__}}
        )
        return ()

    points = [point for point in map(_record_to_point, records) if point is not None]
    return tuple(points)


class TrajectoryCache(ABC):
    """
    Base class for per-device trajectory caches.

    The device identifier is an explicit argument of every call; caches hold
    no notion of an "active" device.
    """

    async def save(self, device_id: str, trajectory: Trajectory) -> None:
        """
        Replace the stored snapshot for a device.

        Args:
            device_id: Device identifier
            trajectory: Cleaned trajectory to persist
        """
        try:
            await self._write(device_id, serialize_trajectory(trajectory))
        except StorageError as e:
            logger.warning(
                f"Failed to save trajectory for {device_id}: {e.message}",
                extra={"extra_data": {"device_id": device_id, "points": len(trajectory)}}
            )

    async def load(self, device_id: str) -> Trajectory:
        """
        Load the stored snapshot for a device.

        Args:
            device_id: Device identifier

        Returns:
            The stored trajectory, or an empty trajectory
        """
        try:
            payload = await self._read(device_id)
        except StorageError as e:
            logger.warning(
                f"Failed to load trajectory for {device_id}: {e.message}",
                extra={"extra_data": {"device_id": device_id}}
            )
            return ()
        return deserialize_trajectory(payload)

    async def clear(self, device_id: str) -> None:
        """
        Remove the stored snapshot for a device. Idempotent.

        Args:
            device_id: Device identifier
        """
        try:
            await self._delete(device_id)
        except StorageError as e:
            logger.warning(
                f"Failed to clear trajectory for {device_id}: {e.message}",
                extra={"extra_data": {"device_id": device_id}}
            )

    @abstractmethod
    async def _read(self, device_id: str) -> Optional[str]:
        """
        Read the raw snapshot for a device.

        Returns:
            The JSON document, or None if nothing is stored

        Raises:
            StorageError: If the backend cannot be read
        """

    @abstractmethod
    async def _write(self, device_id: str, payload: str) -> None:
        """
        Replace the raw snapshot for a device.

        Raises:
            StorageError: If the backend cannot be written
        """

    @abstractmethod
    async def _delete(self, device_id: str) -> None:
        """
        Delete the raw snapshot for a device; missing entries are not an error.

        Raises:
            StorageError: If the backend cannot be written
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check that the backend is usable.

        Returns:
            True if healthy. Never raises.
        """

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
