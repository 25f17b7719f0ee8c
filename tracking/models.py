"""
Data models for device fixes and trajectories.

A Fix is one location observation reported by a field device. A TrackPoint
is the reduced {lat, lon, ts} triple that makes up a cleaned trajectory and
the persisted cache layout. Both are frozen pydantic models: they are never
mutated after construction, cleaning always produces new sequences.
"""

from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class TrackPoint(BaseModel):
    """
    A single point of a trajectory.

    Attributes:
        lat: Latitude in degrees
        lon: Longitude in degrees
        ts: Epoch seconds, as produced by the timestamp normalizer
    """

    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float
    ts: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted {lat, lon, ts} layout."""
        return {"lat": self.lat, "lon": self.lon, "ts": self.ts}


# A cleaned, time-ordered trajectory. Replaced wholesale, never edited.
Trajectory = Tuple[TrackPoint, ...]


class Fix(BaseModel):
    """
    A single location observation for a device.

    Attributes:
        device_id: Opaque device identifier
        lat: Latitude in degrees
        lon: Longitude in degrees
        timestamp: Epoch seconds of the observation
        speed: Optional speed reported by the device (m/s)
        battery: Optional battery level reported by the device (percent)
        accuracy: Optional GPS accuracy reported by the device (meters)
        sos: Whether the device raised its SOS flag
    """

    model_config = ConfigDict(frozen=True)

    device_id: str
    lat: float
    lon: float
    timestamp: int
    speed: Optional[float] = None
    battery: Optional[float] = None
    accuracy: Optional[float] = None
    sos: bool = False

    @property
    def position(self) -> Tuple[float, float]:
        return (self.lat, self.lon)

    @classmethod
    def from_track_point(cls, device_id: str, point: TrackPoint) -> "Fix":
        """
        Synthesize a fix from a trajectory point.

        Used when the tracking service has no latest fix for a device but
        a trajectory is available; telemetry fields are left empty.
        """
        return cls(device_id=device_id, lat=point.lat, lon=point.lon, timestamp=point.ts)
