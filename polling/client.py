"""
HTTP client for the GPS ingestion (tracking) service.

The tracking service exposes two queries per device:

- GET /device/{id}/latest  -> the latest fix, or 404 when the device has
  not reported yet (a valid outcome, not an error)
- GET /device/{id}/history -> the stored samples, either as a bare list or
  wrapped in an object under "coordinates", "points", "data" or "history"

Every call is bounded by a timeout. Network errors, timeouts, non-success
statuses and unparsable bodies are raised as TransportError so a refresh
cycle can report them; an empty history is returned as an empty list.
Timestamps are normalized here, before anything else sees them.
"""

import logging
import math
import time
from typing import Any, Callable, Optional
from urllib.parse import quote

import httpx

from errors.exceptions import TransportError, tracking_service_timeout, tracking_service_unavailable
from tracking.geo import is_valid_coordinate
from tracking.models import Fix
from tracking.timestamps import HISTORY_TIMESTAMP_KEYS, LATEST_TIMESTAMP_KEYS, TimestampNormalizer

logger = logging.getLogger(__name__)

# Envelope keys that may wrap the history list, in probe order
HISTORY_ENVELOPE_KEYS: tuple[str, ...] = ("coordinates", "points", "data", "history")


def _optional_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def unwrap_history(payload: Any) -> list[Any]:
    """
    Extract the list of samples from a history response body.

    Args:
        payload: Decoded JSON body

    Returns:
        The sample list, or an empty list for unknown shapes
    """
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in HISTORY_ENVELOPE_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


class TrackingApiClient:
    """
    Async client for the tracking service.

    Attributes:
        base_url: Base URL of the tracking service, without trailing slash
        latest_timeout: Timeout in seconds for latest-fix requests
        history_timeout: Timeout in seconds for history requests
    """

    def __init__(
        self,
        base_url: str,
        latest_timeout: float = 12.0,
        history_timeout: float = 15.0,
        normalizer: Optional[TimestampNormalizer] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the client.

        Args:
            base_url: Base URL of the tracking service
            latest_timeout: Timeout in seconds for latest-fix requests
            history_timeout: Timeout in seconds for history requests
            normalizer: Timestamp normalizer (a fresh one if not provided)
            http_client: Optional preconfigured httpx client; owned by the
                caller if provided
            clock: Source of the local time used as the last timestamp fallback
        """
        self.base_url = base_url.rstrip("/")
        self.latest_timeout = latest_timeout
        self.history_timeout = history_timeout
        self.normalizer = normalizer or TimestampNormalizer()
        self._clock = clock
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(headers={"Cache-Control": "no-store"})

    @classmethod
    def from_settings(cls, settings) -> "TrackingApiClient":
        return cls(
            base_url=settings.tracking_api_base_url,
            latest_timeout=settings.latest_timeout_seconds,
            history_timeout=settings.history_timeout_seconds,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def _device_url(self, device_id: str, query: str) -> str:
        return f"{self.base_url}/device/{quote(device_id, safe='')}/{query}"

    async def _get(self, url: str, timeout: float, operation: str) -> httpx.Response:
        try:
            return await self._http.get(url, timeout=httpx.Timeout(timeout))
        except httpx.TimeoutException as e:
            raise tracking_service_timeout(
                f"{operation} timed out after {timeout:g}s",
                details={"url": url},
            ) from e
        except httpx.HTTPError as e:
            raise tracking_service_unavailable(
                f"{operation} failed: {e}",
                details={"url": url, "error_type": type(e).__name__},
            ) from e

    def _decode(self, response: httpx.Response, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise tracking_service_unavailable(
                f"{operation} returned an unparsable body",
                details={"url": str(response.request.url)},
            ) from e

    def _raise_for_status(self, response: httpx.Response, operation: str) -> None:
        if not response.is_success:
            raise tracking_service_unavailable(
                f"{operation} failed with HTTP {response.status_code}",
                details={"url": str(response.request.url), "status_code": response.status_code},
            )

    async def get_latest(self, device_id: str) -> Optional[Fix]:
        """
        Fetch the latest fix of a device.

        The fix timestamp is taken from the body, falling back to the
        response Date header and finally to the local clock.

        Args:
            device_id: Device identifier

        Returns:
            The latest fix, or None if the device has no usable fix

        Raises:
            TransportError: On network failure, timeout, error status or
                unparsable body
        """
        if not device_id:
            return None

        operation = "Latest fix request"
        response = await self._get(self._device_url(device_id, "latest"), self.latest_timeout, operation)
        if response.status_code == 404:
            logger.info(f"No fix reported yet for device {device_id}")
            return None
        self._raise_for_status(response, operation)

        data = self._decode(response, operation)
        if not isinstance(data, dict) or not data:
            return None

        lat = _optional_float(data.get("lat"))
        lon = _optional_float(data.get("lon"))
        if lat is None or lon is None or not is_valid_coordinate(lat, lon):
            logger.warning(
                f"Latest fix for {device_id} has no usable coordinates",
                extra={"extra_data": {"device_id": device_id}}
            )
            return None

        timestamp = self.normalizer.normalize(
            self.normalizer.candidate_from_payload(data, LATEST_TIMESTAMP_KEYS)
        )
        if timestamp is None:
            timestamp = self.normalizer.from_response_header(response.headers.get("date"))
            if timestamp is not None:
                logger.info(f"Latest fix for {device_id} timed by server Date header")
        if timestamp is None:
            logger.warning(f"Latest fix for {device_id} timed by local clock")
            timestamp = math.floor(self._clock())

        device = data.get("device_id")
        return Fix(
            device_id=device if isinstance(device, str) and device else device_id,
            lat=lat,
            lon=lon,
            timestamp=timestamp,
            speed=_optional_float(data.get("speed")),
            battery=_optional_float(data.get("battery")),
            accuracy=_optional_float(data.get("accuracy")),
            sos=bool(data.get("sos")),
        )

    async def get_history(self, device_id: str) -> list[dict[str, Any]]:
        """
        Fetch the stored history of a device.

        Args:
            device_id: Device identifier

        Returns:
            Raw points as {lat, lon, ts} dicts with normalized timestamps
            (ts is None where no timestamp could be normalized). Coordinates
            are passed through untouched for the cleaner to validate.

        Raises:
            TransportError: On network failure, timeout, error status or
                unparsable body
        """
        if not device_id:
            return []

        operation = "History request"
        response = await self._get(self._device_url(device_id, "history"), self.history_timeout, operation)
        if response.status_code == 404:
            return []
        self._raise_for_status(response, operation)

        points = []
        for raw in unwrap_history(self._decode(response, operation)):
            if not isinstance(raw, dict):
                continue
            points.append({
                "lat": raw.get("lat"),
                "lon": raw.get("lon"),
                "ts": self.normalizer.normalize(
                    self.normalizer.candidate_from_payload(raw, HISTORY_TIMESTAMP_KEYS)
                ),
            })

        logger.debug(
            f"Fetched {len(points)} history point(s) for {device_id}",
            extra={"extra_data": {"device_id": device_id, "points": len(points)}}
        )
        return points

    async def health_check(self) -> bool:
        """Check that the tracking service answers its /health endpoint."""
        try:
            response = await self._get(f"{self.base_url}/health", self.latest_timeout, "Health check")
        except TransportError:
            return False
        return response.is_success
