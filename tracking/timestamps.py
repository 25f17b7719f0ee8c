"""
Timestamp normalization for device and transport time sources.

Device clocks and transport layers disagree on how time is represented:
unix seconds, unix milliseconds, numeric strings, ISO-8601 strings and HTTP
Date headers all show up in practice. TimestampNormalizer converts every
supported representation into integer epoch seconds and rejects anything
implausible instead of guessing, so a bogus value can never dominate the
ordering of a trajectory.
"""

import logging
import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

# Values above this are epoch milliseconds
MILLISECONDS_THRESHOLD = 1e12

# Smallest value accepted as epoch seconds (2001-09-09)
SECONDS_THRESHOLD = 1e9

# Keys probed, in order, for the timestamp of a latest-fix payload
LATEST_TIMESTAMP_KEYS: tuple[str, ...] = ("timestamp", "ts", "time", "server_time", "date")

# Keys probed, in order, for the timestamp of a history point
HISTORY_TIMESTAMP_KEYS: tuple[str, ...] = ("ts", "timestamp", "time", "server_time")

_NUMERIC_STRING = re.compile(r"^\d+(\.\d+)?$")


def _to_epoch_seconds(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return math.floor(value.timestamp())


class TimestampNormalizer:
    """
    Converts heterogeneous timestamp candidates into epoch seconds.

    Supported inputs:
    - int/float epoch seconds (>= 1e9)
    - int/float epoch milliseconds (> 1e12)
    - numeric strings of either of the above
    - ISO-8601 strings (a trailing "Z" is accepted) and RFC 2822 dates
    - datetime instances (naive values are treated as UTC)

    Everything else normalizes to None.
    """

    def normalize(self, candidate: Any) -> Optional[int]:
        """
        Normalize a timestamp candidate to epoch seconds.

        Args:
            candidate: A raw timestamp value of any shape

        Returns:
            Epoch seconds, or None if the candidate is not a plausible timestamp
        """
        if candidate is None or isinstance(candidate, bool):
            return None

        if isinstance(candidate, datetime):
            return _to_epoch_seconds(candidate)

        if isinstance(candidate, str):
            text = candidate.strip()
            if _NUMERIC_STRING.match(text):
                return self._from_number(float(text))
            return self._from_date_string(text)

        if isinstance(candidate, (int, float)):
            return self._from_number(candidate)

        return None

    def from_response_header(self, header_value: Optional[str]) -> Optional[int]:
        """
        Parse an HTTP Date response header into epoch seconds.

        Used as a fallback time source when a payload carries no usable
        timestamp. The caller decides what to do when this returns None.

        Args:
            header_value: Raw value of the Date header, if any

        Returns:
            Epoch seconds, or None if the header is missing or unparsable
        """
        if not header_value or not isinstance(header_value, str):
            return None
        try:
            parsed = parsedate_to_datetime(header_value)
        except (TypeError, ValueError, IndexError):
            logger.debug(f"Unparsable Date header: {header_value!r}")
            return None
        if parsed is None:
            return None
        return _to_epoch_seconds(parsed)

    def candidate_from_payload(
        self,
        payload: Mapping[str, Any],
        keys: Sequence[str] = LATEST_TIMESTAMP_KEYS,
    ) -> Any:
        """
        Pick the first non-null timestamp candidate from a payload.

        Args:
            payload: A decoded JSON object
            keys: Keys to probe, in priority order

        Returns:
            The raw candidate value, or None if no key is present
        """
        for key in keys:
            value = payload.get(key)
            if value is not None:
                return value
        return None

    def _from_number(self, value: float) -> Optional[int]:
        try:
            value = float(value)
        except OverflowError:
            logger.debug("Number too large to be a timestamp")
            return None
        if not math.isfinite(value):
            return None
        if value > MILLISECONDS_THRESHOLD:
            return math.floor(value / 1000)
        if value >= SECONDS_THRESHOLD:
            return math.floor(value)
        logger.debug(f"Number too small to be a timestamp: {value}")
        return None

    def _from_date_string(self, text: str) -> Optional[int]:
        if not text:
            return None
        try:
            return _to_epoch_seconds(datetime.fromisoformat(text))
        except ValueError:
            pass
        try:
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError, IndexError):
            parsed = None
        if parsed is None:
            logger.debug(f"Invalid date string: {text!r}")
            return None
        return _to_epoch_seconds(parsed)


# Shared stateless instance
default_normalizer = TimestampNormalizer()


def normalize_timestamp(candidate: Any) -> Optional[int]:
    """Normalize a timestamp candidate with the shared normalizer."""
    return default_normalizer.normalize(candidate)
