"""Stable itinerary fingerprints.

A fingerprint only changes when the structure of a trip changes: the mode,
line and endpoints of each leg, and the 2-minute UTC window of the first
departure. Realtime churn (delays, cancellations, predictions) is ignored.
"""

import hashlib
import logging
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from digitransit_mcp.ordering.fields import read_field

logger = logging.getLogger(__name__)

EMPTY_FINGERPRINT = "fp:empty"

PRIMARY_ALGORITHM = "sha256"
FALLBACK_ALGORITHM = "fnv1a32"

FIELD_SEPARATOR = "|"
LEG_SEPARATOR = "~"
BUCKET_SEPARATOR = "#"

# Epoch values below this are seconds, above are milliseconds
EPOCH_MS_THRESHOLD = 1e12

BUCKET_MINUTES = 2

_FNV_OFFSET_BASIS = 0x811C9DC5
_FNV_PRIME = 0x01000193

_DEPARTURE_FIELDS = ("departure", "departure_time", "start_time", "departureTime", "startTime")
_ORIGIN_FIELDS = ("from", "from_", "origin")
_DESTINATION_FIELDS = ("to", "to_", "destination")
_LINE_FIELDS = ("line", "route_short_name")


def _escape(value: Any) -> str:
    if value is None:
        return ""
    text = str(value)
    return (
        text.replace("\\", "\\\\")
        .replace(FIELD_SEPARATOR, "\\" + FIELD_SEPARATOR)
        .replace(LEG_SEPARATOR, "\\" + LEG_SEPARATOR)
        .replace(BUCKET_SEPARATOR, "\\" + BUCKET_SEPARATOR)
    )


def _endpoint_identity(endpoint: Any) -> Any:
    if endpoint is None or isinstance(endpoint, (str, int, float)):
        return endpoint
    return read_field(endpoint, "id", "name")


def _leg_component(leg: Any) -> str:
    fields = (
        read_field(leg, "mode"),
        read_field(leg, *_LINE_FIELDS),
        _endpoint_identity(read_field(leg, *_ORIGIN_FIELDS)),
        _endpoint_identity(read_field(leg, *_DESTINATION_FIELDS)),
    )
    return FIELD_SEPARATOR.join(_escape(f) for f in fields)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an epoch number (seconds or ms) or ISO-8601 string as aware UTC.

    Timestamps without timezone information are taken as UTC. Returns None for
    values that cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= EPOCH_MS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return parse_timestamp(int(text))
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def time_bucket(moment: datetime) -> str:
    """Format the 2-minute UTC window containing ``moment``.

    Example: 2025-01-01T10:01:30Z -> "2025-01-01T10:00Z"
    """
    moment = moment.astimezone(UTC)
    floored = moment.replace(
        minute=moment.minute - moment.minute % BUCKET_MINUTES, second=0, microsecond=0
    )
    return floored.strftime("%Y-%m-%dT%H:%MZ")


def fnv1a_32(text: str) -> int:
    """32-bit FNV-1a hash of the UTF-8 encoding of ``text``."""
    value = _FNV_OFFSET_BASIS
    for byte in text.encode("utf-8"):
        value ^= byte
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    return value


def _digest(payload: str, algorithm: str) -> str:
    if algorithm == PRIMARY_ALGORITHM:
        try:
            digest = hashlib.new(PRIMARY_ALGORITHM, payload.encode("utf-8"))
        except ValueError:
            logger.warning("sha256 unavailable, using fnv1a32 fingerprints")
        else:
            return f"{PRIMARY_ALGORITHM}:{digest.hexdigest()}"
    elif algorithm != FALLBACK_ALGORITHM:
        raise ValueError(f"Unknown fingerprint algorithm: {algorithm}")

    return f"{FALLBACK_ALGORITHM}:{fnv1a_32(payload):08x}"


def _legs_of(itinerary: Any) -> list[Any]:
    legs = read_field(itinerary, "legs")
    if legs is None or isinstance(legs, (str, bytes, Mapping)) or not isinstance(legs, Iterable):
        return []
    return list(legs)


def fingerprint_itinerary(itinerary: Any, algorithm: str = PRIMARY_ALGORITHM) -> str:
    """Compute the structural fingerprint of an itinerary.

    Accepts mappings (raw upstream or test data) and attribute objects such as
    pydantic models. Leg order is significant.

    Args:
        itinerary: Object with a ``legs`` sequence.
        algorithm: "sha256" (default) or "fnv1a32".

    Returns:
        "<algorithm>:<hex digest>", or EMPTY_FINGERPRINT when there are no legs.
    """
    legs = _legs_of(itinerary)
    if not legs:
        return EMPTY_FINGERPRINT

    joined = LEG_SEPARATOR.join(_leg_component(leg) for leg in legs)

    departures = [parse_timestamp(read_field(leg, *_DEPARTURE_FIELDS)) for leg in legs]
    departures = [d for d in departures if d is not None]
    bucket = time_bucket(min(departures)) if departures else ""

    return _digest(f"{joined}{BUCKET_SEPARATOR}{bucket}", algorithm)


def short_fingerprint(itinerary: Any, length: int = 12) -> str:
    """Shortened fingerprint digest suitable as an itinerary id."""
    fingerprint = fingerprint_itinerary(itinerary)
    if fingerprint == EMPTY_FINGERPRINT:
        return fingerprint
    return fingerprint.split(":", 1)[1][:length]
