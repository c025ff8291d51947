"""Deterministic comparators for candidates, itineraries and departures.

Each comparator returns a negative, zero or positive int like a classic
``cmp`` function. Zero is only returned when two items agree on every
tie-break level, so sorting the same input always yields the same order.
"""

from collections.abc import Iterable
from functools import cmp_to_key
from typing import Any, TypeVar

from digitransit_mcp.ordering.fields import read_field
from digitransit_mcp.ordering.language import language_rank

T = TypeVar("T")


def _cmp(a: Any, b: Any) -> int:
    return (a > b) - (a < b)


def _coordinate(item: Any) -> tuple[float, float] | None:
    coordinate = read_field(item, "coordinate")
    if coordinate is None:
        return None
    lat = read_field(coordinate, "lat")
    lon = read_field(coordinate, "lon")
    if lat is None or lon is None:
        return None
    return float(lat), float(lon)


def compare_locations(a: Any, b: Any) -> int:
    """Order location candidates.

    1. confidence_score, highest first
    2. primary_language by preference (fi, en, sv, default, then unknown)
    3. latitude then longitude, when both have coordinates
    4. name
    """
    result = _cmp(read_field(b, "confidence_score") or 0, read_field(a, "confidence_score") or 0)
    if result:
        return result

    result = _cmp(
        language_rank(read_field(a, "primary_language")),
        language_rank(read_field(b, "primary_language")),
    )
    if result:
        return result

    coord_a, coord_b = _coordinate(a), _coordinate(b)
    if coord_a is not None and coord_b is not None:
        result = _cmp(coord_a, coord_b)
        if result:
            return result

    return _cmp(read_field(a, "name") or "", read_field(b, "name") or "")


def compare_itineraries(a: Any, b: Any) -> int:
    """Order itineraries by duration, transfers, start time, then id."""
    for field in ("duration_minutes", "number_of_transfers"):
        result = _cmp(read_field(a, field) or 0, read_field(b, field) or 0)
        if result:
            return result
    for field in ("start_time", "id"):
        result = _cmp(str(read_field(a, field) or ""), str(read_field(b, field) or ""))
        if result:
            return result
    return 0


def compare_departures(a: Any, b: Any) -> int:
    """Order departures by scheduled time, then route short name."""
    result = _cmp(str(read_field(a, "scheduled_time") or ""), str(read_field(b, "scheduled_time") or ""))
    if result:
        return result
    return _cmp(read_field(a, "route_short_name") or "", read_field(b, "route_short_name") or "")


def sort_locations_deterministic(items: Iterable[T]) -> list[T]:
    return sorted(items, key=cmp_to_key(compare_locations))


def sort_itineraries_deterministic(items: Iterable[T]) -> list[T]:
    return sorted(items, key=cmp_to_key(compare_itineraries))


def sort_departures_deterministic(items: Iterable[T]) -> list[T]:
    return sorted(items, key=cmp_to_key(compare_departures))
