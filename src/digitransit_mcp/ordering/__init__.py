"""Deterministic ordering and identity for transit results."""

from digitransit_mcp.ordering.fingerprint import (
    EMPTY_FINGERPRINT,
    fingerprint_itinerary,
    parse_timestamp,
    short_fingerprint,
    time_bucket,
)
from digitransit_mcp.ordering.language import (
    LANGUAGE_ORDER,
    Language,
    fallback_chain,
    language_rank,
    pick_best_name,
)
from digitransit_mcp.ordering.sorting import (
    compare_departures,
    compare_itineraries,
    compare_locations,
    sort_departures_deterministic,
    sort_itineraries_deterministic,
    sort_locations_deterministic,
)

__all__ = [
    # Fingerprints
    "EMPTY_FINGERPRINT",
    "fingerprint_itinerary",
    "short_fingerprint",
    "parse_timestamp",
    "time_bucket",
    # Sorting
    "compare_locations",
    "compare_itineraries",
    "compare_departures",
    "sort_locations_deterministic",
    "sort_itineraries_deterministic",
    "sort_departures_deterministic",
    # Languages
    "Language",
    "LANGUAGE_ORDER",
    "language_rank",
    "fallback_chain",
    "pick_best_name",
]
