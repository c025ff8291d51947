"""Address and stop geocoding via the Digitransit geocoding API.

Candidates are shaped into LocationCandidate models, optionally filtered by
distance from a focus point, then put in deterministic order.
"""

import logging
from typing import Any

from digitransit_mcp.data.cache import InflightTimeoutError
from digitransit_mcp.data.errors import VALIDATION_ERROR, UpstreamError
from digitransit_mcp.models.responses import LookupResponse, ReverseGeocodeResponse
from digitransit_mcp.models.transit import Coordinate, ErrorInfo, LocationCandidate
from digitransit_mcp.ordering import pick_best_name, sort_locations_deterministic
from digitransit_mcp.services import upstream
from digitransit_mcp.services.stop_service import haversine_distance

logger = logging.getLogger(__name__)

# Candidates returned to the caller
MAX_CANDIDATES = 5

# Ask upstream for more than we return so filtering and sorting have room
UPSTREAM_SIZE = MAX_CANDIDATES * 2

# Below this top confidence, several candidates mean the query is ambiguous
CLARIFICATION_THRESHOLD = 0.8


def normalize_confidence(value: Any) -> float:
    """Clamp an upstream confidence to 0..1; missing values count as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return min(1.0, max(0.0, float(value)))


def _feature_coordinate(feature: dict) -> Coordinate | None:
    coords = (feature.get("geometry") or {}).get("coordinates")
    if isinstance(coords, list) and len(coords) >= 2:
        # GeoJSON order is lon, lat
        return Coordinate(lon=float(coords[0]), lat=float(coords[1]))
    return None


def feature_to_candidate(feature: dict, preferred_language: str | None = None) -> LocationCandidate | None:
    """Convert a GeoJSON feature from the geocoder into a LocationCandidate."""
    props = feature.get("properties") or {}
    names = {
        "fi": props.get("name_fi") or props.get("name"),
        "en": props.get("name_en"),
        "sv": props.get("name_sv"),
        "default": props.get("label") or props.get("name"),
    }
    best = pick_best_name(names, preferred_language)
    if best is None:
        return None
    name, language = best

    distance_km = props.get("distance")
    return LocationCandidate(
        name=name,
        id=props.get("gid") or props.get("id"),
        label=props.get("label"),
        layer=props.get("layer"),
        coordinate=_feature_coordinate(feature),
        confidence_score=normalize_confidence(props.get("confidence")),
        primary_language=language,
        distance_meters=float(distance_km) * 1000 if isinstance(distance_km, (int, float)) else None,
    )


def _features(body: Any) -> list[dict]:
    if not isinstance(body, dict):
        return []
    return [f for f in body.get("features") or [] if isinstance(f, dict)]


async def lookup_address_or_stop(
    text: str,
    focus_lat: float | None = None,
    focus_lon: float | None = None,
    max_distance_meters: float | None = None,
    lang: list[str] | None = None,
    size: int | None = None,
) -> LookupResponse:
    """Geocode free text into ranked address/stop candidates.

    Args:
        text: Search text (e.g., "Kamppi", "Mannerheimintie 1").
        focus_lat: Optional latitude to bias results towards.
        focus_lon: Optional longitude to bias results towards.
        max_distance_meters: Drop candidates farther than this from the focus.
        lang: Preferred languages in order (fi, en, sv).
        size: Number of candidates requested from upstream.

    Returns:
        LookupResponse with at most 5 candidates in deterministic order.
    """
    text = (text or "").strip()
    if not text:
        return LookupResponse(
            query=text,
            error=ErrorInfo(code=VALIDATION_ERROR, message="Missing text for lookup"),
        )

    config = upstream._get_config()
    preferred = lang[0] if lang else None
    has_focus = focus_lat is not None and focus_lon is not None

    params: dict[str, Any] = {"text": text, "size": size or UPSTREAM_SIZE}
    if has_focus:
        params["focus.point.lat"] = focus_lat
        params["focus.point.lon"] = focus_lon
    if lang:
        params["lang"] = ",".join(lang)

    cache_key = upstream.make_cache_key(
        "search",
        text=text.casefold(),
        lat=focus_lat,
        lon=focus_lon,
        lang=lang,
        size=params["size"],
    )

    try:
        body = await upstream.fetch(
            cache_key, lambda client: client.get_json(config.geocoding_search_url, params)
        )
    except (UpstreamError, InflightTimeoutError) as e:
        logger.warning(f"Geocoding failed for {text!r}: {e}")
        return LookupResponse(query=text, error=ErrorInfo.from_exception(e))

    candidates = [c for c in (feature_to_candidate(f, preferred) for f in _features(body)) if c]

    if has_focus:
        for candidate in candidates:
            if candidate.coordinate is not None:
                candidate.distance_meters = haversine_distance(
                    focus_lat, focus_lon, candidate.coordinate.lat, candidate.coordinate.lon
                )
        if max_distance_meters:
            candidates = [
                c
                for c in candidates
                if c.distance_meters is not None and c.distance_meters <= max_distance_meters
            ]

    candidates = sort_locations_deterministic(candidates)[:MAX_CANDIDATES]
    needs_clarification = len(candidates) > 1 and candidates[0].confidence_score < CLARIFICATION_THRESHOLD

    return LookupResponse(
        query=text,
        candidates=candidates,
        count=len(candidates),
        needs_clarification=needs_clarification,
    )


async def reverse_geocode(
    lat: float,
    lon: float,
    lang: str | None = None,
    size: int = MAX_CANDIDATES,
) -> ReverseGeocodeResponse:
    """Find named places at a coordinate.

    Args:
        lat: Latitude.
        lon: Longitude.
        lang: Preferred language for names (fi, en, sv).
        size: Maximum number of results.

    Returns:
        ReverseGeocodeResponse with results in deterministic order.
    """
    coordinate = Coordinate(lat=lat, lon=lon)
    config = upstream._get_config()

    params: dict[str, Any] = {"point.lat": lat, "point.lon": lon, "size": size}
    if lang:
        params["lang"] = lang

    cache_key = upstream.make_cache_key("reverse", lat=float(lat), lon=float(lon), lang=lang, size=size)

    try:
        body = await upstream.fetch(
            cache_key, lambda client: client.get_json(config.geocoding_reverse_url, params)
        )
    except (UpstreamError, InflightTimeoutError) as e:
        logger.warning(f"Reverse geocoding failed for {lat},{lon}: {e}")
        return ReverseGeocodeResponse(coordinate=coordinate, error=ErrorInfo.from_exception(e))

    results = [c for c in (feature_to_candidate(f, lang) for f in _features(body)) if c]
    results = sort_locations_deterministic(results)[:size]

    return ReverseGeocodeResponse(coordinate=coordinate, results=results, count=len(results))
