"""Nearby stop search against the Digitransit routing API."""

import logging
import math
import unicodedata

from rapidfuzz import fuzz

from digitransit_mcp.data.cache import InflightTimeoutError
from digitransit_mcp.data.errors import UpstreamError
from digitransit_mcp.models.responses import FindStopsResponse
from digitransit_mcp.models.transit import Coordinate, ErrorInfo, ResponseWarning, StopSummary
from digitransit_mcp.services import upstream

logger = logging.getLogger(__name__)

# Earth's radius in meters for haversine calculation
EARTH_RADIUS_METERS = 6_371_000

# Upper bound on stops returned per request
SERVER_MAX_RESULTS = 25

# Stops fetched before text filtering, so a filter can still fill the result
FETCH_POOL_SIZE = 50

# Minimum rapidfuzz partial_ratio for a text filter match
TEXT_FILTER_MIN_SCORE = 80

NEARBY_STOPS_QUERY = """
query NearbyStops($lat: Float!, $lon: Float!, $radius: Int!, $first: Int!) {
  stopsByRadius(lat: $lat, lon: $lon, radius: $radius, first: $first) {
    edges {
      node {
        distance
        stop { gtfsId code name lat lon vehicleMode }
      }
    }
  }
}
"""


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great-circle distance between two points in meters.

    Args:
        lat1, lon1: First point coordinates in degrees.
        lat2, lon2: Second point coordinates in degrees.

    Returns:
        Distance in meters.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_METERS * c


def normalize_name(text: str) -> str:
    """Lowercase and strip accents for matching.

    Example: "Töölön tori" -> "toolon tori"
    """
    decomposed = unicodedata.normalize("NFD", text.lower().strip())
    return "".join(c for c in decomposed if unicodedata.category(c) != "Mn")


def matches_text_filter(name: str, text_filter: str) -> bool:
    """Fuzzy partial match of a stop name against a filter string."""
    query = normalize_name(text_filter)
    target = normalize_name(name)
    if query in target:
        return True
    return fuzz.partial_ratio(query, target) >= TEXT_FILTER_MIN_SCORE


def _edge_to_stop(edge: dict) -> StopSummary | None:
    node = edge.get("node") or {}
    stop = node.get("stop")
    if not stop or not stop.get("gtfsId"):
        return None

    coordinate = None
    if stop.get("lat") is not None and stop.get("lon") is not None:
        coordinate = Coordinate(lat=stop["lat"], lon=stop["lon"])

    return StopSummary(
        id=stop["gtfsId"],
        code=stop.get("code"),
        name=stop.get("name") or stop["gtfsId"],
        coordinate=coordinate,
        distance_meters=float(node["distance"]) if node.get("distance") is not None else None,
        modes=[stop["vehicleMode"]] if stop.get("vehicleMode") else [],
    )


async def find_stops(
    lat: float,
    lon: float,
    radius_meters: int = 500,
    max_results: int = 10,
    text_filter: str | None = None,
) -> FindStopsResponse:
    """Find stops near a coordinate, closest first.

    Args:
        lat: Latitude of the search center.
        lon: Longitude of the search center.
        radius_meters: Search radius (1-3000).
        max_results: Requested number of stops. Requests above 25 are
            truncated with a warning.
        text_filter: Optional fuzzy filter on stop names.

    Returns:
        FindStopsResponse; on upstream failure the error field is set.
    """
    coordinate = Coordinate(lat=lat, lon=lon)
    warnings: list[ResponseWarning] = []

    truncated = max_results > SERVER_MAX_RESULTS
    if truncated:
        warnings.append(
            ResponseWarning(code="truncated-results", message=f"Results truncated to {SERVER_MAX_RESULTS}")
        )
    limit = min(max_results, SERVER_MAX_RESULTS)

    variables = {"lat": lat, "lon": lon, "radius": radius_meters, "first": FETCH_POOL_SIZE}
    cache_key = upstream.make_cache_key("stops", **variables)

    try:
        data = await upstream.fetch(
            cache_key, lambda client: client.post_graphql(NEARBY_STOPS_QUERY, variables)
        )
    except (UpstreamError, InflightTimeoutError) as e:
        logger.warning(f"Failed to fetch nearby stops: {e}")
        return FindStopsResponse(
            coordinate=coordinate,
            radius_meters=radius_meters,
            warnings=warnings,
            error=ErrorInfo.from_exception(e),
        )

    edges = ((data or {}).get("stopsByRadius") or {}).get("edges") or []
    stops = [s for s in (_edge_to_stop(edge) for edge in edges) if s is not None]

    # Fill in distances the API left out
    for stop in stops:
        if stop.distance_meters is None and stop.coordinate is not None:
            stop.distance_meters = haversine_distance(lat, lon, stop.coordinate.lat, stop.coordinate.lon)

    if text_filter:
        stops = [s for s in stops if matches_text_filter(s.name, text_filter)]
        if not stops:
            warnings.append(
                ResponseWarning(code="no-matches-after-filter", message="No stops match text_filter")
            )

    stops.sort(key=lambda s: (s.distance_meters if s.distance_meters is not None else math.inf, s.id))
    stops = stops[:limit]

    return FindStopsResponse(
        coordinate=coordinate,
        radius_meters=radius_meters,
        stops=stops,
        count=len(stops),
        truncated=truncated,
        warnings=warnings,
    )
