"""Trip planning against the Digitransit routing API.

Itineraries get a structural fingerprint and a short id derived from it, so
the same trip keeps its id while realtime data changes around it.
"""

import logging
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from digitransit_mcp.data.cache import InflightTimeoutError
from digitransit_mcp.data.errors import VALIDATION_ERROR, UpstreamError
from digitransit_mcp.models.responses import PlanTripResponse
from digitransit_mcp.models.transit import Coordinate, ErrorInfo, Itinerary, Leg, StopRef
from digitransit_mcp.ordering import (
    fingerprint_itinerary,
    parse_timestamp,
    short_fingerprint,
    sort_itineraries_deterministic,
)
from digitransit_mcp.services import upstream
from digitransit_mcp.services.timetable_service import to_iso_utc

logger = logging.getLogger(__name__)

# Routing dates and times are interpreted in the operator's local time
LOCAL_TZ = ZoneInfo("Europe/Helsinki")

DEFAULT_MAX_ITINERARIES = 3
MAX_ITINERARIES = 10

# Modes that are not transit and so never count towards transfers
NON_TRANSIT_MODES = {"WALK", "BICYCLE", "CAR", "SCOOTER"}

PLAN_QUERY = """
query PlanTrip(
  $fromLat: Float!, $fromLon: Float!, $toLat: Float!, $toLon: Float!,
  $date: String!, $time: String!, $arriveBy: Boolean!, $numItineraries: Int!
) {
  plan(
    from: { lat: $fromLat, lon: $fromLon }
    to: { lat: $toLat, lon: $toLon }
    date: $date
    time: $time
    arriveBy: $arriveBy
    numItineraries: $numItineraries
  ) {
    itineraries {
      startTime
      endTime
      duration
      walkDistance
      legs {
        mode
        startTime
        endTime
        duration
        distance
        realTime
        departureDelay
        realtimeState
        route { shortName }
        from { name lat lon stop { gtfsId name } }
        to { name lat lon stop { gtfsId name } }
      }
    }
  }
}
"""


def parse_requested_time(value: str | None, now: datetime | None = None) -> datetime:
    """Parse the requested departure/arrival time.

    ISO strings without an offset are taken as Helsinki local time. None
    means now.

    Raises:
        ValueError: If the string is not a valid ISO-8601 time.
    """
    if value is None or not value.strip():
        return (now or datetime.now(UTC)).astimezone(UTC)
    parsed = datetime.fromisoformat(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=LOCAL_TZ)
    return parsed.astimezone(UTC)


def _place_to_ref(place: dict | None) -> StopRef:
    place = place or {}
    stop = place.get("stop") or {}
    coordinate = None
    if place.get("lat") is not None and place.get("lon") is not None:
        coordinate = Coordinate(lat=place["lat"], lon=place["lon"])
    return StopRef(
        id=stop.get("gtfsId"),
        name=stop.get("name") or place.get("name"),
        coordinate=coordinate,
    )


def _build_leg(raw: dict) -> Leg:
    realtime = bool(raw.get("realTime"))
    start = raw.get("startTime")
    end = raw.get("endTime")
    duration = raw.get("duration")
    if duration is None and start is not None and end is not None:
        duration = (end - start) / 1000

    return Leg(
        mode=raw.get("mode") or "UNKNOWN",
        line=(raw.get("route") or {}).get("shortName"),
        from_=_place_to_ref(raw.get("from")),
        to=_place_to_ref(raw.get("to")),
        departure_time=to_iso_utc(start) or "",
        arrival_time=to_iso_utc(end) or "",
        duration_seconds=max(0, round(duration or 0)),
        distance_meters=raw.get("distance"),
        realtime=realtime,
        realtime_delay_seconds=raw.get("departureDelay") if realtime else None,
        cancelled=raw.get("realtimeState") == "CANCELED",
    )


def count_transfers(legs: list[Leg]) -> int:
    """Number of transit boardings after the first."""
    transit_legs = sum(1 for leg in legs if leg.mode.upper() not in NON_TRANSIT_MODES)
    return max(0, transit_legs - 1)


def build_itinerary(raw: dict) -> Itinerary | None:
    """Shape one upstream itinerary; returns None when it has no legs."""
    legs = [_build_leg(leg) for leg in raw.get("legs") or []]
    if not legs:
        return None

    start = parse_timestamp(raw.get("startTime")) or parse_timestamp(legs[0].departure_time)
    end = parse_timestamp(raw.get("endTime")) or parse_timestamp(legs[-1].arrival_time)
    if raw.get("duration") is not None:
        duration_minutes = round(raw["duration"] / 60)
    elif start and end:
        duration_minutes = round((end - start).total_seconds() / 60)
    else:
        duration_minutes = round(sum(leg.duration_seconds for leg in legs) / 60)

    cancelled = [leg for leg in legs if leg.cancelled]
    disruption_note = None
    if cancelled:
        lines = ", ".join(leg.line or leg.mode for leg in cancelled)
        disruption_note = f"Cancelled: {lines}"

    fingerprint = fingerprint_itinerary({"legs": legs})
    return Itinerary(
        id=short_fingerprint({"legs": legs}),
        fingerprint=fingerprint,
        legs=legs,
        start_time=start.isoformat() if start else legs[0].departure_time,
        end_time=end.isoformat() if end else legs[-1].arrival_time,
        duration_minutes=duration_minutes,
        number_of_transfers=count_transfers(legs),
        walk_distance_meters=raw.get("walkDistance"),
        disruption_note=disruption_note,
    )


def dedupe_by_fingerprint(itineraries: list[Itinerary]) -> list[Itinerary]:
    """Keep the first itinerary for each fingerprint."""
    seen: set[str] = set()
    unique = []
    for itinerary in itineraries:
        if itinerary.fingerprint in seen:
            continue
        seen.add(itinerary.fingerprint)
        unique.append(itinerary)
    return unique


async def plan_trip(
    from_lat: float,
    from_lon: float,
    to_lat: float,
    to_lon: float,
    departure_time: str | None = None,
    arrive_by: bool = False,
    max_itineraries: int = DEFAULT_MAX_ITINERARIES,
) -> PlanTripResponse:
    """Plan a trip between two coordinates.

    Args:
        from_lat, from_lon: Origin coordinate.
        to_lat, to_lon: Destination coordinate.
        departure_time: ISO-8601 time; local Helsinki time when no offset.
            Defaults to now.
        arrive_by: Treat departure_time as the latest arrival time.
        max_itineraries: Maximum itineraries to return (1-10).

    Returns:
        PlanTripResponse with unique itineraries in deterministic order.
    """
    origin = Coordinate(lat=from_lat, lon=from_lon)
    destination = Coordinate(lat=to_lat, lon=to_lon)
    max_itineraries = max(1, min(MAX_ITINERARIES, max_itineraries))

    try:
        requested = parse_requested_time(departure_time)
    except ValueError:
        return PlanTripResponse(
            origin=origin,
            destination=destination,
            requested_time=departure_time or "",
            arrive_by=arrive_by,
            success=False,
            error=ErrorInfo(
                code=VALIDATION_ERROR,
                message=f"Invalid time format: {departure_time}. Use ISO-8601 (e.g., 2025-01-15T08:30)",
            ),
        )

    local = requested.astimezone(LOCAL_TZ)
    variables = {
        "fromLat": from_lat,
        "fromLon": from_lon,
        "toLat": to_lat,
        "toLon": to_lon,
        "date": local.strftime("%Y-%m-%d"),
        # Minute resolution so requests within a minute share a cache key
        "time": local.strftime("%H:%M:00"),
        "arriveBy": arrive_by,
        "numItineraries": max_itineraries,
    }
    cache_key = upstream.make_cache_key("plan", **variables)

    response = PlanTripResponse(
        origin=origin,
        destination=destination,
        requested_time=requested.isoformat(),
        arrive_by=arrive_by,
        success=False,
    )

    try:
        data = await upstream.fetch(cache_key, lambda client: client.post_graphql(PLAN_QUERY, variables))
    except (UpstreamError, InflightTimeoutError) as e:
        logger.warning(f"Trip planning failed: {e}")
        response.error = ErrorInfo.from_exception(e)
        return response

    raw_itineraries = ((data or {}).get("plan") or {}).get("itineraries") or []
    itineraries = [i for i in (build_itinerary(raw) for raw in raw_itineraries) if i is not None]
    itineraries = dedupe_by_fingerprint(sort_itineraries_deterministic(itineraries))[:max_itineraries]

    response.itineraries = itineraries
    response.count = len(itineraries)
    response.success = True
    return response
