import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from digitransit_mcp.data.cache import InflightTimeoutError
from digitransit_mcp.data.errors import UpstreamError
from digitransit_mcp.models.responses import StopTimetableResponse
from digitransit_mcp.models.transit import Departure, ErrorInfo
from digitransit_mcp.ordering import parse_timestamp, sort_departures_deterministic
from digitransit_mcp.services import upstream

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_MINUTES = 45
MAX_HORIZON_MINUTES = 90
DEFAULT_MAX_DEPARTURES = 5

# Departures requested from upstream before sorting and truncation
UPSTREAM_DEPARTURES = 30

STOP_DEPARTURES_QUERY = """
query StopDepartures($stopId: String!, $start: Long!, $range: Int!, $n: Int!) {
  stop(id: $stopId) {
    gtfsId
    name
    stoptimesWithoutPatterns(startTime: $start, timeRange: $range, numberOfDepartures: $n) {
      serviceDay
      scheduledDeparture
      realtimeDeparture
      departureDelay
      realtime
      realtimeState
      headsign
      trip { route { shortName mode } }
    }
  }
}
"""


def clamp_horizon_minutes(value: float | None) -> int:
    """Floor and clamp a timetable horizon to 1..90 minutes (default 45)."""
    if value is None:
        return DEFAULT_HORIZON_MINUTES
    return max(1, min(MAX_HORIZON_MINUTES, int(value // 1)))


def to_iso_utc(value: Any) -> str | None:
    """Format an epoch (seconds or ms) or ISO string as ISO-8601 UTC."""
    parsed = parse_timestamp(value)
    return parsed.isoformat() if parsed else None


def _stoptime_to_departure(stoptime: dict) -> Departure | None:
    service_day = stoptime.get("serviceDay")
    scheduled = stoptime.get("scheduledDeparture")
    if service_day is None or scheduled is None:
        return None

    realtime = bool(stoptime.get("realtime"))
    realtime_departure = stoptime.get("realtimeDeparture")
    route = ((stoptime.get("trip") or {}).get("route")) or {}

    return Departure(
        scheduled_time=to_iso_utc(service_day + scheduled),
        realtime_time=(
            to_iso_utc(service_day + realtime_departure)
            if realtime and realtime_departure is not None
            else None
        ),
        delay_seconds=stoptime.get("departureDelay") if realtime else None,
        route_short_name=route.get("shortName"),
        mode=route.get("mode"),
        headsign=stoptime.get("headsign"),
        realtime=realtime,
    )


async def get_stop_timetable(
    stop_id: str,
    horizon_minutes: float | None = None,
    max_departures: int = DEFAULT_MAX_DEPARTURES,
    now: datetime | None = None,
) -> StopTimetableResponse:
    """Get upcoming departures from a stop.

    Args:
        stop_id: Digitransit GTFS stop id (e.g., "HSL:1040129").
        horizon_minutes: How far ahead to look, clamped to 1..90 (default 45).
        max_departures: Maximum departures to return.
        now: Start of the window (defaults to the current time).

    Returns:
        StopTimetableResponse with departures in deterministic order.
    """
    horizon = clamp_horizon_minutes(horizon_minutes)
    start = (now or datetime.now(UTC)).astimezone(UTC)

    response = StopTimetableResponse(
        stop_id=stop_id,
        horizon_minutes=horizon,
        query_time=start.isoformat(),
    )

    # Bucket the start to the minute so repeated calls share a cache key
    start_epoch = int(start.timestamp()) // 60 * 60
    variables = {
        "stopId": stop_id,
        "start": start_epoch,
        "range": horizon * 60,
        "n": max(UPSTREAM_DEPARTURES, max_departures),
    }
    cache_key = upstream.make_cache_key("timetable", **variables)

    try:
        data = await upstream.fetch(
            cache_key, lambda client: client.post_graphql(STOP_DEPARTURES_QUERY, variables)
        )
    except (UpstreamError, InflightTimeoutError) as e:
        logger.warning(f"Failed to fetch timetable for {stop_id}: {e}")
        response.error = ErrorInfo.from_exception(e)
        return response

    stop = (data or {}).get("stop")
    if not stop:
        logger.debug(f"Stop not found: {stop_id}")
        return response

    stoptimes = stop.get("stoptimesWithoutPatterns") or []
    departures = [d for d in (_stoptime_to_departure(s) for s in stoptimes) if d is not None]

    # Upstream starts at the whole minute; keep start <= departure <= end
    window_end = start + timedelta(minutes=horizon)
    departures = [d for d in departures if start <= parse_timestamp(d.scheduled_time) <= window_end]

    departures = sort_departures_deterministic(departures)[:max_departures]

    response.stop_name = stop.get("name")
    response.departures = departures
    response.count = len(departures)
    response.realtime_used = any(d.realtime for d in departures)
    return response
