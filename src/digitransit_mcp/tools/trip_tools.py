from digitransit_mcp.app import mcp
from digitransit_mcp.models.responses import PlanTripResponse
from digitransit_mcp.services.route_service import plan_trip as _plan_trip


@mcp.tool()
async def plan_trip(
    from_lat: float,
    from_lon: float,
    to_lat: float,
    to_lon: float,
    departure_time: str | None = None,
    arrive_by: bool = False,
    max_itineraries: int = 3,
) -> PlanTripResponse:
    """Plan a public transport trip between two coordinates.

    Resolve place names to coordinates with find_address_or_stop first.
    Itinerary ids stay the same across calls while the trip itself is
    unchanged, even if delays are updated.

    Args:
        from_lat: Origin latitude.
        from_lon: Origin longitude.
        to_lat: Destination latitude.
        to_lon: Destination longitude.
        departure_time: ISO-8601 time (e.g., "2025-01-15T08:30"); local
            Finnish time when no offset is given. Default: now.
        arrive_by: If true, departure_time is the latest arrival time.
        max_itineraries: Maximum itineraries to return (1-10, default: 3)

    Returns:
        PlanTripResponse with itineraries, fastest first.
    """
    # Clamp limit
    if max_itineraries < 1:
        max_itineraries = 1
    elif max_itineraries > 10:
        max_itineraries = 10

    return await _plan_trip(
        from_lat=from_lat,
        from_lon=from_lon,
        to_lat=to_lat,
        to_lon=to_lon,
        departure_time=departure_time,
        arrive_by=arrive_by,
        max_itineraries=max_itineraries,
    )
