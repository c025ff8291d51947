"""MCP tools for stop timetables."""

from digitransit_mcp.app import mcp
from digitransit_mcp.models.responses import StopTimetableResponse
from digitransit_mcp.services.timetable_service import get_stop_timetable as _get_stop_timetable


@mcp.tool()
async def get_stop_timetable(
    stop_id: str,
    horizon_minutes: int = 45,
    max_departures: int = 5,
) -> StopTimetableResponse:
    """Get the next departures from a stop.

    Uses realtime predictions where the operator publishes them.

    Examples:
        get_stop_timetable(stop_id="HSL:1040129")
        get_stop_timetable(stop_id="HSL:1040129", horizon_minutes=15)

    Args:
        stop_id: Stop id as returned by find_stops (e.g., "HSL:1040129").
        horizon_minutes: Minutes ahead to look (1-90, default 45).
        max_departures: Maximum departures to return (1-50, default 5).

    Returns:
        StopTimetableResponse with departures sorted by scheduled time.
    """
    if max_departures < 1:
        max_departures = 1
    elif max_departures > 50:
        max_departures = 50

    return await _get_stop_timetable(
        stop_id=stop_id,
        horizon_minutes=horizon_minutes,
        max_departures=max_departures,
    )
