"""MCP tools for searching stops."""

from digitransit_mcp.app import mcp
from digitransit_mcp.models.responses import FindStopsResponse
from digitransit_mcp.services.stop_service import find_stops as _find_stops


@mcp.tool()
async def find_stops(
    lat: float,
    lon: float,
    radius_meters: int = 500,
    max_results: int = 10,
    text_filter: str | None = None,
) -> FindStopsResponse:
    """Find transit stops near a coordinate.

    Examples:
        find_stops(lat=60.1699, lon=24.9384)  # Stops around Helsinki central
        find_stops(lat=60.1699, lon=24.9384, text_filter="rautatientori")

    Args:
        lat: Latitude of the search center.
        lon: Longitude of the search center.
        radius_meters: Search radius (default 500m, 1-3000m).
        max_results: Maximum stops to return (default 10). At most 25 are
            returned; larger requests are truncated with a warning.
        text_filter: Optional fuzzy filter on stop names.

    Returns:
        FindStopsResponse with stops sorted by distance.
    """
    # Validate radius
    if radius_meters < 1:
        radius_meters = 1
    elif radius_meters > 3000:
        radius_meters = 3000

    if max_results < 1:
        max_results = 1

    return await _find_stops(
        lat=lat,
        lon=lon,
        radius_meters=radius_meters,
        max_results=max_results,
        text_filter=text_filter,
    )
