"""MCP tools for turning text and coordinates into places."""

from digitransit_mcp.app import mcp
from digitransit_mcp.models.responses import LookupResponse, ReverseGeocodeResponse
from digitransit_mcp.services.lookup_service import lookup_address_or_stop as _lookup
from digitransit_mcp.services.lookup_service import reverse_geocode as _reverse_geocode


@mcp.tool()
async def find_address_or_stop(
    text: str,
    lat: float | None = None,
    lon: float | None = None,
    max_distance_meters: float | None = None,
    lang: list[str] | None = None,
    size: int | None = None,
) -> LookupResponse:
    """Find addresses, places and stops matching free text.

    Use this first to turn what the user said into coordinates for plan_trip
    or find_stops. When needs_clarification is true, ask the user which
    candidate they meant instead of guessing.

    Examples:
        find_address_or_stop(text="Kamppi")
        find_address_or_stop(text="Mannerheimintie 1", lat=60.17, lon=24.94)

    Args:
        text: What to search for (address, place or stop name).
        lat: Optional latitude to prefer nearby results (requires lon).
        lon: Optional longitude to prefer nearby results (requires lat).
        max_distance_meters: Drop results farther than this from lat/lon.
        lang: Preferred name languages in order, from "fi", "en", "sv".
        size: How many results to request from the geocoder (1-40).

    Returns:
        LookupResponse with up to 5 candidates, best first.
    """
    if size is not None:
        size = max(1, min(40, size))

    return await _lookup(
        text=text,
        focus_lat=lat,
        focus_lon=lon,
        max_distance_meters=max_distance_meters,
        lang=lang,
        size=size,
    )


@mcp.tool()
async def reverse_geocode(
    lat: float,
    lon: float,
    lang: str | None = None,
) -> ReverseGeocodeResponse:
    """Find the named places at a coordinate.

    Args:
        lat: Latitude.
        lon: Longitude.
        lang: Preferred name language ("fi", "en" or "sv").

    Returns:
        ReverseGeocodeResponse with the nearest named places.
    """
    return await _reverse_geocode(lat=lat, lon=lon, lang=lang)
