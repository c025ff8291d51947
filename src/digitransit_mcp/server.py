import argparse
import asyncio
import logging
from datetime import UTC, datetime

from pydantic import BaseModel

from digitransit_mcp.app import mcp
from digitransit_mcp.data.config import get_config

# Importing the tool modules registers their tools on `mcp`
from digitransit_mcp.tools import (  # noqa: F401
    geocode_tools,
    stop_tools,
    timetable_tools,
    trip_tools,
    user_variable_tools,
)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: str
    api_key_configured: bool


@mcp.tool()
def health() -> HealthResponse:
    """Check if the Digitransit MCP server is running and healthy.

    Returns the server status, version, current timestamp, and whether a
    Digitransit subscription key is configured.
    """
    from digitransit_mcp import __version__

    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=datetime.now(UTC).isoformat(),
        api_key_configured=bool(get_config().api_key),
    )


async def run_lookup(text: str) -> None:
    """Print geocoding candidates for a search text."""
    from digitransit_mcp.services.lookup_service import lookup_address_or_stop

    result = await lookup_address_or_stop(text=text)
    print(result.model_dump_json(indent=2))


async def run_route(from_lat: float, from_lon: float, to_lat: float, to_lon: float, when: str | None) -> None:
    """Print planned itineraries between two coordinates."""
    from digitransit_mcp.services.route_service import plan_trip

    result = await plan_trip(from_lat, from_lon, to_lat, to_lon, departure_time=when)
    print(result.model_dump_json(indent=2, by_alias=True))


async def run_timetable(stop_id: str, horizon: int) -> None:
    """Print upcoming departures from a stop."""
    from digitransit_mcp.services.timetable_service import get_stop_timetable

    result = await get_stop_timetable(stop_id, horizon_minutes=horizon)
    print(result.model_dump_json(indent=2))


def _add_verbose(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="digitransit-mcp",
        description="Digitransit MCP Server",
    )
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the MCP server over stdio (default)")
    _add_verbose(serve_parser)

    lookup_parser = subparsers.add_parser("lookup", help="Geocode an address or stop name")
    lookup_parser.add_argument("text", help="Text to search for (e.g., 'Kamppi')")
    _add_verbose(lookup_parser)

    route_parser = subparsers.add_parser("route", help="Plan a trip between two coordinates")
    route_parser.add_argument("from_lat", type=float)
    route_parser.add_argument("from_lon", type=float)
    route_parser.add_argument("to_lat", type=float)
    route_parser.add_argument("to_lon", type=float)
    route_parser.add_argument(
        "--time",
        default=None,
        help="Departure time, ISO-8601 (default: now)",
    )
    _add_verbose(route_parser)

    timetable_parser = subparsers.add_parser("timetable", help="Show upcoming departures from a stop")
    timetable_parser.add_argument("stop_id", help="Stop id (e.g., 'HSL:1040129')")
    timetable_parser.add_argument(
        "--horizon",
        type=int,
        default=45,
        help="Minutes ahead to look (default: 45)",
    )
    _add_verbose(timetable_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging
    log_level = logging.DEBUG if getattr(args, "verbose", False) else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "lookup":
        asyncio.run(run_lookup(args.text))
    elif args.command == "route":
        asyncio.run(run_route(args.from_lat, args.from_lon, args.to_lat, args.to_lon, args.time))
    elif args.command == "timetable":
        asyncio.run(run_timetable(args.stop_id, args.horizon))
    else:
        # Default: run MCP server
        mcp.run()


if __name__ == "__main__":
    main()
