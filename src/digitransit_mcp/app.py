"""MCP application instance.

This module exists to avoid circular import issues when running with `python -m`.
All tool modules should import `mcp` from here, not from server.py.
"""

from mcp.server.fastmcp import FastMCP

# Initialize the MCP server
mcp = FastMCP(
    "Digitransit Transit",
    instructions=(
        "Finnish public transport via Digitransit - address and stop lookup, nearby stops, "
        "trip planning, stop timetables, and per-session user variables"
    ),
)
