"""MCP server for Finnish public transport, backed by Digitransit."""

__version__ = "0.1.0"
