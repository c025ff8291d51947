"""MCP tools for remembering values within a session."""

from typing import Any

from digitransit_mcp.app import mcp
from digitransit_mcp.data.user_variable_store import get_user_variable_store
from digitransit_mcp.models.responses import (
    GetUserVariablesResponse,
    PreviousVariable,
    SaveUserVariableResponse,
)
from digitransit_mcp.models.transit import ResponseWarning
from digitransit_mcp.models.user_variables import VariableType


@mcp.tool()
def save_user_variable(
    key: str,
    value: Any,
    type: VariableType | None = None,
    session_id: str = "default",
    ttl_seconds: int | None = None,
) -> SaveUserVariableResponse:
    """Remember a value for later in the conversation (e.g., "home", "work").

    Saving an existing key overwrites it and returns a key-overwritten warning.
    Variables are kept in memory only and are lost when the server restarts.

    Examples:
        save_user_variable(key="home", type="location",
                           value={"lat": 60.1699, "lon": 24.9384})
        save_user_variable(key="preferred_mode", type="preference", value="BUS")

    Args:
        key: Variable name (case-sensitive).
        value: Any JSON value. Location variables need a coordinate, either
            {"coordinate": {"lat": ..., "lon": ...}} or {"lat": ..., "lon": ...}.
        type: Optional category: location, preference, other, string, number, boolean.
        session_id: Session to store the variable in (default "default").
        ttl_seconds: Lifetime in seconds (default 24h, 0 or less never expires).

    Returns:
        SaveUserVariableResponse with the stored variable.
    """
    store = get_user_variable_store()
    previous, variable = store.save(
        session_id=session_id, key=key, value=value, type=type, ttl_seconds=ttl_seconds
    )

    warnings = []
    if previous is not None:
        warnings.append(
            ResponseWarning(code="key-overwritten", message=f"Overwrote existing variable '{key}'")
        )

    return SaveUserVariableResponse(
        variable=variable,
        previous=PreviousVariable(key=previous.key, type=previous.type) if previous else None,
        warnings=warnings,
    )


@mcp.tool()
def get_user_variables(session_id: str = "default") -> GetUserVariablesResponse:
    """List the variables saved in a session, most recently updated first.

    Args:
        session_id: Session to read (default "default").

    Returns:
        GetUserVariablesResponse with all non-expired variables.
    """
    variables = get_user_variable_store().list(session_id)
    return GetUserVariablesResponse(session_id=session_id, variables=variables, count=len(variables))
