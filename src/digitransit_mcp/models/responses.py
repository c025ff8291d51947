from pydantic import BaseModel, Field

from digitransit_mcp.models.transit import (
    Coordinate,
    Departure,
    ErrorInfo,
    Itinerary,
    LocationCandidate,
    ResponseWarning,
    StopSummary,
)
from digitransit_mcp.models.user_variables import UserVariable, VariableType


class LookupResponse(BaseModel):
    """Response from find_address_or_stop tool."""

    query: str
    candidates: list[LocationCandidate] = Field(
        default_factory=list, description="Candidates, best first (deterministic order)"
    )
    count: int = 0
    needs_clarification: bool = Field(
        default=False,
        description="True when several candidates exist and the best is below 0.8 confidence",
    )
    error: ErrorInfo | None = None


class ReverseGeocodeResponse(BaseModel):
    """Response from reverse_geocode tool."""

    coordinate: Coordinate
    results: list[LocationCandidate] = Field(default_factory=list)
    count: int = 0
    error: ErrorInfo | None = None


class FindStopsResponse(BaseModel):
    """Response from find_stops tool."""

    coordinate: Coordinate
    radius_meters: int
    stops: list[StopSummary] = Field(default_factory=list, description="Stops sorted by distance")
    count: int = 0
    truncated: bool = False
    warnings: list[ResponseWarning] = Field(default_factory=list)
    error: ErrorInfo | None = None


class PlanTripResponse(BaseModel):
    """Response from plan_trip tool."""

    origin: Coordinate
    destination: Coordinate
    requested_time: str = Field(description="ISO-8601 departure (or arrival) time used")
    arrive_by: bool = False
    itineraries: list[Itinerary] = Field(default_factory=list)
    count: int = 0
    success: bool
    error: ErrorInfo | None = None


class StopTimetableResponse(BaseModel):
    """Response from get_stop_timetable tool."""

    stop_id: str
    stop_name: str | None = None
    departures: list[Departure] = Field(default_factory=list)
    count: int = 0
    horizon_minutes: int
    query_time: str = Field(description="ISO-8601 UTC time the window starts")
    realtime_used: bool = False
    error: ErrorInfo | None = None


class PreviousVariable(BaseModel):
    key: str
    type: VariableType | None = None


class SaveUserVariableResponse(BaseModel):
    """Response from save_user_variable tool."""

    variable: UserVariable
    previous: PreviousVariable | None = None
    warnings: list[ResponseWarning] = Field(default_factory=list)


class GetUserVariablesResponse(BaseModel):
    """Response from get_user_variables tool."""

    session_id: str
    variables: list[UserVariable] = Field(description="Non-expired variables, newest first")
    count: int
