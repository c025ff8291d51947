from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Coordinate(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lon: float = Field(ge=-180, le=180)


class LocationCandidate(BaseModel):
    """A geocoding result shaped for deterministic ordering."""

    name: str
    id: str | None = None
    label: str | None = None
    layer: str | None = Field(default=None, description="Geocoder layer (e.g., 'stop', 'address', 'venue')")
    coordinate: Coordinate | None = None
    confidence_score: float = Field(ge=0, le=1, description="Upstream confidence, clamped to 0..1")
    primary_language: str = Field(description="Language of the chosen name: fi, en, sv or default")
    distance_meters: float | None = Field(
        default=None, description="Distance from the focus point, when one was given"
    )


class StopRef(BaseModel):
    """Leg endpoint: a stop or a named place."""

    id: str | None = None
    name: str | None = None
    coordinate: Coordinate | None = None


class Leg(BaseModel):
    """One leg of an itinerary.

    Only mode, line and endpoints identify the leg; the realtime fields are
    informational and never affect the itinerary fingerprint.
    """

    model_config = ConfigDict(populate_by_name=True)

    mode: str
    line: str | None = Field(default=None, description="Route short name (e.g., '550', 'M1')")
    from_: StopRef = Field(alias="from")
    to: StopRef
    departure_time: str = Field(description="Scheduled departure, ISO-8601 UTC")
    arrival_time: str = Field(description="Scheduled arrival, ISO-8601 UTC")
    duration_seconds: int = Field(ge=0)
    distance_meters: float | None = None

    # Realtime (volatile)
    realtime: bool = False
    realtime_delay_seconds: int | None = None
    cancelled: bool = False


class Itinerary(BaseModel):
    """A planned journey."""

    id: str = Field(description="Short fingerprint, stable across realtime updates")
    fingerprint: str
    legs: list[Leg]
    start_time: str = Field(description="ISO-8601 UTC")
    end_time: str = Field(description="ISO-8601 UTC")
    duration_minutes: int
    number_of_transfers: int
    walk_distance_meters: float | None = None
    disruption_note: str | None = Field(
        default=None, description="Set when one or more legs are cancelled"
    )


class Departure(BaseModel):
    """A departure from a stop."""

    scheduled_time: str = Field(description="Scheduled departure, ISO-8601 UTC")
    realtime_time: str | None = Field(default=None, description="Predicted departure, ISO-8601 UTC")
    delay_seconds: int | None = None
    route_short_name: str | None = None
    mode: str | None = None
    headsign: str | None = None
    realtime: bool = False


class StopSummary(BaseModel):
    id: str
    code: str | None = None
    name: str
    coordinate: Coordinate | None = None
    distance_meters: float | None = None
    modes: list[str] = Field(default_factory=list)


class ResponseWarning(BaseModel):
    code: str
    message: str


class ErrorInfo(BaseModel):
    """Upstream failure surfaced in a tool response."""

    code: str
    message: str
    retry_after: float | None = None
    provider_message: str | None = None

    @classmethod
    def from_exception(cls, exc: Any) -> "ErrorInfo":
        default_code = "upstream-timeout" if isinstance(exc, TimeoutError) else "upstream-error"
        return cls(
            code=getattr(exc, "code", default_code),
            message=getattr(exc, "message", None) or str(exc),
            retry_after=getattr(exc, "retry_after", None),
            provider_message=getattr(exc, "provider_message", None),
        )
