from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from digitransit_mcp.models.transit import Coordinate


class VariableType(str, Enum):
    """Category of a stored user variable."""

    LOCATION = "location"
    PREFERENCE = "preference"
    OTHER = "other"
    # primitive value labels
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"


class UserVariable(BaseModel):
    """A named value remembered for a session (e.g., "home", "preferred_mode").

    Location variables must carry a coordinate. Both ``{"coordinate": {...}}``
    and a bare ``{"lat": ..., "lon": ...}`` are accepted; the latter is
    normalized to the former.
    """

    key: str = Field(min_length=1)
    type: VariableType | None = None
    value: Any = None
    session_id: str = "default"
    created_at: datetime
    updated_at: datetime
    expires_at: datetime | None = Field(default=None, description="Null means no expiry")
    ttl_seconds: int | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_location(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("type") not in (VariableType.LOCATION, "location"):
            return data

        value = data.get("value")
        if not isinstance(value, dict):
            raise ValueError("location type requires an object value with a coordinate")

        raw = value.get("coordinate")
        if raw is None and "lat" in value and "lon" in value:
            raw = {"lat": value["lat"], "lon": value["lon"]}
            value = {k: v for k, v in value.items() if k not in ("lat", "lon")}
        if raw is None:
            raise ValueError("missing coordinate for location value (expected coordinate or lat/lon keys)")

        coordinate = raw if isinstance(raw, Coordinate) else Coordinate.model_validate(raw)
        return {**data, "value": {**value, "coordinate": coordinate.model_dump()}}

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at
