"""Tests for trip planning."""

from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from digitransit_mcp.data.config import DigitransitConfig
from digitransit_mcp.data.errors import VALIDATION_ERROR, UpstreamError
from digitransit_mcp.services import upstream
from digitransit_mcp.services.route_service import (
    build_itinerary,
    count_transfers,
    dedupe_by_fingerprint,
    parse_requested_time,
    plan_trip,
)

# 2025-01-15 08:00:00 UTC
T0 = 1736928000000
MINUTE = 60_000


@pytest.fixture(autouse=True)
def reset_service():
    upstream.reset_service()
    upstream._config = DigitransitConfig(DIGITRANSIT_API_KEY="test_key")
    yield
    upstream.reset_service()


def _place(name, stop_id=None) -> dict:
    return {
        "name": name,
        "lat": 60.17,
        "lon": 24.94,
        "stop": {"gtfsId": stop_id, "name": name} if stop_id else None,
    }


def _leg(mode, start, end, line=None, origin=("Origin", None), dest=("Dest", None), **extra) -> dict:
    return {
        "mode": mode,
        "startTime": start,
        "endTime": end,
        "duration": (end - start) / 1000,
        "distance": 500.0,
        "realTime": False,
        "route": {"shortName": line} if line else None,
        "from": _place(*origin),
        "to": _place(*dest),
        **extra,
    }


def _itinerary(legs, walk=300.0) -> dict:
    return {
        "startTime": legs[0]["startTime"],
        "endTime": legs[-1]["endTime"],
        "duration": (legs[-1]["endTime"] - legs[0]["startTime"]) / 1000,
        "walkDistance": walk,
        "legs": legs,
    }


def _bus_trip(start=T0, line="550", minutes=30) -> dict:
    return _itinerary(
        [
            _leg("WALK", start, start + 5 * MINUTE, dest=("Stop A", "HSL:1")),
            _leg(
                "BUS",
                start + 5 * MINUTE,
                start + minutes * MINUTE,
                line=line,
                origin=("Stop A", "HSL:1"),
                dest=("Stop B", "HSL:2"),
            ),
        ]
    )


def test_parse_requested_time_local_by_default():
    # Helsinki is UTC+2 in January
    assert parse_requested_time("2025-01-15T10:00") == datetime(2025, 1, 15, 8, 0, tzinfo=UTC)
    assert parse_requested_time("2025-01-15T10:00:00+00:00") == datetime(2025, 1, 15, 10, 0, tzinfo=UTC)


def test_parse_requested_time_defaults_to_now():
    now = datetime(2025, 1, 15, 8, 0, tzinfo=UTC)

    assert parse_requested_time(None, now=now) == now


def test_parse_requested_time_invalid():
    with pytest.raises(ValueError):
        parse_requested_time("tomorrow morning")


def test_build_itinerary_shapes_legs():
    itinerary = build_itinerary(_bus_trip())

    assert itinerary.duration_minutes == 30
    assert itinerary.number_of_transfers == 0
    assert itinerary.legs[1].line == "550"
    assert itinerary.legs[1].from_.id == "HSL:1"
    assert itinerary.legs[0].duration_seconds == 300
    assert itinerary.start_time == "2025-01-15T08:00:00+00:00"
    assert itinerary.fingerprint.startswith("sha256:")
    assert itinerary.id == itinerary.fingerprint.split(":", 1)[1][:12]
    assert itinerary.disruption_note is None


def test_build_itinerary_without_legs():
    assert build_itinerary({"legs": []}) is None


def test_id_stable_across_realtime_updates():
    scheduled = _bus_trip()
    delayed = _bus_trip()
    delayed["legs"][1].update({"realTime": True, "departureDelay": 90})

    assert build_itinerary(scheduled).id == build_itinerary(delayed).id
    assert build_itinerary(delayed).legs[1].realtime_delay_seconds == 90


def test_cancelled_leg_sets_disruption_note():
    raw = _bus_trip()
    raw["legs"][1]["realtimeState"] = "CANCELED"

    itinerary = build_itinerary(raw)

    assert itinerary.legs[1].cancelled is True
    assert itinerary.disruption_note == "Cancelled: 550"


def test_count_transfers():
    raw = _itinerary(
        [
            _leg("WALK", T0, T0 + MINUTE),
            _leg("BUS", T0 + MINUTE, T0 + 10 * MINUTE, line="550"),
            _leg("WALK", T0 + 10 * MINUTE, T0 + 12 * MINUTE),
            _leg("SUBWAY", T0 + 12 * MINUTE, T0 + 20 * MINUTE, line="M1"),
        ]
    )

    assert count_transfers(build_itinerary(raw).legs) == 1


def test_dedupe_keeps_first():
    a = build_itinerary(_bus_trip())
    b = build_itinerary(_bus_trip(start=T0 + 30_000))
    c = build_itinerary(_bus_trip(line="551"))

    assert [i.id for i in dedupe_by_fingerprint([a, b, c])] == [a.id, c.id]


@pytest.mark.asyncio
async def test_plan_trip_sorts_dedupes_and_limits():
    data = {
        "plan": {
            "itineraries": [
                _bus_trip(line="550", minutes=40),
                _bus_trip(line="551", minutes=25),
                _bus_trip(line="551", minutes=25),
                _bus_trip(line="552", minutes=30),
                _bus_trip(line="553", minutes=50),
            ]
        }
    }

    with patch.object(upstream, "fetch", AsyncMock(return_value=data)):
        result = await plan_trip(60.17, 24.94, 60.2, 24.9, departure_time="2025-01-15T10:00", max_itineraries=3)

    assert result.success is True
    assert result.count == 3
    assert [i.legs[1].line for i in result.itineraries] == ["551", "552", "550"]
    assert len({i.id for i in result.itineraries}) == 3
    assert result.requested_time == "2025-01-15T08:00:00+00:00"


@pytest.mark.asyncio
async def test_plan_trip_sends_local_date_and_time():
    mock_fetch = AsyncMock(return_value={"plan": {"itineraries": []}})

    with patch.object(upstream, "fetch", mock_fetch):
        result = await plan_trip(
            60.17, 24.94, 60.2, 24.9, departure_time="2025-01-15T08:00:00+00:00", arrive_by=True
        )

    assert result.success is True
    assert result.itineraries == []

    client = AsyncMock()
    await mock_fetch.call_args.args[1](client)
    _, variables = client.post_graphql.call_args.args
    assert variables["date"] == "2025-01-15"
    assert variables["time"] == "10:00:00"
    assert variables["arriveBy"] is True


@pytest.mark.asyncio
async def test_plan_trip_invalid_time():
    mock_fetch = AsyncMock()

    with patch.object(upstream, "fetch", mock_fetch):
        result = await plan_trip(60.17, 24.94, 60.2, 24.9, departure_time="soon")

    assert result.success is False
    assert result.error.code == VALIDATION_ERROR
    mock_fetch.assert_not_called()


@pytest.mark.asyncio
async def test_plan_trip_upstream_failure():
    error = UpstreamError("upstream-error", "upstream server error", status=502)

    with patch.object(upstream, "fetch", AsyncMock(side_effect=error)):
        result = await plan_trip(60.17, 24.94, 60.2, 24.9)

    assert result.success is False
    assert result.error.code == "upstream-error"
