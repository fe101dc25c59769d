"""Tests for calendar providers and the provider factory.

Covers the seeded mock calendars, the in-memory static provider, the HTTP
free/busy client and provider selection from settings.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta

import httpx
import pytest
import pytz

from backend.domain.models import BusyStatus
from backend.providers.calendar_provider import (
    ParticipantDataUnavailableError,
    UnknownCalendarProviderError,
    build_calendar_provider,
)
from backend.providers.http_provider import HttpCalendarProvider
from backend.providers.mock_provider import MockCalendarProvider
from backend.providers.static_provider import StaticCalendarProvider
from backend.utils.config import get_settings


MONDAY = datetime(2026, 3, 2, tzinfo=pytz.utc)
WEEK_END = MONDAY + timedelta(days=7)


def _build_test_settings(**overrides):
    get_settings.cache_clear()
    return replace(get_settings(), **overrides)


def _fetch(provider, participant_id: str = "alice", start: datetime = MONDAY, end: datetime = WEEK_END):
    return asyncio.run(provider.get_busy_intervals(participant_id, start, end))


# --- mock provider ---

def test_mock_calendar_is_deterministic_per_seed() -> None:
    first = _fetch(MockCalendarProvider(seed=42))
    second = _fetch(MockCalendarProvider(seed=42))
    other_seed = _fetch(MockCalendarProvider(seed=7))

    assert first == second
    assert first != other_seed


def test_mock_calendar_differs_between_participants() -> None:
    provider = MockCalendarProvider(seed=42)
    assert _fetch(provider, "alice") != _fetch(provider, "bob")


def test_mock_calendar_events_follow_generation_rules() -> None:
    intervals = _fetch(MockCalendarProvider(seed=42, busyness=0.9))
    by_day: dict = {}
    for interval in intervals:
        by_day.setdefault(interval.start.date(), []).append(interval)

    assert len(by_day) == 5
    assert all(day.weekday() < 5 for day in by_day)
    for events in by_day.values():
        assert 1 <= len(events) <= 8
        for interval in events:
            assert interval.status is BusyStatus.BUSY
            assert 9 <= interval.start.hour < 17
            assert interval.start.minute % 15 == 0
            assert (interval.end - interval.start) in {timedelta(minutes=m) for m in (30, 45, 60, 90, 120)}
        ordered = sorted(events, key=lambda item: item.start)
        assert all(left.end <= right.start for left, right in zip(ordered, ordered[1:]))


def test_mock_busyness_is_clamped() -> None:
    assert MockCalendarProvider(busyness=5.0).busyness == 0.9
    assert MockCalendarProvider(busyness=-1.0).busyness == 0.1


def test_mock_calendar_only_returns_overlapping_events() -> None:
    start = MONDAY.replace(hour=12)
    end = MONDAY.replace(hour=13)
    intervals = _fetch(MockCalendarProvider(seed=42, busyness=0.9), start=start, end=end)
    assert all(interval.end > start and interval.start < end for interval in intervals)


# --- static provider ---

def test_static_provider_raises_for_unavailable_participant() -> None:
    provider = StaticCalendarProvider({}, unavailable=["bob"])
    with pytest.raises(ParticipantDataUnavailableError):
        _fetch(provider, "bob")
    assert _fetch(provider, "alice") == []
    assert provider.calls == ["bob", "alice"]


# --- http provider ---

async def _http_fetch(handler, participant_id: str = "alice"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    provider = HttpCalendarProvider(base_url="http://calendar.test/", client=client)
    try:
        return await provider.get_busy_intervals(participant_id, MONDAY, WEEK_END)
    finally:
        await client.aclose()


def test_http_provider_parses_busy_payload() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "busy": [
                    {"start": "2026-03-02T09:00:00Z", "end": "2026-03-02T10:00:00Z"},
                    {"start": "2026-03-02T13:00:00+01:00", "end": "2026-03-02T14:00:00+01:00", "status": "tentative"},
                ]
            },
        )

    intervals = asyncio.run(_http_fetch(handler))

    assert seen[0].url.path == "/participants/alice/busy"
    assert seen[0].url.params["start"] == MONDAY.isoformat()
    assert [interval.status for interval in intervals] == [BusyStatus.BUSY, BusyStatus.TENTATIVE]
    assert intervals[0].start == MONDAY.replace(hour=9)
    assert intervals[1].start == MONDAY.replace(hour=12)
    assert all(interval.participant_id == "alice" for interval in intervals)


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, json={"error": "down"}),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"events": []}),
        httpx.Response(200, json={"busy": [{"start": "2026-03-02T09:00:00Z"}]}),
        httpx.Response(200, json={"busy": [{"start": "2026-03-02T10:00:00Z", "end": "2026-03-02T09:00:00Z"}]}),
    ],
)
def test_http_provider_maps_failures_to_unavailable(response: httpx.Response) -> None:
    with pytest.raises(ParticipantDataUnavailableError):
        asyncio.run(_http_fetch(lambda request: response))


def test_http_provider_maps_transport_errors_to_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ParticipantDataUnavailableError) as exc_info:
        asyncio.run(_http_fetch(handler, "bob"))
    assert exc_info.value.participant_id == "bob"


# --- factory ---

def test_factory_builds_configured_provider() -> None:
    assert isinstance(build_calendar_provider(_build_test_settings(calendar_provider="mock")), MockCalendarProvider)
    http_provider = build_calendar_provider(_build_test_settings(calendar_provider="http"))
    assert isinstance(http_provider, HttpCalendarProvider)
    asyncio.run(http_provider.aclose())


def test_factory_places_mock_events_in_default_time_zone() -> None:
    settings = _build_test_settings(calendar_provider="mock", default_time_zone="America/New_York")
    provider = build_calendar_provider(settings)

    assert provider.time_zone == "America/New_York"
    new_york = pytz.timezone("America/New_York")
    events = _fetch(provider)
    assert events
    for event in events:
        local_start = event.start.astimezone(new_york)
        assert 9 <= local_start.hour < 17
        assert local_start.minute % 15 == 0
    assert any(event.start.astimezone(pytz.utc).hour >= 17 for event in events)


def test_factory_rejects_unknown_provider() -> None:
    with pytest.raises(UnknownCalendarProviderError):
        build_calendar_provider(_build_test_settings(calendar_provider="exchange"))
