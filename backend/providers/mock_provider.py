"""Deterministic synthetic calendars for demos and local development."""

from __future__ import annotations

import random
from datetime import date, datetime, time, timedelta

import pytz

from backend.domain.models import BusyInterval, BusyStatus
from backend.providers.calendar_provider import CalendarAvailabilityProvider
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_EVENT_DURATIONS_MINUTES = (30, 45, 60, 90, 120)
_MIN_EVENTS_PER_DAY = 1
_MAX_EVENTS_PER_DAY = 8
_PLACEMENT_ATTEMPTS = 10


class MockCalendarProvider(CalendarAvailabilityProvider):
    """Generates busy blocks per participant and day from a fixed seed.

    Each working day gets between one and eight non-overlapping events that
    start on a quarter hour between 09:00 and 17:00 local time. The busyness
    level (clamped to 0.1..0.9) scales the number of events. The generator for
    a day is seeded from ``(seed, participant_id, date)`` so identical requests
    see identical calendars across processes.
    """

    name = "mock"

    def __init__(
        self,
        *,
        seed: int = 42,
        busyness: float = 0.5,
        time_zone: str = "UTC",
        skip_weekends: bool = True,
    ) -> None:
        self._seed = seed
        self._busyness = max(0.1, min(0.9, busyness))
        self._tz = pytz.timezone(time_zone)
        self._skip_weekends = skip_weekends

    @property
    def busyness(self) -> float:
        return self._busyness

    @property
    def time_zone(self) -> str:
        return self._tz.zone

    def _events_per_day(self) -> int:
        spread = _MAX_EVENTS_PER_DAY - _MIN_EVENTS_PER_DAY
        return int(round(_MIN_EVENTS_PER_DAY + spread * self._busyness))

    def _generate_day(self, participant_id: str, day: date) -> list[BusyInterval]:
        rng = random.Random(f"{self._seed}:{participant_id}:{day.isoformat()}")
        placed: list[tuple[datetime, datetime]] = []
        for _ in range(self._events_per_day()):
            for _attempt in range(_PLACEMENT_ATTEMPTS):
                hour = rng.randrange(9, 17)
                minute = rng.randrange(0, 4) * 15
                duration = _EVENT_DURATIONS_MINUTES[rng.randrange(len(_EVENT_DURATIONS_MINUTES))]
                start = self._tz.localize(datetime.combine(day, time(hour, minute)))
                end = start + timedelta(minutes=duration)
                if any(start < busy_end and end > busy_start for busy_start, busy_end in placed):
                    continue
                placed.append((start, end))
                break
        placed.sort()
        return [
            BusyInterval(start=start, end=end, participant_id=participant_id, status=BusyStatus.BUSY)
            for start, end in placed
        ]

    async def get_busy_intervals(
        self,
        participant_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        first_day = start.astimezone(self._tz).date()
        last_day = end.astimezone(self._tz).date()
        intervals: list[BusyInterval] = []
        current = first_day
        while current <= last_day:
            if not (self._skip_weekends and current.weekday() >= 5):
                intervals.extend(
                    interval
                    for interval in self._generate_day(participant_id, current)
                    if interval.end > start and interval.start < end
                )
            current += timedelta(days=1)
        logger.debug(
            "Mock calendar generated | participant_id=%s | events=%s",
            participant_id,
            len(intervals),
        )
        return intervals
