"""In-memory calendar provider for embedding callers and tests."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Iterable, Mapping, Optional

from backend.domain.models import BusyInterval
from backend.providers.calendar_provider import (
    CalendarAvailabilityProvider,
    ParticipantDataUnavailableError,
)


class StaticCalendarProvider(CalendarAvailabilityProvider):
    """Serves busy intervals from a dictionary keyed by participant id.

    Participants listed in ``unavailable`` raise
    ``ParticipantDataUnavailableError``; ``delays`` adds an artificial await
    per participant so timeout handling can be exercised. Unknown
    participants have an empty calendar.
    """

    name = "static"

    def __init__(
        self,
        busy_by_participant: Mapping[str, Iterable[BusyInterval]],
        *,
        unavailable: Iterable[str] = (),
        delays: Optional[Mapping[str, float]] = None,
    ) -> None:
        self._busy = {
            participant_id: sorted(intervals, key=lambda item: (item.start, item.end))
            for participant_id, intervals in busy_by_participant.items()
        }
        self._unavailable = frozenset(unavailable)
        self._delays = dict(delays or {})
        self.calls: list[str] = []

    async def get_busy_intervals(
        self,
        participant_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        self.calls.append(participant_id)
        delay = self._delays.get(participant_id)
        if delay:
            await asyncio.sleep(delay)
        if participant_id in self._unavailable:
            raise ParticipantDataUnavailableError(participant_id, "calendar marked unavailable")
        return [
            interval
            for interval in self._busy.get(participant_id, [])
            if interval.end > start and interval.start < end
        ]
