"""Calendar availability provider interface and configuration-driven factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from backend.domain.models import BusyInterval
from backend.utils.config import Settings, get_settings


class ParticipantDataUnavailableError(Exception):
    """Raised when a participant's calendar cannot be read."""

    def __init__(self, participant_id: str, reason: str) -> None:
        self.participant_id = participant_id
        self.reason = reason
        super().__init__(f"Calendar unavailable for {participant_id}: {reason}")


class UnknownCalendarProviderError(Exception):
    """Raised when settings name a provider that does not exist."""


class CalendarAvailabilityProvider(ABC):
    """Source of normalized busy intervals for one participant at a time."""

    name: str = "abstract"

    @abstractmethod
    async def get_busy_intervals(
        self,
        participant_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        """Return busy intervals overlapping ``[start, end]``.

        Raises:
            ParticipantDataUnavailableError: the calendar could not be read.
        """

    async def aclose(self) -> None:
        return None


def build_calendar_provider(settings: Optional[Settings] = None) -> CalendarAvailabilityProvider:
    """Select the provider implementation named by ``settings.calendar_provider``."""
    resolved = settings or get_settings()
    provider_name = resolved.calendar_provider.lower()

    if provider_name == "mock":
        from backend.providers.mock_provider import MockCalendarProvider

        return MockCalendarProvider(
            seed=resolved.mock_calendar_seed,
            busyness=resolved.mock_calendar_busyness,
            time_zone=resolved.default_time_zone,
        )
    if provider_name == "http":
        from backend.providers.http_provider import HttpCalendarProvider

        return HttpCalendarProvider(
            base_url=resolved.calendar_http_base_url,
            timeout_seconds=resolved.calendar_http_timeout_seconds,
        )
    raise UnknownCalendarProviderError(
        f"Unknown calendar provider {resolved.calendar_provider!r}; expected 'mock' or 'http'"
    )
