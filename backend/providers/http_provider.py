"""HTTP provider consuming an already-normalized free/busy endpoint."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from backend.domain.models import BusyInterval, BusyStatus
from backend.providers.calendar_provider import (
    CalendarAvailabilityProvider,
    ParticipantDataUnavailableError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def _parse_timestamp(raw: str) -> datetime:
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class HttpCalendarProvider(CalendarAvailabilityProvider):
    """Reads ``GET {base_url}/participants/{id}/busy?start=..&end=..``.

    The endpoint returns ``{"busy": [{"start": ISO, "end": ISO, "status": str}]}``.
    Authentication, paging and vendor protocols live behind that endpoint.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def get_busy_intervals(
        self,
        participant_id: str,
        start: datetime,
        end: datetime,
    ) -> list[BusyInterval]:
        url = f"{self._base_url}/participants/{participant_id}/busy"
        params = {"start": start.isoformat(), "end": end.isoformat()}
        try:
            response = await self._client.get(url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Calendar endpoint rejected request | participant_id=%s | status_code=%s",
                participant_id,
                exc.response.status_code,
            )
            raise ParticipantDataUnavailableError(
                participant_id,
                f"calendar endpoint returned {exc.response.status_code}",
            ) from exc
        except httpx.RequestError as exc:
            logger.warning(
                "Calendar endpoint unreachable | participant_id=%s | error=%s",
                participant_id,
                exc,
            )
            raise ParticipantDataUnavailableError(participant_id, "calendar endpoint unreachable") from exc
        except ValueError as exc:
            raise ParticipantDataUnavailableError(participant_id, "calendar payload is not JSON") from exc

        return self._parse_payload(participant_id, payload)

    def _parse_payload(self, participant_id: str, payload: Any) -> list[BusyInterval]:
        if not isinstance(payload, dict) or not isinstance(payload.get("busy"), list):
            raise ParticipantDataUnavailableError(participant_id, "calendar payload missing 'busy' list")
        intervals: list[BusyInterval] = []
        try:
            for item in payload["busy"]:
                intervals.append(
                    BusyInterval(
                        start=_parse_timestamp(item["start"]),
                        end=_parse_timestamp(item["end"]),
                        participant_id=participant_id,
                        status=BusyStatus(item.get("status", BusyStatus.BUSY.value)),
                    )
                )
        except (KeyError, TypeError, ValueError) as exc:
            raise ParticipantDataUnavailableError(participant_id, f"malformed busy interval: {exc}") from exc
        return intervals

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
