"""Builds the shared availability map from per-participant busy data."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence, Set

import pytz

from backend.domain.models import (
    AvailabilityMap,
    AvailabilitySlot,
    BusyInterval,
    ParticipantStatus,
    TimeInterval,
    WorkingHoursPolicy,
)
from backend.providers.calendar_provider import (
    CalendarAvailabilityProvider,
    ParticipantDataUnavailableError,
)
from backend.services.availability_cache import AvailabilityCache
from backend.utils.config import Settings, get_settings
from backend.utils.deadline import Deadline
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_REMOVE = 0
_ADD = 1
_WINDOW = 0
_PARTICIPANT = 1


def working_windows(
    start: datetime,
    end: datetime,
    policy: WorkingHoursPolicy,
) -> list[TimeInterval]:
    """Return the policy's working hours between ``start`` and ``end`` in UTC."""
    tz = pytz.timezone(policy.time_zone)
    start = start.astimezone(pytz.utc)
    end = end.astimezone(pytz.utc)
    current_date = start.astimezone(tz).date()
    last_date = end.astimezone(tz).date()

    windows: list[TimeInterval] = []
    while current_date <= last_date:
        if current_date.weekday() in policy.working_days:
            local_start = tz.normalize(tz.localize(datetime.combine(current_date, policy.daily_start)))
            local_end = tz.normalize(tz.localize(datetime.combine(current_date, policy.daily_end)))
            window_start = max(local_start.astimezone(pytz.utc), start)
            window_end = min(local_end.astimezone(pytz.utc), end)
            if window_start < window_end:
                windows.append(TimeInterval(window_start, window_end))
        current_date += timedelta(days=1)
    return windows


def merge_busy_intervals(intervals: Iterable[TimeInterval]) -> list[TimeInterval]:
    """Union overlapping or touching intervals."""
    ordered = sorted(intervals, key=lambda item: (item.start, item.end))
    merged: list[TimeInterval] = []
    for interval in ordered:
        if merged and interval.start <= merged[-1].end:
            if interval.end > merged[-1].end:
                merged[-1] = TimeInterval(merged[-1].start, interval.end)
            continue
        merged.append(interval)
    return merged


def free_intervals_within(
    merged_busy: Sequence[TimeInterval],
    windows: Sequence[TimeInterval],
) -> list[TimeInterval]:
    """Complement sorted, disjoint busy intervals inside each working window."""
    free: list[TimeInterval] = []
    first_relevant = 0
    for window in windows:
        while first_relevant < len(merged_busy) and merged_busy[first_relevant].end <= window.start:
            first_relevant += 1
        cursor = window.start
        index = first_relevant
        while index < len(merged_busy) and merged_busy[index].start < window.end:
            busy = merged_busy[index]
            if busy.start > cursor:
                free.append(TimeInterval(cursor, busy.start))
            if busy.end > cursor:
                cursor = busy.end
            if cursor >= window.end:
                break
            index += 1
        if cursor < window.end:
            free.append(TimeInterval(cursor, window.end))
    return free


def coalesce_slots(slots: Sequence[AvailabilitySlot]) -> list[AvailabilitySlot]:
    coalesced: list[AvailabilitySlot] = []
    for slot in slots:
        if (
            coalesced
            and coalesced[-1].end == slot.start
            and coalesced[-1].available_participants == slot.available_participants
            and coalesced[-1].assumed_free_participants == slot.assumed_free_participants
        ):
            previous = coalesced.pop()
            slot = AvailabilitySlot(
                start=previous.start,
                end=slot.end,
                available_participants=slot.available_participants,
                total_participants=slot.total_participants,
                assumed_free_participants=slot.assumed_free_participants,
            )
        coalesced.append(slot)
    return coalesced


def split_assumed_free(slot: AvailabilitySlot, assumed: Set[str]) -> AvailabilitySlot:
    return replace(
        slot,
        available_participants=tuple(pid for pid in slot.available_participants if pid not in assumed),
        assumed_free_participants=tuple(pid for pid in slot.available_participants if pid in assumed),
    )


def sweep_availability(
    participant_ids: Sequence[str],
    free_by_participant: Mapping[str, Sequence[TimeInterval]],
    windows: Sequence[TimeInterval],
) -> list[AvailabilitySlot]:
    """Event-point sweep producing maximal slots with their exact free sets.

    Window open/close events make sure stretches where nobody is free are
    still reported, so the output covers every working minute. At equal
    instants removals run before additions.
    """
    total = len(participant_ids)
    events: list[tuple[datetime, int, int, str]] = []
    for window in windows:
        events.append((window.start, _ADD, _WINDOW, ""))
        events.append((window.end, _REMOVE, _WINDOW, ""))
    for participant_id in sorted(participant_ids):
        for interval in free_by_participant.get(participant_id, ()):
            events.append((interval.start, _ADD, _PARTICIPANT, participant_id))
            events.append((interval.end, _REMOVE, _PARTICIPANT, participant_id))
    events.sort()

    slots: list[AvailabilitySlot] = []
    free_now: set[str] = set()
    open_windows = 0
    index = 0
    while index < len(events):
        instant = events[index][0]
        while index < len(events) and events[index][0] == instant:
            _, action, source, participant_id = events[index]
            if source == _WINDOW:
                open_windows += 1 if action == _ADD else -1
            elif action == _ADD:
                free_now.add(participant_id)
            else:
                free_now.discard(participant_id)
            index += 1
        if index < len(events) and open_windows > 0:
            slots.append(
                AvailabilitySlot(
                    start=instant,
                    end=events[index][0],
                    available_participants=tuple(sorted(free_now)),
                    total_participants=total,
                )
            )
    return coalesce_slots(slots)


class AvailabilityMerger:
    """Fans out calendar fetches and merges the results into availability slots."""

    def __init__(
        self,
        provider: CalendarAvailabilityProvider,
        cache: Optional[AvailabilityCache] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._provider = provider
        self._cache = cache
        self._fetch_timeout = self._settings.calendar_fetch_timeout_seconds
        self._tentative_is_busy = self._settings.treat_tentative_as_busy

    def free_intervals_for(
        self,
        participant_id: str,
        busy: Iterable[BusyInterval],
        windows: Sequence[TimeInterval],
    ) -> list[TimeInterval]:
        blocking: list[TimeInterval] = []
        for interval in busy:
            if interval.participant_id != participant_id:
                logger.warning(
                    "Ignoring busy interval for another participant | requested=%s | received=%s",
                    participant_id,
                    interval.participant_id,
                )
                continue
            if interval.blocks_time(self._tentative_is_busy):
                blocking.append(
                    TimeInterval(interval.start.astimezone(pytz.utc), interval.end.astimezone(pytz.utc))
                )
        return free_intervals_within(merge_busy_intervals(blocking), windows)

    async def _resolve_participant(
        self,
        participant_id: str,
        window: TimeInterval,
        policy: WorkingHoursPolicy,
        windows: Sequence[TimeInterval],
    ) -> tuple[list[TimeInterval], ParticipantStatus]:
        if self._cache is not None:
            cached = self._cache.get_participant_free(participant_id, window, policy)
            if cached is not None:
                logger.debug("Participant availability served from cache | participant_id=%s", participant_id)
                return list(cached), ParticipantStatus.OK

        try:
            busy = await asyncio.wait_for(
                self._provider.get_busy_intervals(participant_id, window.start, window.end),
                timeout=self._fetch_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Calendar fetch timed out; treating participant as free | participant_id=%s | timeout_seconds=%s",
                participant_id,
                self._fetch_timeout,
            )
            return list(windows), ParticipantStatus.TIMEOUT
        except ParticipantDataUnavailableError as exc:
            logger.warning(
                "Calendar unavailable; treating participant as free | participant_id=%s | reason=%s",
                participant_id,
                exc.reason,
            )
            return list(windows), ParticipantStatus.DEGRADED_TO_FREE
        except Exception:
            logger.exception(
                "Unexpected calendar provider failure; treating participant as free | participant_id=%s",
                participant_id,
            )
            return list(windows), ParticipantStatus.DEGRADED_TO_FREE

        free = self.free_intervals_for(participant_id, busy, windows)
        if self._cache is not None:
            self._cache.store_participant_free(participant_id, window, policy, free)
        return free, ParticipantStatus.OK

    async def collect_free_intervals(
        self,
        participant_ids: Sequence[str],
        window: TimeInterval,
        policy: WorkingHoursPolicy,
        windows: Sequence[TimeInterval],
        deadline: Optional[Deadline] = None,
    ) -> tuple[dict[str, list[TimeInterval]], dict[str, ParticipantStatus], bool]:
        """Fetch every participant concurrently; returns (free, statuses, partial)."""
        ordered_ids = sorted(set(participant_ids))
        tasks = {
            participant_id: asyncio.ensure_future(
                self._resolve_participant(participant_id, window, policy, windows)
            )
            for participant_id in ordered_ids
        }
        partial = False
        if tasks and deadline is not None and deadline.bounded:
            _, pending = await asyncio.wait(tasks.values(), timeout=deadline.remaining())
            if pending:
                partial = True
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
        else:
            await asyncio.gather(*tasks.values())

        free_by_participant: dict[str, list[TimeInterval]] = {}
        statuses: dict[str, ParticipantStatus] = {}
        for participant_id in ordered_ids:
            task = tasks[participant_id]
            if task.cancelled():
                logger.warning(
                    "Query deadline reached before calendar fetch finished | participant_id=%s",
                    participant_id,
                )
                free_by_participant[participant_id] = list(windows)
                statuses[participant_id] = ParticipantStatus.TIMEOUT
                continue
            free, status = task.result()
            free_by_participant[participant_id] = free
            statuses[participant_id] = status
        return free_by_participant, statuses, partial

    async def build_availability_map(
        self,
        participant_ids: Sequence[str],
        window: TimeInterval,
        policy: WorkingHoursPolicy,
        deadline: Optional[Deadline] = None,
    ) -> AvailabilityMap:
        windows = working_windows(window.start, window.end, policy)
        free_by_participant, statuses, partial = await self.collect_free_intervals(
            participant_ids,
            window,
            policy,
            windows,
            deadline=deadline,
        )
        slots = sweep_availability(sorted(set(participant_ids)), free_by_participant, windows)
        assumed = {
            participant_id for participant_id, status in statuses.items() if status is not ParticipantStatus.OK
        }
        if assumed:
            slots = [split_assumed_free(slot, assumed) for slot in slots]
        logger.info(
            "Availability merged | participants=%s | working_windows=%s | slots=%s | degraded=%s",
            len(statuses),
            len(windows),
            len(slots),
            sum(1 for status in statuses.values() if status is not ParticipantStatus.OK),
        )
        return AvailabilityMap(slots=slots, data_quality=statuses, partial=partial)
