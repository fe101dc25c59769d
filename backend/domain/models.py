"""Domain models for common-availability search and slot ranking."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Optional


def _require_aware(value: datetime, field_name: str) -> None:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{field_name} must be timezone-aware")


@dataclass(frozen=True, order=True)
class TimeInterval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        _require_aware(self.start, "start")
        _require_aware(self.end, "end")
        if self.start >= self.end:
            raise ValueError("interval start must be before end")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: TimeInterval) -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end


class BusyStatus(str, Enum):
    FREE = "free"
    TENTATIVE = "tentative"
    BUSY = "busy"
    OUT_OF_OFFICE = "out_of_office"
    WORKING_ELSEWHERE = "working_elsewhere"


@dataclass(frozen=True)
class BusyInterval:
    start: datetime
    end: datetime
    participant_id: str
    status: BusyStatus = BusyStatus.BUSY

    def __post_init__(self) -> None:
        TimeInterval(self.start, self.end)

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)

    def blocks_time(self, tentative_is_busy: bool = False) -> bool:
        if self.status in (BusyStatus.BUSY, BusyStatus.OUT_OF_OFFICE):
            return True
        return tentative_is_busy and self.status is BusyStatus.TENTATIVE


@dataclass(frozen=True)
class WorkingHoursPolicy:
    daily_start: time
    daily_end: time
    working_days: frozenset[int]
    time_zone: str = "UTC"

    def canonical(self) -> dict[str, object]:
        return {
            "daily_start": self.daily_start.isoformat(),
            "daily_end": self.daily_end.isoformat(),
            "working_days": sorted(self.working_days),
            "time_zone": self.time_zone,
        }


@dataclass(frozen=True)
class AvailabilitySlot:
    """Maximal or candidate window with the exact set of free participants.

    ``assumed_free_participants`` holds participants whose calendar could not
    be read; they never block time and count toward coverage, but are kept
    apart from the participants confirmed free.
    """

    start: datetime
    end: datetime
    available_participants: tuple[str, ...]
    total_participants: int
    assumed_free_participants: tuple[str, ...] = ()

    @property
    def interval(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    @property
    def free_participants(self) -> tuple[str, ...]:
        return tuple(sorted(self.available_participants + self.assumed_free_participants))

    @property
    def available_count(self) -> int:
        return len(self.available_participants) + len(self.assumed_free_participants)

    @property
    def coverage(self) -> float:
        if self.total_participants <= 0:
            return 0.0
        return self.available_count / self.total_participants

    @property
    def is_full_coverage(self) -> bool:
        return self.total_participants > 0 and self.available_count == self.total_participants


@dataclass(frozen=True)
class RankedSlot:
    slot: AvailabilitySlot
    score: float
    reasons: tuple[str, ...]
    is_recommended: bool = False
    unavailable_participants: tuple[str, ...] = ()

    @property
    def start(self) -> datetime:
        return self.slot.start

    @property
    def end(self) -> datetime:
        return self.slot.end


@dataclass(frozen=True)
class AvailabilityQuery:
    participant_ids: tuple[str, ...]
    duration_minutes: int
    start: datetime
    end: datetime
    policy: WorkingHoursPolicy
    require_full_coverage: bool = False
    min_participants: Optional[int] = None
    max_results: Optional[int] = None
    step_minutes: Optional[int] = None

    @property
    def window(self) -> TimeInterval:
        return TimeInterval(self.start, self.end)


class ParticipantStatus(str, Enum):
    OK = "ok"
    DEGRADED_TO_FREE = "degraded-to-free"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class AvailabilityMap:
    slots: list[AvailabilitySlot]
    data_quality: dict[str, ParticipantStatus]
    partial: bool = False


@dataclass(frozen=True)
class CandidateSet:
    candidates: list[AvailabilitySlot]
    full_coverage_available: bool
    fallback_applied: bool = False
    truncated: bool = False


@dataclass(frozen=True)
class SchedulingResult:
    slots: list[RankedSlot]
    data_quality: dict[str, ParticipantStatus]
    no_feasible_slot: bool
    partial: bool = False
    from_cache: bool = False
    fallback_applied: bool = False

    @property
    def recommended(self) -> Optional[RankedSlot]:
        for ranked in self.slots:
            if ranked.is_recommended:
                return ranked
        return None
