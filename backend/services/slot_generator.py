"""Duration-sized candidate enumeration over the availability map."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from backend.domain.models import AvailabilitySlot, CandidateSet
from backend.utils.deadline import Deadline
from backend.utils.logger import get_logger


logger = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def align_up(instant: datetime, granularity: timedelta) -> datetime:
    """Round ``instant`` up to the next epoch-aligned granularity boundary."""
    remainder = (instant - _EPOCH) % granularity
    if not remainder:
        return instant
    return instant + (granularity - remainder)


def resolve_step_minutes(
    granularity_minutes: int,
    step_minutes: Optional[int] = None,
) -> int:
    """Explicit steps give a coarser grid; otherwise every aligned start is tried."""
    if step_minutes is not None:
        return step_minutes
    return granularity_minutes


class SlotGenerator:
    """Cuts maximal availability slots into candidate meeting windows."""

    def __init__(self, granularity_minutes: int = 15) -> None:
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be > 0")
        self._granularity_minutes = granularity_minutes
        self._granularity = timedelta(minutes=granularity_minutes)

    @property
    def granularity_minutes(self) -> int:
        return self._granularity_minutes

    def split_slot(
        self,
        slot: AvailabilitySlot,
        duration: timedelta,
        step: timedelta,
    ) -> list[AvailabilitySlot]:
        if not slot.available_count or slot.end - slot.start < duration:
            return []
        candidates: list[AvailabilitySlot] = []
        start = align_up(slot.start, self._granularity)
        while start + duration <= slot.end:
            candidates.append(
                AvailabilitySlot(
                    start=start,
                    end=start + duration,
                    available_participants=slot.available_participants,
                    total_participants=slot.total_participants,
                    assumed_free_participants=slot.assumed_free_participants,
                )
            )
            start += step
        return candidates

    def generate(
        self,
        slots: Sequence[AvailabilitySlot],
        duration_minutes: int,
        *,
        require_full_coverage: bool = False,
        min_participants: Optional[int] = None,
        step_minutes: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> CandidateSet:
        """Emit feasible candidates of exactly ``duration_minutes``.

        Starts are tried at every granularity boundary unless ``step_minutes``
        asks for a coarser grid. A candidate is feasible when at least
        ``min_participants`` (all participants by default) are free. With no
        feasible candidate the best-coverage candidates are returned instead,
        unless full coverage is required. An expired deadline stops
        generation once at least one candidate exists.
        """
        duration = timedelta(minutes=duration_minutes)
        step = timedelta(minutes=resolve_step_minutes(self._granularity_minutes, step_minutes))

        by_window: dict[tuple[datetime, datetime], AvailabilitySlot] = {}
        truncated = False
        for slot in sorted(slots, key=lambda item: (item.start, item.end)):
            if by_window and deadline is not None and deadline.expired():
                truncated = True
                logger.warning("Candidate generation stopped at query deadline | candidates=%s", len(by_window))
                break
            for candidate in self.split_slot(slot, duration, step):
                by_window.setdefault((candidate.start, candidate.end), candidate)

        candidates = [by_window[key] for key in sorted(by_window)]
        if not candidates:
            return CandidateSet(candidates=[], full_coverage_available=False, truncated=truncated)

        total = candidates[0].total_participants
        full_coverage_available = any(candidate.is_full_coverage for candidate in candidates)
        threshold = total if require_full_coverage or min_participants is None else min_participants

        feasible = [candidate for candidate in candidates if candidate.available_count >= threshold]
        if feasible or require_full_coverage:
            return CandidateSet(
                candidates=feasible,
                full_coverage_available=full_coverage_available,
                truncated=truncated,
            )

        best_count = max(candidate.available_count for candidate in candidates)
        fallback = [candidate for candidate in candidates if candidate.available_count == best_count]
        logger.info(
            "No candidate meets coverage threshold; using best coverage | threshold=%s | best=%s/%s | candidates=%s",
            threshold,
            best_count,
            total,
            len(fallback),
        )
        return CandidateSet(
            candidates=fallback,
            full_coverage_available=full_coverage_available,
            fallback_applied=True,
            truncated=truncated,
        )
