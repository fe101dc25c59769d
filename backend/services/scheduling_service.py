"""Query API: cache lookup, availability merge, candidate generation, ranking."""

from __future__ import annotations

from typing import Optional

from backend.domain.constraints import InvalidQueryError, query_errors
from backend.domain.models import AvailabilityQuery, ParticipantStatus, SchedulingResult
from backend.providers.calendar_provider import CalendarAvailabilityProvider, build_calendar_provider
from backend.services.availability_cache import AvailabilityCache, CacheStats
from backend.services.availability_merger import AvailabilityMerger
from backend.services.slot_generator import SlotGenerator
from backend.services.slot_ranker import SlotRanker
from backend.utils.config import Settings, get_settings
from backend.utils.deadline import Deadline
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class SchedulingService:
    """Finds and ranks common meeting slots for a group of participants."""

    def __init__(
        self,
        provider: Optional[CalendarAvailabilityProvider] = None,
        cache: Optional[AvailabilityCache] = None,
        settings: Optional[Settings] = None,
        ranker: Optional[SlotRanker] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._provider = provider or build_calendar_provider(self._settings)
        self._cache = cache or AvailabilityCache(ttl_seconds=self._settings.cache_ttl_seconds)
        self._merger = AvailabilityMerger(
            provider=self._provider,
            cache=self._cache,
            settings=self._settings,
        )
        self._generator = SlotGenerator(granularity_minutes=self._settings.slot_granularity_minutes)
        self._ranker = ranker or SlotRanker(settings=self._settings)

    @property
    def cache(self) -> AvailabilityCache:
        return self._cache

    @property
    def provider(self) -> CalendarAvailabilityProvider:
        return self._provider

    def validation_errors(self, query: AvailabilityQuery) -> list[dict[str, str]]:
        return query_errors(
            query,
            min_duration_minutes=self._settings.min_duration_minutes,
            max_duration_minutes=self._settings.max_duration_minutes,
            granularity_minutes=self._settings.slot_granularity_minutes,
        )

    async def find_ranked_slots(
        self,
        query: AvailabilityQuery,
        deadline_seconds: Optional[float] = None,
    ) -> SchedulingResult:
        """Return ranked candidate slots plus a per-participant data-quality summary.

        Raises:
            InvalidQueryError: the query is malformed; nothing is coerced.
        """
        errors = self.validation_errors(query)
        if deadline_seconds is not None and deadline_seconds <= 0:
            errors.append({"field": "deadline_seconds", "message": "deadline_seconds must be > 0"})
        if errors:
            raise InvalidQueryError(errors)

        cached = self._cache.get_result(query)
        if cached is not None:
            logger.info(
                "Ranked slots served from cache | participants=%s | slots=%s",
                len(query.participant_ids),
                len(cached.slots),
            )
            return cached

        deadline = Deadline(deadline_seconds)
        availability = await self._merger.build_availability_map(
            query.participant_ids,
            query.window,
            query.policy,
            deadline=deadline,
        )
        candidate_set = self._generator.generate(
            availability.slots,
            query.duration_minutes,
            require_full_coverage=query.require_full_coverage,
            min_participants=query.min_participants,
            step_minutes=query.step_minutes,
            deadline=deadline,
        )
        ranked = self._ranker.rank(
            candidate_set.candidates,
            query.window,
            query.policy.time_zone,
            participant_ids=query.participant_ids,
        )
        if query.max_results is not None:
            ranked = ranked[: query.max_results]

        partial = availability.partial or candidate_set.truncated
        result = SchedulingResult(
            slots=ranked,
            data_quality=availability.data_quality,
            no_feasible_slot=not ranked,
            partial=partial,
            fallback_applied=candidate_set.fallback_applied,
        )

        degraded = [
            participant_id
            for participant_id, status in availability.data_quality.items()
            if status is not ParticipantStatus.OK
        ]
        if not partial and not degraded:
            self._cache.store_result(query, result)

        logger.info(
            (
                "Slot search completed | participants=%s | candidates=%s | returned=%s | "
                "no_feasible_slot=%s | partial=%s | fallback=%s | degraded=%s"
            ),
            len(query.participant_ids),
            len(candidate_set.candidates),
            len(ranked),
            result.no_feasible_slot,
            partial,
            candidate_set.fallback_applied,
            degraded,
        )
        return result

    def invalidate_participant(self, participant_id: str) -> int:
        return self._cache.invalidate_participant(participant_id)

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    async def aclose(self) -> None:
        await self._provider.aclose()
