"""HTTP controller layer for common-availability slot search."""

from __future__ import annotations

from datetime import datetime

import pytz
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_scheduling_service
from backend.domain.constraints import InvalidQueryError, build_policy, localize_naive
from backend.domain.models import AvailabilityQuery, RankedSlot, SchedulingResult
from backend.services.scheduling_service import SchedulingService
from backend.utils.config import get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)
settings = get_settings()

router = APIRouter(tags=["scheduling"])

TIME_OF_DAY_PATTERN = r"^\d{2}:\d{2}(:\d{2})?$"


class WorkingHoursPolicyRequest(BaseModel):
    daily_start: str = Field(default=settings.default_daily_start, pattern=TIME_OF_DAY_PATTERN)
    daily_end: str = Field(default=settings.default_daily_end, pattern=TIME_OF_DAY_PATTERN)
    working_days: list[int] = Field(default_factory=lambda: list(settings.default_working_days))
    time_zone: str = Field(default=settings.default_time_zone, min_length=1)


class FindSlotsRequest(BaseModel):
    """Input DTO; semantic checks run in the domain layer so errors stay structured."""

    participant_ids: list[str]
    duration_minutes: int
    start: datetime
    end: datetime
    policy: WorkingHoursPolicyRequest = Field(default_factory=WorkingHoursPolicyRequest)
    require_full_coverage: bool = False
    min_participants: int | None = None
    max_results: int | None = None
    step_minutes: int | None = None
    deadline_seconds: float | None = None


class QueryErrorResponse(BaseModel):
    field: str
    message: str


class RankedSlotResponse(BaseModel):
    start: datetime
    end: datetime
    score: float = Field(ge=0.0, le=1.0)
    reasons: list[str]
    is_recommended: bool
    available_participants: list[str]
    assumed_free_participants: list[str]
    unavailable_participants: list[str]
    total_participants: int = Field(ge=1)
    coverage: float = Field(ge=0.0, le=1.0)


class FindSlotsResponse(BaseModel):
    slots: list[RankedSlotResponse]
    recommended: RankedSlotResponse | None
    data_quality: dict[str, str]
    no_feasible_slot: bool
    partial: bool
    from_cache: bool
    fallback_applied: bool


class ValidateQueryResponse(BaseModel):
    valid: bool
    errors: list[QueryErrorResponse]


class InvalidateParticipantResponse(BaseModel):
    participant_id: str
    evicted_entries: int = Field(ge=0)


class CacheStatsResponse(BaseModel):
    hits: int = Field(ge=0)
    misses: int = Field(ge=0)
    evictions: int = Field(ge=0)
    participant_entries: int = Field(ge=0)
    query_entries: int = Field(ge=0)


def to_query(payload: FindSlotsRequest) -> AvailabilityQuery:
    """Map the request DTO onto the domain query, localizing naive timestamps."""
    policy = build_policy(
        daily_start=payload.policy.daily_start,
        daily_end=payload.policy.daily_end,
        working_days=payload.policy.working_days,
        time_zone=payload.policy.time_zone,
    )
    try:
        start = localize_naive(payload.start, policy.time_zone)
        end = localize_naive(payload.end, policy.time_zone)
    except pytz.UnknownTimeZoneError:
        # Left naive; validation reports the time zone and the timestamps.
        start, end = payload.start, payload.end
    return AvailabilityQuery(
        participant_ids=tuple(payload.participant_ids),
        duration_minutes=payload.duration_minutes,
        start=start,
        end=end,
        policy=policy,
        require_full_coverage=payload.require_full_coverage,
        min_participants=payload.min_participants,
        max_results=payload.max_results,
        step_minutes=payload.step_minutes,
    )


def _ranked_slot_response(ranked: RankedSlot) -> RankedSlotResponse:
    return RankedSlotResponse(
        start=ranked.start,
        end=ranked.end,
        score=ranked.score,
        reasons=list(ranked.reasons),
        is_recommended=ranked.is_recommended,
        available_participants=list(ranked.slot.available_participants),
        assumed_free_participants=list(ranked.slot.assumed_free_participants),
        unavailable_participants=list(ranked.unavailable_participants),
        total_participants=ranked.slot.total_participants,
        coverage=ranked.slot.coverage,
    )


def to_response(result: SchedulingResult) -> FindSlotsResponse:
    slots = [_ranked_slot_response(ranked) for ranked in result.slots]
    recommended = next((item for item in slots if item.is_recommended), None)
    return FindSlotsResponse(
        slots=slots,
        recommended=recommended,
        data_quality={
            participant_id: result.data_quality[participant_id].value
            for participant_id in sorted(result.data_quality)
        },
        no_feasible_slot=result.no_feasible_slot,
        partial=result.partial,
        from_cache=result.from_cache,
        fallback_applied=result.fallback_applied,
    )


@router.post(
    "/find_slots",
    response_model=FindSlotsResponse,
    status_code=status.HTTP_200_OK,
)
async def find_slots(
    payload: FindSlotsRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> FindSlotsResponse:
    """Search the window for common slots and rank them."""
    try:
        query = to_query(payload)
        result = await service.find_ranked_slots(query, deadline_seconds=payload.deadline_seconds)
        return to_response(result)
    except InvalidQueryError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.errors,
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected slot search failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to find slots",
        ) from exc


@router.post(
    "/validate_query",
    response_model=ValidateQueryResponse,
    status_code=status.HTTP_200_OK,
)
async def validate_query(
    payload: FindSlotsRequest,
    service: SchedulingService = Depends(get_scheduling_service),
) -> ValidateQueryResponse:
    """Check a query without touching calendars."""
    try:
        errors = service.validation_errors(to_query(payload))
    except InvalidQueryError as exc:
        errors = exc.errors
    return ValidateQueryResponse(
        valid=not errors,
        errors=[QueryErrorResponse(**item) for item in errors],
    )


@router.post(
    "/participants/{participant_id}/invalidate",
    response_model=InvalidateParticipantResponse,
    status_code=status.HTTP_200_OK,
)
async def invalidate_participant(
    participant_id: str,
    service: SchedulingService = Depends(get_scheduling_service),
) -> InvalidateParticipantResponse:
    """Drop cached availability after an out-of-band calendar change."""
    evicted = service.invalidate_participant(participant_id)
    return InvalidateParticipantResponse(participant_id=participant_id, evicted_entries=evicted)


@router.get(
    "/cache/stats",
    response_model=CacheStatsResponse,
    status_code=status.HTTP_200_OK,
)
async def cache_stats(
    service: SchedulingService = Depends(get_scheduling_service),
) -> CacheStatsResponse:
    return CacheStatsResponse(**service.cache_stats().to_dict())
