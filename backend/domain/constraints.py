"""Domain-level validation rules for availability queries and ranking."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, time
from typing import Iterable, Optional

import pytz

from backend.domain.models import AvailabilityQuery, WorkingHoursPolicy


class InvalidQueryError(Exception):
    """Raised when a caller submits a malformed availability query."""

    def __init__(self, errors: list[dict[str, str]]) -> None:
        self.errors = errors
        summary = "; ".join(f"{item['field']}: {item['message']}" for item in errors)
        super().__init__(f"Invalid availability query | {summary}")


@dataclass(frozen=True)
class RankingConfig:
    coverage_weight: float
    time_of_day_weight: float
    day_of_week_weight: float
    earliness_weight: float
    peak_hour: float
    time_of_day_spread_hours: float
    weekday_preferences: tuple[float, ...]

    @property
    def total_weight(self) -> float:
        return (
            self.coverage_weight
            + self.time_of_day_weight
            + self.day_of_week_weight
            + self.earliness_weight
        )


def validate_ranking_config(config: RankingConfig) -> None:
    weights = (
        config.coverage_weight,
        config.time_of_day_weight,
        config.day_of_week_weight,
        config.earliness_weight,
    )
    if any(weight < 0.0 or not math.isfinite(weight) for weight in weights):
        raise ValueError("ranking weights must be finite and >= 0")
    if config.total_weight <= 0.0:
        raise ValueError("ranking weights must sum to a positive value")
    if not 0.0 <= config.peak_hour < 24.0:
        raise ValueError("peak_hour must be in [0, 24)")
    if config.time_of_day_spread_hours <= 0.0:
        raise ValueError("time_of_day_spread_hours must be > 0")
    if len(config.weekday_preferences) != 7:
        raise ValueError("weekday_preferences must contain one value per weekday")
    if not all(0.0 <= value <= 1.0 for value in config.weekday_preferences):
        raise ValueError("weekday_preferences values must be between 0 and 1")


def parse_time_of_day(value: str) -> time:
    try:
        return time.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"time of day must follow HH:MM format, got {value!r}") from exc


def localize_naive(value: datetime, time_zone: str) -> datetime:
    """Interpret naive datetimes in the policy time zone; aware ones pass through."""
    if value.tzinfo is not None and value.utcoffset() is not None:
        return value
    return pytz.timezone(time_zone).localize(value)


def _error(field: str, message: str) -> dict[str, str]:
    return {"field": field, "message": message}


def policy_errors(policy: WorkingHoursPolicy) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []
    if policy.daily_start >= policy.daily_end:
        errors.append(_error("policy.daily_start", "daily_start must be before daily_end"))
    if not policy.working_days:
        errors.append(_error("policy.working_days", "at least one working day is required"))
    elif not all(isinstance(day, int) and 0 <= day <= 6 for day in policy.working_days):
        errors.append(_error("policy.working_days", "working days must be integers 0 (Mon) to 6 (Sun)"))
    try:
        pytz.timezone(policy.time_zone)
    except pytz.UnknownTimeZoneError:
        errors.append(_error("policy.time_zone", f"unknown time zone {policy.time_zone!r}"))
    return errors


def query_errors(
    query: AvailabilityQuery,
    *,
    min_duration_minutes: int,
    max_duration_minutes: int,
    granularity_minutes: int,
) -> list[dict[str, str]]:
    errors: list[dict[str, str]] = []

    if not query.participant_ids:
        errors.append(_error("participant_ids", "at least one participant is required"))
    elif any(not participant_id or not participant_id.strip() for participant_id in query.participant_ids):
        errors.append(_error("participant_ids", "participant ids must be non-empty"))
    elif len(set(query.participant_ids)) != len(query.participant_ids):
        errors.append(_error("participant_ids", "participant ids must be unique"))

    if not min_duration_minutes <= query.duration_minutes <= max_duration_minutes:
        errors.append(
            _error(
                "duration_minutes",
                f"duration must be between {min_duration_minutes} and {max_duration_minutes} minutes",
            )
        )

    aware = True
    for field_name, value in (("start", query.start), ("end", query.end)):
        if value.tzinfo is None or value.utcoffset() is None:
            errors.append(_error(field_name, "timestamp must be timezone-aware"))
            aware = False
    if aware and query.start >= query.end:
        errors.append(_error("start", "start must be before end"))

    errors.extend(policy_errors(query.policy))

    participant_count = len(query.participant_ids)
    if query.min_participants is not None and not 1 <= query.min_participants <= max(participant_count, 1):
        errors.append(_error("min_participants", f"min_participants must be between 1 and {participant_count}"))
    if query.max_results is not None and query.max_results < 1:
        errors.append(_error("max_results", "max_results must be >= 1"))
    if query.step_minutes is not None and (
        query.step_minutes <= 0 or query.step_minutes % granularity_minutes != 0
    ):
        errors.append(
            _error(
                "step_minutes",
                f"step_minutes must be a positive multiple of {granularity_minutes}",
            )
        )
    return errors


def validate_query(
    query: AvailabilityQuery,
    *,
    min_duration_minutes: int = 15,
    max_duration_minutes: int = 480,
    granularity_minutes: int = 15,
) -> None:
    errors = query_errors(
        query,
        min_duration_minutes=min_duration_minutes,
        max_duration_minutes=max_duration_minutes,
        granularity_minutes=granularity_minutes,
    )
    if errors:
        raise InvalidQueryError(errors)


def build_policy(
    *,
    daily_start: str,
    daily_end: str,
    working_days: Iterable[int],
    time_zone: str,
) -> WorkingHoursPolicy:
    """Build a policy from wire values, reporting format problems as query errors."""
    errors: list[dict[str, str]] = []
    parsed: dict[str, Optional[time]] = {}
    for field_name, raw in (("daily_start", daily_start), ("daily_end", daily_end)):
        try:
            parsed[field_name] = parse_time_of_day(raw)
        except ValueError as exc:
            errors.append(_error(f"policy.{field_name}", str(exc)))
    if errors:
        raise InvalidQueryError(errors)
    return WorkingHoursPolicy(
        daily_start=parsed["daily_start"],
        daily_end=parsed["daily_end"],
        working_days=frozenset(working_days),
        time_zone=time_zone,
    )
