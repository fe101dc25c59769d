"""Tests for availability query and ranking configuration validation.

Covers every branch of query_errors() and validate_ranking_config().
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, time

import pytest
import pytz

from backend.domain.constraints import (
    InvalidQueryError,
    RankingConfig,
    build_policy,
    localize_naive,
    query_errors,
    validate_query,
    validate_ranking_config,
)
from backend.domain.models import AvailabilityQuery, WorkingHoursPolicy


def valid_policy(**overrides) -> WorkingHoursPolicy:
    defaults = {
        "daily_start": time(9, 0),
        "daily_end": time(17, 0),
        "working_days": frozenset({0, 1, 2, 3, 4}),
        "time_zone": "UTC",
    }
    defaults.update(overrides)
    return WorkingHoursPolicy(**defaults)


def valid_query(**overrides) -> AvailabilityQuery:
    """Return a valid baseline query, optionally overriding fields."""
    defaults = {
        "participant_ids": ("alice", "bob"),
        "duration_minutes": 30,
        "start": datetime(2026, 3, 3, 0, 0, tzinfo=pytz.utc),
        "end": datetime(2026, 3, 4, 0, 0, tzinfo=pytz.utc),
        "policy": valid_policy(),
    }
    defaults.update(overrides)
    return AvailabilityQuery(**defaults)


def valid_ranking_config(**overrides) -> RankingConfig:
    defaults = {
        "coverage_weight": 0.5,
        "time_of_day_weight": 0.3,
        "day_of_week_weight": 0.1,
        "earliness_weight": 0.1,
        "peak_hour": 10.0,
        "time_of_day_spread_hours": 2.5,
        "weekday_preferences": (0.8, 1.0, 1.0, 1.0, 0.7, 0.3, 0.3),
    }
    defaults.update(overrides)
    return RankingConfig(**defaults)


def _fields(query: AvailabilityQuery) -> list[str]:
    return [
        item["field"]
        for item in query_errors(
            query,
            min_duration_minutes=15,
            max_duration_minutes=480,
            granularity_minutes=15,
        )
    ]


# --- Baseline pass ---

def test_valid_query_passes() -> None:
    validate_query(valid_query())


# --- participants ---

def test_empty_participants_rejected() -> None:
    assert _fields(valid_query(participant_ids=())) == ["participant_ids"]


def test_blank_participant_id_rejected() -> None:
    assert _fields(valid_query(participant_ids=("alice", "  "))) == ["participant_ids"]


def test_duplicate_participant_id_rejected() -> None:
    assert _fields(valid_query(participant_ids=("alice", "alice"))) == ["participant_ids"]


# --- duration ---

@pytest.mark.parametrize("duration", [0, 14, 481, -30])
def test_duration_outside_bounds_rejected(duration: int) -> None:
    assert _fields(valid_query(duration_minutes=duration)) == ["duration_minutes"]


@pytest.mark.parametrize("duration", [15, 480])
def test_duration_bounds_pass(duration: int) -> None:
    validate_query(valid_query(duration_minutes=duration))


# --- timestamps ---

def test_start_after_end_rejected() -> None:
    query = valid_query(
        start=datetime(2026, 3, 4, tzinfo=pytz.utc),
        end=datetime(2026, 3, 3, tzinfo=pytz.utc),
    )
    assert _fields(query) == ["start"]


def test_equal_start_and_end_rejected() -> None:
    instant = datetime(2026, 3, 4, tzinfo=pytz.utc)
    assert _fields(valid_query(start=instant, end=instant)) == ["start"]


def test_naive_timestamps_rejected_not_coerced() -> None:
    query = valid_query(start=datetime(2026, 3, 3), end=datetime(2026, 3, 4))
    assert _fields(query) == ["start", "end"]


# --- policy ---

def test_policy_start_after_end_rejected() -> None:
    query = valid_query(policy=valid_policy(daily_start=time(17, 0), daily_end=time(9, 0)))
    assert _fields(query) == ["policy.daily_start"]


def test_policy_without_working_days_rejected() -> None:
    assert _fields(valid_query(policy=valid_policy(working_days=frozenset()))) == ["policy.working_days"]


def test_policy_working_day_out_of_range_rejected() -> None:
    assert _fields(valid_query(policy=valid_policy(working_days=frozenset({0, 7})))) == ["policy.working_days"]


def test_policy_unknown_time_zone_rejected() -> None:
    assert _fields(valid_query(policy=valid_policy(time_zone="Mars/Olympus"))) == ["policy.time_zone"]


# --- options ---

@pytest.mark.parametrize("value", [0, 3])
def test_min_participants_outside_range_rejected(value: int) -> None:
    assert _fields(valid_query(min_participants=value)) == ["min_participants"]


def test_max_results_zero_rejected() -> None:
    assert _fields(valid_query(max_results=0)) == ["max_results"]


@pytest.mark.parametrize("step", [0, -15, 10])
def test_step_minutes_not_granularity_multiple_rejected(step: int) -> None:
    assert _fields(valid_query(step_minutes=step)) == ["step_minutes"]


def test_validate_query_raises_with_every_error() -> None:
    query = valid_query(participant_ids=(), duration_minutes=5, max_results=0)
    with pytest.raises(InvalidQueryError) as exc_info:
        validate_query(query)
    assert [item["field"] for item in exc_info.value.errors] == [
        "participant_ids",
        "duration_minutes",
        "max_results",
    ]


# --- wire helpers ---

def test_build_policy_parses_times() -> None:
    policy = build_policy(daily_start="08:30", daily_end="16:00", working_days=[0, 2], time_zone="Europe/Berlin")
    assert policy.daily_start == time(8, 30)
    assert policy.daily_end == time(16, 0)
    assert policy.working_days == frozenset({0, 2})


def test_build_policy_rejects_bad_time_format() -> None:
    with pytest.raises(InvalidQueryError) as exc_info:
        build_policy(daily_start="9am", daily_end="17:00", working_days=[0], time_zone="UTC")
    assert exc_info.value.errors[0]["field"] == "policy.daily_start"


def test_localize_naive_uses_policy_time_zone() -> None:
    localized = localize_naive(datetime(2026, 7, 1, 9, 0), "Europe/Berlin")
    assert localized.utcoffset().total_seconds() == 2 * 3600


def test_localize_naive_keeps_aware_values() -> None:
    aware = datetime(2026, 7, 1, 9, 0, tzinfo=pytz.utc)
    assert localize_naive(aware, "Europe/Berlin") is aware


# --- ranking config ---

def test_valid_ranking_config_passes() -> None:
    validate_ranking_config(valid_ranking_config())


def test_negative_weight_raises() -> None:
    with pytest.raises(ValueError):
        validate_ranking_config(valid_ranking_config(coverage_weight=-0.1))


def test_all_zero_weights_raise() -> None:
    config = replace(
        valid_ranking_config(),
        coverage_weight=0.0,
        time_of_day_weight=0.0,
        day_of_week_weight=0.0,
        earliness_weight=0.0,
    )
    with pytest.raises(ValueError):
        validate_ranking_config(config)


def test_peak_hour_out_of_range_raises() -> None:
    with pytest.raises(ValueError):
        validate_ranking_config(valid_ranking_config(peak_hour=24.0))


def test_zero_spread_raises() -> None:
    with pytest.raises(ValueError):
        validate_ranking_config(valid_ranking_config(time_of_day_spread_hours=0.0))


def test_weekday_preferences_length_raises() -> None:
    with pytest.raises(ValueError):
        validate_ranking_config(valid_ranking_config(weekday_preferences=(1.0,) * 5))


def test_weekday_preference_above_one_raises() -> None:
    with pytest.raises(ValueError):
        validate_ranking_config(valid_ranking_config(weekday_preferences=(1.2,) + (1.0,) * 6))
