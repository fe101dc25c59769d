"""Tests for weighted slot ranking.

Covers the scenario recommendation, ordering and tie-breaking, reason tokens,
time-zone handling and ranking configuration checks.
"""

from __future__ import annotations

import random
from dataclasses import replace
from datetime import datetime, timedelta

import pytest
import pytz

from backend.domain.models import AvailabilitySlot, TimeInterval
from backend.services.slot_generator import SlotGenerator
from backend.services.slot_ranker import RECOMMENDED_MARKER, SlotRanker, ranking_config_from_settings
from backend.utils.config import get_settings


DAY = datetime(2026, 3, 3, tzinfo=pytz.utc)  # Tuesday
WINDOW = TimeInterval(DAY, DAY + timedelta(days=1))


def _build_test_ranker(**overrides) -> SlotRanker:
    get_settings.cache_clear()
    settings = get_settings()
    config = replace(ranking_config_from_settings(settings), **overrides)
    return SlotRanker(config=config, settings=settings)


def _at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


def _slot(start: datetime, minutes: int, *participants: str, total: int = 2) -> AvailabilitySlot:
    return AvailabilitySlot(
        start=start,
        end=start + timedelta(minutes=minutes),
        available_participants=tuple(sorted(participants)),
        total_participants=total,
    )


def _scenario_candidates() -> list[AvailabilitySlot]:
    slots = [
        AvailabilitySlot(_at(10), _at(11), ("a", "b"), 2),
        AvailabilitySlot(_at(12), _at(14), ("a", "b"), 2),
        AvailabilitySlot(_at(15), _at(17), ("a", "b"), 2),
    ]
    return SlotGenerator().generate(slots, 30).candidates


# --- scenario ---

def test_scenario_top_slot_is_mid_morning() -> None:
    ranked = _build_test_ranker().rank(_scenario_candidates(), WINDOW, "UTC", participant_ids=("a", "b"))

    assert len(ranked) == 17
    top = ranked[0]
    assert top.start == _at(10)
    assert top.is_recommended
    assert top.score == pytest.approx(0.958333)
    assert top.reasons == (
        RECOMMENDED_MARKER,
        "all participants available",
        "within preferred morning hours",
        "Tuesday slot",
        "early in search window",
    )
    assert top.unavailable_participants == ()


# --- ordering ---

def test_exactly_one_recommendation_with_maximum_score() -> None:
    ranked = _build_test_ranker().rank(_scenario_candidates(), WINDOW, "UTC")

    recommended = [item for item in ranked if item.is_recommended]
    assert len(recommended) == 1
    assert recommended[0].score == max(item.score for item in ranked)
    assert all(RECOMMENDED_MARKER not in item.reasons for item in ranked[1:])
    assert [item.score for item in ranked] == sorted((item.score for item in ranked), reverse=True)


def test_scores_bounded_between_zero_and_one() -> None:
    candidates = [_slot(_at(hour), 60, "a", total=3) for hour in range(0, 23)]
    ranked = _build_test_ranker().rank(candidates, WINDOW, "UTC")
    assert all(0.0 <= item.score <= 1.0 for item in ranked)


def test_ranking_is_independent_of_input_order() -> None:
    candidates = _scenario_candidates()
    shuffled = list(candidates)
    random.Random(3).shuffle(shuffled)
    ranker = _build_test_ranker()

    assert ranker.rank(candidates, WINDOW, "UTC") == ranker.rank(shuffled, WINDOW, "UTC")


def test_equal_scores_break_ties_by_earliest_start() -> None:
    ranker = _build_test_ranker(
        time_of_day_weight=0.0,
        day_of_week_weight=0.0,
        earliness_weight=0.0,
    )
    ranked = ranker.rank([_slot(_at(15), 30, "a", "b"), _slot(_at(11), 30, "a", "b")], WINDOW, "UTC")
    assert [item.start for item in ranked] == [_at(11), _at(15)]
    assert ranked[0].score == ranked[1].score == 1.0


# --- factors and reasons ---

def test_partial_coverage_explained_and_missing_participants_listed() -> None:
    ranked = _build_test_ranker().rank(
        [_slot(_at(14), 30, "a", "b", total=3)],
        WINDOW,
        "UTC",
        participant_ids=("c", "a", "b"),
    )
    assert ranked[0].reasons[1] == "2/3 participants available"
    assert "afternoon slot" in ranked[0].reasons
    assert ranked[0].unavailable_participants == ("c",)


def test_full_coverage_outranks_better_time_of_day() -> None:
    ranked = _build_test_ranker().rank(
        [_slot(_at(10), 30, "a", total=2), _slot(_at(13), 30, "a", "b")],
        WINDOW,
        "UTC",
    )
    assert ranked[0].start == _at(13)


def test_zero_weight_factor_omitted_from_reasons() -> None:
    ranked = _build_test_ranker(earliness_weight=0.0).rank([_slot(_at(10), 30, "a", "b")], WINDOW, "UTC")
    assert "early in search window" not in ranked[0].reasons
    assert "later in search window" not in ranked[0].reasons


def test_time_of_day_judged_in_policy_time_zone() -> None:
    ranked = _build_test_ranker().rank([_slot(_at(15), 30, "a", "b")], WINDOW, "America/New_York")
    assert "within preferred morning hours" in ranked[0].reasons


def test_weekend_preference_lowers_score() -> None:
    ranker = _build_test_ranker()
    weekday = ranker.rank([_slot(_at(10), 30, "a", "b")], WINDOW, "UTC")[0]
    saturday_window = TimeInterval(DAY + timedelta(days=4), DAY + timedelta(days=5))
    saturday = ranker.rank(
        [_slot(_at(10) + timedelta(days=4), 30, "a", "b")],
        saturday_window,
        "UTC",
    )[0]
    assert saturday.score < weekday.score
    assert "Saturday slot" in saturday.reasons


# --- edge cases ---

def test_empty_candidates_rank_to_empty_list() -> None:
    assert _build_test_ranker().rank([], WINDOW, "UTC") == []


def test_invalid_config_rejected_at_construction() -> None:
    with pytest.raises(ValueError):
        _build_test_ranker(coverage_weight=-1.0)
