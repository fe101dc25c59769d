"""Deterministic weighted scoring and explanation of candidate slots."""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

import pytz

from backend.domain.constraints import RankingConfig, validate_ranking_config
from backend.domain.models import AvailabilitySlot, RankedSlot, TimeInterval
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

RECOMMENDED_MARKER = "recommended"

# Fixed names keep explanations independent of the process locale.
WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

SCORE_PRECISION = 6


@dataclass(frozen=True)
class ScoreBreakdown:
    coverage: float
    time_of_day: float
    day_of_week: float
    earliness: float
    score: float


def ranking_config_from_settings(settings: Settings) -> RankingConfig:
    return RankingConfig(
        coverage_weight=settings.ranking_coverage_weight,
        time_of_day_weight=settings.ranking_time_of_day_weight,
        day_of_week_weight=settings.ranking_day_of_week_weight,
        earliness_weight=settings.ranking_earliness_weight,
        peak_hour=settings.ranking_peak_hour,
        time_of_day_spread_hours=settings.ranking_time_of_day_spread_hours,
        weekday_preferences=tuple(settings.ranking_weekday_preferences),
    )


def _tie_break_digest(slot: AvailabilitySlot) -> str:
    material = "|".join(
        (slot.start.isoformat(), slot.end.isoformat(), ",".join(slot.free_participants))
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def _time_of_day_label(local_start: datetime) -> str:
    hour = local_start.hour
    if 9 <= hour < 12:
        return "within preferred morning hours"
    if 12 <= hour < 14:
        return "early afternoon slot"
    if 14 <= hour < 17:
        return "afternoon slot"
    return "outside core hours"


class SlotRanker:
    """Scores candidates against coverage, time of day, weekday and earliness."""

    def __init__(
        self,
        config: Optional[RankingConfig] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._config = config or ranking_config_from_settings(self._settings)
        validate_ranking_config(self._config)

    @property
    def config(self) -> RankingConfig:
        return self._config

    def time_of_day_term(self, local_start: datetime) -> float:
        hour = local_start.hour + local_start.minute / 60.0
        spread = self._config.time_of_day_spread_hours
        return math.exp(-((hour - self._config.peak_hour) ** 2) / (2.0 * spread**2))

    def day_of_week_term(self, local_start: datetime) -> float:
        return self._config.weekday_preferences[local_start.weekday()]

    @staticmethod
    def earliness_term(start: datetime, window: TimeInterval) -> float:
        span = (window.end - window.start).total_seconds()
        offset = (start - window.start).total_seconds()
        return min(1.0, max(0.0, 1.0 - offset / span))

    def breakdown(
        self,
        slot: AvailabilitySlot,
        window: TimeInterval,
        tz: pytz.BaseTzInfo,
    ) -> ScoreBreakdown:
        local_start = slot.start.astimezone(tz)
        config = self._config
        coverage = slot.coverage
        time_of_day = self.time_of_day_term(local_start)
        day_of_week = self.day_of_week_term(local_start)
        earliness = self.earliness_term(slot.start, window)
        weighted = (
            config.coverage_weight * coverage
            + config.time_of_day_weight * time_of_day
            + config.day_of_week_weight * day_of_week
            + config.earliness_weight * earliness
        )
        return ScoreBreakdown(
            coverage=coverage,
            time_of_day=time_of_day,
            day_of_week=day_of_week,
            earliness=earliness,
            score=round(weighted / config.total_weight, SCORE_PRECISION),
        )

    def explain(
        self,
        slot: AvailabilitySlot,
        breakdown: ScoreBreakdown,
        tz: pytz.BaseTzInfo,
    ) -> tuple[str, ...]:
        """List positively contributing factors, largest contribution first."""
        local_start = slot.start.astimezone(tz)
        config = self._config
        if slot.is_full_coverage:
            coverage_label = "all participants available"
        else:
            coverage_label = f"{slot.available_count}/{slot.total_participants} participants available"
        earliness_label = (
            "early in search window" if breakdown.earliness >= 0.5 else "later in search window"
        )
        factors = [
            (config.coverage_weight * breakdown.coverage, 0, coverage_label),
            (config.time_of_day_weight * breakdown.time_of_day, 1, _time_of_day_label(local_start)),
            (
                config.day_of_week_weight * breakdown.day_of_week,
                2,
                f"{WEEKDAY_NAMES[local_start.weekday()]} slot",
            ),
            (config.earliness_weight * breakdown.earliness, 3, earliness_label),
        ]
        contributing = [factor for factor in factors if factor[0] > 0.0]
        contributing.sort(key=lambda factor: (-factor[0], factor[1]))
        return tuple(label for _, _, label in contributing)

    def rank(
        self,
        candidates: Sequence[AvailabilitySlot],
        window: TimeInterval,
        time_zone: str,
        participant_ids: Sequence[str] = (),
    ) -> list[RankedSlot]:
        """Return candidates best-first with exactly one recommendation.

        An empty input yields an empty list, which callers report as
        "no feasible slot".
        """
        if not candidates:
            return []

        tz = pytz.timezone(time_zone)
        requested = tuple(sorted(set(participant_ids)))
        scored: list[tuple[tuple[float, datetime, datetime, str], AvailabilitySlot, ScoreBreakdown]] = []
        for slot in candidates:
            breakdown = self.breakdown(slot, window, tz)
            order_key = (-breakdown.score, slot.start, slot.end, _tie_break_digest(slot))
            scored.append((order_key, slot, breakdown))
        scored.sort(key=lambda item: item[0])

        ranked: list[RankedSlot] = []
        for position, (_, slot, breakdown) in enumerate(scored):
            reasons = self.explain(slot, breakdown, tz)
            is_recommended = position == 0
            if is_recommended:
                reasons = (RECOMMENDED_MARKER,) + reasons
            available = set(slot.free_participants)
            ranked.append(
                RankedSlot(
                    slot=slot,
                    score=breakdown.score,
                    reasons=reasons,
                    is_recommended=is_recommended,
                    unavailable_participants=tuple(
                        participant_id for participant_id in requested if participant_id not in available
                    ),
                )
            )

        recommended = [item for item in ranked if item.is_recommended]
        assert len(recommended) == 1, "ranking must recommend exactly one slot"
        assert recommended[0].score == max(item.score for item in ranked), "recommended slot must score highest"

        logger.info(
            "Slots ranked | candidates=%s | top_score=%.6f | recommended_start=%s",
            len(ranked),
            ranked[0].score,
            ranked[0].start.isoformat(),
        )
        return ranked
