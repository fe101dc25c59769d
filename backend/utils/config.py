"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float_tuple(name: str, default: tuple[float, ...]) -> tuple[float, ...]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return tuple(float(item) for item in value.split(","))


def _env_int_tuple(name: str, default: tuple[int, ...]) -> tuple[int, ...]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return tuple(int(item) for item in value.split(","))


@dataclass(frozen=True)
class Settings:
    app_name: str = "Common Availability Engine"
    app_version: str = "1.0.0"
    log_level: str = "INFO"

    calendar_provider: str = "mock"
    calendar_http_base_url: str = "http://127.0.0.1:8081"
    calendar_http_timeout_seconds: float = 10.0
    calendar_fetch_timeout_seconds: float = 5.0
    mock_calendar_seed: int = 42
    mock_calendar_busyness: float = 0.5
    treat_tentative_as_busy: bool = False

    cache_ttl_seconds: int = 1800

    slot_granularity_minutes: int = 15
    min_duration_minutes: int = 15
    max_duration_minutes: int = 480

    ranking_coverage_weight: float = 0.5
    ranking_time_of_day_weight: float = 0.3
    ranking_day_of_week_weight: float = 0.1
    ranking_earliness_weight: float = 0.1
    ranking_peak_hour: float = 10.0
    ranking_time_of_day_spread_hours: float = 2.5
    # Monday..Sunday
    ranking_weekday_preferences: tuple[float, ...] = (0.8, 1.0, 1.0, 1.0, 0.7, 0.3, 0.3)

    default_daily_start: str = "09:00"
    default_daily_end: str = "17:00"
    default_working_days: tuple[int, ...] = (0, 1, 2, 3, 4)
    default_time_zone: str = "UTC"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process from environment variables."""
    load_dotenv()
    defaults = Settings()
    return Settings(
        app_name=_env_str("APP_NAME", defaults.app_name),
        app_version=_env_str("APP_VERSION", defaults.app_version),
        log_level=_env_str("LOG_LEVEL", defaults.log_level),
        calendar_provider=_env_str("CALENDAR_PROVIDER", defaults.calendar_provider).lower(),
        calendar_http_base_url=_env_str("CALENDAR_HTTP_BASE_URL", defaults.calendar_http_base_url),
        calendar_http_timeout_seconds=_env_float(
            "CALENDAR_HTTP_TIMEOUT_SECONDS",
            defaults.calendar_http_timeout_seconds,
        ),
        calendar_fetch_timeout_seconds=_env_float(
            "CALENDAR_FETCH_TIMEOUT_SECONDS",
            defaults.calendar_fetch_timeout_seconds,
        ),
        mock_calendar_seed=_env_int("MOCK_CALENDAR_SEED", defaults.mock_calendar_seed),
        mock_calendar_busyness=_env_float("MOCK_CALENDAR_BUSYNESS", defaults.mock_calendar_busyness),
        treat_tentative_as_busy=_env_bool("TREAT_TENTATIVE_AS_BUSY", defaults.treat_tentative_as_busy),
        cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", defaults.cache_ttl_seconds),
        slot_granularity_minutes=_env_int("SLOT_GRANULARITY_MINUTES", defaults.slot_granularity_minutes),
        min_duration_minutes=_env_int("MIN_DURATION_MINUTES", defaults.min_duration_minutes),
        max_duration_minutes=_env_int("MAX_DURATION_MINUTES", defaults.max_duration_minutes),
        ranking_coverage_weight=_env_float("RANKING_COVERAGE_WEIGHT", defaults.ranking_coverage_weight),
        ranking_time_of_day_weight=_env_float(
            "RANKING_TIME_OF_DAY_WEIGHT",
            defaults.ranking_time_of_day_weight,
        ),
        ranking_day_of_week_weight=_env_float(
            "RANKING_DAY_OF_WEEK_WEIGHT",
            defaults.ranking_day_of_week_weight,
        ),
        ranking_earliness_weight=_env_float("RANKING_EARLINESS_WEIGHT", defaults.ranking_earliness_weight),
        ranking_peak_hour=_env_float("RANKING_PEAK_HOUR", defaults.ranking_peak_hour),
        ranking_time_of_day_spread_hours=_env_float(
            "RANKING_TIME_OF_DAY_SPREAD_HOURS",
            defaults.ranking_time_of_day_spread_hours,
        ),
        ranking_weekday_preferences=_env_float_tuple(
            "RANKING_WEEKDAY_PREFERENCES",
            defaults.ranking_weekday_preferences,
        ),
        default_daily_start=_env_str("DEFAULT_DAILY_START", defaults.default_daily_start),
        default_daily_end=_env_str("DEFAULT_DAILY_END", defaults.default_daily_end),
        default_working_days=_env_int_tuple("DEFAULT_WORKING_DAYS", defaults.default_working_days),
        default_time_zone=_env_str("DEFAULT_TIME_ZONE", defaults.default_time_zone),
    )
