#!/usr/bin/env python3
"""Validate local scheduling engine environment readiness."""

from __future__ import annotations

import asyncio
import importlib
import sys
from dataclasses import replace
from datetime import datetime, time, timedelta
from pathlib import Path

import pytz

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.domain.models import AvailabilityQuery, WorkingHoursPolicy
from backend.providers.mock_provider import MockCalendarProvider
from backend.services.scheduling_service import SchedulingService
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def _sample_query() -> AvailabilityQuery:
    start = datetime(2026, 3, 2, 0, 0, tzinfo=pytz.utc)
    return AvailabilityQuery(
        participant_ids=("alice", "bob", "carol"),
        duration_minutes=60,
        start=start,
        end=start + timedelta(days=5),
        policy=WorkingHoursPolicy(
            daily_start=time(9, 0),
            daily_end=time(17, 0),
            working_days=frozenset({0, 1, 2, 3, 4}),
            time_zone="UTC",
        ),
    )


def main() -> int:
    results: list[str] = []
    all_passed = True

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("httpx", "httpx"),
        ("pytz", "pytz"),
        ("dotenv", "python-dotenv"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    from importlib.metadata import version

    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            _ = version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    settings = replace(get_settings(), calendar_provider="mock")

    # CHECK 3: Mock calendar determinism
    query = _sample_query()
    try:
        first = MockCalendarProvider(seed=settings.mock_calendar_seed, time_zone=settings.default_time_zone)
        second = MockCalendarProvider(seed=settings.mock_calendar_seed, time_zone=settings.default_time_zone)
        left = asyncio.run(first.get_busy_intervals("alice", query.start, query.end))
        right = asyncio.run(second.get_busy_intervals("alice", query.start, query.end))
        if left != right:
            raise RuntimeError("same seed produced different calendars")
        ok, line = _print_result("Mock calendar determinism", True, f": {len(left)} busy intervals")
    except Exception as exc:
        ok, line = _print_result("Mock calendar determinism", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 4: End-to-end slot search against the mock calendar
    service = SchedulingService(
        provider=MockCalendarProvider(seed=settings.mock_calendar_seed, time_zone=settings.default_time_zone),
        settings=settings,
    )
    try:
        result = asyncio.run(service.find_ranked_slots(query))
        recommended = result.recommended
        if result.slots and recommended is None:
            raise RuntimeError("ranked slots carry no recommendation")
        detail = f": {len(result.slots)} slots"
        if recommended is not None:
            detail += f", best={recommended.start.isoformat()} score={recommended.score:.4f}"
        ok, line = _print_result("Slot search", True, detail)
    except Exception as exc:
        ok, line = _print_result("Slot search", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 5: Repeat query is served from cache
    try:
        repeat = asyncio.run(service.find_ranked_slots(query))
        if not repeat.from_cache:
            raise RuntimeError("repeat query missed the cache")
        ok, line = _print_result("Availability cache", True, f": {service.cache_stats().to_dict()}")
    except Exception as exc:
        ok, line = _print_result("Availability cache", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    print(SEPARATOR_LINE)
    print(" Scheduling Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
