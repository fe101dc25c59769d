"""Two-tier expiring cache for participant availability and ranked results.

Tier one holds a participant's free intervals for a (window, policy) pair so
that a query differing only in its participant set reuses everyone else's
calendar work. Tier two holds whole-query results. Both tiers share one
expiry and one lock; entries are pure functions of their key, so concurrent
overwrites are harmless.
"""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass, replace
from datetime import timezone
from threading import RLock
from typing import Any, Callable, Optional

from backend.domain.models import (
    AvailabilityQuery,
    SchedulingResult,
    TimeInterval,
    WorkingHoursPolicy,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

QUERY_KEY_PREFIX = "availability:query:"
PARTICIPANT_KEY_PREFIX = "availability:participant:"


class CacheInconsistencyError(Exception):
    """Raised internally when a cached entry does not match its key."""


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    evictions: int
    participant_entries: int
    query_entries: int

    def to_dict(self) -> dict[str, int]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "participant_entries": self.participant_entries,
            "query_entries": self.query_entries,
        }


@dataclass(frozen=True)
class _CacheEntry:
    payload: str
    value: Any
    expires_at: float
    participant_ids: frozenset[str]


def _utc_iso(value) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _serialize(data: dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def _digest(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def canonical_query_payload(query: AvailabilityQuery) -> str:
    """Serialize every result-affecting field of a query in canonical order."""
    return _serialize(
        {
            "participant_ids": sorted(set(query.participant_ids)),
            "start": _utc_iso(query.start),
            "end": _utc_iso(query.end),
            "duration_minutes": query.duration_minutes,
            "policy": query.policy.canonical(),
            "require_full_coverage": query.require_full_coverage,
            "min_participants": query.min_participants,
            "max_results": query.max_results,
            "step_minutes": query.step_minutes,
        }
    )


def canonical_participant_payload(
    participant_id: str,
    window: TimeInterval,
    policy: WorkingHoursPolicy,
) -> str:
    return _serialize(
        {
            "participant_id": participant_id,
            "start": _utc_iso(window.start),
            "end": _utc_iso(window.end),
            "policy": policy.canonical(),
        }
    )


def _check_free_intervals(
    participant_id: str,
    window: TimeInterval,
    intervals: tuple[TimeInterval, ...],
) -> None:
    previous_end = None
    for interval in intervals:
        if interval.start < window.start or interval.end > window.end:
            raise CacheInconsistencyError(
                f"cached free interval for {participant_id} falls outside its window"
            )
        if previous_end is not None and interval.start < previous_end:
            raise CacheInconsistencyError(f"cached free intervals for {participant_id} overlap")
        previous_end = interval.end


def _check_result(query: AvailabilityQuery, result: SchedulingResult) -> None:
    requested = set(query.participant_ids)
    recommended = 0
    for ranked in result.slots:
        slot = ranked.slot
        if slot.duration_minutes != query.duration_minutes:
            raise CacheInconsistencyError("cached slot duration does not match the query")
        if slot.total_participants != len(requested):
            raise CacheInconsistencyError("cached slot participant total does not match the query")
        if not set(slot.free_participants) <= requested:
            raise CacheInconsistencyError("cached slot names participants outside the query")
        if ranked.is_recommended:
            recommended += 1
    if recommended > 1:
        raise CacheInconsistencyError("cached result has more than one recommendation")
    if set(result.data_quality) != requested:
        raise CacheInconsistencyError("cached data-quality summary does not match the query")


class AvailabilityCache:
    """Thread-safe expiring cache keyed by canonical query content."""

    def __init__(
        self,
        ttl_seconds: float = 1800,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self._ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._lock = RLock()
        self._participant_entries: dict[str, _CacheEntry] = {}
        self._query_entries: dict[str, _CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @staticmethod
    def query_key(query: AvailabilityQuery) -> str:
        return QUERY_KEY_PREFIX + _digest(canonical_query_payload(query))

    @staticmethod
    def participant_key(
        participant_id: str,
        window: TimeInterval,
        policy: WorkingHoursPolicy,
    ) -> str:
        payload = canonical_participant_payload(participant_id, window, policy)
        return f"{PARTICIPANT_KEY_PREFIX}{participant_id}:{_digest(payload)}"

    def _lookup(
        self,
        store: dict[str, _CacheEntry],
        key: str,
        payload: str,
        check: Callable[[Any], None],
    ) -> Optional[Any]:
        with self._lock:
            entry = store.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= self._clock():
                del store[key]
                self._evictions += 1
                self._misses += 1
                logger.debug("Cache entry expired | key=%s", key)
                return None
            try:
                if entry.payload != payload:
                    raise CacheInconsistencyError("cached payload does not match its key")
                check(entry.value)
            except CacheInconsistencyError as exc:
                del store[key]
                self._evictions += 1
                self._misses += 1
                logger.warning("Discarding inconsistent cache entry | key=%s | reason=%s", key, exc)
                return None
            self._hits += 1
            return entry.value

    def _store(
        self,
        store: dict[str, _CacheEntry],
        key: str,
        payload: str,
        value: Any,
        participant_ids: frozenset[str],
    ) -> None:
        with self._lock:
            now = self._clock()
            self._purge_expired(store, now)
            store[key] = _CacheEntry(
                payload=payload,
                value=value,
                expires_at=now + self._ttl_seconds,
                participant_ids=participant_ids,
            )

    def _purge_expired(self, store: dict[str, _CacheEntry], now: float) -> None:
        # Caller holds the lock.
        expired_keys = [key for key, entry in store.items() if entry.expires_at <= now]
        for key in expired_keys:
            del store[key]
        if expired_keys:
            self._evictions += len(expired_keys)
            logger.debug("Expired cache entries swept | evicted=%s | remaining=%s", len(expired_keys), len(store))

    def get_participant_free(
        self,
        participant_id: str,
        window: TimeInterval,
        policy: WorkingHoursPolicy,
    ) -> Optional[tuple[TimeInterval, ...]]:
        payload = canonical_participant_payload(participant_id, window, policy)
        return self._lookup(
            self._participant_entries,
            self.participant_key(participant_id, window, policy),
            payload,
            lambda value: _check_free_intervals(participant_id, window, value),
        )

    def store_participant_free(
        self,
        participant_id: str,
        window: TimeInterval,
        policy: WorkingHoursPolicy,
        free_intervals: list[TimeInterval],
    ) -> None:
        self._store(
            self._participant_entries,
            self.participant_key(participant_id, window, policy),
            canonical_participant_payload(participant_id, window, policy),
            tuple(free_intervals),
            frozenset({participant_id}),
        )

    def get_result(self, query: AvailabilityQuery) -> Optional[SchedulingResult]:
        cached = self._lookup(
            self._query_entries,
            self.query_key(query),
            canonical_query_payload(query),
            lambda value: _check_result(query, value),
        )
        if cached is None:
            return None
        return replace(
            cached,
            slots=list(cached.slots),
            data_quality=dict(cached.data_quality),
            from_cache=True,
        )

    def store_result(self, query: AvailabilityQuery, result: SchedulingResult) -> None:
        stored = replace(
            result,
            slots=list(result.slots),
            data_quality=dict(result.data_quality),
            from_cache=False,
        )
        self._store(
            self._query_entries,
            self.query_key(query),
            canonical_query_payload(query),
            stored,
            frozenset(query.participant_ids),
        )

    def invalidate_participant(self, participant_id: str) -> int:
        """Drop every entry that depends on ``participant_id``'s calendar."""
        with self._lock:
            evicted = 0
            for store in (self._participant_entries, self._query_entries):
                stale_keys = [
                    key for key, entry in store.items() if participant_id in entry.participant_ids
                ]
                for key in stale_keys:
                    del store[key]
                evicted += len(stale_keys)
            self._evictions += evicted
        logger.info("Cache invalidated for participant | participant_id=%s | evicted=%s", participant_id, evicted)
        return evicted

    def clear(self) -> None:
        with self._lock:
            evicted = len(self._participant_entries) + len(self._query_entries)
            self._participant_entries.clear()
            self._query_entries.clear()
            self._evictions += evicted
        logger.info("Availability cache cleared | evicted=%s", evicted)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                participant_entries=len(self._participant_entries),
                query_entries=len(self._query_entries),
            )
