"""Per-owner memoization of combined schedule mappings."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import date
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple, Union

from habitmap.api.schemas.schedule import ScheduleDefinition
from habitmap.core.config import get_settings
from habitmap.observability.metrics import log_metric
from habitmap.observability.tracing import trace
from habitmap.services.calendar_math import DateLike
from habitmap.services.combine import ViewType, combine_for_view
from habitmap.services.occurrences import EMPTY_MAPPING, ExpandedOccurrence

logger = logging.getLogger(__name__)

DateRange = Tuple[date, date]
Combiner = Callable[..., Mapping[date, ExpandedOccurrence]]


@dataclass(frozen=True)
class MappingCacheEntry:
    owner_id: str
    covered_range: DateRange
    per_date: Mapping[date, ExpandedOccurrence]
    # Invalidation generation the entry was computed under.
    stamp: int = 0

    def covers(self, date_range: DateRange) -> bool:
        start, end = self.covered_range
        return start <= date_range[0] and date_range[1] <= end

    def slice(self, date_range: DateRange) -> Mapping[date, ExpandedOccurrence]:
        start, end = date_range
        selected = {day: occurrence for day, occurrence in self.per_date.items() if start <= day <= end}
        if not selected:
            return EMPTY_MAPPING
        return MappingProxyType(selected)


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    recomputes: int
    entries: int


def _check_range(date_range: DateRange) -> DateRange:
    start, end = date_range
    if end < start:
        raise ValueError(f"date range end {end} is before start {start}")
    return start, end


def max_covered_days() -> int:
    """Widest range one entry may cover and still match a fresh computation.

    Half the shortest generation horizon, which leaves room for one cycle of
    alignment slack before the anchor and after the horizon end.
    """
    settings = get_settings()
    shortest = min(settings.day_horizon_days, settings.week_horizon_weeks * 7, settings.month_horizon_months * 28)
    return max(shortest // 2, 1)


class MappingCache:
    """Cache combined mappings per owner for one calendar view.

    An entry is replaced (never patched) when a request falls outside its
    covered range. The replacement covers the union of both ranges, or only
    the requested range when the union would exceed `max_covered_days()`.
    Mappings are computed with the covered start as the lookahead anchor.
    Recomputes for one owner are single-flight; other owners proceed in
    parallel.

    Callers must invalidate an owner whenever its schedule or start changes:
    the cache does not compare schedules.
    """

    def __init__(self, view_type: Union[ViewType, str] = ViewType.DAILY, *, combine: Combiner = combine_for_view):
        self.view_type = ViewType(view_type)
        self._combine = combine
        self._lock = threading.Lock()
        self._entries: Dict[str, MappingCacheEntry] = {}
        self._owner_locks: Dict[str, threading.Lock] = {}
        self._generations: Dict[str, int] = {}
        self._global_generation = 0
        self._hits = 0
        self._misses = 0
        self._recomputes = 0

    def _stamp_for(self, owner_id: str) -> int:
        return self._global_generation + self._generations.get(owner_id, 0)

    def _fresh_entry(self, owner_id: str) -> Tuple[Optional[MappingCacheEntry], int]:
        with self._lock:
            stamp = self._stamp_for(owner_id)
            entry = self._entries.get(owner_id)
        if entry is not None and entry.stamp != stamp:
            entry = None
        return entry, stamp

    def _owner_lock(self, owner_id: str) -> threading.Lock:
        with self._lock:
            return self._owner_locks.setdefault(owner_id, threading.Lock())

    def get(
        self,
        owner_id: str,
        schedule: ScheduleDefinition,
        start: DateLike,
        date_range: DateRange,
        *,
        owner_name: Optional[str] = None,
    ) -> Mapping[date, ExpandedOccurrence]:
        """Return the occurrences of `owner_id` inside `date_range` (inclusive)."""
        date_range = _check_range(date_range)

        entry, _ = self._fresh_entry(owner_id)
        if entry is not None and entry.covers(date_range):
            self._record_hit(owner_id)
            return entry.slice(date_range)

        with self._owner_lock(owner_id):
            # Another caller may have filled the entry while this one waited.
            entry, stamp = self._fresh_entry(owner_id)
            if entry is not None and entry.covers(date_range):
                self._record_hit(owner_id)
                return entry.slice(date_range)

            self._record_miss(owner_id)
            covered = date_range
            if entry is not None:
                union = (min(entry.covered_range[0], date_range[0]), max(entry.covered_range[1], date_range[1]))
                if (union[1] - union[0]).days < max_covered_days():
                    covered = union

            with trace(
                "mapping_cache.recompute",
                metadata={
                    "view": self.view_type.value,
                    "range_start": covered[0].isoformat(),
                    "range_end": covered[1].isoformat(),
                },
                owner_id=owner_id,
            ):
                per_date = self._combine(schedule, start, self.view_type, covered[0], owner_name=owner_name)

            new_entry = MappingCacheEntry(
                owner_id=owner_id,
                covered_range=covered,
                per_date=MappingProxyType(
                    {day: occurrence for day, occurrence in per_date.items() if covered[0] <= day <= covered[1]}
                ),
                stamp=stamp,
            )
            with self._lock:
                self._entries[owner_id] = new_entry
                self._recomputes += 1
            logger.debug(
                "Mapped %s for %s view over %s..%s (%d dates)",
                owner_id,
                self.view_type.value,
                covered[0],
                covered[1],
                len(new_entry.per_date),
            )
            return new_entry.slice(date_range)

    def peek(self, owner_id: str) -> Optional[MappingCacheEntry]:
        """Return the current entry for `owner_id`, or None when absent or invalidated."""
        entry, _ = self._fresh_entry(owner_id)
        return entry

    def invalidate(self, owner_id: str) -> None:
        """Drop the entry for `owner_id`; unknown owners are ignored.

        While a recompute for the owner is running its generation is bumped so
        the result is never served. Otherwise the owner's lock and generation
        are released as well.
        """
        with self._lock:
            self._entries.pop(owner_id, None)
            lock = self._owner_locks.get(owner_id)
            if lock is not None and lock.locked():
                self._generations[owner_id] = self._generations.get(owner_id, 0) + 1
            else:
                self._owner_locks.pop(owner_id, None)
                self._generations.pop(owner_id, None)

    def invalidate_all(self) -> None:
        with self._lock:
            # Folding owner generations into the global one keeps every stamp increasing.
            self._global_generation += 1 + max(self._generations.values(), default=0)
            self._generations.clear()
            self._entries.clear()
            self._owner_locks = {owner_id: lock for owner_id, lock in self._owner_locks.items() if lock.locked()}

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                recomputes=self._recomputes,
                entries=len(self._entries),
            )

    def _record_hit(self, owner_id: str) -> None:
        with self._lock:
            self._hits += 1
        log_metric("mapping_cache.hit", 1, metadata={"owner_id": owner_id, "view": self.view_type.value})

    def _record_miss(self, owner_id: str) -> None:
        with self._lock:
            self._misses += 1
        log_metric("mapping_cache.miss", 1, metadata={"owner_id": owner_id, "view": self.view_type.value})
