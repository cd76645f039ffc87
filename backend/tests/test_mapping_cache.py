from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest

from habitmap.api.schemas.schedule import ScheduleDefinition
from habitmap.services.combine import ViewType, combine_for_view
from habitmap.services.mapping_cache import MappingCache

START = date(2024, 1, 1)


def _schedule() -> ScheduleDefinition:
    return ScheduleDefinition.model_validate(
        {
            "days_indexed": [{"index": 1, "title": "Breathe", "steps": [{"text": "Box breathing"}]}],
            "weeks_indexed": [{"index": 1, "title": "Hike", "steps": [{"text": "Trail", "weekday": "sat"}]}],
        }
    )


class _CountingCombine:
    def __init__(self, delay: float = 0.0):
        self.calls = 0
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self, *args, **kwargs):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return combine_for_view(*args, **kwargs)


def test_sub_range_matches_fresh_computation() -> None:
    cache = MappingCache(ViewType.DAILY)
    schedule = _schedule()

    cache.get("habit:1", schedule, START, (date(2024, 1, 1), date(2024, 3, 31)))
    window = cache.get("habit:1", schedule, START, (date(2024, 2, 1), date(2024, 2, 10)))

    fresh = {
        day: occurrence
        for day, occurrence in combine_for_view(schedule, START, ViewType.DAILY).items()
        if date(2024, 2, 1) <= day <= date(2024, 2, 10)
    }
    assert dict(window) == fresh
    assert cache.stats().hits == 1
    assert cache.stats().misses == 1


def test_returned_slice_is_read_only() -> None:
    cache = MappingCache()
    window = cache.get("habit:1", _schedule(), START, (date(2024, 1, 1), date(2024, 1, 7)))

    with pytest.raises(TypeError):
        window[date(2024, 1, 1)] = None  # type: ignore[index]


def test_uncovered_range_replaces_entry_with_union() -> None:
    combine = _CountingCombine()
    cache = MappingCache(ViewType.DAILY, combine=combine)
    schedule = _schedule()

    cache.get("habit:1", schedule, START, (date(2024, 1, 1), date(2024, 1, 10)))
    cache.get("habit:1", schedule, START, (date(2024, 1, 5), date(2024, 2, 10)))
    cache.get("habit:1", schedule, START, (date(2024, 1, 1), date(2024, 1, 3)))

    entry = cache.peek("habit:1")
    assert entry is not None
    assert entry.covered_range == (date(2024, 1, 1), date(2024, 2, 10))
    assert combine.calls == 2


def test_invalidate_forces_recompute() -> None:
    combine = _CountingCombine()
    cache = MappingCache(combine=combine)
    schedule = _schedule()
    date_range = (date(2024, 1, 1), date(2024, 1, 31))

    cache.get("habit:1", schedule, START, date_range)
    cache.get("habit:1", schedule, START, date_range)
    cache.invalidate("habit:1")
    cache.get("habit:1", schedule, START, date_range)

    assert combine.calls == 2
    assert cache.stats().recomputes == 2


def test_invalidate_unknown_owner_is_noop() -> None:
    cache = MappingCache()
    cache.invalidate("habit:missing")

    assert cache.stats().entries == 0


def test_invalidate_all_drops_every_entry() -> None:
    cache = MappingCache()
    schedule = _schedule()
    cache.get("habit:1", schedule, START, (START, date(2024, 1, 7)))
    cache.get("habit:2", schedule, START, (START, date(2024, 1, 7)))

    cache.invalidate_all()

    assert cache.stats().entries == 0
    assert cache.peek("habit:1") is None


def test_result_computed_before_invalidation_is_not_served() -> None:
    cache_holder = {}
    calls = []

    def racing_combine(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            cache_holder["cache"].invalidate("habit:1")
        return combine_for_view(*args, **kwargs)

    cache = MappingCache(combine=racing_combine)
    cache_holder["cache"] = cache
    schedule = _schedule()
    date_range = (START, date(2024, 1, 14))

    cache.get("habit:1", schedule, START, date_range)
    assert cache.peek("habit:1") is None

    cache.get("habit:1", schedule, START, date_range)
    assert len(calls) == 2
    assert cache.peek("habit:1") is not None


def test_reversed_range_is_rejected() -> None:
    with pytest.raises(ValueError):
        MappingCache().get("habit:1", _schedule(), START, (date(2024, 2, 1), date(2024, 1, 1)))


def test_concurrent_requests_for_one_owner_recompute_once() -> None:
    combine = _CountingCombine(delay=0.05)
    cache = MappingCache(combine=combine)
    schedule = _schedule()
    date_range = (START, date(2024, 1, 31))

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: cache.get("habit:1", schedule, START, date_range), range(8)))

    assert combine.calls == 1
    assert all(dict(result) == dict(results[0]) for result in results)


def test_different_owners_are_cached_independently() -> None:
    combine = _CountingCombine()
    cache = MappingCache(combine=combine)
    schedule = _schedule()

    cache.get("habit:1", schedule, START, (START, date(2024, 1, 7)))
    cache.get("task:1", schedule, START, (START, date(2024, 1, 7)))
    cache.invalidate("habit:1")

    assert cache.peek("task:1") is not None
    assert combine.calls == 2


def test_far_future_range_is_anchored_at_covered_start() -> None:
    cache = MappingCache(ViewType.DAILY)
    schedule = _schedule()
    date_range = (date(2600, 1, 1), date(2600, 1, 7))

    window = cache.get("habit:1", schedule, START, date_range)

    fresh = combine_for_view(schedule, START, ViewType.DAILY, date(2600, 1, 1))
    assert list(window) == [date(2600, 1, day) for day in range(1, 8)]
    assert dict(window) == {day: fresh[day] for day in window}


def test_distant_range_replaces_entry_instead_of_widening() -> None:
    cache = MappingCache(ViewType.DAILY)
    schedule = _schedule()

    cache.get("habit:1", schedule, START, (date(2024, 1, 1), date(2024, 1, 10)))
    window = cache.get("habit:1", schedule, START, (date(2025, 12, 1), date(2025, 12, 5)))

    entry = cache.peek("habit:1")
    assert entry is not None
    assert entry.covered_range == (date(2025, 12, 1), date(2025, 12, 5))
    assert len(window) == 5


def test_invalidate_releases_idle_owner_state() -> None:
    cache = MappingCache()
    schedule = _schedule()
    cache.get("habit:1", schedule, START, (START, date(2024, 1, 7)))
    cache.get("habit:2", schedule, START, (START, date(2024, 1, 7)))

    cache.invalidate("habit:1")
    assert set(cache._owner_locks) == {"habit:2"}
    assert cache._generations == {}

    cache.invalidate_all()
    assert cache._owner_locks == {}
    assert cache._generations == {}
    assert cache.get("habit:1", schedule, START, (START, date(2024, 1, 7)))


def test_result_computed_before_invalidate_all_is_not_served() -> None:
    cache_holder = {}
    calls = []

    def racing_combine(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            cache_holder["cache"].invalidate("habit:1")
            cache_holder["cache"].invalidate_all()
        return combine_for_view(*args, **kwargs)

    cache = MappingCache(combine=racing_combine)
    cache_holder["cache"] = cache
    schedule = _schedule()
    date_range = (START, date(2024, 1, 14))

    cache.get("habit:1", schedule, START, date_range)
    assert cache.peek("habit:1") is None
    assert cache._generations == {}

    cache.get("habit:1", schedule, START, date_range)
    assert cache.peek("habit:1") is not None
