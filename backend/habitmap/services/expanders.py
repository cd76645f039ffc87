"""Granularity expanders: turn one bucket of a schedule into dated occurrences.

Each expander walks `cycles x entries` and places every indexed entry on its
calendar date:

- day:   start + cycle * cycle_days + (index - 1) days
- week:  week containing start + (cycle * span_value + index - 1) weeks,
         then each referenced weekday inside that week
- month: month of start + (cycle * span_value + index - 1) months, then each
         referenced day-of-month inside that month

Bounded schedules stop at `max_date`. Infinite ones are materialized over one
lookahead horizon (see Settings.*_horizon_*) starting at the cycle that
contains `max(start, now)`; earlier cycles are never generated, so the work per
call does not grow with `now`. Dates past `date.max` are dropped and malformed
entries are skipped, never raised.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Mapping, Optional, Tuple

from habitmap.api.schemas.schedule import DayEntry, MonthEntry, ScheduleDefinition, Span, WeekEntry
from habitmap.core.config import get_settings
from habitmap.services.calendar_math import (
    DateLike,
    add_days,
    add_months,
    first_of_month,
    month_day_key,
    months_between,
    parse_clock_time,
    resolve_month_day,
    resolve_weekday,
    start_of_week,
    time_of_day_minutes,
    to_local_date,
    weekday_index,
)
from habitmap.services.occurrences import (
    EMPTY_MAPPING,
    ExpandedOccurrence,
    ReminderDisplay,
    StepDisplay,
    freeze,
    put_occurrence,
)

logger = logging.getLogger(__name__)

SPAN_LENGTH_DAYS = {
    Span.DAY: 1,
    Span.WEEK: 7,
    Span.MONTH: 30,
    Span.YEAR: 365,
}


@dataclass(frozen=True)
class CyclePlan:
    first: int
    end: int
    max_date: Optional[date]

    @property
    def cycles(self) -> range:
        return range(self.first, self.end)

    def excludes(self, day: date) -> bool:
        return self.max_date is not None and day > self.max_date


def span_value_of(schedule: ScheduleDefinition) -> int:
    """Cycle length in spans, clamped to 1 for degenerate input."""
    try:
        return max(1, int(schedule.span_value))
    except (TypeError, ValueError):
        return 1


def span_length_days(span: Span) -> int:
    return SPAN_LENGTH_DAYS.get(span, 1)


def total_horizon_days(schedule: ScheduleDefinition) -> Optional[int]:
    """Days from start to the last allowed date, or None for infinite schedules."""
    if schedule.is_infinite:
        return None
    if schedule.repeat_count is not None:
        return span_value_of(schedule) * schedule.repeat_count * span_length_days(schedule.span)
    return schedule.schedule_horizon_days


def plan_cycles(
    schedule: ScheduleDefinition,
    start_day: date,
    *,
    horizon_units: int,
    units_per_cycle: int,
    days_per_cycle: int,
    elapsed_units: int = 0,
    reach_units: int = 0,
) -> CyclePlan:
    """Work out which cycles to generate and the last date allowed.

    Units are the expander's own (days, weeks or months). `horizon_units` is
    the infinite lookahead, `elapsed_units` how far the lookahead anchor lies
    past the start, and `reach_units` how far back from its cycle an entry can
    land. Cycles whose dates all fall before the anchor are skipped.
    """
    units_per_cycle = max(1, units_per_cycle)
    days_per_cycle = max(1, days_per_cycle)
    elapsed_units = max(0, elapsed_units)
    if schedule.is_infinite:
        end = elapsed_units // units_per_cycle + max(horizon_units // units_per_cycle, 1)
    elif schedule.repeat_count is not None:
        end = schedule.repeat_count
    else:
        end = max(schedule.schedule_horizon_days // days_per_cycle, 1)
    first = min(max(0, (elapsed_units - reach_units) // units_per_cycle), end)

    horizon_days = total_horizon_days(schedule)
    max_date = None
    if horizon_days is not None:
        max_date = add_days(start_day, horizon_days) or date.max
    return CyclePlan(first=first, end=end, max_date=max_date)


def _reminders(entry) -> Tuple[ReminderDisplay, ...]:
    return tuple(ReminderDisplay(time=reminder.time, message=reminder.message) for reminder in entry.reminders)


def _lookahead_start(start_day: date, now: Optional[DateLike], tz_name: str) -> date:
    if now is None:
        return start_day
    return max(start_day, to_local_date(now, tz_name))


# ---------------------------------------------------------------------------
# Day expander
# ---------------------------------------------------------------------------


def should_push_first_occurrence(schedule: ScheduleDefinition, start: DateLike, tz_name: str = "UTC") -> bool:
    """True when an index-1 step is clocked earlier than the start's time of day.

    A habit created at 18:00 with a 09:00 first step cannot apply to that same
    day, so the whole day bucket moves forward by one day. Only index 1 is
    inspected.
    """
    created_at = time_of_day_minutes(start, tz_name)
    if created_at is None:
        return False
    first_entry = next((entry for entry in schedule.days_indexed if entry.index == 1), None)
    if first_entry is None:
        return False
    for step in first_entry.steps:
        clock = parse_clock_time(step.clock_time)
        if clock is not None and clock < created_at:
            return True
    return False


def _day_steps(entry: DayEntry) -> Tuple[StepDisplay, ...]:
    return tuple(StepDisplay(text=step.text, clock_time=step.clock_time) for step in entry.steps)


def expand_daily(
    schedule: ScheduleDefinition,
    start: DateLike,
    now: Optional[DateLike] = None,
) -> Mapping[date, ExpandedOccurrence]:
    """Map `days_indexed` entries onto calendar dates."""
    entries = [entry for entry in schedule.days_indexed if entry.index >= 1]
    if not entries:
        return EMPTY_MAPPING

    settings = get_settings()
    tz_name = settings.local_timezone
    start_day = to_local_date(start, tz_name)
    cycle_days = span_value_of(schedule) * span_length_days(schedule.span)
    plan = plan_cycles(
        schedule,
        start_day,
        horizon_units=settings.day_horizon_days,
        units_per_cycle=cycle_days,
        days_per_cycle=cycle_days,
        elapsed_units=(_lookahead_start(start_day, now, tz_name) - start_day).days,
        reach_units=max(entry.index for entry in entries),
    )
    shift = 1 if should_push_first_occurrence(schedule, start, tz_name) else 0
    prepared = [(entry, _day_steps(entry), _reminders(entry)) for entry in entries]

    accumulator: Dict[date, ExpandedOccurrence] = {}
    for cycle in plan.cycles:
        cycle_start = add_days(start_day, cycle * cycle_days + shift)
        if cycle_start is None or plan.excludes(cycle_start):
            break
        for entry, steps, reminders in prepared:
            target = add_days(cycle_start, entry.index - 1)
            if target is None or plan.excludes(target):
                continue
            put_occurrence(
                accumulator,
                ExpandedOccurrence(date=target, title=entry.title, steps=steps, reminders=reminders),
            )
    return freeze(accumulator)


# ---------------------------------------------------------------------------
# Week expander
# ---------------------------------------------------------------------------


def _group_week_steps(entry: WeekEntry) -> List[Tuple[str, Tuple[StepDisplay, ...]]]:
    """Group an entry's steps by weekday, in first-seen order; unknown names are dropped."""
    grouped: Dict[int, Tuple[str, List[StepDisplay]]] = {}
    for step in entry.steps:
        index = weekday_index(step.weekday)
        if index is None:
            logger.debug("Skipping week %s step %r: unknown weekday %r", entry.index, step.text, step.weekday)
            continue
        _, steps = grouped.setdefault(index, (step.weekday, []))
        steps.append(StepDisplay(text=step.text, weekday=step.weekday.strip()))
    return [(name, tuple(steps)) for name, steps in grouped.values()]


def expand_weekly(
    schedule: ScheduleDefinition,
    start: DateLike,
    now: Optional[DateLike] = None,
) -> Mapping[date, ExpandedOccurrence]:
    """Map `weeks_indexed` entries onto the weekdays they name."""
    entries = [entry for entry in schedule.weeks_indexed if entry.index >= 1]
    if not entries:
        return EMPTY_MAPPING

    settings = get_settings()
    tz_name = settings.local_timezone
    start_day = to_local_date(start, tz_name)
    span_value = span_value_of(schedule)
    plan = plan_cycles(
        schedule,
        start_day,
        horizon_units=settings.week_horizon_weeks,
        units_per_cycle=span_value,
        days_per_cycle=span_value * 7,
        elapsed_units=(_lookahead_start(start_day, now, tz_name) - start_day).days // 7,
        reach_units=max(entry.index for entry in entries),
    )
    groups = [(entry, _group_week_steps(entry), _reminders(entry)) for entry in entries]

    def week_of(offset: int) -> Optional[date]:
        shifted = add_days(start_day, offset * 7)
        return start_of_week(shifted, settings.first_weekday) if shifted is not None else None

    accumulator: Dict[date, ExpandedOccurrence] = {}
    for cycle in plan.cycles:
        first_week = week_of(cycle * span_value)
        if first_week is None or plan.excludes(first_week):
            break
        for entry, day_groups, reminders in groups:
            week_start = week_of(cycle * span_value + entry.index - 1)
            if week_start is None:
                continue
            for weekday_name, steps in day_groups:
                target = resolve_weekday(weekday_name, week_start)
                if target is None or plan.excludes(target):
                    continue
                put_occurrence(
                    accumulator,
                    ExpandedOccurrence(
                        date=target,
                        title=entry.title,
                        description=entry.description,
                        steps=steps,
                        reminders=reminders,
                    ),
                )
    return freeze(accumulator)


# ---------------------------------------------------------------------------
# Month expander
# ---------------------------------------------------------------------------


def _group_month_steps(entry: MonthEntry) -> List[Tuple[object, List[str]]]:
    """Group step texts by normalized day spec; malformed specs are dropped."""
    grouped: Dict[object, Tuple[object, List[str]]] = {}
    for step in entry.steps:
        key = month_day_key(step.day)
        if key is None:
            logger.debug("Skipping month %s step %r: bad day spec %r", entry.index, step.text, step.day)
            continue
        _, texts = grouped.setdefault(key, (step.day, []))
        texts.append(step.text)
    return list(grouped.values())


def expand_monthly(
    schedule: ScheduleDefinition,
    start: DateLike,
    now: Optional[DateLike] = None,
) -> Mapping[date, ExpandedOccurrence]:
    """Map `months_indexed` entries onto the days of month they name."""
    entries = [entry for entry in schedule.months_indexed if entry.index >= 1]
    if not entries:
        return EMPTY_MAPPING

    settings = get_settings()
    tz_name = settings.local_timezone
    start_day = to_local_date(start, tz_name)
    span_value = span_value_of(schedule)
    plan = plan_cycles(
        schedule,
        start_day,
        horizon_units=settings.month_horizon_months,
        units_per_cycle=span_value,
        days_per_cycle=span_value * 30,
        elapsed_units=months_between(start_day, _lookahead_start(start_day, now, tz_name)),
        reach_units=max(entry.index for entry in entries),
    )
    groups = [(entry, _group_month_steps(entry), _reminders(entry)) for entry in entries]

    accumulator: Dict[date, ExpandedOccurrence] = {}
    for cycle in plan.cycles:
        cycle_month = add_months(start_day, cycle * span_value)
        if cycle_month is None or plan.excludes(first_of_month(cycle_month)):
            break
        for entry, day_groups, reminders in groups:
            shifted = add_months(start_day, cycle * span_value + entry.index - 1)
            if shifted is None:
                continue
            month_start = first_of_month(shifted)
            for spec, texts in day_groups:
                target = resolve_month_day(spec, month_start)
                if target is None or plan.excludes(target):
                    continue
                steps = tuple(StepDisplay(text=text, day_of_month=target.day) for text in texts)
                put_occurrence(
                    accumulator,
                    ExpandedOccurrence(
                        date=target,
                        title=entry.title,
                        description=entry.description,
                        steps=steps,
                        reminders=reminders,
                    ),
                )
    return freeze(accumulator)
