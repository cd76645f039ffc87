"""Combine granularity expanders into a single date map per calendar view."""
from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from habitmap.api.schemas.schedule import ScheduleDefinition
from habitmap.services.calendar_math import DateLike
from habitmap.services.expanders import expand_daily, expand_monthly, expand_weekly
from habitmap.services.occurrences import (
    EMPTY_MAPPING,
    ExpandedOccurrence,
    freeze,
    join_labels,
    merge_occurrences,
)

DEFAULT_TITLE = "Habit Activity"

Expander = Callable[..., Mapping[date, ExpandedOccurrence]]
TitleExtractor = Callable[[Sequence[ExpandedOccurrence], Optional[str]], Optional[str]]


class ViewType(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Week cells omit day content; month cells show month content only.
VIEW_EXPANDERS: Dict[ViewType, Tuple[Expander, ...]] = {
    ViewType.DAILY: (expand_daily, expand_weekly, expand_monthly),
    ViewType.WEEKLY: (expand_weekly, expand_monthly),
    ViewType.MONTHLY: (expand_monthly,),
}


def title_from_sources(parts: Sequence[ExpandedOccurrence], owner_name: Optional[str]) -> Optional[str]:
    return join_labels(part.title for part in parts) or None


def title_from_owner(parts: Sequence[ExpandedOccurrence], owner_name: Optional[str]) -> Optional[str]:
    return owner_name.strip() if owner_name and owner_name.strip() else None


def title_default(parts: Sequence[ExpandedOccurrence], owner_name: Optional[str]) -> Optional[str]:
    return DEFAULT_TITLE


TITLE_EXTRACTORS: Tuple[TitleExtractor, ...] = (title_from_sources, title_from_owner, title_default)


def resolve_title(parts: Sequence[ExpandedOccurrence], owner_name: Optional[str] = None) -> str:
    for extractor in TITLE_EXTRACTORS:
        title = extractor(parts, owner_name)
        if title:
            return title
    return DEFAULT_TITLE


def combine_for_view(
    schedule: ScheduleDefinition,
    start: DateLike,
    view_type: Union[ViewType, str],
    now: Optional[DateLike] = None,
    *,
    owner_name: Optional[str] = None,
) -> Mapping[date, ExpandedOccurrence]:
    """Union the expanders enabled for `view_type` and merge colliding dates.

    Sources are merged in day, week, month order. The result is a fresh
    read-only mapping ordered by date.
    """
    view = ViewType(view_type)
    if schedule.is_empty:
        return EMPTY_MAPPING
    sources = [expander(schedule, start, now) for expander in VIEW_EXPANDERS[view]]
    all_dates = sorted({day for source in sources for day in source})
    if not all_dates:
        return EMPTY_MAPPING

    combined: Dict[date, ExpandedOccurrence] = {}
    for day in all_dates:
        parts = [source[day] for source in sources if day in source]
        combined[day] = merge_occurrences(parts, title=resolve_title(parts, owner_name))
    return freeze(combined)
