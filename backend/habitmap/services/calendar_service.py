"""Aggregation of habit and task mappings into per-day calendar summaries."""
from __future__ import annotations

import calendar as pycalendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from habitmap.api.schemas.habit import Habit, Task, TaskStep
from habitmap.core.config import get_settings
from habitmap.observability.tracing import trace
from habitmap.services.calendar_math import add_days, start_of_week
from habitmap.services.combine import ViewType
from habitmap.services.mapping_cache import MappingCache
from habitmap.services.occurrences import ExpandedOccurrence
from habitmap.services.schedule_store import ChangeSet, InMemoryNoteStore, InMemoryScheduleStore

logger = logging.getLogger(__name__)

OccurrenceMap = Mapping[date, ExpandedOccurrence]


def habit_owner_id(habit_id: str) -> str:
    return f"habit:{habit_id}"


def task_owner_id(task_id: str) -> str:
    return f"task:{task_id}"


def visible_dates(view: Union[ViewType, str], anchor: date, first_weekday: int = 0) -> List[date]:
    """Dates shown by a calendar view around `anchor`."""
    view = ViewType(view)
    if view is ViewType.MONTHLY:
        last = pycalendar.monthrange(anchor.year, anchor.month)[1]
        return [anchor.replace(day=day) for day in range(1, last + 1)]
    if view is ViewType.WEEKLY:
        week_start = start_of_week(anchor, first_weekday)
        week = (add_days(week_start, offset) for offset in range(7))
        return [day for day in week if day is not None]
    return [anchor]


def local_today(tz_name: str) -> date:
    return datetime.now(ZoneInfo(tz_name)).date()


@dataclass(frozen=True)
class HabitItem:
    habit_id: str
    habit_name: str
    completed: bool
    occurrence: ExpandedOccurrence


@dataclass(frozen=True)
class TaskItem:
    task_id: str
    task_name: str
    item_type: str
    description: str
    days_remaining: Optional[int] = None
    scheduled_date: Optional[date] = None
    completed: bool = False
    occurrence: Optional[ExpandedOccurrence] = None


@dataclass
class CalendarDay:
    date: date
    habits_completed: int = 0
    total_habits: int = 0
    note: Optional[str] = None
    habit_items: List[HabitItem] = field(default_factory=list)
    task_items: List[TaskItem] = field(default_factory=list)


def current_step(task: Task) -> Optional[TaskStep]:
    """First incomplete step by index."""
    pending = [step for step in task.steps if not step.completed]
    return min(pending, key=lambda step: step.index) if pending else None


def task_items_for_day(task: Task, day: date, today: date, mapping: Optional[OccurrenceMap] = None) -> List[TaskItem]:
    """Deadline, scheduled step, current step and scheduled content items for one task on `day`."""
    if task.completed:
        return []

    items: List[TaskItem] = []
    if task.deadline == day:
        items.append(
            TaskItem(
                task_id=task.id,
                task_name=task.name,
                item_type="deadline",
                description=task.description,
                days_remaining=max(0, (task.deadline - today).days),
                scheduled_date=task.deadline,
            )
        )

    for step in sorted(task.steps, key=lambda step: step.index):
        if step.scheduled_date == day:
            items.append(
                TaskItem(
                    task_id=task.id,
                    task_name=task.name,
                    item_type="scheduled_step",
                    description=step.title,
                    scheduled_date=step.scheduled_date,
                    completed=step.completed,
                )
            )

    if day == today:
        step = current_step(task)
        if step is not None:
            items.append(
                TaskItem(
                    task_id=task.id,
                    task_name=task.name,
                    item_type="current_step",
                    description=step.title,
                    scheduled_date=step.scheduled_date,
                )
            )

    if mapping and day in mapping:
        occurrence = mapping[day]
        items.append(
            TaskItem(
                task_id=task.id,
                task_name=task.name,
                item_type="scheduled_content",
                description=occurrence.title,
                scheduled_date=day,
                occurrence=occurrence,
            )
        )
    return items


class CalendarAggregator:
    """Fold cached habit/task mappings into `CalendarDay` summaries.

    Subscribes to both stores so that any added, updated or removed owner is
    invalidated in every view cache before the next build.
    """

    def __init__(
        self,
        habits: InMemoryScheduleStore[Habit],
        tasks: InMemoryScheduleStore[Task],
        notes: InMemoryNoteStore,
        caches: Mapping[ViewType, MappingCache],
        *,
        first_weekday: Optional[int] = None,
        tz_name: Optional[str] = None,
    ):
        settings = get_settings()
        self.habits = habits
        self.tasks = tasks
        self.notes = notes
        self.caches: Dict[ViewType, MappingCache] = dict(caches)
        self.first_weekday = settings.first_weekday if first_weekday is None else first_weekday
        self.tz_name = tz_name or settings.local_timezone
        self._unsubscribers: List[Callable[[], None]] = [
            habits.subscribe(self._make_listener(habit_owner_id)),
            tasks.subscribe(self._make_listener(task_owner_id)),
        ]

    def _make_listener(self, owner_key: Callable[[str], str]) -> Callable[[ChangeSet], None]:
        def listener(changes: ChangeSet) -> None:
            for item_id in changes.touched:
                self.invalidate(owner_key(item_id))

        return listener

    def invalidate(self, owner_id: str) -> None:
        for cache in self.caches.values():
            cache.invalidate(owner_id)

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _cache_for(self, view: ViewType) -> MappingCache:
        cache = self.caches.get(view)
        if cache is None:
            cache = self.caches[view] = MappingCache(view)
        return cache

    def _habit_mappings(self, cache: MappingCache, date_range: Tuple[date, date]) -> List[Tuple[Habit, OccurrenceMap]]:
        mapped: List[Tuple[Habit, OccurrenceMap]] = []
        for habit in self.habits.list():
            try:
                mapping = cache.get(
                    habit_owner_id(habit.id),
                    habit.schedule,
                    habit.start_date,
                    date_range,
                    owner_name=habit.name,
                )
            except Exception:
                logger.exception("Failed to map habit %s", habit.id)
                continue
            mapped.append((habit, mapping))
        return mapped

    def _task_mappings(self, cache: MappingCache, date_range: Tuple[date, date]) -> List[Tuple[Task, OccurrenceMap]]:
        mapped: List[Tuple[Task, OccurrenceMap]] = []
        for task in self.tasks.list():
            if task.completed:
                continue
            mapping: OccurrenceMap = {}
            if task.schedule is not None:
                if task.start_date is None:
                    logger.debug("Task %s has a schedule but no start date; skipping its content", task.id)
                else:
                    try:
                        mapping = cache.get(
                            task_owner_id(task.id),
                            task.schedule,
                            task.start_date,
                            date_range,
                            owner_name=task.name,
                        )
                    except Exception:
                        logger.exception("Failed to map task %s", task.id)
                        continue
            mapped.append((task, mapping))
        return mapped

    def build(self, view: Union[ViewType, str], anchor: date, today: Optional[date] = None) -> List[CalendarDay]:
        view = ViewType(view)
        today = today or local_today(self.tz_name)
        days = visible_dates(view, anchor, self.first_weekday)
        date_range = (days[0], days[-1])
        cache = self._cache_for(view)

        with trace(
            "calendar.build",
            metadata={"view": view.value, "anchor": anchor.isoformat(), "days": len(days)},
        ):
            habit_maps = self._habit_mappings(cache, date_range)
            task_maps = self._task_mappings(cache, date_range)

            summaries: List[CalendarDay] = []
            for day in days:
                habit_items = [
                    HabitItem(
                        habit_id=habit.id,
                        habit_name=habit.name,
                        completed=day in habit.completions,
                        occurrence=mapping[day],
                    )
                    for habit, mapping in habit_maps
                    if day in mapping
                ]
                task_items: List[TaskItem] = []
                for task, mapping in task_maps:
                    task_items.extend(task_items_for_day(task, day, today, mapping))

                summaries.append(
                    CalendarDay(
                        date=day,
                        habits_completed=sum(1 for item in habit_items if item.completed),
                        total_habits=len(habit_items),
                        note=self.notes.get(day),
                        habit_items=habit_items,
                        task_items=task_items,
                    )
                )
        return summaries
