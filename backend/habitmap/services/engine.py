"""Wiring for the stores, view caches and aggregator used by the API."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from habitmap.api.schemas.habit import Habit, Task
from habitmap.core.config import Settings, get_settings
from habitmap.services.calendar_service import CalendarAggregator
from habitmap.services.combine import ViewType
from habitmap.services.mapping_cache import MappingCache
from habitmap.services.schedule_store import InMemoryNoteStore, InMemoryScheduleStore


@dataclass
class CalendarEngine:
    habits: InMemoryScheduleStore[Habit]
    tasks: InMemoryScheduleStore[Task]
    notes: InMemoryNoteStore
    caches: Dict[ViewType, MappingCache]
    aggregator: CalendarAggregator

    def close(self) -> None:
        self.aggregator.close()


def build_engine(settings: Optional[Settings] = None) -> CalendarEngine:
    settings = settings or get_settings()
    habits: InMemoryScheduleStore[Habit] = InMemoryScheduleStore("habits")
    tasks: InMemoryScheduleStore[Task] = InMemoryScheduleStore("tasks")
    notes = InMemoryNoteStore()
    caches = {view: MappingCache(view) for view in ViewType}
    aggregator = CalendarAggregator(
        habits,
        tasks,
        notes,
        caches,
        first_weekday=settings.first_weekday,
        tz_name=settings.local_timezone,
    )
    return CalendarEngine(habits=habits, tasks=tasks, notes=notes, caches=caches, aggregator=aggregator)
