"""Convert engine dataclasses into response schemas."""
from __future__ import annotations

from habitmap.api.schemas.calendar import (
    CalendarDayPayload,
    HabitItemPayload,
    OccurrencePayload,
    StepDisplayPayload,
    TaskItemPayload,
)
from habitmap.api.schemas.schedule import ReminderPayload
from habitmap.services.calendar_service import CalendarDay, HabitItem, TaskItem
from habitmap.services.occurrences import ExpandedOccurrence


def serialize_occurrence(occurrence: ExpandedOccurrence) -> OccurrencePayload:
    return OccurrencePayload(
        date=occurrence.date,
        title=occurrence.title,
        description=occurrence.description,
        steps=[
            StepDisplayPayload(
                text=step.text,
                clock_time=step.clock_time,
                weekday=step.weekday,
                day_of_month=step.day_of_month,
            )
            for step in occurrence.steps
        ],
        reminders=[ReminderPayload(time=reminder.time, message=reminder.message) for reminder in occurrence.reminders],
    )


def _serialize_habit_item(item: HabitItem) -> HabitItemPayload:
    return HabitItemPayload(
        habit_id=item.habit_id,
        habit_name=item.habit_name,
        completed=item.completed,
        occurrence=serialize_occurrence(item.occurrence),
    )


def _serialize_task_item(item: TaskItem) -> TaskItemPayload:
    return TaskItemPayload(
        task_id=item.task_id,
        task_name=item.task_name,
        item_type=item.item_type,
        description=item.description,
        days_remaining=item.days_remaining,
        scheduled_date=item.scheduled_date,
        completed=item.completed,
        occurrence=serialize_occurrence(item.occurrence) if item.occurrence else None,
    )


def serialize_day(day: CalendarDay) -> CalendarDayPayload:
    return CalendarDayPayload(
        date=day.date,
        habits_completed=day.habits_completed,
        total_habits=day.total_habits,
        note=day.note,
        habit_items=[_serialize_habit_item(item) for item in day.habit_items],
        task_items=[_serialize_task_item(item) for item in day.task_items],
    )
