"""Schemas for schedule expansion and calendar endpoints."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

from habitmap.api.schemas.schedule import ReminderPayload, ScheduleDefinition


ViewName = Literal["daily", "weekly", "monthly"]

# Last window date that still leaves room for a full generation horizon.
LATEST_WINDOW_DATE = date(9997, 12, 31)


class StepDisplayPayload(BaseModel):
    text: str
    clock_time: Optional[str] = None
    weekday: Optional[str] = None
    day_of_month: Optional[int] = None


class OccurrencePayload(BaseModel):
    date: date
    title: str
    description: str
    steps: List[StepDisplayPayload]
    reminders: List[ReminderPayload]


class ExpandRequest(BaseModel):
    schedule: ScheduleDefinition
    start: Union[datetime, date]
    view: ViewName = "daily"
    window_start: Optional[date] = None
    window_end: Optional[date] = None

    @model_validator(mode="after")
    def _check_window(self) -> "ExpandRequest":
        if self.window_start and self.window_end and self.window_end < self.window_start:
            raise ValueError("window_end must not be before window_start")
        for bound in (self.window_start, self.window_end):
            if bound is not None and bound > LATEST_WINDOW_DATE:
                raise ValueError(f"window dates must not be after {LATEST_WINDOW_DATE.isoformat()}")
        return self


class ExpandResponse(BaseModel):
    view: ViewName
    count: int
    occurrences: List[OccurrencePayload]
    request_id: str


class HabitItemPayload(BaseModel):
    habit_id: str
    habit_name: str
    completed: bool
    occurrence: OccurrencePayload


class TaskItemPayload(BaseModel):
    task_id: str
    task_name: str
    item_type: Literal["deadline", "scheduled_step", "current_step", "scheduled_content"]
    description: str
    days_remaining: Optional[int] = None
    scheduled_date: Optional[date] = None
    completed: bool = False
    occurrence: Optional[OccurrencePayload] = None


class CalendarDayPayload(BaseModel):
    date: date
    habits_completed: int
    total_habits: int
    note: Optional[str] = None
    habit_items: List[HabitItemPayload]
    task_items: List[TaskItemPayload]


class CalendarResponse(BaseModel):
    view: ViewName
    anchor: date
    days: List[CalendarDayPayload]
    request_id: str


class CalendarNoteRequest(BaseModel):
    note: str = Field(min_length=1)


class CalendarNoteResponse(BaseModel):
    date: date
    note: Optional[str]
    request_id: str
