"""Schedule definition schemas.

A schedule describes one recurring cycle of a habit or task: its span (day,
week, month or year), how many spans make up a cycle, an optional repeat
bound, and three buckets of indexed content. Payloads produced by the habit
suggestion backend use slightly different keys (``content``, ``step``,
``clock``, ``habit_repeat_count``...), so every field also accepts those
aliases, and a ``program`` wrapper list is unwrapped to its first element.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class Span(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


START_OF_MONTH = "start_of_month"
END_OF_MONTH = "end_of_month"


class _ScheduleModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class ReminderPayload(_ScheduleModel):
    time: Optional[str] = None
    message: Optional[str] = None


class DayStep(_ScheduleModel):
    text: str = Field(validation_alias=AliasChoices("text", "step"))
    clock_time: Optional[str] = Field(default=None, validation_alias=AliasChoices("clock_time", "clock"))


class WeekStep(_ScheduleModel):
    text: str = Field(validation_alias=AliasChoices("text", "step"))
    # Kept as free text: unknown names are skipped during expansion, not rejected here.
    weekday: str = Field(validation_alias=AliasChoices("weekday", "day"))


class MonthStep(_ScheduleModel):
    text: str = Field(validation_alias=AliasChoices("text", "step"))
    day: Union[int, str] = Field(validation_alias=AliasChoices("day", "day_of_month"))


class DayEntry(_ScheduleModel):
    index: int = Field(ge=1)
    title: str = ""
    steps: List[DayStep] = Field(default_factory=list, validation_alias=AliasChoices("steps", "content"))
    reminders: List[ReminderPayload] = Field(default_factory=list)


class WeekEntry(_ScheduleModel):
    index: int = Field(ge=1)
    title: str = ""
    description: str = ""
    steps: List[WeekStep] = Field(default_factory=list, validation_alias=AliasChoices("steps", "content"))
    reminders: List[ReminderPayload] = Field(default_factory=list)


class MonthEntry(_ScheduleModel):
    index: int = Field(ge=1)
    title: str = ""
    description: str = ""
    steps: List[MonthStep] = Field(default_factory=list, validation_alias=AliasChoices("steps", "content"))
    reminders: List[ReminderPayload] = Field(default_factory=list)


# Upper bounds keep bounded expansion work finite.
MAX_REPEAT_COUNT = 10_000
MAX_HORIZON_DAYS = 36_500


class ScheduleDefinition(_ScheduleModel):
    span: Span = Span.DAY
    span_value: int = Field(default=1, ge=1, validation_alias=AliasChoices("span_value", "spanValue"))
    repeat_count: Optional[int] = Field(
        default=None,
        ge=1,
        le=MAX_REPEAT_COUNT,
        validation_alias=AliasChoices("repeat_count", "repeatCount", "habit_repeat_count"),
    )
    schedule_horizon_days: Optional[int] = Field(
        default=None,
        ge=1,
        le=MAX_HORIZON_DAYS,
        validation_alias=AliasChoices("schedule_horizon_days", "scheduleHorizonDays", "habit_schedule"),
    )
    days_indexed: List[DayEntry] = Field(default_factory=list)
    weeks_indexed: List[WeekEntry] = Field(default_factory=list)
    months_indexed: List[MonthEntry] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _unwrap_program(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "program" not in data:
            return data
        program = data.get("program")
        if isinstance(program, list):
            program = program[0] if program else {}
        flattened = {key: value for key, value in data.items() if key != "program"}
        if isinstance(program, dict):
            for bucket in ("days_indexed", "weeks_indexed", "months_indexed"):
                flattened.setdefault(bucket, program.get(bucket) or [])
        return flattened

    @model_validator(mode="after")
    def _check_structure(self) -> "ScheduleDefinition":
        if self.repeat_count is not None and self.schedule_horizon_days is not None:
            raise ValueError("repeat_count and schedule_horizon_days are mutually exclusive")
        for bucket in ("days_indexed", "weeks_indexed", "months_indexed"):
            indices = [entry.index for entry in getattr(self, bucket)]
            if len(indices) != len(set(indices)):
                raise ValueError(f"{bucket} contains duplicate index values")
        return self

    @property
    def is_infinite(self) -> bool:
        return self.repeat_count is None and self.schedule_horizon_days is None

    @property
    def is_empty(self) -> bool:
        return not (self.days_indexed or self.weeks_indexed or self.months_indexed)
