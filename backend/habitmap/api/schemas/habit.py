"""Schemas for habits and tasks held by the schedule store."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from habitmap.api.schemas.schedule import ScheduleDefinition


class Habit(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    # A datetime start carries the creation time used by the first-occurrence push.
    start_date: Union[datetime, date]
    schedule: ScheduleDefinition
    completions: List[date] = Field(default_factory=list)


class TaskStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=1)
    title: str
    description: Optional[str] = None
    scheduled_date: Optional[date] = None
    completed: bool = False


class Task(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    start_date: Optional[Union[datetime, date]] = None
    deadline: Optional[date] = None
    completed: bool = False
    steps: List[TaskStep] = Field(default_factory=list)
    schedule: Optional[ScheduleDefinition] = None


class HabitUpsertRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    start_date: Union[datetime, date]
    schedule: ScheduleDefinition
    completions: List[date] = Field(default_factory=list)


class TaskUpsertRequest(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    start_date: Optional[Union[datetime, date]] = None
    deadline: Optional[date] = None
    completed: bool = False
    steps: List[TaskStep] = Field(default_factory=list)
    schedule: Optional[ScheduleDefinition] = None


class StoreChangeResponse(BaseModel):
    id: str
    added: bool
    updated: bool
    removed: bool
    request_id: str
