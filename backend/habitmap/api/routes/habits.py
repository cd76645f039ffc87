"""Habit and task store routes."""
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from habitmap.api.deps import get_engine
from habitmap.api.schemas.habit import (
    Habit,
    HabitUpsertRequest,
    StoreChangeResponse,
    Task,
    TaskUpsertRequest,
)
from habitmap.observability.metrics import log_metric
from habitmap.observability.tracing import trace
from habitmap.services.engine import CalendarEngine
from habitmap.services.schedule_store import ChangeSet

router = APIRouter()


def _change_response(item_id: str, changes: ChangeSet, request_id: str | None) -> StoreChangeResponse:
    return StoreChangeResponse(
        id=item_id,
        added=item_id in changes.added,
        updated=item_id in changes.updated,
        removed=item_id in changes.removed,
        request_id=request_id or "",
    )


@router.put("/habits/{habit_id}", response_model=StoreChangeResponse, tags=["habits"])
def upsert_habit(
    habit_id: str,
    payload: HabitUpsertRequest,
    http_request: Request,
    engine: CalendarEngine = Depends(get_engine),
) -> StoreChangeResponse:
    """Create or replace a habit; cached mappings for it are invalidated."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {"route": f"/habits/{habit_id}", "habit_id": habit_id}

    with trace("habits.upsert", metadata=metadata, owner_id=habit_id, request_id=request_id):
        changes = engine.habits.upsert(Habit(id=habit_id, **payload.model_dump()))

    log_metric("habits.upsert.changed", 0 if changes.is_empty else 1, metadata={"habit_id": habit_id})
    return _change_response(habit_id, changes, request_id)


@router.delete("/habits/{habit_id}", response_model=StoreChangeResponse, tags=["habits"])
def delete_habit(
    habit_id: str,
    http_request: Request,
    engine: CalendarEngine = Depends(get_engine),
) -> StoreChangeResponse:
    request_id = getattr(http_request.state, "request_id", None)

    with trace("habits.delete", metadata={"habit_id": habit_id}, owner_id=habit_id, request_id=request_id):
        changes = engine.habits.remove(habit_id)
    if changes.is_empty:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Habit not found")

    log_metric("habits.delete.success", 1, metadata={"habit_id": habit_id})
    return _change_response(habit_id, changes, request_id)


@router.put("/tasks/{task_id}", response_model=StoreChangeResponse, tags=["tasks"])
def upsert_task(
    task_id: str,
    payload: TaskUpsertRequest,
    http_request: Request,
    engine: CalendarEngine = Depends(get_engine),
) -> StoreChangeResponse:
    """Create or replace a task."""
    request_id = getattr(http_request.state, "request_id", None)
    metadata: Dict[str, Any] = {
        "route": f"/tasks/{task_id}",
        "task_id": task_id,
        "steps": len(payload.steps),
        "scheduled": payload.schedule is not None,
    }

    with trace("tasks.upsert", metadata=metadata, owner_id=task_id, request_id=request_id):
        changes = engine.tasks.upsert(Task(id=task_id, **payload.model_dump()))

    log_metric("tasks.upsert.changed", 0 if changes.is_empty else 1, metadata={"task_id": task_id})
    return _change_response(task_id, changes, request_id)


@router.delete("/tasks/{task_id}", response_model=StoreChangeResponse, tags=["tasks"])
def delete_task(
    task_id: str,
    http_request: Request,
    engine: CalendarEngine = Depends(get_engine),
) -> StoreChangeResponse:
    request_id = getattr(http_request.state, "request_id", None)

    with trace("tasks.delete", metadata={"task_id": task_id}, owner_id=task_id, request_id=request_id):
        changes = engine.tasks.remove(task_id)
    if changes.is_empty:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Task not found")

    log_metric("tasks.delete.success", 1, metadata={"task_id": task_id})
    return _change_response(task_id, changes, request_id)
