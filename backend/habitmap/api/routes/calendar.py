"""Calendar view routes."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from habitmap.api.deps import get_engine
from habitmap.api.schemas.calendar import (
    CalendarNoteRequest,
    CalendarNoteResponse,
    CalendarResponse,
    ViewName,
)
from habitmap.api.serializers import serialize_day
from habitmap.observability.metrics import log_metric
from habitmap.observability.tracing import trace
from habitmap.services.calendar_service import local_today
from habitmap.services.engine import CalendarEngine

router = APIRouter()


@router.get("/calendar", response_model=CalendarResponse, tags=["calendar"])
def get_calendar(
    http_request: Request,
    view: ViewName = Query("monthly", description="daily, weekly or monthly"),
    anchor: Optional[date] = Query(default=None, description="Any date inside the visible grid"),
    today: Optional[date] = Query(default=None, description="Override for the current local date"),
    engine: CalendarEngine = Depends(get_engine),
) -> CalendarResponse:
    """Per-day habit and task summaries for the grid around `anchor`."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)
    current = today or local_today(engine.aggregator.tz_name)
    anchor = anchor or current

    with trace(
        "calendar.get",
        metadata={"route": "/calendar", "view": view, "anchor": anchor.isoformat()},
        request_id=request_id,
    ):
        days = engine.aggregator.build(view, anchor, today=current)

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("calendar.get.days", len(days), metadata={"view": view})
    log_metric("calendar.get.latency_ms", latency_ms, metadata={"view": view})

    return CalendarResponse(
        view=view,
        anchor=anchor,
        days=[serialize_day(day) for day in days],
        request_id=request_id or "",
    )


@router.put("/calendar/notes/{day}", response_model=CalendarNoteResponse, tags=["calendar"])
def put_calendar_note(
    day: date,
    payload: CalendarNoteRequest,
    http_request: Request,
    engine: CalendarEngine = Depends(get_engine),
) -> CalendarNoteResponse:
    request_id = getattr(http_request.state, "request_id", None)
    engine.notes.set(day, payload.note)
    log_metric("calendar.note.set", 1, metadata={"date": day.isoformat()})
    return CalendarNoteResponse(date=day, note=payload.note, request_id=request_id or "")


@router.delete("/calendar/notes/{day}", response_model=CalendarNoteResponse, tags=["calendar"])
def delete_calendar_note(
    day: date,
    http_request: Request,
    engine: CalendarEngine = Depends(get_engine),
) -> CalendarNoteResponse:
    request_id = getattr(http_request.state, "request_id", None)
    if not engine.notes.clear(day):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Note not found")
    return CalendarNoteResponse(date=day, note=None, request_id=request_id or "")
