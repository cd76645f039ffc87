"""Stateless schedule expansion route."""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from habitmap.api.schemas.calendar import ExpandRequest, ExpandResponse
from habitmap.api.serializers import serialize_occurrence
from habitmap.observability.metrics import log_metric
from habitmap.observability.tracing import trace
from habitmap.services.combine import combine_for_view

router = APIRouter()


@router.post("/schedules/expand", response_model=ExpandResponse, tags=["schedules"])
def expand_schedule(payload: ExpandRequest, http_request: Request) -> ExpandResponse:
    """Expand a schedule for one view and return its occurrences sorted by date."""
    request_id = getattr(http_request.state, "request_id", None)
    start_time = datetime.now(timezone.utc)

    with trace(
        "schedules.expand",
        metadata={
            "route": "/schedules/expand",
            "view": payload.view,
            "span": payload.schedule.span.value,
            "window_start": payload.window_start.isoformat() if payload.window_start else None,
            "window_end": payload.window_end.isoformat() if payload.window_end else None,
        },
        request_id=request_id,
    ):
        mapping = combine_for_view(payload.schedule, payload.start, payload.view, payload.window_start)
        occurrences = [
            serialize_occurrence(occurrence)
            for day, occurrence in mapping.items()
            if (payload.window_start is None or day >= payload.window_start)
            and (payload.window_end is None or day <= payload.window_end)
        ]

    latency_ms = (datetime.now(timezone.utc) - start_time).total_seconds() * 1000
    log_metric("schedules.expand.count", len(occurrences), metadata={"view": payload.view})
    log_metric("schedules.expand.latency_ms", latency_ms, metadata={"view": payload.view})

    return ExpandResponse(
        view=payload.view,
        count=len(occurrences),
        occurrences=occurrences,
        request_id=request_id or "",
    )
