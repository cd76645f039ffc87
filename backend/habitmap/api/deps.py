"""FastAPI dependencies."""
from __future__ import annotations

from fastapi import Request

from habitmap.services.engine import CalendarEngine


def get_engine(request: Request) -> CalendarEngine:
    """Return the engine bundle created by create_app()."""
    return request.app.state.engine
