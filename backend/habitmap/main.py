"""Main FastAPI application for the Habitmap backend."""
from typing import Optional

from fastapi import FastAPI, Request

from habitmap.api.routes.calendar import router as calendar_router
from habitmap.api.routes.habits import router as habits_router
from habitmap.api.routes.schedules import router as schedules_router
from habitmap.core.config import settings
from habitmap.core.logging import configure_logging
from habitmap.core.middleware import RequestIDMiddleware
from habitmap.observability.client import init_opik
from habitmap.observability.tracing import trace
from habitmap.services.engine import CalendarEngine, build_engine

configure_logging(log_level=settings.log_level, expansion_log_level=settings.expansion_log_level)


def create_app(engine: Optional[CalendarEngine] = None) -> FastAPI:
    """Build the API around a fresh engine bundle (or the one given)."""
    application = FastAPI(title=settings.app_name, version="0.1.0")
    application.state.engine = engine or build_engine(settings)
    application.add_middleware(RequestIDMiddleware)
    application.include_router(schedules_router)
    application.include_router(habits_router)
    application.include_router(calendar_router)

    @application.on_event("startup")
    async def startup_observability() -> None:
        """Initialize observability backends after the event loop starts."""
        init_opik()

    @application.get("/health", tags=["health"], summary="Readiness probe")
    async def health_check(request: Request) -> dict[str, str]:
        """Return a simple status payload so automation can probe the API."""
        with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
            return {"status": "ok"}

    return application


app = create_app()
