"""
Ember — FastAPI application

The lifespan builds the long-lived resources (engine, session factory, event
emitter) and the three matching services and parks them on ``app.state``.
Matching errors are rendered by a single exception handler; every route lives
under ``/api/v1`` except the health probes.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from app.api import health
from app.api.router import router as api_router
from app.config import get_settings
from app.database import build_engine, build_session_factory
from app.middleware import InFlightRequests, RequestLoggingMiddleware, TimeoutMiddleware
from app.services.action_service import ActionService
from app.services.discovery_service import DiscoveryService
from app.services.events import build_event_emitter
from app.services.match_service import MatchService
from app.utils.errors import (
    DuplicateActionError,
    InternalError,
    InvalidActionError,
    InvalidFilterError,
    MatchingError,
    NotFoundError,
    NothingToUndoError,
    ProfileIncompleteError,
    UndoWindowExpiredError,
)
from app.utils.log_config import configure_logging

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

logger = structlog.get_logger("ember")

in_flight = InFlightRequests()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("startup_begin", environment=settings.ENVIRONMENT)

    engine = build_engine(settings)
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    session_factory = build_session_factory(engine)
    emitter = await build_event_emitter(settings)

    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.emitter = emitter
    app.state.discovery_service = DiscoveryService(session_factory, settings=settings)
    app.state.action_service = ActionService(session_factory, emitter=emitter, settings=settings)
    app.state.match_service = MatchService(session_factory, emitter=emitter)
    logger.info("startup_complete")

    try:
        yield
    finally:
        logger.info("shutdown_begin", in_flight=in_flight.count)
        if not await in_flight.drain(settings.SHUTDOWN_DRAIN_SECONDS):
            logger.warning("shutdown_drain_timed_out", in_flight=in_flight.count)
        await emitter.aclose()
        await engine.dispose()
        logger.info("shutdown_complete")


app = FastAPI(
    title="Ember",
    description="Dating matching core: discovery, swipes and matches",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

# Starlette runs the last-added middleware first: CORS, then logging, then the timeout.
app.add_middleware(TimeoutMiddleware, timeout_seconds=settings.REQUEST_TIMEOUT_SECONDS)
app.add_middleware(RequestLoggingMiddleware, tracker=in_flight)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


ERROR_STATUS: dict[type[MatchingError], int] = {
    DuplicateActionError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    NothingToUndoError: status.HTTP_404_NOT_FOUND,
    UndoWindowExpiredError: status.HTTP_410_GONE,
    InvalidFilterError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidActionError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ProfileIncompleteError: status.HTTP_403_FORBIDDEN,
    InternalError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@app.exception_handler(MatchingError)
async def render_matching_error(request: Request, exc: MatchingError) -> JSONResponse:
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    if isinstance(exc, InternalError):
        # Already logged with its cause by the service.
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "message": exc.message},
        )
    logger.info("matching_error", code=exc.code, status=status_code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


app.include_router(health.router)
app.include_router(api_router, prefix="/api/v1")
