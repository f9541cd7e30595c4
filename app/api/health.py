"""
Ember — Health probes

``/health`` only proves the process is serving.  ``/health/deep`` checks the
database through the session factory and, when events go to Redis, pings it;
any failure marks the response ``degraded`` with a 503.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Request, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from redis.exceptions import RedisError

from app.services.events import RedisEventEmitter

logger = structlog.get_logger("ember.api.health")

router = APIRouter(tags=["health"])


@router.get("/health")
async def liveness() -> dict:
    return {"status": "healthy"}


@router.get("/health/deep")
async def readiness(request: Request, response: Response) -> dict:
    checks = {"database": "connected", "redis": "not_configured"}

    try:
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        logger.error("health_database_failed", error=str(exc))
        checks["database"] = f"error: {exc}"

    emitter = getattr(request.app.state, "emitter", None)
    if isinstance(emitter, RedisEventEmitter):
        try:
            await emitter.ping()
            checks["redis"] = "connected"
        except (RedisError, OSError) as exc:
            logger.error("health_redis_failed", error=str(exc))
            checks["redis"] = f"error: {exc}"

    healthy = not any(v.startswith("error") for v in checks.values())
    if not healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "healthy" if healthy else "degraded", **checks}
