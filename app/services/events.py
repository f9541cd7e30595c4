"""
Ember — Real-time event emission

State changes that other clients care about (new match, a like being
withdrawn, a match being removed) are published after their transaction
commits.  Delivery is fire-and-forget: an emitter failure is logged and never
reaches the caller, because the state change has already been persisted.

Events are published on ``<EVENT_CHANNEL_PREFIX><user_id>`` as JSON:
    {"type": "new-match", "user_id": "...", "data": {...}}
"""

from __future__ import annotations

import json
import uuid
from typing import Any, Iterable, Protocol

import structlog
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from app.config import Settings

logger = structlog.get_logger("ember.events")

NEW_MATCH = "new-match"
MATCH_REMOVED = "match-removed"
LIKE_REMOVED = "like-removed"
LIKER_REMOVED = "liker-removed"

PendingEvent = tuple[str, uuid.UUID, dict[str, Any]]


class EventEmitter(Protocol):
    async def emit(
        self, event_type: str, target_user_id: uuid.UUID, payload: dict[str, Any]
    ) -> None: ...

    async def aclose(self) -> None: ...


class LoggingEventEmitter:
    """Emitter used when no Redis is configured; events are only logged."""

    async def emit(
        self, event_type: str, target_user_id: uuid.UUID, payload: dict[str, Any]
    ) -> None:
        logger.info(
            "event_emitted",
            event_type=event_type,
            target_user_id=str(target_user_id),
            payload=payload,
        )

    async def aclose(self) -> None:
        return None


class RedisEventEmitter:
    """Publish events to per-user Redis channels."""

    def __init__(self, client: Any, channel_prefix: str = "user:") -> None:
        self._client = client
        self._channel_prefix = channel_prefix

    @classmethod
    async def connect(cls, url: str, channel_prefix: str = "user:") -> "RedisEventEmitter":
        client = aioredis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        await client.ping()
        logger.info("redis_connected", url=url)
        return cls(client, channel_prefix)

    def channel_for(self, user_id: uuid.UUID) -> str:
        return f"{self._channel_prefix}{user_id}"

    async def emit(
        self, event_type: str, target_user_id: uuid.UUID, payload: dict[str, Any]
    ) -> None:
        message = json.dumps(
            {"type": event_type, "user_id": str(target_user_id), "data": payload},
            default=str,
        )
        channel = self.channel_for(target_user_id)
        try:
            receivers = await self._client.publish(channel, message)
        except RedisError:
            logger.exception(
                "event_publish_failed",
                event_type=event_type,
                channel=channel,
            )
            return
        logger.debug(
            "event_published",
            event_type=event_type,
            channel=channel,
            receivers=receivers,
        )

    async def ping(self) -> bool:
        return await self._client.ping()

    async def aclose(self) -> None:
        await self._client.aclose()
        logger.info("redis_closed")


async def build_event_emitter(settings: Settings) -> EventEmitter:
    """Return a Redis emitter when ``REDIS_URL`` is set, else a logging one."""
    if not settings.REDIS_URL:
        logger.info("event_emitter_logging_only", reason="REDIS_URL not configured")
        return LoggingEventEmitter()
    return await RedisEventEmitter.connect(settings.REDIS_URL, settings.EVENT_CHANNEL_PREFIX)


async def dispatch_events(
    emitter: EventEmitter | None, events: Iterable[PendingEvent]
) -> None:
    """Emit committed events one by one.  Failures are logged and dropped."""
    if emitter is None:
        return
    for event_type, target_user_id, payload in events:
        try:
            await emitter.emit(event_type, target_user_id, payload)
        except Exception:
            logger.exception(
                "event_emit_failed",
                event_type=event_type,
                target_user_id=str(target_user_id),
            )
