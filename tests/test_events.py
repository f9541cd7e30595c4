"""Tests for event emitters and post-commit dispatch."""
import json
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.events import (
    LoggingEventEmitter,
    RedisEventEmitter,
    build_event_emitter,
    dispatch_events,
)


@pytest.fixture
def redis_client():
    client = AsyncMock()
    client.publish = AsyncMock(return_value=1)
    client.ping = AsyncMock(return_value=True)
    return client


class TestRedisEventEmitter:

    @pytest.mark.asyncio
    async def test_publishes_json_to_user_channel(self, redis_client):
        emitter = RedisEventEmitter(redis_client, channel_prefix="user:")
        target = uuid.uuid4()

        await emitter.emit("new-match", target, {"match_id": "m1"})

        channel, message = redis_client.publish.await_args.args
        assert channel == f"user:{target}"
        assert json.loads(message) == {
            "type": "new-match",
            "user_id": str(target),
            "data": {"match_id": "m1"},
        }

    @pytest.mark.asyncio
    async def test_publish_failure_is_swallowed(self, redis_client):
        redis_client.publish.side_effect = RedisConnectionError("down")
        emitter = RedisEventEmitter(redis_client)

        await emitter.emit("like-removed", uuid.uuid4(), {})

        redis_client.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_pings(self, redis_client):
        with patch("app.services.events.aioredis.from_url", return_value=redis_client) as from_url:
            emitter = await RedisEventEmitter.connect("redis://localhost:6379/0", "chan:")

        from_url.assert_called_once()
        redis_client.ping.assert_awaited_once()
        assert emitter.channel_for("u1") == "chan:u1"


class TestBuildEventEmitter:

    @pytest.mark.asyncio
    async def test_without_redis_url_only_logs(self, settings):
        emitter = await build_event_emitter(settings)
        assert isinstance(emitter, LoggingEventEmitter)
        await emitter.emit("new-match", uuid.uuid4(), {"match_id": "m1"})

    @pytest.mark.asyncio
    async def test_with_redis_url(self, settings, redis_client):
        settings.REDIS_URL = "redis://localhost:6379/0"
        with patch("app.services.events.aioredis.from_url", return_value=redis_client):
            emitter = await build_event_emitter(settings)
        assert isinstance(emitter, RedisEventEmitter)


class TestDispatch:

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_later_events(self):
        emitter = MagicMock()
        emitter.emit = AsyncMock(side_effect=[RuntimeError("boom"), None])
        a, b = uuid.uuid4(), uuid.uuid4()

        await dispatch_events(emitter, [("new-match", a, {}), ("new-match", b, {})])

        assert emitter.emit.await_count == 2

    @pytest.mark.asyncio
    async def test_no_emitter(self):
        await dispatch_events(None, [("new-match", uuid.uuid4(), {})])
