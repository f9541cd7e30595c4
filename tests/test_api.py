"""HTTP tests for the discovery, actions and matches routers."""
import uuid
from unittest.mock import MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from app.main import app
from app.models.preferences import Gender


@pytest_asyncio.fixture
async def client(session_factory, emitter, discovery_service, action_service, match_service):
    app.state.session_factory = session_factory
    app.state.emitter = emitter
    app.state.discovery_service = discovery_service
    app.state.action_service = action_service
    app.state.match_service = match_service

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def swipe(sender, target):
    return {"sender_id": str(sender.id), "target_id": str(target.id)}


class TestHealth:

    @pytest.mark.asyncio
    async def test_liveness(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_deep_without_redis(self, client):
        response = await client.get("/health/deep")
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["redis"] == "not_configured"

    @pytest.mark.asyncio
    async def test_deep_reports_database_failure(self, client):
        app.state.session_factory = MagicMock(
            side_effect=OperationalError("SELECT 1", {}, Exception("connection refused"))
        )

        response = await client.get("/health/deep")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["database"].startswith("error")

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "req-42"})
        assert response.headers["X-Request-ID"] == "req-42"

    @pytest.mark.asyncio
    async def test_request_id_is_generated(self, client):
        response = await client.get("/health")
        assert len(response.headers["X-Request-ID"]) == 32


class TestActionsApi:

    @pytest.mark.asyncio
    async def test_like_match_and_duplicate(self, client, make_user):
        a = await make_user("Ada")
        b = await make_user("Bea")

        first = await client.post("/api/v1/actions/like", json=swipe(a, b))
        second = await client.post("/api/v1/actions/super-like", json=swipe(b, a))
        duplicate = await client.post("/api/v1/actions/pass", json=swipe(a, b))

        assert first.status_code == 201
        assert first.json()["is_match"] is False
        assert second.status_code == 201
        assert second.json()["is_match"] is True
        assert second.json()["action"]["kind"] == "SUPER_LIKE"
        assert duplicate.status_code == 409
        assert duplicate.json()["error"] == "DUPLICATE_ACTION"

    @pytest.mark.asyncio
    async def test_undo_errors(self, client, make_user, clock):
        a = await make_user("Ada")
        b = await make_user("Bea")

        nothing = await client.post(f"/api/v1/actions/{a.id}/undo")
        await client.post("/api/v1/actions/like", json=swipe(a, b))
        clock.advance(minutes=6)
        expired = await client.post(f"/api/v1/actions/{a.id}/undo")

        assert nothing.status_code == 404
        assert nothing.json()["error"] == "NOTHING_TO_UNDO"
        assert expired.status_code == 410
        assert expired.json()["error"] == "UNDO_WINDOW_EXPIRED"

    @pytest.mark.asyncio
    async def test_self_like_is_unprocessable(self, client, make_user):
        a = await make_user()
        response = await client.post("/api/v1/actions/like", json=swipe(a, a))
        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_ACTION"

    @pytest.mark.asyncio
    async def test_liked_me(self, client, make_user):
        me = await make_user("Me")
        fan = await make_user("Fan")
        await client.post("/api/v1/actions/like", json=swipe(fan, me))

        response = await client.get(f"/api/v1/actions/{me.id}/liked-me", params={"limit": 10})

        body = response.json()
        assert response.status_code == 200
        assert [item["user_id"] for item in body["likers"]] == [str(fan.id)]
        assert body["unacted_likes_count"] == 1

    @pytest.mark.asyncio
    async def test_unknown_user_is_not_found(self, client):
        response = await client.get(f"/api/v1/actions/{uuid.uuid4()}/history")
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"


class TestDiscoveryApi:

    @pytest.mark.asyncio
    async def test_candidates(self, client, make_user):
        me = await make_user("Me", gender=Gender.MALE, interested_in=(Gender.FEMALE,))
        other = await make_user("Other")

        response = await client.post(
            f"/api/v1/discovery/{me.id}/candidates",
            json={"limit": 5, "filters": {"strict_mode": True}},
        )

        assert response.status_code == 200
        assert [c["user"]["id"] for c in response.json()] == [str(other.id)]

    @pytest.mark.asyncio
    async def test_invalid_filters(self, client, make_user):
        me = await make_user("Me")
        response = await client.post(
            f"/api/v1/discovery/{me.id}/candidates",
            json={"filters": {"age_range": {"min": 50, "max": 30}}},
        )
        assert response.status_code == 422
        assert response.json()["error"] == "INVALID_FILTER"

    @pytest.mark.asyncio
    async def test_incomplete_profile_is_forbidden(self, client, make_user):
        me = await make_user("Me", photos=0)

        response = await client.post(f"/api/v1/discovery/{me.id}/candidates", json={})
        eligibility = await client.get(f"/api/v1/discovery/{me.id}/eligibility")

        assert response.status_code == 403
        assert response.json()["error"] == "PROFILE_INCOMPLETE"
        assert eligibility.json() == {"eligible": False, "missing_requirements": ["photos"]}


class TestMatchesApi:

    @pytest.mark.asyncio
    async def test_list_detail_and_unmatch(self, client, make_user):
        a = await make_user("Ada")
        b = await make_user("Bea")
        await client.post("/api/v1/actions/like", json=swipe(a, b))
        match_id = (await client.post("/api/v1/actions/like", json=swipe(b, a))).json()["match"]["id"]

        listing = await client.get(f"/api/v1/matches/{a.id}")
        detail = await client.get(f"/api/v1/matches/{a.id}/{match_id}")
        removed = await client.delete(f"/api/v1/matches/{a.id}/{match_id}")
        gone = await client.get(f"/api/v1/matches/{a.id}/{match_id}")

        assert [m["match_id"] for m in listing.json()] == [match_id]
        assert detail.json()["other_user"]["id"] == str(b.id)
        assert removed.status_code == 200
        assert removed.json()["match"]["is_active"] is False
        assert gone.status_code == 404
