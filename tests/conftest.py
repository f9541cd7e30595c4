"""Shared pytest fixtures for Ember tests."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import uuid
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import event, func, select
from sqlalchemy.ext.asyncio import create_async_engine

import app.models  # noqa: F401
from app.config import Settings
from app.database import Base, build_session_factory
from app.models.action import Action
from app.models.match import Match
from app.models.preferences import Gender
from app.models.user import GenderPreference, Interest, Photo, User
from app.services.action_service import ActionService
from app.services.discovery_service import DiscoveryService
from app.services.match_service import MatchService

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)

# Central Paris; candidates are placed due north of it.
BASE_LAT = 48.8566
BASE_LON = 2.3522
KM_PER_DEGREE_LAT = 6371.0 * 3.141592653589793 / 180


def north_of_base(km: float) -> float:
    """Latitude exactly ``km`` kilometres north of the base point."""
    return BASE_LAT + km / KM_PER_DEGREE_LAT


def birth_date_for(age: int) -> date:
    return date(NOW.year - age, 1, 15)


class FakeClock:
    """Callable clock whose time only moves when a test says so."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        REDIS_URL="",
        UNDO_WINDOW_SECONDS=300,
        DISCOVERY_POOL_SIZE=500,
        DISCOVERY_DEFAULT_LIMIT=20,
        DISCOVERY_MAX_LIMIT=50,
    )


@pytest_asyncio.fixture
async def engine(tmp_path):
    """On-disk SQLite database with serialised write transactions.

    pysqlite's own transaction handling is switched off and every transaction
    starts with ``BEGIN IMMEDIATE``, so concurrent writers queue on the
    database lock the way row locks make them queue on PostgreSQL.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ember.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def emitter():
    mock = AsyncMock()
    mock.emit = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def action_service(session_factory, emitter, settings, clock):
    return ActionService(session_factory, emitter=emitter, settings=settings, clock=clock)


@pytest.fixture
def discovery_service(session_factory, settings, clock):
    return DiscoveryService(session_factory, settings=settings, clock=clock)


@pytest.fixture
def match_service(session_factory, emitter, clock):
    return MatchService(session_factory, emitter=emitter, clock=clock)


@pytest.fixture
def make_user(session_factory):
    """Factory that persists a discovery-ready user and returns it detached."""

    async def _make(
        display_name: str = "Alex",
        *,
        age: int = 28,
        gender: Gender | None = Gender.FEMALE,
        interested_in=(Gender.MALE,),
        everyone: bool = False,
        km_from_base: float | None = 0.0,
        photos: int = 1,
        interests=(),
        relationship_types=(),
        last_active_at: datetime | None = NOW,
        **fields,
    ) -> User:
        async with session_factory() as session:
            async with session.begin():
                tags = []
                for name in interests:
                    interest = await session.scalar(select(Interest).where(Interest.name == name))
                    if interest is None:
                        interest = Interest(name=name)
                        session.add(interest)
                    tags.append(interest)

                user = User(
                    email=f"{uuid.uuid4().hex}@example.com",
                    display_name=display_name,
                    birth_date=birth_date_for(age),
                    gender=gender,
                    interested_in_everyone=everyone,
                    latitude=north_of_base(km_from_base) if km_from_base is not None else None,
                    longitude=BASE_LON if km_from_base is not None else None,
                    relationship_types=list(relationship_types),
                    languages=fields.pop("languages", []),
                    last_active_at=last_active_at,
                    is_active=fields.pop("is_active", True),
                    is_premium=fields.pop("is_premium", False),
                    total_likes_received=0,
                    total_matches=0,
                    created_at=NOW,
                    **fields,
                )
                user.photos = [
                    Photo(url=f"https://cdn.example.com/{uuid.uuid4().hex}.jpg", position=i, is_main=i == 0)
                    for i in range(photos)
                ]
                user.interests = tags
                user.gender_preferences = [
                    GenderPreference(gender=g) for g in ([] if everyone else interested_in)
                ]
                session.add(user)
        return user

    return _make


@pytest.fixture
def fetch_user(session_factory):
    async def _fetch(user_id) -> User:
        async with session_factory() as session:
            return await session.get(User, user_id)

    return _fetch


@pytest.fixture
def count_rows(session_factory):
    """Count rows of ``model`` matching the given criteria."""

    async def _count(model, *criteria) -> int:
        async with session_factory() as session:
            return await session.scalar(
                select(func.count()).select_from(model).where(*criteria)
            )

    return _count


@pytest.fixture
def pair_matches(count_rows):
    async def _pair(a, b) -> int:
        return await count_rows(
            Match,
            ((Match.user1_id == a) & (Match.user2_id == b))
            | ((Match.user1_id == b) & (Match.user2_id == a)),
        )

    return _pair


@pytest.fixture
def pair_actions(count_rows):
    async def _pair(sender, receiver) -> int:
        return await count_rows(
            Action, Action.sender_id == sender, Action.receiver_id == receiver
        )

    return _pair
