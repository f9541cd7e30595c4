"""Tests for settings validation and engine construction."""
import pytest
from pydantic import ValidationError

from app.config import Settings
from app.database import build_engine


class TestSettings:

    def test_defaults(self):
        s = Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:")
        assert s.UNDO_WINDOW_SECONDS == 300
        assert s.DISCOVERY_POOL_SIZE == 500
        assert s.DEFAULT_MAX_DISTANCE_KM == 100.0
        assert s.uses_cloud_sql is False

    @pytest.mark.parametrize("field", ["UNDO_WINDOW_SECONDS", "DISCOVERY_POOL_SIZE"])
    def test_non_positive_values_are_rejected(self, field):
        with pytest.raises(ValidationError):
            Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:", **{field: 0})

    def test_allowed_origins_are_split(self):
        s = Settings(
            DATABASE_URL="sqlite+aiosqlite:///:memory:",
            ALLOWED_ORIGINS="https://a.example, https://b.example,",
        )
        assert s.allowed_origins_list == ["https://a.example", "https://b.example"]

    def test_cloud_sql_needs_instance_name(self):
        s = Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:", CLOUD_SQL_USE_UNIX_SOCKET=True)
        assert s.uses_cloud_sql is False


class TestBuildEngine:

    def test_plain_postgres_url_gets_asyncpg_driver(self):
        engine = build_engine(Settings(DATABASE_URL="postgresql://u:pw@db:5432/ember"))
        assert engine.url.drivername == "postgresql+asyncpg"
        assert engine.url.password == "pw"

    def test_sqlite_url_is_used_as_is(self):
        engine = build_engine(Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:"))
        assert engine.url.drivername == "sqlite+aiosqlite"
