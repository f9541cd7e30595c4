"""
Ember — Async engine and session factory

``build_engine`` picks one of two connection strategies:

* **Cloud SQL connector** when ``CLOUD_SQL_USE_UNIX_SOCKET`` is set and an
  instance connection name is configured.  IAM authentication and the TLS
  tunnel are handled by ``cloud-sql-python-connector``.
* **Plain URL** from ``DATABASE_URL`` otherwise (asyncpg in development,
  aiosqlite in the test suite).

Nothing is created at import time.  The application lifespan builds one
engine and one session factory and hands the factory to every service.
"""

from __future__ import annotations

import logging

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base every Ember model inherits from."""


# JSONB on PostgreSQL, plain JSON on SQLite.
PortableJSON = JSON().with_variant(JSONB(), "postgresql")

# Server pools only; SQLite engines keep SQLAlchemy's defaults.
POOL_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def _normalise_url(raw: str) -> str:
    # Accept the driverless scheme people copy from psql docs.
    url = make_url(raw)
    if url.drivername == "postgresql":
        url = url.set(drivername="postgresql+asyncpg")
    return url.render_as_string(hide_password=False)


def _connector_engine(settings: Settings) -> AsyncEngine:
    from google.cloud.sql.connector import Connector

    connector = Connector()

    async def connect():
        return await connector.connect_async(
            settings.CLOUD_SQL_INSTANCE_CONNECTION,
            "asyncpg",
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            db=settings.DB_NAME,
            enable_iam_auth=True,
        )

    logger.info("Using Cloud SQL connector for %s", settings.CLOUD_SQL_INSTANCE_CONNECTION)
    return create_async_engine(
        "postgresql+asyncpg://",
        async_creator=connect,
        echo=settings.LOG_LEVEL.upper() == "DEBUG",
        **POOL_OPTIONS,
    )


def build_engine(settings: Settings | None = None) -> AsyncEngine:
    """Create the process-wide ``AsyncEngine``."""
    settings = settings or get_settings()
    if settings.uses_cloud_sql:
        return _connector_engine(settings)

    url = _normalise_url(settings.DATABASE_URL)
    options = {} if url.startswith("sqlite") else POOL_OPTIONS
    logger.info("Using DATABASE_URL engine (%s)", make_url(url).get_backend_name())
    return create_async_engine(
        url,
        echo=settings.LOG_LEVEL.upper() == "DEBUG",
        **options,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit so results can be
    serialised once the transaction is closed."""
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
