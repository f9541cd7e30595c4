"""
Ember — Settings

Every tunable of the matching core is read from the environment (or a local
``.env``) by Pydantic Settings.  ``get_settings()`` caches the validated
instance for the life of the process; services accept an explicit
``Settings`` so tests can pass their own.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration for Ember."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -- Persistence ------------------------------------------------------ #
    DATABASE_URL: str = Field(
        description="SQLAlchemy async URL, e.g. postgresql+asyncpg://user:pw@host/ember",
    )
    CLOUD_SQL_INSTANCE_CONNECTION: str = Field(
        "", description="project:region:instance; empty disables the connector",
    )
    CLOUD_SQL_USE_UNIX_SOCKET: bool = False
    DB_USER: str = "ember_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "ember"

    # -- Event fan-out ---------------------------------------------------- #
    REDIS_URL: str = Field("", description="Empty means events are only logged")
    EVENT_CHANNEL_PREFIX: str = "user:"

    # -- Discovery -------------------------------------------------------- #
    DISCOVERY_POOL_SIZE: int = Field(500, description="Users fetched per discovery request before scoring")
    DISCOVERY_DEFAULT_LIMIT: int = 20
    DISCOVERY_MAX_LIMIT: int = 50
    DEFAULT_MIN_AGE: int = 18
    DEFAULT_MAX_AGE: int = 100
    DEFAULT_MAX_DISTANCE_KM: float = 100.0

    # -- Actions ---------------------------------------------------------- #
    UNDO_WINDOW_SECONDS: int = Field(300, description="How long the latest action stays undoable")

    # -- HTTP process ----------------------------------------------------- #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = Field("*", description="Comma-separated CORS origins")
    REQUEST_TIMEOUT_SECONDS: float = 30.0
    SHUTDOWN_DRAIN_SECONDS: float = 15.0

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def uses_cloud_sql(self) -> bool:
        return bool(self.CLOUD_SQL_USE_UNIX_SOCKET and self.CLOUD_SQL_INSTANCE_CONNECTION)

    @field_validator(
        "UNDO_WINDOW_SECONDS",
        "DISCOVERY_POOL_SIZE",
        "DISCOVERY_DEFAULT_LIMIT",
        "DISCOVERY_MAX_LIMIT",
        "DEFAULT_MAX_DISTANCE_KM",
        "REQUEST_TIMEOUT_SECONDS",
    )
    @classmethod
    def _positive(cls, v: float, info) -> float:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, parsed once."""
    return Settings()  # type: ignore[call-arg]
