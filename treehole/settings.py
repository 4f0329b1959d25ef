"""Environment-driven settings for the favorites service and its tooling."""

from __future__ import annotations

import logging
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load a local .env file before the settings singleton is created so every
# consumer importing :mod:`treehole.settings` observes the same environment.
load_dotenv()

# Defaults used when the environment leaves a value unset.

DEFAULT_SQLITE_DATABASE_URL = "sqlite+aiosqlite:///./data/treehole.db"
POSTGRES_ASYNC_PREFIX = "postgresql+psycopg://"
POSTGRES_SYNC_PREFIXES = ("postgres://", "postgresql://")
DEFAULT_REDIS_URL = "redis://localhost:6379/0"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_FAVORITE_GROUP_NAME = "Default"
DEFAULT_MAX_FAVORITE_GROUPS = 10
DEFAULT_FAVORITES_CACHE_TTL = 300


def _normalize_async_url(url: str) -> str:
    """Coerce sync PostgreSQL DSNs into the async psycopg driver string."""

    url = url.strip()
    for prefix in POSTGRES_SYNC_PREFIXES:
        if url.startswith(prefix):
            return url.replace(prefix, POSTGRES_ASYNC_PREFIX, 1)

    if url.startswith(POSTGRES_ASYNC_PREFIX) or url.startswith("sqlite+aiosqlite://"):
        return url

    raise RuntimeError(
        f"Unsupported database URL (need postgresql or sqlite+aiosqlite): {url}"
    )


class AppSettings(BaseSettings):
    """Every knob the service reads, resolved once per process.

    Values come from the process environment (and ``.env``).  Derived
    properties such as :attr:`resolved_database_url` keep URL parsing in one
    place so the engine factory and the Alembic environment agree.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str | None = Field(
        default=None,
        alias="DATABASE_URL",
        description=(
            "DSN of the write primary. Postgres URLs supplied in sync format"
            " (postgres:// or postgresql://) are coerced into the async psycopg"
            " driver string at runtime."
        ),
    )
    database_replica_urls_raw: str | None = Field(
        default=None,
        alias="DATABASE_REPLICA_URLS",
        description="Comma-separated DSNs of read replicas.",
    )
    use_sqlite: bool = Field(
        default=False,
        alias="USE_SQLITE",
        description="Force the SQLite fallback regardless of DATABASE_URL.",
    )
    redis_url: str = Field(
        default=DEFAULT_REDIS_URL,
        alias="REDIS_URL",
        description="Redis connection string consumed by the listing cache.",
    )
    favorites_cache_ttl: int = Field(
        default=DEFAULT_FAVORITES_CACHE_TTL,
        alias="FAVORITES_CACHE_TTL",
        ge=1,
        description="Seconds a cached favorites listing stays valid.",
    )
    max_favorite_groups: int = Field(
        default=DEFAULT_MAX_FAVORITE_GROUPS,
        alias="MAX_FAVORITE_GROUPS",
        ge=1,
        description="Maximum number of active favorite groups per user.",
    )
    default_favorite_group_name: str = Field(
        default=DEFAULT_FAVORITE_GROUP_NAME,
        alias="DEFAULT_FAVORITE_GROUP_NAME",
        min_length=1,
        max_length=64,
    )
    cors_allow_origins_raw: str | None = Field(
        default=None,
        alias="CORS_ALLOW_ORIGINS",
        description="Comma-separated list of additional CORS origins.",
    )
    log_level: str = Field(
        default=DEFAULT_LOG_LEVEL,
        alias="LOG_LEVEL",
        description="Root logging level (e.g. INFO, DEBUG, WARNING).",
    )
    slow_query_threshold: float = Field(
        default=0.1,
        alias="SLOW_QUERY_THRESHOLD",
        description="Queries slower than this many seconds are logged.",
    )

    @property
    def resolved_database_url(self) -> str:
        """Return the async-compatible primary URL after applying fallbacks."""

        if self.use_sqlite or not self.database_url:
            return DEFAULT_SQLITE_DATABASE_URL
        return _normalize_async_url(self.database_url)

    @property
    def resolved_replica_urls(self) -> list[str]:
        """Return normalized replica URLs; empty when reads go to the primary."""

        if self.use_sqlite or not self.database_replica_urls_raw:
            return []
        return [
            _normalize_async_url(url)
            for url in self.database_replica_urls_raw.split(",")
            if url.strip()
        ]

    @property
    def database_type(self) -> str:
        """Dialect family of the primary, used to pick SQLite-only setup paths."""

        if self.resolved_database_url.startswith("sqlite"):
            return "sqlite"
        return "postgresql"

    @property
    def cors_allow_origins(self) -> list[str]:
        if not self.cors_allow_origins_raw:
            return []
        return [
            origin.strip().rstrip("/")
            for origin in self.cors_allow_origins_raw.split(",")
            if origin.strip()
        ]

    @property
    def log_level_numeric(self) -> int:
        """Numeric level for ``logging.basicConfig``; unknown names mean INFO."""

        candidate = logging.getLevelName(self.log_level.upper())
        if isinstance(candidate, int):
            return candidate
        return logging.INFO

    def optional_config_warnings(self) -> list[str]:
        """Messages describing fallbacks the current environment triggers."""

        warnings: list[str] = []

        if not self.database_url and not self.use_sqlite:
            warnings.append(
                "DATABASE_URL is not set - falling back to the local SQLite database"
            )

        if self.database_url and not self.resolved_replica_urls:
            warnings.append(
                "DATABASE_REPLICA_URLS is not set - listings will read from the primary"
            )

        return warnings


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Process-wide settings; tests call ``cache_clear`` between cases."""

    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_FAVORITE_GROUP_NAME",
    "DEFAULT_FAVORITES_CACHE_TTL",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_FAVORITE_GROUPS",
    "DEFAULT_REDIS_URL",
    "DEFAULT_SQLITE_DATABASE_URL",
    "POSTGRES_ASYNC_PREFIX",
    "get_settings",
]
