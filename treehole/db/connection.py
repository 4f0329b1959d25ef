"""Engine and session management for the write primary and read replicas.

Every session handed out by :class:`Database` is tied to an explicit
:class:`StorageAccess` capability instead of being picked implicitly by the
call site:

* ``READ`` goes to a replica (round-robin) and may lag behind the primary.
* ``READ_AFTER_WRITE`` goes to the primary so the caller observes its own
  writes.
* ``WRITE`` goes to the primary and is always wrapped in a transaction.
"""

from __future__ import annotations

import enum
import itertools
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from treehole.settings import AppSettings, get_settings

logger = logging.getLogger(__name__)


class StorageAccess(str, enum.Enum):
    """Capability requested when opening a session."""

    READ = "read"
    READ_AFTER_WRITE = "read_after_write"
    WRITE = "write"


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Make SQLite honour transactions the way PostgreSQL does.

    pysqlite defers ``BEGIN`` until the first DML statement which lets two
    writers interleave their reads.  Emitting ``BEGIN IMMEDIATE`` serializes
    writers up front and foreign keys are switched on per connection.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(connection: Any) -> None:
        connection.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(url: str, *, slow_query_threshold: float | None = None) -> AsyncEngine:
    """Create an async SQLAlchemy engine for ``url``.

    PostgreSQL engines get the pooling parameters used in production; SQLite
    engines are only used for local development and the test-suite.
    """

    if url.startswith("sqlite"):
        engine = create_async_engine(
            url,
            future=True,
            echo=False,
            connect_args={"timeout": 30},
        )
        _enable_sqlite_transactions(engine)
    else:
        engine = create_async_engine(
            url,
            future=True,
            echo=False,
            pool_size=10,  # Maintain 10 warm connections
            max_overflow=20,  # Allow up to 30 total connections
            pool_pre_ping=True,  # Validate connections before use
            pool_recycle=1800,  # Recycle connections every 30 min
            pool_timeout=30,  # Timeout for getting connection from pool
        )

    if slow_query_threshold is not None:
        from treehole.monitoring import setup_query_monitoring

        setup_query_monitoring(engine, slow_query_threshold=slow_query_threshold)

    return engine


def _session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


class Database:
    """Routes sessions to the primary or to a replica by capability."""

    def __init__(
        self,
        primary: AsyncEngine,
        replicas: Sequence[AsyncEngine] = (),
    ) -> None:
        self._primary = primary
        self._replicas = list(replicas)
        self._primary_sessions = _session_factory(primary)
        self._replica_sessions = [_session_factory(engine) for engine in self._replicas]
        self._replica_cycle = (
            itertools.cycle(self._replica_sessions) if self._replica_sessions else None
        )

    @property
    def primary(self) -> AsyncEngine:
        return self._primary

    @property
    def replicas(self) -> tuple[AsyncEngine, ...]:
        return tuple(self._replicas)

    def _factory_for(self, access: StorageAccess) -> async_sessionmaker[AsyncSession]:
        if access is StorageAccess.READ and self._replica_cycle is not None:
            return next(self._replica_cycle)
        return self._primary_sessions

    @asynccontextmanager
    async def session(self, access: StorageAccess) -> AsyncIterator[AsyncSession]:
        """Yield a session bound to the engine ``access`` requires.

        ``WRITE`` sessions commit when the block exits cleanly and roll back
        on any exception.  Read sessions are closed on exit, which releases the
        connection and discards whatever transaction the reads opened.
        """

        if access is StorageAccess.WRITE:
            async with self.transaction() as session:
                yield session
            return

        async with self._factory_for(access)() as session:
            yield session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        """Yield a primary session inside ``session.begin()``."""

        async with self._primary_sessions() as session:
            async with session.begin():
                yield session

    async def dispose(self) -> None:
        await self._primary.dispose()
        for engine in self._replicas:
            await engine.dispose()


def create_database(settings: AppSettings | None = None) -> Database:
    """Build a :class:`Database` from application settings."""

    settings = settings or get_settings()
    threshold = settings.slow_query_threshold
    primary = create_engine(settings.resolved_database_url, slow_query_threshold=threshold)
    replicas = [
        create_engine(url, slow_query_threshold=threshold)
        for url in settings.resolved_replica_urls
    ]
    logger.info(
        "Database configured with %d replica(s) (%s primary)",
        len(replicas),
        settings.database_type,
    )
    return Database(primary, replicas)


# Shared instance for FastAPI dependency injection
_database: Database | None = None


def get_database() -> Database:
    """Get or create the process-wide :class:`Database`."""
    global _database
    if _database is None:
        _database = create_database()
    return _database


async def close_database() -> None:
    global _database
    if _database is not None:
        await _database.dispose()
        _database = None


__all__ = [
    "Database",
    "StorageAccess",
    "close_database",
    "create_database",
    "create_engine",
    "get_database",
]
