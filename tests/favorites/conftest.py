"""Shared fixtures for favorites tests backed by file-based SQLite databases.

A file database (rather than ``:memory:``) lets several connections see the
same data, which the concurrency and replica-routing tests depend on.
"""

from __future__ import annotations

import fnmatch
from collections.abc import AsyncIterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine

from treehole.db.connection import Database, StorageAccess, create_engine
from treehole.db.models import Base, Hole
from treehole.services.favorites import FavoritesCache, FavoritesConfig, FavoritesQueries
from treehole.services.favorites_service import FavoritesService

HOLE_IDS = (1, 2, 3, 4, 5, 6)
HOLE_BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class MemoryCache:
    """In-memory cache double that mimics :class:`treehole.cache.CacheClient`."""

    def __init__(self) -> None:
        self.store: dict[str, object] = {}
        self.deleted: list[str] = []

    async def get_json(self, key: str) -> object | None:
        return self.store.get(key)

    async def set_json(self, key: str, value: object, ttl: int | None = None) -> None:
        self.store[key] = value

    async def delete(self, *keys: str) -> None:
        for key in keys:
            self.store.pop(key, None)
            self.deleted.append(key)

    async def delete_pattern(self, pattern: str) -> None:
        for key in [key for key in self.store if fnmatch.fnmatch(key, pattern)]:
            await self.delete(key)


async def _create_schema(url: str) -> AsyncEngine:
    engine = create_engine(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


async def seed_holes(database: Database, hole_ids: tuple[int, ...] = HOLE_IDS) -> None:
    """Insert holes whose ``updated_at`` grows with the id, except hole 2 which is newest."""

    async with database.session(StorageAccess.WRITE) as session:
        for hole_id in hole_ids:
            updated_at = HOLE_BASE_TIME + timedelta(minutes=hole_id)
            if hole_id == 2:
                updated_at = HOLE_BASE_TIME + timedelta(days=1)
            session.add(
                Hole(
                    id=hole_id,
                    division_id=1,
                    created_at=HOLE_BASE_TIME,
                    updated_at=updated_at,
                )
            )


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    """Yield a primary-only :class:`Database` with seeded holes."""

    pytest.importorskip("aiosqlite")
    primary = await _create_schema(f"sqlite+aiosqlite:///{tmp_path / 'favorites.db'}")
    db = Database(primary)
    await seed_holes(db)
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def replicated_database(tmp_path: Path) -> AsyncIterator[Database]:
    """Yield a :class:`Database` whose replica never receives the primary's writes."""

    pytest.importorskip("aiosqlite")
    primary = await _create_schema(f"sqlite+aiosqlite:///{tmp_path / 'primary.db'}")
    replica = await _create_schema(f"sqlite+aiosqlite:///{tmp_path / 'replica.db'}")
    db = Database(primary, [replica])
    await seed_holes(db)
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def replica_writer(replicated_database: Database) -> Database:
    """Direct access to the replica engine, used to replay primary writes on it."""

    replica = Database(replicated_database.replicas[0])
    await seed_holes(replica)
    return replica


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def config() -> FavoritesConfig:
    return FavoritesConfig(max_groups=4, default_group_name="Default")


@pytest.fixture
def service(database: Database, memory_cache: MemoryCache, config: FavoritesConfig) -> FavoritesService:
    return FavoritesService(
        database=database,
        cache=FavoritesCache(memory_cache),
        config=config,
    )


@pytest.fixture
def queries(database: Database, memory_cache: MemoryCache, config: FavoritesConfig) -> FavoritesQueries:
    return FavoritesQueries(
        database=database,
        cache=FavoritesCache(memory_cache),
        config=config,
    )
