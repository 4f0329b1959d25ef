"""Read-only favorites listings.

Listings read from a replica by default and may trail the primary by the
replication lag.  Callers that must observe their own writes pass
``access=StorageAccess.READ_AFTER_WRITE``, which also bypasses the cache.
The cache is consulted on replica reads but only filled by mutations, with
state read on the primary.
"""

from __future__ import annotations

import logging

from treehole.db.connection import Database, StorageAccess
from treehole.db.models.favorites import DEFAULT_FAVORITE_GROUP_ID
from treehole.schemas.favorites import (
    FavoriteGroup,
    FavoriteGroupOrder,
    FavoriteOrder,
    HoleSummary,
)

from .cache import FavoritesCache
from .persistence import FavoritesConfig, FavoritesPersistence

logger = logging.getLogger(__name__)


class FavoritesQueries:
    """Query facade over favorites and favorite groups."""

    def __init__(
        self,
        *,
        database: Database,
        cache: FavoritesCache,
        config: FavoritesConfig,
    ) -> None:
        self._database = database
        self._cache = cache
        self._config = config

    async def list_favorite_ids(
        self,
        *,
        user_id: int,
        favorite_group_id: int | None = None,
        access: StorageAccess = StorageAccess.READ,
    ) -> list[int]:
        """Plain listing: hole ids in group/position order, no join."""

        if access is StorageAccess.READ:
            cached = await self._cache.read_favorite_ids(
                user_id=user_id, favorite_group_id=favorite_group_id
            )
            if cached is not None:
                return cached

        async with self._database.session(access) as session:
            persistence = FavoritesPersistence(session, self._config)
            return await persistence.favorite_hole_ids(user_id, favorite_group_id)

    async def list_favorite_holes(
        self,
        *,
        user_id: int,
        favorite_group_id: int | None = 0,
        order: FavoriteOrder | None = FavoriteOrder.TIME_CREATED,
        access: StorageAccess = StorageAccess.READ,
    ) -> list[HoleSummary]:
        """Joined listing: full hole records ordered by ``order``."""

        async with self._database.session(access) as session:
            persistence = FavoritesPersistence(session, self._config)
            holes = await persistence.favorite_holes(user_id, favorite_group_id, order)
            return [HoleSummary.model_validate(hole) for hole in holes]

    async def list_groups(
        self,
        *,
        user_id: int,
        order: FavoriteGroupOrder | None = None,
    ) -> list[FavoriteGroup]:
        """Active groups of ``user_id`` with membership counts.

        Only the plain listing (``order=None``) is served from the cache.  A
        user who never touched favorites has no rows yet; the default group
        is created on the primary and the listing re-read from there.
        """

        if order is None:
            cached = await self._cache.read_groups(user_id=user_id, order=None)
            if cached is not None:
                return cached

        async with self._database.session(StorageAccess.READ) as session:
            rows = await FavoritesPersistence(session, self._config).list_groups(user_id, order)
            groups = [FavoriteGroup.from_model(group, count) for group, count in rows]

        if any(group.favorite_group_id == DEFAULT_FAVORITE_GROUP_ID for group in groups):
            return groups

        logger.info("Creating default favorite group for user %s", user_id)
        async with self._database.session(StorageAccess.WRITE) as session:
            await FavoritesPersistence(session, self._config).ensure_default_group(user_id)
        async with self._database.session(StorageAccess.READ_AFTER_WRITE) as session:
            rows = await FavoritesPersistence(session, self._config).list_groups(user_id, order)
            return [FavoriteGroup.from_model(group, count) for group, count in rows]
