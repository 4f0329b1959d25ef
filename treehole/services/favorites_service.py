"""Business logic powering the favorites API endpoints.

Every mutation follows the same workflow:

1. open one ``WRITE`` transaction on the primary;
2. make sure the user's default group exists and lock its row;
3. run the repository operation(s) from :class:`FavoritesPersistence`;
4. read the user's favorite ids and groups on the same connection, so the
   response always reflects the write it follows;
5. commit, then overwrite the user's cached listings with that snapshot.

Any exception raised inside the transaction rolls back every partial change
and propagates unchanged; retrying is left to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from treehole.db.connection import Database, StorageAccess
from treehole.schemas.favorites import FavoriteGroup
from treehole.services.favorites import (
    FavoritesCache,
    FavoritesConfig,
    FavoritesPersistence,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FavoritesService:
    """Orchestrates transactional favorites mutations."""

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

    async def add(self, *, user_id: int, hole_id: int, favorite_group_id: int = 0) -> list[int]:
        async def operation(persistence: FavoritesPersistence) -> None:
            await persistence.add_membership(user_id, hole_id, favorite_group_id)

        snapshot = await self._mutate(user_id, operation)
        logger.info(
            "User %s favorited hole %s in group %s", user_id, hole_id, favorite_group_id
        )
        return snapshot

    async def modify(
        self,
        *,
        user_id: int,
        hole_ids: Sequence[int],
        favorite_group_id: int = 0,
    ) -> list[int]:
        async def operation(persistence: FavoritesPersistence) -> None:
            await persistence.replace_group_memberships(user_id, hole_ids, favorite_group_id)

        snapshot = await self._mutate(user_id, operation)
        logger.info(
            "User %s replaced group %s with %d hole(s)",
            user_id,
            favorite_group_id,
            len(hole_ids),
        )
        return snapshot

    async def delete(
        self, *, user_id: int, hole_id: int, favorite_group_id: int = 0
    ) -> list[int]:
        async def operation(persistence: FavoritesPersistence) -> None:
            await persistence.remove_membership(user_id, hole_id, favorite_group_id)

        snapshot = await self._mutate(user_id, operation)
        logger.info(
            "User %s removed hole %s from group %s", user_id, hole_id, favorite_group_id
        )
        return snapshot

    async def move(
        self,
        *,
        user_id: int,
        hole_ids: Sequence[int],
        from_group_id: int,
        to_group_id: int,
    ) -> list[int]:
        async def operation(persistence: FavoritesPersistence) -> None:
            await persistence.move_memberships(user_id, hole_ids, from_group_id, to_group_id)

        snapshot = await self._mutate(user_id, operation)
        logger.info(
            "User %s moved %d hole(s) from group %s to group %s",
            user_id,
            len(hole_ids),
            from_group_id,
            to_group_id,
        )
        return snapshot

    async def add_group(self, *, user_id: int, name: str) -> list[int]:
        async def operation(persistence: FavoritesPersistence) -> None:
            group = await persistence.add_group(user_id, name)
            logger.info("User %s created favorite group %s", user_id, group.favorite_group_id)

        return await self._mutate(user_id, operation)

    async def rename_group(
        self, *, user_id: int, favorite_group_id: int, name: str
    ) -> list[int]:
        async def operation(persistence: FavoritesPersistence) -> None:
            await persistence.rename_group(user_id, favorite_group_id, name)

        return await self._mutate(user_id, operation)

    async def delete_group(self, *, user_id: int, favorite_group_id: int) -> list[int]:
        async def operation(persistence: FavoritesPersistence) -> None:
            moved = await persistence.delete_group(user_id, favorite_group_id)
            logger.info(
                "User %s deleted favorite group %s (%d favorite(s) moved to default)",
                user_id,
                favorite_group_id,
                moved,
            )

        return await self._mutate(user_id, operation)

    async def _mutate(
        self,
        user_id: int,
        operation: Callable[[FavoritesPersistence], Awaitable[T]],
    ) -> list[int]:
        async with self._database.session(StorageAccess.WRITE) as session:
            persistence = FavoritesPersistence(session, self._config)
            await persistence.ensure_default_group(user_id)
            await operation(persistence)
            hole_ids_by_group = await persistence.favorite_hole_ids_by_group(user_id)
            groups = [
                FavoriteGroup.from_model(group, count)
                for group, count in await persistence.list_groups(user_id)
            ]

        snapshot = [
            hole_id
            for favorite_group_id in sorted(hole_ids_by_group)
            for hole_id in hole_ids_by_group[favorite_group_id]
        ]
        await self._cache.write_through(
            user_id=user_id,
            snapshot=snapshot,
            groups=groups,
            hole_ids_by_group=hole_ids_by_group,
        )
        return snapshot
