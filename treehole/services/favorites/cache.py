"""Caching helpers dedicated to favorites listings."""

from __future__ import annotations

from treehole.cache import (
    CacheClient,
    favorite_groups_key,
    favorite_ids_key,
    favorite_user_patterns,
)
from treehole.schemas.favorites import FavoriteGroup, FavoriteGroupOrder


class FavoritesCache:
    """Typed wrapper over :class:`CacheClient` for the plain listings.

    Entries are only ever written from state read on the primary inside a
    mutation's transaction (:meth:`write_through`).  Replica reads never fill
    the cache, so a lagging replica cannot pin a pre-write listing for the
    whole TTL.
    """

    def __init__(self, client: CacheClient) -> None:
        self._client = client

    async def read_favorite_ids(
        self, *, user_id: int, favorite_group_id: int | None
    ) -> list[int] | None:
        cached = await self._client.get_json(favorite_ids_key(user_id, favorite_group_id))
        if not isinstance(cached, list):
            return None
        return [int(hole_id) for hole_id in cached]

    async def write_favorite_ids(
        self,
        *,
        user_id: int,
        favorite_group_id: int | None,
        hole_ids: list[int],
    ) -> None:
        await self._client.set_json(favorite_ids_key(user_id, favorite_group_id), hole_ids)

    async def read_groups(
        self, *, user_id: int, order: FavoriteGroupOrder | None
    ) -> list[FavoriteGroup] | None:
        key = favorite_groups_key(user_id, order.value if order else None)
        cached = await self._client.get_json(key)
        if not isinstance(cached, list):
            return None
        return [FavoriteGroup(**item) for item in cached]

    async def write_groups(
        self,
        *,
        user_id: int,
        order: FavoriteGroupOrder | None,
        groups: list[FavoriteGroup],
    ) -> None:
        key = favorite_groups_key(user_id, order.value if order else None)
        await self._client.set_json(key, [group.model_dump(mode="json") for group in groups])

    async def invalidate_user(self, *, user_id: int) -> None:
        """Delete every cached listing that belongs to ``user_id``."""

        for pattern in favorite_user_patterns(user_id):
            await self._client.delete_pattern(pattern)

    async def write_through(
        self,
        *,
        user_id: int,
        snapshot: list[int],
        groups: list[FavoriteGroup],
        hole_ids_by_group: dict[int, list[int]],
    ) -> None:
        """Replace the user's cached listings with a committed primary snapshot.

        ``snapshot`` is every favorite id in group then position order and
        ``groups`` is the plain (group number) listing.  Ordered group
        listings are dropped and left to the replicas.
        """

        await self.invalidate_user(user_id=user_id)
        await self.write_favorite_ids(user_id=user_id, favorite_group_id=None, hole_ids=snapshot)
        for group in groups:
            await self.write_favorite_ids(
                user_id=user_id,
                favorite_group_id=group.favorite_group_id,
                hole_ids=hole_ids_by_group.get(group.favorite_group_id, []),
            )
        await self.write_groups(user_id=user_id, order=None, groups=groups)
