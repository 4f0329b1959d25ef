"""Tests for the transactional favorites mutations in :mod:`treehole.services.favorites_service`."""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from treehole.db.connection import Database, StorageAccess
from treehole.db.models import FavoriteGroup, UserFavorite
from treehole.services.favorites import (
    ConflictError,
    FavoritesCache,
    FavoritesConfig,
    FavoritesPersistence,
    ForbiddenError,
    NotFoundError,
)
from treehole.services.favorites_service import FavoritesService

USER_ID = 7


async def _memberships(database: Database, user_id: int = USER_ID) -> list[tuple[int, int, int]]:
    """Return ``(hole_id, favorite_group_id, position)`` rows read from the primary."""

    async with database.session(StorageAccess.READ_AFTER_WRITE) as session:
        result = await session.execute(
            select(UserFavorite.hole_id, UserFavorite.favorite_group_id, UserFavorite.position)
            .where(UserFavorite.user_id == user_id)
            .order_by(UserFavorite.favorite_group_id, UserFavorite.position)
        )
        return [tuple(row) for row in result.all()]


async def _group(database: Database, favorite_group_id: int, user_id: int = USER_ID) -> FavoriteGroup | None:
    async with database.session(StorageAccess.READ_AFTER_WRITE) as session:
        return await session.get(FavoriteGroup, (user_id, favorite_group_id))


@pytest.mark.asyncio
async def test_add_returns_snapshot_and_creates_default_group(
    service: FavoritesService, database: Database
) -> None:
    snapshot = await service.add(user_id=USER_ID, hole_id=3)

    assert snapshot == [3]
    default_group = await _group(database, 0)
    assert default_group is not None
    assert default_group.name == "Default"
    assert default_group.deleted is False


@pytest.mark.asyncio
async def test_add_then_delete_restores_membership_set(
    service: FavoritesService, database: Database
) -> None:
    await service.add(user_id=USER_ID, hole_id=1)
    await service.add(user_id=USER_ID, hole_id=2)
    before = await _memberships(database)

    await service.add(user_id=USER_ID, hole_id=4)
    snapshot = await service.delete(user_id=USER_ID, hole_id=4)

    assert snapshot == [1, 2]
    assert await _memberships(database) == before


@pytest.mark.asyncio
async def test_add_rejects_second_favorite_of_same_hole(service: FavoritesService) -> None:
    await service.add_group(user_id=USER_ID, name="Reading")
    await service.add(user_id=USER_ID, hole_id=1)

    with pytest.raises(ConflictError):
        await service.add(user_id=USER_ID, hole_id=1)
    with pytest.raises(ConflictError):
        await service.add(user_id=USER_ID, hole_id=1, favorite_group_id=1)


@pytest.mark.asyncio
async def test_add_unknown_hole_or_group_is_not_found(
    service: FavoritesService, database: Database
) -> None:
    with pytest.raises(NotFoundError):
        await service.add(user_id=USER_ID, hole_id=999)
    with pytest.raises(NotFoundError):
        await service.add(user_id=USER_ID, hole_id=1, favorite_group_id=5)

    assert await _memberships(database) == []


@pytest.mark.asyncio
async def test_delete_missing_membership_is_not_found(service: FavoritesService) -> None:
    await service.add(user_id=USER_ID, hole_id=1)

    with pytest.raises(NotFoundError):
        await service.delete(user_id=USER_ID, hole_id=2)
    with pytest.raises(NotFoundError):
        await service.delete(user_id=USER_ID, hole_id=1, favorite_group_id=3)


@pytest.mark.asyncio
async def test_delete_keeps_positions_dense(service: FavoritesService, database: Database) -> None:
    for hole_id in (1, 2, 3, 4):
        await service.add(user_id=USER_ID, hole_id=hole_id)

    await service.delete(user_id=USER_ID, hole_id=2)

    assert await _memberships(database) == [(1, 0, 0), (3, 0, 1), (4, 0, 2)]


@pytest.mark.asyncio
async def test_move_appends_to_target_and_renumbers_source(
    service: FavoritesService, database: Database
) -> None:
    await service.add_group(user_id=USER_ID, name="Later")
    await service.add(user_id=USER_ID, hole_id=5, favorite_group_id=1)
    for hole_id in (1, 2, 3):
        await service.add(user_id=USER_ID, hole_id=hole_id)

    snapshot = await service.move(
        user_id=USER_ID, hole_ids=[3, 1, 3], from_group_id=0, to_group_id=1
    )

    assert snapshot == [2, 5, 3, 1]
    assert await _memberships(database) == [
        (2, 0, 0),
        (5, 1, 0),
        (3, 1, 1),
        (1, 1, 2),
    ]


@pytest.mark.asyncio
async def test_move_is_atomic_when_one_hole_is_missing(
    service: FavoritesService, database: Database
) -> None:
    await service.add_group(user_id=USER_ID, name="Later")
    await service.add(user_id=USER_ID, hole_id=1)
    await service.add(user_id=USER_ID, hole_id=2)
    before = await _memberships(database)

    with pytest.raises(NotFoundError):
        await service.move(
            user_id=USER_ID, hole_ids=[1, 2, 6], from_group_id=0, to_group_id=1
        )

    assert await _memberships(database) == before


@pytest.mark.asyncio
async def test_move_to_deleted_group_is_not_found(service: FavoritesService) -> None:
    await service.add_group(user_id=USER_ID, name="Gone")
    await service.add(user_id=USER_ID, hole_id=1)
    await service.delete_group(user_id=USER_ID, favorite_group_id=1)

    with pytest.raises(NotFoundError):
        await service.move(user_id=USER_ID, hole_ids=[1], from_group_id=0, to_group_id=1)


@pytest.mark.asyncio
async def test_move_within_same_group_is_a_validated_noop(
    service: FavoritesService, database: Database
) -> None:
    await service.add(user_id=USER_ID, hole_id=1)
    await service.add(user_id=USER_ID, hole_id=2)

    snapshot = await service.move(user_id=USER_ID, hole_ids=[2], from_group_id=0, to_group_id=0)

    assert snapshot == [1, 2]
    assert await _memberships(database) == [(1, 0, 0), (2, 0, 1)]
    with pytest.raises(NotFoundError):
        await service.move(user_id=USER_ID, hole_ids=[3], from_group_id=0, to_group_id=0)


@pytest.mark.asyncio
async def test_delete_group_moves_every_membership_to_default(
    service: FavoritesService, database: Database
) -> None:
    await service.add_group(user_id=USER_ID, name="Archive")
    await service.add(user_id=USER_ID, hole_id=1)
    for hole_id in (4, 2, 6):
        await service.add(user_id=USER_ID, hole_id=hole_id, favorite_group_id=1)

    snapshot = await service.delete_group(user_id=USER_ID, favorite_group_id=1)

    assert snapshot == [1, 4, 2, 6]
    assert await _memberships(database) == [(1, 0, 0), (4, 0, 1), (2, 0, 2), (6, 0, 3)]
    deleted = await _group(database, 1)
    assert deleted is not None and deleted.deleted is True


@pytest.mark.asyncio
async def test_default_group_cannot_be_deleted(service: FavoritesService) -> None:
    with pytest.raises(ForbiddenError):
        await service.delete_group(user_id=USER_ID, favorite_group_id=0)

    await service.add(user_id=USER_ID, hole_id=1)
    with pytest.raises(ForbiddenError):
        await service.delete_group(user_id=USER_ID, favorite_group_id=0)


@pytest.mark.asyncio
async def test_delete_group_twice_is_not_found(service: FavoritesService) -> None:
    await service.add_group(user_id=USER_ID, name="Once")
    await service.delete_group(user_id=USER_ID, favorite_group_id=1)

    with pytest.raises(NotFoundError):
        await service.delete_group(user_id=USER_ID, favorite_group_id=1)


@pytest.mark.asyncio
async def test_group_ids_are_never_reused(service: FavoritesService, database: Database) -> None:
    await service.add_group(user_id=USER_ID, name="First")
    await service.add_group(user_id=USER_ID, name="Second")
    await service.delete_group(user_id=USER_ID, favorite_group_id=2)

    await service.add_group(user_id=USER_ID, name="Third")

    third = await _group(database, 3)
    assert third is not None
    assert third.name == "Third"
    reused = await _group(database, 2)
    assert reused is not None and reused.deleted is True


@pytest.mark.asyncio
async def test_group_limit_counts_default_group(service: FavoritesService) -> None:
    for index in range(3):
        await service.add_group(user_id=USER_ID, name=f"Group {index}")

    with pytest.raises(ForbiddenError):
        await service.add_group(user_id=USER_ID, name="One too many")

    await service.delete_group(user_id=USER_ID, favorite_group_id=3)
    await service.add_group(user_id=USER_ID, name="Room again")


@pytest.mark.asyncio
async def test_rename_group(service: FavoritesService, database: Database) -> None:
    await service.add_group(user_id=USER_ID, name="Draft")

    await service.rename_group(user_id=USER_ID, favorite_group_id=1, name="Final")
    await service.rename_group(user_id=USER_ID, favorite_group_id=0, name="Inbox")

    renamed = await _group(database, 1)
    default_group = await _group(database, 0)
    assert renamed is not None and renamed.name == "Final"
    assert default_group is not None and default_group.name == "Inbox"
    with pytest.raises(NotFoundError):
        await service.rename_group(user_id=USER_ID, favorite_group_id=9, name="Nope")


@pytest.mark.asyncio
async def test_modify_replaces_group_contents(service: FavoritesService, database: Database) -> None:
    await service.add_group(user_id=USER_ID, name="Other")
    await service.add(user_id=USER_ID, hole_id=1)
    await service.add(user_id=USER_ID, hole_id=2)
    await service.add(user_id=USER_ID, hole_id=5, favorite_group_id=1)
    await service.add(user_id=USER_ID, hole_id=6, favorite_group_id=1)

    snapshot = await service.modify(user_id=USER_ID, hole_ids=[5, 3, 1, 3])

    assert snapshot == [5, 3, 1, 6]
    assert await _memberships(database) == [(5, 0, 0), (3, 0, 1), (1, 0, 2), (6, 1, 0)]


@pytest.mark.asyncio
async def test_modify_with_unknown_hole_changes_nothing(
    service: FavoritesService, database: Database
) -> None:
    await service.add(user_id=USER_ID, hole_id=1)

    with pytest.raises(NotFoundError):
        await service.modify(user_id=USER_ID, hole_ids=[2, 404])

    assert await _memberships(database) == [(1, 0, 0)]


@pytest.mark.asyncio
async def test_favorite_group_lifecycle_scenario(
    service: FavoritesService, database: Database
) -> None:
    await service.add_group(user_id=USER_ID, name="G")
    assert await service.add(user_id=USER_ID, hole_id=1, favorite_group_id=1) == [1]
    assert await service.move(
        user_id=USER_ID, hole_ids=[1], from_group_id=1, to_group_id=0
    ) == [1]
    assert await service.delete_group(user_id=USER_ID, favorite_group_id=1) == [1]

    assert await _memberships(database) == [(1, 0, 0)]


@pytest.mark.asyncio
async def test_concurrent_adds_of_same_hole_conflict_once(
    service: FavoritesService, database: Database
) -> None:
    await service.add_group(user_id=USER_ID, name="Race")

    results = await asyncio.gather(
        service.add(user_id=USER_ID, hole_id=1, favorite_group_id=0),
        service.add(user_id=USER_ID, hole_id=1, favorite_group_id=1),
        return_exceptions=True,
    )

    conflicts = [result for result in results if isinstance(result, ConflictError)]
    successes = [result for result in results if isinstance(result, list)]
    assert len(conflicts) == 1
    assert successes == [[1]]
    rows = await _memberships(database)
    assert len(rows) == 1 and rows[0][0] == 1


@pytest.mark.asyncio
async def test_mutations_write_committed_listings_through_the_cache(
    database: Database, memory_cache, config: FavoritesConfig
) -> None:
    memory_cache.store["favorites:ids:7:all"] = [99]
    memory_cache.store["favorites:groups:7:time_updated"] = []
    memory_cache.store["favorites:ids:8:all"] = [42]
    service = FavoritesService(
        database=database, cache=FavoritesCache(memory_cache), config=config
    )

    await service.add_group(user_id=USER_ID, name="Later")
    await service.add(user_id=USER_ID, hole_id=1)

    assert memory_cache.store["favorites:ids:7:all"] == [1]
    assert memory_cache.store["favorites:ids:7:0"] == [1]
    assert memory_cache.store["favorites:ids:7:1"] == []
    assert [
        (group["favorite_group_id"], group["count"])
        for group in memory_cache.store["favorites:groups:7:plain"]
    ] == [(0, 1), (1, 0)]
    assert "favorites:groups:7:time_updated" not in memory_cache.store
    assert memory_cache.store["favorites:ids:8:all"] == [42]


@pytest.mark.asyncio
async def test_failed_mutation_keeps_cache(service: FavoritesService, memory_cache) -> None:
    memory_cache.store["favorites:ids:7:all"] = [99]

    with pytest.raises(NotFoundError):
        await service.add(user_id=USER_ID, hole_id=404)

    assert memory_cache.store["favorites:ids:7:all"] == [99]


@pytest.mark.asyncio
async def test_users_are_isolated(service: FavoritesService) -> None:
    await service.add(user_id=USER_ID, hole_id=1)
    await service.add_group(user_id=USER_ID, name="Mine")

    assert await service.add(user_id=8, hole_id=1) == [1]
    with pytest.raises(NotFoundError):
        await service.add(user_id=8, hole_id=2, favorite_group_id=1)


@pytest.mark.asyncio
async def test_mutations_lock_the_user_before_reading_tail_positions(
    service: FavoritesService, monkeypatch: pytest.MonkeyPatch
) -> None:
    events: list[str] = []
    lock = FavoritesPersistence.ensure_default_group
    count = FavoritesPersistence.count_memberships

    async def recording_lock(self, user_id):
        events.append("lock")
        return await lock(self, user_id)

    async def recording_count(self, user_id, favorite_group_id):
        events.append("tail")
        return await count(self, user_id, favorite_group_id)

    monkeypatch.setattr(FavoritesPersistence, "ensure_default_group", recording_lock)
    monkeypatch.setattr(FavoritesPersistence, "count_memberships", recording_count)
    await service.add_group(user_id=USER_ID, name="Later")

    mutations = [
        lambda: service.add(user_id=USER_ID, hole_id=1, favorite_group_id=1),
        lambda: service.move(user_id=USER_ID, hole_ids=[1], from_group_id=1, to_group_id=0),
        lambda: service.delete_group(user_id=USER_ID, favorite_group_id=1),
    ]
    for mutation in mutations:
        events.clear()
        await mutation()
        assert events[0] == "lock"
        assert "tail" in events
