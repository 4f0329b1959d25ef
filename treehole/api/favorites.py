"""FastAPI router exposing favorites and favorite group operations.

Domain errors raised by the services are rendered by the exception handlers
registered in :mod:`treehole.main`.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from treehole.schemas.favorites import (
    AddFavoriteGroupRequest,
    AddFavoriteRequest,
    DeleteFavoriteGroupRequest,
    DeleteFavoriteRequest,
    FavoriteGroupListResponse,
    FavoriteGroupOrder,
    FavoriteIdsResponse,
    FavoriteOrder,
    FavoriteSnapshotResponse,
    HoleSummary,
    ModifyFavoriteGroupRequest,
    ModifyFavoritesRequest,
    MoveFavoritesRequest,
)
from treehole.services.dependencies import (
    get_current_user_id,
    get_favorites_queries,
    get_favorites_service,
)
from treehole.services.favorites import FavoritesQueries
from treehole.services.favorites_service import FavoritesService

router = APIRouter()


@router.get(
    "/favorites",
    response_model=FavoriteIdsResponse | list[HoleSummary],
)
async def list_favorites(
    plain: bool = Query(False, description="Return hole ids only"),
    favorite_group_id: int | None = Query(
        None,
        ge=0,
        description="Restrict to one group; omitted means every group.",
    ),
    order: FavoriteOrder = Query(FavoriteOrder.TIME_CREATED),
    user_id: int = Depends(get_current_user_id),
    queries: FavoritesQueries = Depends(get_favorites_queries),
) -> FavoriteIdsResponse | list[HoleSummary]:
    """List the caller's favorites as ids or as full hole records."""

    if plain:
        hole_ids = await queries.list_favorite_ids(
            user_id=user_id, favorite_group_id=favorite_group_id
        )
        return FavoriteIdsResponse(data=hole_ids)

    return await queries.list_favorite_holes(
        user_id=user_id,
        favorite_group_id=favorite_group_id,
        order=order,
    )


@router.post(
    "/favorites",
    response_model=FavoriteSnapshotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_favorite(
    payload: AddFavoriteRequest,
    user_id: int = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteSnapshotResponse:
    """Favorite one hole in a group."""

    data = await service.add(
        user_id=user_id,
        hole_id=payload.hole_id,
        favorite_group_id=payload.favorite_group_id,
    )
    return FavoriteSnapshotResponse(message="Added to favorites", data=data)


@router.put(
    "/favorites",
    response_model=FavoriteSnapshotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def modify_favorites(
    payload: ModifyFavoritesRequest,
    user_id: int = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteSnapshotResponse:
    """Replace the contents of a group with an ordered list of holes."""

    data = await service.modify(
        user_id=user_id,
        hole_ids=payload.hole_ids,
        favorite_group_id=payload.favorite_group_id,
    )
    return FavoriteSnapshotResponse(message="Favorites updated", data=data)


@router.delete("/favorites", response_model=FavoriteSnapshotResponse)
async def delete_favorite(
    payload: DeleteFavoriteRequest,
    user_id: int = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteSnapshotResponse:
    data = await service.delete(
        user_id=user_id,
        hole_id=payload.hole_id,
        favorite_group_id=payload.favorite_group_id,
    )
    return FavoriteSnapshotResponse(message="Removed from favorites", data=data)


@router.get("/favorite_groups", response_model=FavoriteGroupListResponse)
async def list_favorite_groups(
    plain: bool = Query(False, description="Ignore ``order`` and sort by group id"),
    order: FavoriteGroupOrder = Query(FavoriteGroupOrder.TIME_CREATED),
    user_id: int = Depends(get_current_user_id),
    queries: FavoritesQueries = Depends(get_favorites_queries),
) -> FavoriteGroupListResponse:
    """List the caller's active favorite groups with their sizes."""

    groups = await queries.list_groups(user_id=user_id, order=None if plain else order)
    return FavoriteGroupListResponse(data=groups)


@router.post(
    "/favorite_groups",
    response_model=FavoriteSnapshotResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_favorite_group(
    payload: AddFavoriteGroupRequest,
    user_id: int = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteSnapshotResponse:
    data = await service.add_group(user_id=user_id, name=payload.name)
    return FavoriteSnapshotResponse(message="Favorite group created", data=data)


@router.put("/favorite_groups", response_model=FavoriteSnapshotResponse)
async def modify_favorite_group(
    payload: ModifyFavoriteGroupRequest,
    user_id: int = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteSnapshotResponse:
    data = await service.rename_group(
        user_id=user_id,
        favorite_group_id=payload.favorite_group_id,
        name=payload.name,
    )
    return FavoriteSnapshotResponse(message="Favorite group renamed", data=data)


@router.delete("/favorite_groups", response_model=FavoriteSnapshotResponse)
async def delete_favorite_group(
    payload: DeleteFavoriteGroupRequest,
    user_id: int = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteSnapshotResponse:
    """Delete a group; its favorites move to the default group."""

    data = await service.delete_group(
        user_id=user_id, favorite_group_id=payload.favorite_group_id
    )
    return FavoriteSnapshotResponse(message="Favorite group deleted", data=data)


@router.put("/favorite_groups/move", response_model=FavoriteSnapshotResponse)
async def move_favorites(
    payload: MoveFavoritesRequest,
    user_id: int = Depends(get_current_user_id),
    service: FavoritesService = Depends(get_favorites_service),
) -> FavoriteSnapshotResponse:
    """Move a batch of favorites between two groups, all or nothing."""

    data = await service.move(
        user_id=user_id,
        hole_ids=payload.hole_ids,
        from_group_id=payload.from_favorite_group_id,
        to_group_id=payload.to_favorite_group_id,
    )
    return FavoriteSnapshotResponse(message="Favorites moved", data=data)
