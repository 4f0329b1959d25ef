"""Pydantic schemas for API requests and responses."""

from treehole.schemas.error import (  # noqa: F401
    ErrorResponse,
    ErrorType,
    ValidationErrorDetail,
    ValidationErrorResponse,
)
from treehole.schemas.favorites import (  # noqa: F401
    AddFavoriteGroupRequest,
    AddFavoriteRequest,
    DeleteFavoriteGroupRequest,
    DeleteFavoriteRequest,
    FavoriteGroup,
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
