"""Pydantic schemas that power the favorites API surface."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FavoriteOrder(str, Enum):
    """Orderings accepted by the joined favorites listing."""

    ID = "id"
    TIME_CREATED = "time_created"
    HOLE_TIME_UPDATED = "hole_time_updated"


class FavoriteGroupOrder(str, Enum):
    """Orderings accepted by the favorite group listing."""

    ID = "id"
    TIME_CREATED = "time_created"
    TIME_UPDATED = "time_updated"


class AddFavoriteRequest(BaseModel):
    """Payload for bookmarking a single hole."""

    hole_id: int = Field(..., ge=1, description="Identifier of the hole to favorite")
    favorite_group_id: int = Field(
        0, ge=0, description="Target group; ``0`` is the default group."
    )


class ModifyFavoritesRequest(BaseModel):
    """Payload replacing a group's favorites with an ordered list of holes."""

    hole_ids: list[int] = Field(
        ...,
        description=(
            "Ordered hole identifiers.  The group ends up containing exactly"
            " these holes in this order."
        ),
    )
    favorite_group_id: int = Field(0, ge=0)

    @field_validator("hole_ids")
    @classmethod
    def _positive_ids(cls, value: list[int]) -> list[int]:
        if any(hole_id < 1 for hole_id in value):
            raise ValueError("hole_ids must be positive integers")
        return value


class DeleteFavoriteRequest(BaseModel):
    hole_id: int = Field(..., ge=1)
    favorite_group_id: int = Field(0, ge=0)


class MoveFavoritesRequest(BaseModel):
    """Payload moving a batch of favorites between two groups."""

    hole_ids: list[int] = Field(..., min_length=1)
    from_favorite_group_id: int = Field(..., ge=0)
    to_favorite_group_id: int = Field(..., ge=0)

    @field_validator("hole_ids")
    @classmethod
    def _positive_ids(cls, value: list[int]) -> list[int]:
        if any(hole_id < 1 for hole_id in value):
            raise ValueError("hole_ids must be positive integers")
        return value


class AddFavoriteGroupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=64)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Group names must not be blank")
        return cleaned


class ModifyFavoriteGroupRequest(AddFavoriteGroupRequest):
    favorite_group_id: int = Field(..., ge=0)


class DeleteFavoriteGroupRequest(BaseModel):
    favorite_group_id: int = Field(..., ge=0)


class FavoriteGroup(BaseModel):
    """Read model for a favorite group."""

    favorite_group_id: int
    user_id: int
    name: str
    count: int = Field(0, ge=0, description="Number of holes in the group")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_model(cls, group: Any, count: int) -> FavoriteGroup:
        """Build the read model from an ORM row and its membership count."""

        return cls.model_validate(group).model_copy(update={"count": count})


class HoleSummary(BaseModel):
    """Hole record returned by the joined favorites listing."""

    id: int
    division_id: int
    view: int
    reply: int
    hidden: bool
    locked: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FavoriteSnapshotResponse(BaseModel):
    """Envelope returned by every favorites mutation."""

    message: str
    data: list[int] = Field(
        default_factory=list,
        description="Every hole id the user currently has favorited.",
    )


class FavoriteIdsResponse(BaseModel):
    data: list[int]


class FavoriteGroupListResponse(BaseModel):
    data: list[FavoriteGroup]
