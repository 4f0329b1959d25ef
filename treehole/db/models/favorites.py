"""SQLAlchemy ORM models for user favorite groups and memberships.

A user files favorited holes into numbered groups.  Group ``0`` is the
protected default group every user owns; the other numbers are handed out
per user and never reused, which keeps group identifiers stable for clients
that cache them.  The single-group-per-hole policy lives in the database as
the ``uq_user_favorites_user_hole`` constraint so that concurrent writers are
arbitrated by the store rather than by application code.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    ForeignKeyConstraint,
    Index,
    Integer,
    String,
    UniqueConstraint,
    false,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from . import Base, Hole, utcnow

DEFAULT_FAVORITE_GROUP_ID = 0


class FavoriteGroup(Base):
    """Named bucket of favorites owned by a single user."""

    __tablename__ = "favorite_groups"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    favorite_group_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=False,
        doc="Per-user group number. ``0`` is the default group.",
    )
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    deleted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
        doc="Soft-delete flag; deleted groups keep their number reserved.",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    @property
    def is_default(self) -> bool:
        return self.favorite_group_id == DEFAULT_FAVORITE_GROUP_ID


class UserFavorite(Base):
    """Membership row linking a user, a hole and the group it sits in."""

    __tablename__ = "user_favorites"
    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "hole_id",
            name="uq_user_favorites_user_hole",
        ),
        ForeignKeyConstraint(
            ["user_id", "favorite_group_id"],
            ["favorite_groups.user_id", "favorite_groups.favorite_group_id"],
            name="fk_user_favorites_group",
        ),
        Index(
            "ix_user_favorites_user_group_position",
            "user_id",
            "favorite_group_id",
            "position",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    hole_id: Mapped[int] = mapped_column(
        ForeignKey("hole.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    favorite_group_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=DEFAULT_FAVORITE_GROUP_ID,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        doc=(
            "Zero-based ordinal inside the group.  Kept dense: every mutation"
            " renumbers the affected groups to 0..n-1."
        ),
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    hole: Mapped[Hole] = relationship("Hole")
