from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class Hole(Base):
    """Forum post owned by the hole subsystem.

    The favorites code only joins against this table and checks that a hole
    exists before bookmarking it; rows are never written from here.
    """

    __tablename__ = "hole"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    division_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    view: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reply: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )


from .favorites import FavoriteGroup, UserFavorite  # noqa: E402

__all__ = ["Base", "FavoriteGroup", "Hole", "UserFavorite", "utcnow"]
