"""Database-oriented helpers for favorite groups and memberships.

Every method runs on the session handed to the constructor; callers own the
transaction so several calls can be composed into one atomic unit.  Positions
inside a group are kept dense (``0..n-1``): appends land on the tail and every
removal renumbers what is left without changing its relative order.
Mutating callers start with :meth:`FavoritesPersistence.ensure_default_group`,
which locks the user's default group row so positions are never computed by
two transactions of the same user at once.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy import Select, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from treehole.db.models import FavoriteGroup, Hole, UserFavorite, utcnow
from treehole.db.models.favorites import DEFAULT_FAVORITE_GROUP_ID
from treehole.schemas.favorites import FavoriteGroupOrder, FavoriteOrder
from treehole.settings import AppSettings

from .errors import ConflictError, ForbiddenError, NotFoundError

_UNIQUE_MEMBERSHIP_CONSTRAINT = "uq_user_favorites_user_hole"


@dataclass(frozen=True)
class FavoritesConfig:
    """Runtime knobs injected into the favorites components."""

    max_groups: int = 10
    default_group_name: str = "Default"

    @classmethod
    def from_settings(cls, settings: AppSettings) -> FavoritesConfig:
        return cls(
            max_groups=settings.max_favorite_groups,
            default_group_name=settings.default_favorite_group_name,
        )


def _unique(hole_ids: Iterable[int]) -> list[int]:
    """Drop repeated ids while keeping the first occurrence order."""

    return list(dict.fromkeys(hole_ids))


def lock_user_statement(user_id: int) -> Select:
    """Row lock on the default group that serializes writers of one user.

    SQLite renders no ``FOR UPDATE``; there ``BEGIN IMMEDIATE`` already
    admits a single writer.
    """

    return (
        select(FavoriteGroup)
        .where(
            FavoriteGroup.user_id == user_id,
            FavoriteGroup.favorite_group_id == DEFAULT_FAVORITE_GROUP_ID,
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def _is_duplicate_membership(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return _UNIQUE_MEMBERSHIP_CONSTRAINT in message or (
        "UNIQUE constraint failed: user_favorites.user_id, user_favorites.hole_id"
        in message
    )


class FavoritesPersistence:
    """Encapsulates SQLAlchemy operations required by the favorites domain."""

    def __init__(self, session: AsyncSession, config: FavoritesConfig | None = None) -> None:
        self._session = session
        self._config = config or FavoritesConfig()

    # -- groups --------------------------------------------------------------

    async def ensure_default_group(self, user_id: int) -> FavoriteGroup:
        """Return the user's default group locked for this transaction.

        The insert is ``ON CONFLICT DO NOTHING`` so two first requests of the
        same user racing each other both end up with the single row.  The row
        is then re-read ``FOR UPDATE``: every mutating method starts here, so
        tail positions and new group numbers are computed by one writer of
        the user at a time.
        """

        dialect = self._session.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        now = utcnow()
        statement = (
            insert(FavoriteGroup)
            .values(
                user_id=user_id,
                favorite_group_id=DEFAULT_FAVORITE_GROUP_ID,
                name=self._config.default_group_name,
                deleted=False,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "favorite_group_id"])
        )
        await self._session.execute(statement)
        group = (await self._session.execute(lock_user_statement(user_id))).scalar_one()
        if group.deleted:
            group.deleted = False
            await self._session.flush()
        return group

    async def require_group(self, user_id: int, favorite_group_id: int) -> FavoriteGroup:
        """Load an active group of ``user_id`` or raise :class:`NotFoundError`."""

        group = await self._session.get(FavoriteGroup, (user_id, favorite_group_id))
        if group is None or group.deleted:
            raise NotFoundError(f"favorite group {favorite_group_id} not found")
        return group

    async def add_group(self, user_id: int, name: str) -> FavoriteGroup:
        """Create a group numbered one past the highest number ever used."""

        active_query = select(func.count()).select_from(FavoriteGroup).where(
            FavoriteGroup.user_id == user_id,
            FavoriteGroup.deleted.is_(False),
        )
        active = (await self._session.execute(active_query)).scalar_one()
        if active >= self._config.max_groups:
            raise ForbiddenError(
                f"favorite group limit reached ({self._config.max_groups})"
            )

        highest_query = select(func.max(FavoriteGroup.favorite_group_id)).where(
            FavoriteGroup.user_id == user_id
        )
        highest = (await self._session.execute(highest_query)).scalar_one_or_none()
        next_id = (highest if highest is not None else DEFAULT_FAVORITE_GROUP_ID) + 1

        group = FavoriteGroup(user_id=user_id, favorite_group_id=next_id, name=name)
        self._session.add(group)
        try:
            await self._session.flush()
        except IntegrityError as exc:
            raise ConflictError(
                f"favorite group {next_id} was created concurrently"
            ) from exc
        return group

    async def rename_group(
        self, user_id: int, favorite_group_id: int, name: str
    ) -> FavoriteGroup:
        group = await self.require_group(user_id, favorite_group_id)
        group.name = name
        group.updated_at = utcnow()
        await self._session.flush()
        return group

    async def delete_group(self, user_id: int, favorite_group_id: int) -> int:
        """Soft-delete a group after moving its favorites to the default group.

        Returns the number of memberships that were reassigned.
        """

        if favorite_group_id == DEFAULT_FAVORITE_GROUP_ID:
            raise ForbiddenError("the default favorite group cannot be deleted")

        group = await self.require_group(user_id, favorite_group_id)
        default_group = await self.ensure_default_group(user_id)

        memberships = await self.list_memberships(user_id, favorite_group_id)
        tail = await self.count_memberships(user_id, DEFAULT_FAVORITE_GROUP_ID)
        for offset, membership in enumerate(memberships):
            membership.favorite_group_id = DEFAULT_FAVORITE_GROUP_ID
            membership.position = tail + offset

        now = utcnow()
        group.deleted = True
        group.updated_at = now
        if memberships:
            default_group.updated_at = now
        await self._session.flush()
        return len(memberships)

    async def list_groups(
        self, user_id: int, order: FavoriteGroupOrder | None = None
    ) -> list[tuple[FavoriteGroup, int]]:
        """Return active groups paired with their membership counts.

        ``order=None`` is the plain listing, ascending by group number.
        """

        counts = (
            select(
                UserFavorite.favorite_group_id.label("favorite_group_id"),
                func.count(UserFavorite.id).label("count"),
            )
            .where(UserFavorite.user_id == user_id)
            .group_by(UserFavorite.favorite_group_id)
            .subquery()
        )
        query = (
            select(FavoriteGroup, func.coalesce(counts.c.count, 0))
            .outerjoin(
                counts, counts.c.favorite_group_id == FavoriteGroup.favorite_group_id
            )
            .where(
                FavoriteGroup.user_id == user_id,
                FavoriteGroup.deleted.is_(False),
            )
        )

        if order is FavoriteGroupOrder.ID:
            query = query.order_by(FavoriteGroup.favorite_group_id.desc())
        elif order is FavoriteGroupOrder.TIME_CREATED:
            query = query.order_by(
                FavoriteGroup.created_at.desc(), FavoriteGroup.favorite_group_id.desc()
            )
        elif order is FavoriteGroupOrder.TIME_UPDATED:
            query = query.order_by(
                FavoriteGroup.updated_at.desc(), FavoriteGroup.favorite_group_id.desc()
            )
        else:
            query = query.order_by(FavoriteGroup.favorite_group_id.asc())

        result = await self._session.execute(query)
        return [(group, int(count)) for group, count in result.all()]

    # -- memberships ---------------------------------------------------------

    async def list_memberships(
        self, user_id: int, favorite_group_id: int
    ) -> list[UserFavorite]:
        query = (
            select(UserFavorite)
            .where(
                UserFavorite.user_id == user_id,
                UserFavorite.favorite_group_id == favorite_group_id,
            )
            .order_by(UserFavorite.position, UserFavorite.id)
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def count_memberships(self, user_id: int, favorite_group_id: int) -> int:
        query = select(func.count()).select_from(UserFavorite).where(
            UserFavorite.user_id == user_id,
            UserFavorite.favorite_group_id == favorite_group_id,
        )
        return (await self._session.execute(query)).scalar_one()

    async def find_membership(self, user_id: int, hole_id: int) -> UserFavorite | None:
        query = select(UserFavorite).where(
            UserFavorite.user_id == user_id,
            UserFavorite.hole_id == hole_id,
        )
        result = await self._session.execute(query)
        return result.scalar_one_or_none()

    async def add_membership(
        self, user_id: int, hole_id: int, favorite_group_id: int
    ) -> UserFavorite:
        """Append ``hole_id`` to the tail of a group.

        A hole lives in at most one group per user; a second favorite of the
        same hole raises :class:`ConflictError`, including when it loses a
        race against a concurrent insert.
        """

        group = await self.require_group(user_id, favorite_group_id)
        await self.require_holes([hole_id])

        existing = await self.find_membership(user_id, hole_id)
        if existing is not None:
            raise ConflictError(
                f"hole {hole_id} is already in favorite group {existing.favorite_group_id}"
            )

        membership = UserFavorite(
            user_id=user_id,
            hole_id=hole_id,
            favorite_group_id=favorite_group_id,
            position=await self.count_memberships(user_id, favorite_group_id),
        )
        self._session.add(membership)
        group.updated_at = utcnow()
        await self._flush_memberships()
        return membership

    async def remove_membership(
        self, user_id: int, hole_id: int, favorite_group_id: int
    ) -> None:
        query = select(UserFavorite).where(
            UserFavorite.user_id == user_id,
            UserFavorite.hole_id == hole_id,
            UserFavorite.favorite_group_id == favorite_group_id,
        )
        membership = (await self._session.execute(query)).scalar_one_or_none()
        if membership is None:
            raise NotFoundError(
                f"hole {hole_id} is not in favorite group {favorite_group_id}"
            )

        await self._session.delete(membership)
        await self._session.flush()
        await self.normalize_positions(user_id, favorite_group_id)
        await self._touch_groups(user_id, [favorite_group_id])

    async def move_memberships(
        self,
        user_id: int,
        hole_ids: Sequence[int],
        from_group_id: int,
        to_group_id: int,
    ) -> None:
        """Move a batch of favorites to the tail of another group.

        Every precondition is checked before the first row changes, so a
        failing id leaves the whole batch where it was.
        """

        hole_ids = _unique(hole_ids)
        await self.require_group(user_id, to_group_id)

        query = select(UserFavorite).where(
            UserFavorite.user_id == user_id,
            UserFavorite.favorite_group_id == from_group_id,
            UserFavorite.hole_id.in_(hole_ids),
        )
        by_hole = {row.hole_id: row for row in (await self._session.execute(query)).scalars()}
        missing = [hole_id for hole_id in hole_ids if hole_id not in by_hole]
        if missing:
            raise NotFoundError(
                f"holes {missing} are not in favorite group {from_group_id}"
            )

        if from_group_id == to_group_id:
            return

        tail = await self.count_memberships(user_id, to_group_id)
        for offset, hole_id in enumerate(hole_ids):
            membership = by_hole[hole_id]
            membership.favorite_group_id = to_group_id
            membership.position = tail + offset
        await self._session.flush()

        await self.normalize_positions(user_id, from_group_id)
        await self._touch_groups(user_id, [from_group_id, to_group_id])

    async def replace_group_memberships(
        self, user_id: int, hole_ids: Sequence[int], favorite_group_id: int
    ) -> None:
        """Make a group hold exactly ``hole_ids`` in the given order.

        Holes favorited in other groups are pulled in, unknown ones are
        inserted and members missing from ``hole_ids`` are dropped.
        """

        hole_ids = _unique(hole_ids)
        await self.require_group(user_id, favorite_group_id)
        await self.require_holes(hole_ids)

        condition = UserFavorite.favorite_group_id == favorite_group_id
        if hole_ids:
            condition = or_(condition, UserFavorite.hole_id.in_(hole_ids))
        query = select(UserFavorite).where(UserFavorite.user_id == user_id, condition)
        current = list((await self._session.execute(query)).scalars())

        wanted = set(hole_ids)
        for membership in current:
            if membership.favorite_group_id == favorite_group_id and membership.hole_id not in wanted:
                await self._session.delete(membership)

        by_hole = {membership.hole_id: membership for membership in current}
        source_groups: set[int] = set()
        for position, hole_id in enumerate(hole_ids):
            membership = by_hole.get(hole_id)
            if membership is None:
                self._session.add(
                    UserFavorite(
                        user_id=user_id,
                        hole_id=hole_id,
                        favorite_group_id=favorite_group_id,
                        position=position,
                    )
                )
                continue
            if membership.favorite_group_id != favorite_group_id:
                source_groups.add(membership.favorite_group_id)
                membership.favorite_group_id = favorite_group_id
            membership.position = position

        await self._flush_memberships()
        for source_group_id in sorted(source_groups):
            await self.normalize_positions(user_id, source_group_id)
        await self._touch_groups(user_id, [favorite_group_id, *sorted(source_groups)])

    async def normalize_positions(self, user_id: int, favorite_group_id: int) -> None:
        """Ensure positions are contiguous after mutations."""

        memberships = await self.list_memberships(user_id, favorite_group_id)
        for index, membership in enumerate(memberships):
            membership.position = index
        await self._session.flush()

    # -- reads ---------------------------------------------------------------

    async def require_holes(self, hole_ids: Sequence[int]) -> None:
        if not hole_ids:
            return
        query = select(Hole.id).where(Hole.id.in_(hole_ids))
        found = set((await self._session.execute(query)).scalars())
        missing = [hole_id for hole_id in hole_ids if hole_id not in found]
        if missing:
            noun = "hole" if len(missing) == 1 else "holes"
            raise NotFoundError(f"{noun} {', '.join(map(str, missing))} not found")

    async def favorite_hole_ids(
        self, user_id: int, favorite_group_id: int | None = None
    ) -> list[int]:
        """Return favorited hole ids ordered by group number then position."""

        query = select(UserFavorite.hole_id).where(UserFavorite.user_id == user_id)
        if favorite_group_id is not None:
            query = query.where(UserFavorite.favorite_group_id == favorite_group_id)
        query = query.order_by(
            UserFavorite.favorite_group_id, UserFavorite.position, UserFavorite.id
        )
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def favorite_hole_ids_by_group(self, user_id: int) -> dict[int, list[int]]:
        """Same ordering as :meth:`favorite_hole_ids`, keyed by group number."""

        query = (
            select(UserFavorite.favorite_group_id, UserFavorite.hole_id)
            .where(UserFavorite.user_id == user_id)
            .order_by(UserFavorite.favorite_group_id, UserFavorite.position, UserFavorite.id)
        )
        by_group: dict[int, list[int]] = {}
        for favorite_group_id, hole_id in (await self._session.execute(query)).all():
            by_group.setdefault(favorite_group_id, []).append(hole_id)
        return by_group

    async def favorite_holes(
        self,
        user_id: int,
        favorite_group_id: int | None,
        order: FavoriteOrder | None,
    ) -> list[Hole]:
        """Join memberships to holes.

        ``order=None`` leaves iteration order to the database.
        """

        join_condition = (UserFavorite.hole_id == Hole.id) & (
            UserFavorite.user_id == user_id
        )
        if favorite_group_id is not None:
            join_condition = join_condition & (
                UserFavorite.favorite_group_id == favorite_group_id
            )
        query = select(Hole).join(UserFavorite, join_condition)

        if order is FavoriteOrder.ID:
            query = query.order_by(Hole.id.desc())
        elif order is FavoriteOrder.TIME_CREATED:
            query = query.order_by(UserFavorite.created_at.desc(), Hole.id.desc())
        elif order is FavoriteOrder.HOLE_TIME_UPDATED:
            query = query.order_by(Hole.updated_at.desc())

        result = await self._session.execute(query)
        return list(result.scalars().all())

    # -- helpers -------------------------------------------------------------

    async def _flush_memberships(self) -> None:
        try:
            await self._session.flush()
        except IntegrityError as exc:
            if _is_duplicate_membership(exc):
                raise ConflictError("hole is already in another favorite group") from exc
            raise

    async def _touch_groups(self, user_id: int, favorite_group_ids: Iterable[int]) -> None:
        now = utcnow()
        for favorite_group_id in favorite_group_ids:
            group = await self._session.get(FavoriteGroup, (user_id, favorite_group_id))
            if group is not None:
                group.updated_at = now
        await self._session.flush()
