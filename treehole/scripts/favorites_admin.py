#!/usr/bin/env python
"""Operator commands for the favorites tables.

Usage:
    python -m treehole.scripts.favorites_admin show 42
    python -m treehole.scripts.favorites_admin show 42 --json
    python -m treehole.scripts.favorites_admin check-positions --exit-code
    python -m treehole.scripts.favorites_admin normalize-positions
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass
from typing import TypeVar

import click
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from treehole.db.connection import Database, StorageAccess, get_database
from treehole.db.models import FavoriteGroup, UserFavorite
from treehole.services.favorites import FavoritesConfig, FavoritesPersistence
from treehole.settings import get_settings

T = TypeVar("T")


@dataclass(frozen=True)
class GroupIssue:
    user_id: int
    favorite_group_id: int
    problem: str


async def find_group_issues(session: AsyncSession) -> list[GroupIssue]:
    """Return groups whose memberships break the storage invariants.

    Two problems are reported: positions that are not exactly ``0..n-1`` and
    memberships still filed under a soft-deleted group.
    """

    issues: list[GroupIssue] = []

    positions = (
        select(
            UserFavorite.user_id,
            UserFavorite.favorite_group_id,
            func.count(UserFavorite.id),
            func.min(UserFavorite.position),
            func.max(UserFavorite.position),
            func.count(func.distinct(UserFavorite.position)),
        )
        .group_by(UserFavorite.user_id, UserFavorite.favorite_group_id)
        .order_by(UserFavorite.user_id, UserFavorite.favorite_group_id)
    )
    for user_id, group_id, total, lowest, highest, distinct in await session.execute(positions):
        if lowest != 0 or highest != total - 1 or distinct != total:
            issues.append(GroupIssue(user_id, group_id, "positions are not dense"))

    orphans = (
        select(UserFavorite.user_id, UserFavorite.favorite_group_id)
        .join(
            FavoriteGroup,
            (FavoriteGroup.user_id == UserFavorite.user_id)
            & (FavoriteGroup.favorite_group_id == UserFavorite.favorite_group_id),
        )
        .where(FavoriteGroup.deleted.is_(True))
        .distinct()
        .order_by(UserFavorite.user_id, UserFavorite.favorite_group_id)
    )
    for user_id, group_id in await session.execute(orphans):
        issues.append(GroupIssue(user_id, group_id, "memberships in a deleted group"))

    return issues


async def repair_positions(session: AsyncSession, config: FavoritesConfig) -> int:
    """Renumber every group reported with non-dense positions; return how many."""

    persistence = FavoritesPersistence(session, config)
    repaired = 0
    for issue in await find_group_issues(session):
        if issue.problem != "positions are not dense":
            continue
        await persistence.ensure_default_group(issue.user_id)
        await persistence.normalize_positions(issue.user_id, issue.favorite_group_id)
        repaired += 1
    return repaired


async def describe_user(session: AsyncSession, user_id: int) -> dict:
    persistence = FavoritesPersistence(session)
    groups = []
    for group, count in await persistence.list_groups(user_id):
        groups.append(
            {
                "favorite_group_id": group.favorite_group_id,
                "name": group.name,
                "count": count,
                "hole_ids": await persistence.favorite_hole_ids(
                    user_id, group.favorite_group_id
                ),
            }
        )
    return {"user_id": user_id, "groups": groups}


def _run(work: Callable[[Database], Awaitable[T]]) -> T:
    """Run ``work`` against the configured database and dispose it afterwards."""

    async def runner() -> T:
        database = get_database()
        try:
            return await work(database)
        finally:
            await database.dispose()

    return asyncio.run(runner())


@click.group()
def cli() -> None:
    """Inspect and repair favorites data."""


@cli.command()
@click.argument("user_id", type=int)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def show(user_id: int, output_json: bool) -> None:
    """Print the groups and favorites of USER_ID as stored on the primary."""

    async def work(database: Database) -> dict:
        async with database.session(StorageAccess.READ_AFTER_WRITE) as session:
            return await describe_user(session, user_id)

    report = _run(work)
    if output_json:
        click.echo(json.dumps(report, indent=2))
        return

    if not report["groups"]:
        click.echo(f"User {user_id} has no favorite groups yet")
        return
    for group in report["groups"]:
        click.echo(
            click.style(f"[{group['favorite_group_id']}] {group['name']}", fg="cyan", bold=True)
            + f" ({group['count']})"
        )
        click.echo("  " + (", ".join(map(str, group["hole_ids"])) or "-"))


@cli.command("check-positions")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.option(
    "--exit-code",
    is_flag=True,
    help="Exit with code 1 if issues detected (for CI/CD)",
)
def check_positions(output_json: bool, exit_code: bool) -> None:
    """Report groups with gapped positions or memberships in deleted groups."""

    async def work(database: Database) -> list[GroupIssue]:
        async with database.session(StorageAccess.READ_AFTER_WRITE) as session:
            return await find_group_issues(session)

    issues = _run(work)
    if output_json:
        click.echo(json.dumps([asdict(issue) for issue in issues], indent=2))
    elif not issues:
        click.echo(click.style("All favorite groups are consistent", fg="green"))
    else:
        for issue in issues:
            click.echo(
                click.style("✗ ", fg="red")
                + f"user {issue.user_id} group {issue.favorite_group_id}: {issue.problem}"
            )

    if exit_code and issues:
        sys.exit(1)


@cli.command("normalize-positions")
def normalize_positions() -> None:
    """Renumber gapped groups to 0..n-1 in a single transaction."""

    config = FavoritesConfig.from_settings(get_settings())

    async def work(database: Database) -> int:
        async with database.session(StorageAccess.WRITE) as session:
            return await repair_positions(session, config)

    repaired = _run(work)
    click.echo(f"Renumbered {repaired} favorite group(s)")


if __name__ == "__main__":
    cli()
