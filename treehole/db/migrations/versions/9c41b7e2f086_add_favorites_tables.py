"""add favorites tables

Revision ID: 9c41b7e2f086
Revises: 5a0e3c7d12f4
Create Date: 2026-09-28 10:40:00.000000
"""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "9c41b7e2f086"
down_revision: str | None = "5a0e3c7d12f4"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "favorite_groups",
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("favorite_group_id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("user_id", "favorite_group_id"),
    )

    op.create_table(
        "user_favorites",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("hole_id", sa.Integer(), nullable=False),
        sa.Column(
            "favorite_group_id",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "position",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.ForeignKeyConstraint(
            ["hole_id"],
            ["hole.id"],
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["user_id", "favorite_group_id"],
            ["favorite_groups.user_id", "favorite_groups.favorite_group_id"],
            name="fk_user_favorites_group",
        ),
        sa.UniqueConstraint(
            "user_id",
            "hole_id",
            name="uq_user_favorites_user_hole",
        ),
    )

    op.create_index(
        "ix_user_favorites_hole_id",
        "user_favorites",
        ["hole_id"],
    )
    op.create_index(
        "ix_user_favorites_user_group_position",
        "user_favorites",
        ["user_id", "favorite_group_id", "position"],
    )


def downgrade() -> None:
    op.drop_index("ix_user_favorites_user_group_position", table_name="user_favorites")
    op.drop_index("ix_user_favorites_hole_id", table_name="user_favorites")
    op.drop_table("user_favorites")
    op.drop_table("favorite_groups")
