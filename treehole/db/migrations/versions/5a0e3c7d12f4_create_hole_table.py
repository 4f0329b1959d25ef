"""create hole table

Revision ID: 5a0e3c7d12f4
Revises:
Create Date: 2026-09-28 10:12:00.000000

Standalone deployments own a minimal ``hole`` table; the favorites tables
only need its primary key and the columns the joined listing returns.
"""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa

revision: str = "5a0e3c7d12f4"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "hole",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("division_id", sa.Integer(), nullable=False),
        sa.Column("view", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reply", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("hidden", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("locked", sa.Boolean(), nullable=False, server_default=sa.false()),
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
    )
    op.create_index("ix_hole_division_id", "hole", ["division_id"])
    op.create_index("ix_hole_updated_at", "hole", ["updated_at"])


def downgrade() -> None:
    op.drop_index("ix_hole_updated_at", table_name="hole")
    op.drop_index("ix_hole_division_id", table_name="hole")
    op.drop_table("hole")
