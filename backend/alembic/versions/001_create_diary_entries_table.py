"""Create diary_entries table

Revision ID: 001
Revises: None
Create Date: 2024-05-01 00:00:00.000000+00:00

What:  Creates the `diary_entries` table behind SqlEntryRepository.
How:   Portable column types (JSON, TIMESTAMP WITH TIME ZONE) so the same
       migration runs on PostgreSQL and SQLite.

Rollback: downgrade() drops the table and every entry in it.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "diary_entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column(
            "user_id",
            sa.String(255),
            nullable=False,
            comment="Owning principal from the identity provider",
        ),
        sa.Column("caption", sa.Text(), nullable=False),
        sa.Column(
            "image_url",
            sa.Text(),
            nullable=False,
            comment="Inline data URL or external image URL",
        ),
        sa.Column("location", sa.JSON(), nullable=True),
        sa.Column("screen_info", sa.JSON(), nullable=False),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
            comment="When this entry was created (UTC)",
        ),
        sa.Column(
            "share_id",
            sa.String(64),
            nullable=True,
            comment="Public share token; kept when sharing is disabled",
        ),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("share_id", name="uq_diary_entries_share_id"),
        sqlite_autoincrement=True,
    )

    # Dashboard query: WHERE user_id = ? ORDER BY created_at DESC
    op.create_index(
        "idx_diary_entries_user_created",
        "diary_entries",
        ["user_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_diary_entries_user_created", table_name="diary_entries")
    op.drop_table("diary_entries")
