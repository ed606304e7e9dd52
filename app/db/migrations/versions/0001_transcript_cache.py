"""transcript cache and processed updates

Revision ID: 0001_transcript_cache
Revises: 
Create Date: 2026-10-18 00:00:00

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_transcript_cache"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transcript_cache",
        sa.Column("media_hash", sa.String(length=64), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("media_hash", "kind"),
    )
    op.create_index("ix_transcript_cache_created_at", "transcript_cache", ["created_at"])

    op.create_table(
        "processed_updates",
        sa.Column("update_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("processed_updates")
    op.drop_index("ix_transcript_cache_created_at", table_name="transcript_cache")
    op.drop_table("transcript_cache")
