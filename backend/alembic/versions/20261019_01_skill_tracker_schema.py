"""Skills, diary entries and progress updates."""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "20261019_01_skill_tracker_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "skills",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("current_level", sa.String(length=32), nullable=False, server_default="beginner"),
        sa.Column("completed_levels", sa.JSON(), nullable=False),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_hours", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_skills_progress_range"),
    )
    op.create_index("ix_skills_user_created", "skills", ["user_id", "created_at"])

    op.create_table(
        "skill_entries",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("skill_id", sa.String(length=36), sa.ForeignKey("skills.id", ondelete="CASCADE"), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("hours", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    )
    op.create_index("ix_skill_entries_skill_id", "skill_entries", ["skill_id"])

    op.create_table(
        "progress_updates",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("skill_id", sa.String(length=36), sa.ForeignKey("skills.id", ondelete="CASCADE"), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_progress_updates_range"),
    )
    op.create_index("ix_progress_updates_skill_id", "progress_updates", ["skill_id"])


def downgrade() -> None:
    op.drop_index("ix_progress_updates_skill_id", table_name="progress_updates")
    op.drop_table("progress_updates")
    op.drop_index("ix_skill_entries_skill_id", table_name="skill_entries")
    op.drop_table("skill_entries")
    op.drop_index("ix_skills_user_created", table_name="skills")
    op.drop_table("skills")
