"""Add the team insights cache and per-user focus preferences.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "focus_preferences",
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("focus_start_hour", sa.Integer, nullable=False, server_default="9"),
        sa.Column("focus_end_hour", sa.Integer, nullable=False, server_default="12"),
        sa.Column("min_focus_block_minutes", sa.Integer, nullable=False, server_default="60"),
        sa.Column("max_meetings_per_day", sa.Integer, nullable=False, server_default="4"),
        sa.Column("work_start_hour", sa.Integer, nullable=False, server_default="9"),
        sa.Column("work_end_hour", sa.Integer, nullable=False, server_default="17"),
        sa.Column("work_days_json", sa.Text, nullable=False, server_default="[1,2,3,4,5]"),
        sa.Column("morning_focus_enabled", sa.Integer, nullable=False, server_default="1"),
        sa.Column("morning_focus_time", sa.Text, nullable=False, server_default="09:00"),
        sa.Column("daily_standup_enabled", sa.Integer, nullable=False, server_default="1"),
        sa.Column("daily_standup_time", sa.Text, nullable=False, server_default="10:00"),
        sa.Column("weekly_review_enabled", sa.Integer, nullable=False, server_default="1"),
        sa.Column("weekly_review_day", sa.Integer, nullable=False, server_default="5"),
        sa.Column("weekly_review_time", sa.Text, nullable=False, server_default="16:00"),
        sa.Column("updated_at", sa.Float, nullable=False),
        sa.PrimaryKeyConstraint("tenant_id", "user_id"),
    )

    op.create_table(
        "insights_cache",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("insight_type", sa.Text, nullable=False, server_default="daily"),
        sa.Column("scope", sa.Text, nullable=False, server_default="team"),
        sa.Column("insights_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("recommendations_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("summary", sa.Text),
        sa.Column("metrics_json", sa.Text, nullable=False, server_default="{}"),
        sa.Column("valid_from", sa.Float, nullable=False),
        sa.Column("valid_until", sa.Float, nullable=False),
    )
    op.create_index(
        "idx_insights_tenant_valid", "insights_cache", ["tenant_id", "insight_type", "valid_until"],
    )


def downgrade() -> None:
    op.drop_index("idx_insights_tenant_valid", table_name="insights_cache")
    op.drop_table("insights_cache")
    op.drop_table("focus_preferences")
