"""Initial schema: quota ledger, health snapshots, nudges, ceremonies, and local task/calendar mirrors.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "rate_limit_windows",
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("window_type", sa.Text, nullable=False),
        sa.Column("window_start", sa.Float, nullable=False),
        sa.Column("call_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("token_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("updated_at", sa.Float, nullable=False),
        sa.PrimaryKeyConstraint("tenant_id", "window_type"),
    )

    op.create_table(
        "api_call_logs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("user_id", sa.Text),
        sa.Column("service", sa.Text, nullable=False),
        sa.Column("operation", sa.Text, nullable=False),
        sa.Column("model", sa.Text, nullable=False, server_default=""),
        sa.Column("prompt_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completion_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("duration_ms", sa.Integer, nullable=False, server_default="0"),
        sa.Column("success", sa.Integer, nullable=False, server_default="1"),
        sa.Column("error_message", sa.Text),
        sa.Column("created_at", sa.Float, nullable=False),
    )

    op.create_table(
        "task_health_snapshots",
        sa.Column("task_id", sa.Text, primary_key=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("task_title", sa.Text, nullable=False, server_default=""),
        sa.Column("health_score", sa.Float, nullable=False),
        sa.Column("risk_level", sa.Text, nullable=False),
        sa.Column("risk_factors_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("interventions_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("days_until_due", sa.Integer),
        sa.Column("computed_at", sa.Float, nullable=False),
    )

    op.create_table(
        "nudges",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("nudge_type", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("priority", sa.Text, nullable=False, server_default="medium"),
        sa.Column("related_task_id", sa.Text),
        sa.Column("related_event_id", sa.Text),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("suggested_actions_json", sa.Text, nullable=False, server_default="[]"),
        sa.Column("created_at", sa.Float, nullable=False),
        sa.Column("expires_at", sa.Float),
        sa.Column("acted_at", sa.Float),
        sa.Column("dismissed_at", sa.Float),
    )

    op.create_table(
        "nudge_preferences",
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("nudge_overdue_tasks", sa.Integer, nullable=False, server_default="1"),
        sa.Column("nudge_stale_tasks", sa.Integer, nullable=False, server_default="1"),
        sa.Column("nudge_upcoming_deadlines", sa.Integer, nullable=False, server_default="1"),
        sa.Column("nudge_upcoming_meetings", sa.Integer, nullable=False, server_default="1"),
        sa.Column("updated_at", sa.Float, nullable=False),
        sa.PrimaryKeyConstraint("tenant_id", "user_id"),
    )

    op.create_table(
        "ceremonies",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("user_id", sa.Text, nullable=False),
        sa.Column("ceremony_type", sa.Text, nullable=False),
        sa.Column("period_key", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("ai_plan_json", sa.Text),
        sa.Column("ai_summary", sa.Text),
        sa.Column("responses_json", sa.Text),
        sa.Column("created_at", sa.Float, nullable=False),
        sa.Column("completed_at", sa.Float),
        sa.UniqueConstraint("tenant_id", "user_id", "ceremony_type", "period_key"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="todo"),
        sa.Column("priority", sa.Text, nullable=False, server_default="medium"),
        sa.Column("assignee_id", sa.Text),
        sa.Column("created_by", sa.Text),
        sa.Column("due_at", sa.Float),
        sa.Column("created_at", sa.Float, nullable=False),
        sa.Column("completed_at", sa.Float),
        sa.Column("last_activity_at", sa.Float),
        sa.Column("estimated_hours", sa.Float),
        sa.Column("actual_hours", sa.Float),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Text, primary_key=True),
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("start_at", sa.Float, nullable=False),
        sa.Column("end_at", sa.Float, nullable=False),
        sa.Column("is_all_day", sa.Integer, nullable=False, server_default="0"),
    )

    op.create_table(
        "team_settings",
        sa.Column("tenant_id", sa.Text, nullable=False),
        sa.Column("feature_key", sa.Text, nullable=False),
        sa.Column("enabled", sa.Integer, nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("tenant_id", "feature_key"),
    )

    # Expression index; op.create_index can't express COALESCE portably
    op.execute(
        "CREATE UNIQUE INDEX idx_nudges_pending_unique "
        "ON nudges(tenant_id, user_id, nudge_type, "
        "COALESCE(related_task_id, ''), COALESCE(related_event_id, '')) "
        "WHERE status = 'pending'"
    )
    op.create_index("idx_api_calls_tenant_time", "api_call_logs", ["tenant_id", "created_at"])
    op.create_index("idx_health_tenant_score", "task_health_snapshots", ["tenant_id", "health_score"])
    op.create_index("idx_nudges_user_status", "nudges", ["tenant_id", "user_id", "status"])
    op.create_index("idx_ceremonies_type_period", "ceremonies", ["tenant_id", "ceremony_type", "period_key"])
    op.create_index("idx_tasks_tenant_assignee", "tasks", ["tenant_id", "assignee_id"])
    op.create_index("idx_events_tenant_start", "events", ["tenant_id", "start_at"])


def downgrade() -> None:
    for index in (
        "idx_events_tenant_start",
        "idx_tasks_tenant_assignee",
        "idx_ceremonies_type_period",
        "idx_nudges_user_status",
        "idx_health_tenant_score",
        "idx_api_calls_tenant_time",
        "idx_nudges_pending_unique",
    ):
        op.execute(f"DROP INDEX IF EXISTS {index}")
    for table in (
        "team_settings", "events", "tasks", "ceremonies", "nudge_preferences",
        "nudges", "task_health_snapshots", "api_call_logs", "rate_limit_windows",
    ):
        op.drop_table(table)
