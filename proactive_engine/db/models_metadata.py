#  Proactive Engine - SQLAlchemy Table Metadata
#
#  Declarative Table definitions for Alembic autogenerate.
#  These mirror the SQLite schema but are NOT used at runtime;
#  the app still uses raw SQL via aiosqlite.
#
#  Depends on: (none)
#  Used by:    migrations/env.py (Alembic autogenerate)

from sqlalchemy import (
    Column,
    Float,
    Index,
    Integer,
    MetaData,
    PrimaryKeyConstraint,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)

metadata = MetaData()

rate_limit_windows = Table(
    "rate_limit_windows",
    metadata,
    Column("tenant_id", Text, nullable=False),
    Column("window_type", Text, nullable=False),
    Column("window_start", Float, nullable=False),
    Column("call_count", Integer, nullable=False, server_default="0"),
    Column("token_count", Integer, nullable=False, server_default="0"),
    Column("updated_at", Float, nullable=False),
    PrimaryKeyConstraint("tenant_id", "window_type"),
)

api_call_logs = Table(
    "api_call_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("tenant_id", Text, nullable=False),
    Column("user_id", Text),
    Column("service", Text, nullable=False),
    Column("operation", Text, nullable=False),
    Column("model", Text, nullable=False, server_default=""),
    Column("prompt_tokens", Integer, nullable=False, server_default="0"),
    Column("completion_tokens", Integer, nullable=False, server_default="0"),
    Column("total_tokens", Integer, nullable=False, server_default="0"),
    Column("duration_ms", Integer, nullable=False, server_default="0"),
    Column("success", Integer, nullable=False, server_default="1"),
    Column("error_message", Text),
    Column("created_at", Float, nullable=False),
)

task_health_snapshots = Table(
    "task_health_snapshots",
    metadata,
    Column("task_id", Text, primary_key=True),
    Column("tenant_id", Text, nullable=False),
    Column("task_title", Text, nullable=False, server_default=""),
    Column("health_score", Float, nullable=False),
    Column("risk_level", Text, nullable=False),
    Column("risk_factors_json", Text, nullable=False, server_default="[]"),
    Column("interventions_json", Text, nullable=False, server_default="[]"),
    Column("days_until_due", Integer),
    Column("computed_at", Float, nullable=False),
)

nudges = Table(
    "nudges",
    metadata,
    Column("id", Text, primary_key=True),
    Column("tenant_id", Text, nullable=False),
    Column("user_id", Text, nullable=False),
    Column("nudge_type", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("message", Text, nullable=False),
    Column("priority", Text, nullable=False, server_default="medium"),
    Column("related_task_id", Text),
    Column("related_event_id", Text),
    Column("status", Text, nullable=False, server_default="pending"),
    Column("suggested_actions_json", Text, nullable=False, server_default="[]"),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float),
    Column("acted_at", Float),
    Column("dismissed_at", Float),
)

nudge_preferences = Table(
    "nudge_preferences",
    metadata,
    Column("tenant_id", Text, nullable=False),
    Column("user_id", Text, nullable=False),
    Column("nudge_overdue_tasks", Integer, nullable=False, server_default="1"),
    Column("nudge_stale_tasks", Integer, nullable=False, server_default="1"),
    Column("nudge_upcoming_deadlines", Integer, nullable=False, server_default="1"),
    Column("nudge_upcoming_meetings", Integer, nullable=False, server_default="1"),
    Column("updated_at", Float, nullable=False),
    PrimaryKeyConstraint("tenant_id", "user_id"),
)

ceremonies = Table(
    "ceremonies",
    metadata,
    Column("id", Text, primary_key=True),
    Column("tenant_id", Text, nullable=False),
    Column("user_id", Text, nullable=False),
    Column("ceremony_type", Text, nullable=False),
    Column("period_key", Text, nullable=False),
    Column("status", Text, nullable=False, server_default="pending"),
    Column("ai_plan_json", Text),
    Column("ai_summary", Text),
    Column("responses_json", Text),
    Column("created_at", Float, nullable=False),
    Column("completed_at", Float),
    UniqueConstraint("tenant_id", "user_id", "ceremony_type", "period_key"),
)

focus_preferences = Table(
    "focus_preferences",
    metadata,
    Column("tenant_id", Text, nullable=False),
    Column("user_id", Text, nullable=False),
    Column("focus_start_hour", Integer, nullable=False, server_default="9"),
    Column("focus_end_hour", Integer, nullable=False, server_default="12"),
    Column("min_focus_block_minutes", Integer, nullable=False, server_default="60"),
    Column("max_meetings_per_day", Integer, nullable=False, server_default="4"),
    Column("work_start_hour", Integer, nullable=False, server_default="9"),
    Column("work_end_hour", Integer, nullable=False, server_default="17"),
    Column("work_days_json", Text, nullable=False, server_default="[1,2,3,4,5]"),
    Column("morning_focus_enabled", Integer, nullable=False, server_default="1"),
    Column("morning_focus_time", Text, nullable=False, server_default="09:00"),
    Column("daily_standup_enabled", Integer, nullable=False, server_default="1"),
    Column("daily_standup_time", Text, nullable=False, server_default="10:00"),
    Column("weekly_review_enabled", Integer, nullable=False, server_default="1"),
    Column("weekly_review_day", Integer, nullable=False, server_default="5"),
    Column("weekly_review_time", Text, nullable=False, server_default="16:00"),
    Column("updated_at", Float, nullable=False),
    PrimaryKeyConstraint("tenant_id", "user_id"),
)

insights_cache = Table(
    "insights_cache",
    metadata,
    Column("id", Text, primary_key=True),
    Column("tenant_id", Text, nullable=False),
    Column("insight_type", Text, nullable=False, server_default="daily"),
    Column("scope", Text, nullable=False, server_default="team"),
    Column("insights_json", Text, nullable=False, server_default="[]"),
    Column("recommendations_json", Text, nullable=False, server_default="[]"),
    Column("summary", Text),
    Column("metrics_json", Text, nullable=False, server_default="{}"),
    Column("valid_from", Float, nullable=False),
    Column("valid_until", Float, nullable=False),
)

# Local mirrors of the task and calendar systems
tasks = Table(
    "tasks",
    metadata,
    Column("id", Text, primary_key=True),
    Column("tenant_id", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("status", Text, nullable=False, server_default="todo"),
    Column("priority", Text, nullable=False, server_default="medium"),
    Column("assignee_id", Text),
    Column("created_by", Text),
    Column("due_at", Float),
    Column("created_at", Float, nullable=False),
    Column("completed_at", Float),
    Column("last_activity_at", Float),
    Column("estimated_hours", Float),
    Column("actual_hours", Float),
)

events = Table(
    "events",
    metadata,
    Column("id", Text, primary_key=True),
    Column("tenant_id", Text, nullable=False),
    Column("title", Text, nullable=False),
    Column("start_at", Float, nullable=False),
    Column("end_at", Float, nullable=False),
    Column("is_all_day", Integer, nullable=False, server_default="0"),
)

team_settings = Table(
    "team_settings",
    metadata,
    Column("tenant_id", Text, nullable=False),
    Column("feature_key", Text, nullable=False),
    Column("enabled", Integer, nullable=False, server_default="1"),
    PrimaryKeyConstraint("tenant_id", "feature_key"),
)

# Indexes
Index(
    "idx_nudges_pending_unique",
    nudges.c.tenant_id,
    nudges.c.user_id,
    nudges.c.nudge_type,
    func.coalesce(nudges.c.related_task_id, text("''")),
    func.coalesce(nudges.c.related_event_id, text("''")),
    unique=True,
    sqlite_where=nudges.c.status == "pending",
)
Index("idx_api_calls_tenant_time", api_call_logs.c.tenant_id, api_call_logs.c.created_at)
Index("idx_health_tenant_score", task_health_snapshots.c.tenant_id, task_health_snapshots.c.health_score)
Index("idx_nudges_user_status", nudges.c.tenant_id, nudges.c.user_id, nudges.c.status)
Index("idx_ceremonies_type_period", ceremonies.c.tenant_id, ceremonies.c.ceremony_type, ceremonies.c.period_key)
Index("idx_tasks_tenant_assignee", tasks.c.tenant_id, tasks.c.assignee_id)
Index("idx_events_tenant_start", events.c.tenant_id, events.c.start_at)
Index(
    "idx_insights_tenant_valid",
    insights_cache.c.tenant_id,
    insights_cache.c.insight_type,
    insights_cache.c.valid_until,
)
