#  Proactive Engine - Collaborator Readers
#
#  Read-only interfaces to the task list, calendar, and team feature flags,
#  plus SQL implementations over the engine's own store. Deployments with
#  external task or calendar systems override these in the container.
#
#  Depends on: db/connection.py, models/schemas.py
#  Used by:    container.py, services/health.py, services/nudges.py,
#              services/workload.py, services/ceremonies.py,
#              services/capabilities.py

from typing import Protocol

from proactive_engine.models.enums import TaskStatus
from proactive_engine.models.schemas import EventRecord, TaskRecord

# urgent and critical share the top tier
PRIORITY_ORDER_SQL = (
    "CASE priority WHEN 'urgent' THEN 0 WHEN 'critical' THEN 0 "
    "WHEN 'high' THEN 1 WHEN 'medium' THEN 2 ELSE 3 END"
)

OPEN_STATUSES = (TaskStatus.TODO.value, TaskStatus.IN_PROGRESS.value, TaskStatus.BLOCKED.value)


class TaskReader(Protocol):
    async def get_tasks(
        self,
        tenant_id: str,
        *,
        assignee_id: str | None = None,
        created_by: str | None = None,
        statuses: tuple[str, ...] | None = None,
        due_after: float | None = None,
        due_before: float | None = None,
        completed_after: float | None = None,
        completed_before: float | None = None,
        created_after: float | None = None,
        created_before: float | None = None,
        limit: int | None = None,
    ) -> list[TaskRecord]: ...

    async def get_task_by_id(self, task_id: str) -> TaskRecord | None: ...


class CalendarReader(Protocol):
    async def get_events(self, tenant_id: str, start: float, end: float) -> list[EventRecord]: ...


class FeatureFlagReader(Protocol):
    async def get_proactive_feature_status(self, tenant_id: str, feature_key: str) -> bool: ...


class SqlTaskReader:
    """TaskReader over the tasks table."""

    def __init__(self, db):
        self._db = db

    async def get_tasks(
        self,
        tenant_id: str,
        *,
        assignee_id: str | None = None,
        created_by: str | None = None,
        statuses: tuple[str, ...] | None = None,
        due_after: float | None = None,
        due_before: float | None = None,
        completed_after: float | None = None,
        completed_before: float | None = None,
        created_after: float | None = None,
        created_before: float | None = None,
        limit: int | None = None,
    ) -> list[TaskRecord]:
        """Filter tasks; ordered by priority tier, then soonest due (undated last)."""
        where = ["tenant_id = ?"]
        params: list = [tenant_id]
        for column, op, value in (
            ("assignee_id", "=", assignee_id),
            ("created_by", "=", created_by),
            ("due_at", ">=", due_after),
            ("due_at", "<", due_before),
            ("completed_at", ">=", completed_after),
            ("completed_at", "<", completed_before),
            ("created_at", ">=", created_after),
            ("created_at", "<", created_before),
        ):
            if value is not None:
                where.append(f"{column} {op} ?")
                params.append(value)
        if statuses:
            where.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(statuses)

        sql = (
            f"SELECT * FROM tasks WHERE {' AND '.join(where)} "
            f"ORDER BY {PRIORITY_ORDER_SQL}, due_at IS NULL, due_at, created_at"
        )
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        rows = await self._db.fetchall(sql, params)
        return [TaskRecord(**dict(r)) for r in rows]

    async def get_task_by_id(self, task_id: str) -> TaskRecord | None:
        row = await self._db.fetchone("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return TaskRecord(**dict(row)) if row else None


class SqlCalendarReader:
    """CalendarReader over the events table. Returns events starting in [start, end)."""

    def __init__(self, db):
        self._db = db

    async def get_events(self, tenant_id: str, start: float, end: float) -> list[EventRecord]:
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE tenant_id = ? AND start_at >= ? AND start_at < ? "
            "ORDER BY start_at",
            (tenant_id, start, end),
        )
        return [EventRecord(**dict(r)) for r in rows]


class SqlFeatureFlagReader:
    """FeatureFlagReader over team_settings. Absent flags are enabled."""

    def __init__(self, db):
        self._db = db

    async def get_proactive_feature_status(self, tenant_id: str, feature_key: str) -> bool:
        row = await self._db.fetchone(
            "SELECT enabled FROM team_settings WHERE tenant_id = ? AND feature_key = ?",
            (tenant_id, feature_key),
        )
        return True if row is None else bool(row["enabled"])
