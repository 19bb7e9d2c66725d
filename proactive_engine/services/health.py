#  Proactive Engine - Task Health Scorer
#
#  Deterministic 0.0 (critical) to 1.0 (healthy) score for open tasks,
#  derived from overdueness, staleness, priority aging, and estimate
#  overrun. Snapshots are cached per task (upsert), not kept as history.
#
#  Depends on: db/connection.py, services/readers.py, policy.py
#  Used by:    container.py, routes/health.py

import json
import logging
import math
import time

from proactive_engine.config import AT_RISK_THRESHOLD
from proactive_engine.models.enums import RiskLevel, TaskPriority, TaskStatus
from proactive_engine.models.schemas import Intervention, TaskHealthReport, TaskRecord
from proactive_engine.policy import guarded
from proactive_engine.services.readers import OPEN_STATUSES

logger = logging.getLogger("proactive.health")

DAY = 86400

_URGENT_PRIORITIES = (TaskPriority.URGENT.value, TaskPriority.CRITICAL.value)

# Thresholds for the risk tiers
_LOW_AT = 0.7
_MEDIUM_AT = 0.4


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def score_task(task: TaskRecord, now: float | None = None) -> TaskHealthReport | None:
    """Score one task. Returns None for done tasks.

    Deductions are additive and the result is clamped to [0, 1]. More
    overdue days or a longer idle period never raise the score.
    """
    if task.status == TaskStatus.DONE.value:
        return None

    now = time.time() if now is None else now
    score = 1.0
    factors: list[str] = []
    severe = 0
    overdue = False
    stale = False
    days_until_due = None

    if task.due_at is not None:
        seconds_left = task.due_at - now
        days_until_due = math.ceil(seconds_left / DAY)
        if seconds_left < 0:
            overdue = True
            overdue_days = max(1, math.ceil(-seconds_left / DAY))
            score -= 0.3 + min(0.5, overdue_days * 0.05)
            factors.append(f"Overdue by {_plural(overdue_days, 'day')}")
            if overdue_days > 7:
                severe += 1
        elif seconds_left < DAY:
            score -= 0.2
            factors.append("Due today")
        elif seconds_left < 2 * DAY:
            score -= 0.1
            factors.append(f"Due in {_plural(days_until_due, 'day')}")

    age_days = math.floor((now - task.created_at) / DAY)

    if task.last_activity_at is None:
        if task.status in (TaskStatus.TODO.value, TaskStatus.IN_PROGRESS.value) and age_days > 14:
            stale = True
            score -= 0.2
            factors.append(f"No progress in {age_days} days")
    else:
        idle_days = math.floor((now - task.last_activity_at) / DAY)
        if idle_days > 7:
            stale = True
            score -= 0.15
            factors.append(f"No activity for {idle_days} days")
    if stale:
        severe += 1

    if task.priority in _URGENT_PRIORITIES and age_days > 3:
        score -= 0.2
        factors.append("Urgent task aging")
        severe += 1
    elif task.priority == TaskPriority.HIGH.value and age_days > 7:
        score -= 0.1
        factors.append("High priority task delayed")

    if task.estimated_hours and task.actual_hours:
        if task.actual_hours > task.estimated_hours * 1.5:
            score -= 0.1
            factors.append("Exceeding time estimate")

    score = round(max(0.0, min(1.0, score)), 4)

    if score >= _LOW_AT:
        level = RiskLevel.LOW
    elif score >= _MEDIUM_AT:
        level = RiskLevel.MEDIUM
    elif severe >= 2:
        level = RiskLevel.CRITICAL
    else:
        level = RiskLevel.HIGH

    interventions = []
    if overdue:
        interventions.append(Intervention(
            action="Extend deadline",
            description="Agree a realistic new due date with stakeholders",
            priority="high",
        ))
        interventions.append(Intervention(
            action="Break into smaller tasks",
            description="Split the remaining work so progress is visible",
            priority="medium",
        ))
    if stale:
        interventions.append(Intervention(
            action="Check for blockers",
            description="Ask the assignee what is holding the task up",
            priority="high",
        ))
        interventions.append(Intervention(
            action="Reassign task",
            description="Move the task to someone with capacity",
            priority="medium",
        ))
    if task.priority in _URGENT_PRIORITIES:
        interventions.append(Intervention(
            action="Add to focus time",
            description="Block calendar time to work on this task",
            priority="high",
        ))

    return TaskHealthReport(
        task_id=task.id,
        tenant_id=task.tenant_id,
        task_title=task.title,
        health_score=score,
        risk_level=level,
        risk_factors=factors,
        interventions=interventions,
        days_until_due=days_until_due,
        computed_at=now,
    )


class TaskHealthService:
    """Scores tasks on demand and caches the latest snapshot per task.

    Scheduling is external: a cron or job queue calls
    refresh_team_task_health() for each tenant.
    """

    def __init__(self, db, tasks):
        self._db = db
        self._tasks = tasks

    async def compute_health(
        self, task_id: str, *, tenant_id: str | None = None,
    ) -> TaskHealthReport | None:
        """Score a task and upsert its snapshot. None if missing or done.

        With tenant_id, tasks of other tenants count as missing.
        """
        task = await self._tasks.get_task_by_id(task_id)
        if task is None or (tenant_id is not None and task.tenant_id != tenant_id):
            return None
        report = score_task(task)
        if report is None:
            # Closed work has no health; drop any cached snapshot
            await guarded(
                "health.upsert_snapshot",
                lambda: self._db.execute_write(
                    "DELETE FROM task_health_snapshots WHERE task_id = ?", (task_id,),
                ),
            )
            return None
        await self._store(report)
        return report

    async def refresh_team_task_health(self, tenant_id: str) -> list[TaskHealthReport]:
        """Score every open task of a tenant. Worst health first."""
        now = time.time()
        tasks = await self._tasks.get_tasks(tenant_id, statuses=OPEN_STATUSES)
        reports = []
        for task in tasks:
            report = score_task(task, now)
            if report:
                await self._store(report)
                reports.append(report)
        reports.sort(key=lambda r: r.health_score)
        logger.info("Refreshed health for %d task(s) in tenant %s", len(reports), tenant_id)
        return reports

    async def get_at_risk_tasks(
        self, tenant_id: str, threshold: float = AT_RISK_THRESHOLD,
    ) -> list[TaskHealthReport]:
        """Cached snapshots at or below threshold, worst first."""
        rows = await self._db.fetchall(
            "SELECT * FROM task_health_snapshots WHERE tenant_id = ? AND health_score <= ? "
            "ORDER BY health_score ASC",
            (tenant_id, threshold),
        )
        return [_row_to_report(r) for r in rows]

    async def _store(self, report: TaskHealthReport) -> None:
        await guarded(
            "health.upsert_snapshot",
            lambda: self._db.execute_write(
                "INSERT INTO task_health_snapshots (task_id, tenant_id, task_title, "
                "health_score, risk_level, risk_factors_json, interventions_json, "
                "days_until_due, computed_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(task_id) DO UPDATE SET "
                "task_title = excluded.task_title, "
                "health_score = excluded.health_score, "
                "risk_level = excluded.risk_level, "
                "risk_factors_json = excluded.risk_factors_json, "
                "interventions_json = excluded.interventions_json, "
                "days_until_due = excluded.days_until_due, "
                "computed_at = excluded.computed_at",
                (report.task_id, report.tenant_id, report.task_title,
                 report.health_score, report.risk_level.value,
                 json.dumps(report.risk_factors),
                 json.dumps([i.model_dump() for i in report.interventions]),
                 report.days_until_due, report.computed_at),
            ),
        )


def _row_to_report(row) -> TaskHealthReport:
    return TaskHealthReport(
        task_id=row["task_id"],
        tenant_id=row["tenant_id"],
        task_title=row["task_title"],
        health_score=row["health_score"],
        risk_level=row["risk_level"],
        risk_factors=json.loads(row["risk_factors_json"] or "[]"),
        interventions=[Intervention(**i) for i in json.loads(row["interventions_json"] or "[]")],
        days_until_due=row["days_until_due"],
        computed_at=row["computed_at"],
    )
