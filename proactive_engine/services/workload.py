#  Proactive Engine - Workload Analyzer
#
#  Compares a user's committed hours this week (estimated task hours plus
#  meetings) against a fixed weekly capacity.
#
#  Depends on: services/readers.py, config.py
#  Used by:    container.py, services/ceremonies.py, routes/health.py

import logging
import time
from datetime import datetime, timedelta, timezone

from proactive_engine.config import DEFAULT_TASK_HOURS, WEEKLY_CAPACITY_HOURS
from proactive_engine.models.enums import WorkloadLevel
from proactive_engine.models.schemas import WorkloadReport
from proactive_engine.services.readers import OPEN_STATUSES

logger = logging.getLogger("proactive.workload")

_RECOMMENDATIONS = {
    WorkloadLevel.OVERLOADED: (
        "Consider delegating or extending deadlines, and defer low-priority tasks. "
        "You have more work than available time."
    ),
    WorkloadLevel.BUSY: (
        "Your week is packed. Protect your focus time and avoid taking on more work."
    ),
    WorkloadLevel.BALANCED: "Your workload looks balanced for the week.",
}


def week_bounds(now: float | None = None) -> tuple[datetime, datetime]:
    """Monday 00:00 UTC of the current week and the following Monday 00:00."""
    current = datetime.fromtimestamp(time.time() if now is None else now, tz=timezone.utc)
    monday = (current - timedelta(days=current.weekday())).replace(
        hour=0, minute=0, second=0, microsecond=0,
    )
    return monday, monday + timedelta(days=7)


def classify(ratio: float) -> WorkloadLevel:
    if ratio > 1.0:
        return WorkloadLevel.OVERLOADED
    if ratio >= 0.8:
        return WorkloadLevel.BUSY
    return WorkloadLevel.BALANCED


class WorkloadAnalyzer:
    def __init__(self, tasks, calendar):
        self._tasks = tasks
        self._calendar = calendar

    async def analyze_workload(self, tenant_id: str, user_id: str) -> WorkloadReport:
        """Committed hours for the current Monday-Sunday week vs. capacity.

        Unestimated tasks count DEFAULT_TASK_HOURS. All-day events are not
        meetings and add no hours.
        """
        start, end = week_bounds()
        tasks = await self._tasks.get_tasks(
            tenant_id,
            assignee_id=user_id,
            statuses=OPEN_STATUSES,
            due_after=start.timestamp(),
            due_before=end.timestamp(),
        )
        events = await self._calendar.get_events(tenant_id, start.timestamp(), end.timestamp())

        task_hours = sum(t.estimated_hours or DEFAULT_TASK_HOURS for t in tasks)
        meeting_hours = sum(
            (e.end_at - e.start_at) / 3600 for e in events if not e.is_all_day
        )
        committed = task_hours + meeting_hours
        ratio = committed / WEEKLY_CAPACITY_HOURS
        level = classify(ratio)

        logger.debug(
            "Workload for %s: %.1fh committed of %sh (%s)",
            user_id, committed, WEEKLY_CAPACITY_HOURS, level.value,
        )

        return WorkloadReport(
            week_start=start.date().isoformat(),
            week_end=(end - timedelta(days=1)).date().isoformat(),
            tasks_due=len(tasks),
            estimated_task_hours=round(task_hours, 2),
            meeting_hours=round(meeting_hours, 2),
            committed_hours=round(committed, 2),
            capacity_hours=WEEKLY_CAPACITY_HOURS,
            available_hours=round(max(0.0, WEEKLY_CAPACITY_HOURS - meeting_hours), 2),
            workload_ratio=round(ratio, 2),
            workload_level=level,
            recommendation=_RECOMMENDATIONS[level],
            tasks=tasks,
            events=events,
        )
