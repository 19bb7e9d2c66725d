#  Proactive Engine - Workload Analyzer Tests
#
#  Week boundaries, level classification, and committed-hours arithmetic.
#
#  Depends on: proactive_engine/services/workload.py
#  Used by:    pytest

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from proactive_engine.models.enums import WorkloadLevel
from proactive_engine.models.schemas import EventRecord, TaskRecord
from proactive_engine.services.readers import OPEN_STATUSES
from proactive_engine.services.workload import WorkloadAnalyzer, classify, week_bounds

HOUR = 3600


def _task(task_id, estimated_hours=None) -> TaskRecord:
    return TaskRecord(
        id=task_id, tenant_id="tenant_a", title=f"Task {task_id}",
        created_at=0.0, estimated_hours=estimated_hours,
    )


def _event(event_id, start, hours, all_day=False) -> EventRecord:
    return EventRecord(
        id=event_id, tenant_id="tenant_a", title=f"Event {event_id}",
        start_at=start, end_at=start + hours * HOUR, is_all_day=all_day,
    )


def _analyzer(tasks, events):
    task_reader = MagicMock()
    task_reader.get_tasks = AsyncMock(return_value=tasks)
    calendar = MagicMock()
    calendar.get_events = AsyncMock(return_value=events)
    return WorkloadAnalyzer(tasks=task_reader, calendar=calendar), task_reader, calendar


class TestWeekBounds:
    def test_midweek(self):
        wednesday = datetime(2026, 10, 14, 15, 30, tzinfo=timezone.utc).timestamp()
        start, end = week_bounds(wednesday)
        assert start == datetime(2026, 10, 12, tzinfo=timezone.utc)
        assert end == datetime(2026, 10, 19, tzinfo=timezone.utc)

    def test_monday_midnight_is_its_own_week(self):
        monday = datetime(2026, 10, 12, tzinfo=timezone.utc).timestamp()
        start, _ = week_bounds(monday)
        assert start == datetime(2026, 10, 12, tzinfo=timezone.utc)

    def test_sunday_belongs_to_previous_monday(self):
        sunday = datetime(2026, 10, 18, 23, 59, tzinfo=timezone.utc).timestamp()
        start, _ = week_bounds(sunday)
        assert start == datetime(2026, 10, 12, tzinfo=timezone.utc)


class TestClassify:
    @pytest.mark.parametrize("ratio,level", [
        (0.0, WorkloadLevel.BALANCED),
        (0.79, WorkloadLevel.BALANCED),
        (0.8, WorkloadLevel.BUSY),
        (1.0, WorkloadLevel.BUSY),
        (1.01, WorkloadLevel.OVERLOADED),
    ])
    def test_thresholds(self, ratio, level):
        assert classify(ratio) == level


class TestAnalyzeWorkload:
    async def test_balanced_week(self):
        start, _ = week_bounds()
        base = start.timestamp()
        analyzer, _, _ = _analyzer(
            [_task("a", 10), _task("b"), _task("c", 8)],
            [
                _event("m1", base + 9 * HOUR, 2),
                _event("m2", base + 33 * HOUR, 2),
                _event("offsite", base, 24, all_day=True),
            ],
        )
        report = await analyzer.analyze_workload("tenant_a", "user_1")
        assert report.tasks_due == 3
        assert report.estimated_task_hours == 20
        assert report.meeting_hours == 4
        assert report.committed_hours == 24
        assert report.available_hours == 36
        assert report.workload_ratio == 0.6
        assert report.workload_level == WorkloadLevel.BALANCED
        assert report.recommendation

    async def test_busy_week(self):
        analyzer, _, _ = _analyzer([_task("a", 32)], [])
        report = await analyzer.analyze_workload("tenant_a", "user_1")
        assert report.workload_level == WorkloadLevel.BUSY
        assert "focus time" in report.recommendation

    async def test_overloaded_week(self):
        analyzer, _, _ = _analyzer([_task("a", 30), _task("b", 15)], [])
        report = await analyzer.analyze_workload("tenant_a", "user_1")
        assert report.workload_level == WorkloadLevel.OVERLOADED
        assert report.workload_ratio > 1.0
        assert "delegating" in report.recommendation

    async def test_available_hours_never_negative(self):
        start, _ = week_bounds()
        analyzer, _, _ = _analyzer([], [_event("marathon", start.timestamp(), 50)])
        report = await analyzer.analyze_workload("tenant_a", "user_1")
        assert report.available_hours == 0
        assert report.workload_level == WorkloadLevel.OVERLOADED

    async def test_empty_week(self):
        analyzer, _, _ = _analyzer([], [])
        report = await analyzer.analyze_workload("tenant_a", "user_1")
        assert report.committed_hours == 0
        assert report.workload_ratio == 0
        assert report.workload_level == WorkloadLevel.BALANCED

    async def test_queries_open_tasks_due_this_week(self):
        analyzer, task_reader, calendar = _analyzer([], [])
        report = await analyzer.analyze_workload("tenant_a", "user_1")

        start, end = week_bounds()
        kwargs = task_reader.get_tasks.call_args.kwargs
        assert kwargs["assignee_id"] == "user_1"
        assert kwargs["statuses"] == OPEN_STATUSES
        assert kwargs["due_after"] == start.timestamp()
        assert kwargs["due_before"] == end.timestamp()
        calendar.get_events.assert_awaited_once_with("tenant_a", start.timestamp(), end.timestamp())
        assert report.week_start == start.date().isoformat()

    async def test_against_sql_readers(self, services, seed_task, seed_event):
        start, end = week_bounds()
        base = start.timestamp()
        await seed_task("this week", due_at=base + 10 * HOUR, estimated_hours=5)
        await seed_task("next week", due_at=end.timestamp() + HOUR, estimated_hours=50)
        await seed_task("closed", status="done", due_at=base + 10 * HOUR, estimated_hours=50)
        await seed_task("someone else's", assignee_id="user_2", due_at=base + 10 * HOUR)
        await seed_event("Planning", base + 9 * HOUR, base + 10 * HOUR)

        report = await services["workload"].analyze_workload("tenant_a", "user_1")
        assert [t.title for t in report.tasks] == ["this week"]
        assert report.committed_hours == 6
