#  Proactive Engine - Task Health Tests
#
#  Scoring rules, risk tiers, interventions, and snapshot caching.
#
#  Depends on: proactive_engine/services/health.py
#  Used by:    pytest

import time

import pytest

from proactive_engine.models.enums import RiskLevel
from proactive_engine.models.schemas import TaskRecord
from proactive_engine.services.health import score_task

DAY = 86400
NOW = 1_790_000_000.0


def _task(**overrides) -> TaskRecord:
    data = dict(id="t1", tenant_id="tenant_a", title="Write report", created_at=NOW - DAY)
    data.update(overrides)
    return TaskRecord(**data)


class TestScoreTask:
    def test_healthy_task(self):
        report = score_task(_task(due_at=NOW + 10 * DAY), NOW)
        assert report.health_score == 1.0
        assert report.risk_level == RiskLevel.LOW
        assert report.risk_factors == []
        assert report.interventions == []
        assert report.days_until_due == 10

    def test_done_task_has_no_report(self):
        assert score_task(_task(status="done"), NOW) is None

    def test_overdue_three_days(self):
        report = score_task(_task(due_at=NOW - 3 * DAY), NOW)
        assert report.health_score == 0.55
        assert report.risk_level == RiskLevel.MEDIUM
        assert report.risk_factors == ["Overdue by 3 days"]
        assert [i.action for i in report.interventions] == [
            "Extend deadline", "Break into smaller tasks",
        ]
        assert report.days_until_due == -3

    def test_overdue_singular_day(self):
        report = score_task(_task(due_at=NOW - 3600), NOW)
        assert report.risk_factors == ["Overdue by 1 day"]

    def test_more_overdue_never_scores_higher(self):
        scores = [
            score_task(_task(due_at=NOW - d * DAY), NOW).health_score
            for d in (1, 2, 5, 10, 20)
        ]
        assert scores == sorted(scores, reverse=True)

    def test_due_today(self):
        report = score_task(_task(due_at=NOW + 3 * 3600), NOW)
        assert report.health_score == 0.8
        assert report.risk_factors == ["Due today"]

    def test_due_tomorrow(self):
        report = score_task(_task(due_at=NOW + 1.5 * DAY), NOW)
        assert report.health_score == 0.9
        assert report.risk_factors == ["Due in 2 days"]

    def test_untouched_old_task_is_stale(self):
        report = score_task(_task(created_at=NOW - 20 * DAY), NOW)
        assert report.health_score == 0.8
        assert report.risk_factors == ["No progress in 20 days"]
        assert [i.action for i in report.interventions] == ["Check for blockers", "Reassign task"]

    def test_blocked_untouched_task_is_not_stale(self):
        report = score_task(_task(status="blocked", created_at=NOW - 20 * DAY), NOW)
        assert report.health_score == 1.0

    def test_idle_task(self):
        report = score_task(
            _task(created_at=NOW - 30 * DAY, last_activity_at=NOW - 9 * DAY), NOW,
        )
        assert report.health_score == 0.85
        assert report.risk_factors == ["No activity for 9 days"]

    def test_urgent_aging(self):
        report = score_task(_task(priority="urgent", created_at=NOW - 5 * DAY,
                                  last_activity_at=NOW - DAY), NOW)
        assert report.health_score == 0.8
        assert "Urgent task aging" in report.risk_factors
        assert report.interventions[-1].action == "Add to focus time"

    def test_critical_priority_scores_like_urgent(self):
        urgent = score_task(_task(priority="urgent", created_at=NOW - 5 * DAY,
                                  last_activity_at=NOW - DAY), NOW)
        critical = score_task(_task(priority="critical", created_at=NOW - 5 * DAY,
                                    last_activity_at=NOW - DAY), NOW)
        assert critical.health_score == urgent.health_score

    def test_exceeding_estimate(self):
        report = score_task(_task(estimated_hours=2, actual_hours=4), NOW)
        assert report.health_score == 0.9
        assert report.risk_factors == ["Exceeding time estimate"]

    def test_high_risk_without_severe_factors(self):
        report = score_task(_task(
            due_at=NOW - 4 * DAY,
            priority="high",
            created_at=NOW - 20 * DAY,
            last_activity_at=NOW - DAY,
            estimated_hours=2,
            actual_hours=4,
        ), NOW)
        assert report.health_score == 0.3
        assert report.risk_level == RiskLevel.HIGH

    def test_critical_needs_several_severe_factors(self):
        report = score_task(_task(
            due_at=NOW - 10 * DAY,
            priority="urgent",
            created_at=NOW - 30 * DAY,
        ), NOW)
        assert report.health_score == 0.0
        assert report.risk_level == RiskLevel.CRITICAL
        assert len(report.interventions) == 5

    def test_score_is_clamped(self):
        report = score_task(_task(
            due_at=NOW - 30 * DAY, priority="urgent", created_at=NOW - 60 * DAY,
            estimated_hours=1, actual_hours=10,
        ), NOW)
        assert report.health_score == 0.0


class TestTaskHealthService:
    async def test_compute_stores_snapshot(self, services, seed_task, tmp_db):
        task_id = await seed_task("Overdue thing", due_at=time.time() - 3 * DAY + 3600)
        report = await services["health"].compute_health(task_id)
        assert report.task_title == "Overdue thing"
        row = await tmp_db.fetchone(
            "SELECT * FROM task_health_snapshots WHERE task_id = ?", (task_id,),
        )
        assert row["health_score"] == report.health_score
        assert row["risk_level"] == report.risk_level.value

    async def test_recompute_replaces_snapshot(self, services, seed_task, tmp_db):
        task_id = await seed_task(due_at=time.time() + 10 * DAY)
        await services["health"].compute_health(task_id)
        await tmp_db.execute_write(
            "UPDATE tasks SET due_at = ? WHERE id = ?", (time.time() - 2 * DAY, task_id),
        )
        await services["health"].compute_health(task_id)
        rows = await tmp_db.fetchall("SELECT * FROM task_health_snapshots")
        assert len(rows) == 1
        assert rows[0]["health_score"] < 1.0

    async def test_missing_task(self, services):
        assert await services["health"].compute_health("nope") is None

    async def test_other_tenant_is_hidden(self, services, seed_task):
        task_id = await seed_task(tenant_id="tenant_b")
        assert await services["health"].compute_health(task_id, tenant_id="tenant_a") is None

    async def test_done_task_drops_snapshot(self, services, seed_task, tmp_db):
        task_id = await seed_task(due_at=time.time() - DAY)
        await services["health"].compute_health(task_id)
        await tmp_db.execute_write("UPDATE tasks SET status = 'done' WHERE id = ?", (task_id,))
        assert await services["health"].compute_health(task_id) is None
        row = await tmp_db.fetchone(
            "SELECT * FROM task_health_snapshots WHERE task_id = ?", (task_id,),
        )
        assert row is None

    async def test_refresh_team_sorted_worst_first(self, services, seed_task):
        now = time.time()
        await seed_task("fine", due_at=now + 10 * DAY)
        await seed_task("late", due_at=now - 5 * DAY)
        await seed_task("done", status="done", due_at=now - 5 * DAY)
        await seed_task("elsewhere", tenant_id="tenant_b", due_at=now - 5 * DAY)

        reports = await services["health"].refresh_team_task_health("tenant_a")
        assert [r.task_title for r in reports] == ["late", "fine"]

    async def test_at_risk_reads_snapshots(self, services, seed_task):
        now = time.time()
        await seed_task("fine", due_at=now + 10 * DAY)
        await seed_task("late", due_at=now - 5 * DAY)
        await services["health"].refresh_team_task_health("tenant_a")

        at_risk = await services["health"].get_at_risk_tasks("tenant_a")
        assert [r.task_title for r in at_risk] == ["late"]
        assert at_risk[0].interventions

    @pytest.mark.parametrize("threshold,expected", [(0.0, 0), (1.0, 2)])
    async def test_at_risk_threshold(self, services, seed_task, threshold, expected):
        now = time.time()
        await seed_task("fine", due_at=now + 10 * DAY)
        await seed_task("late", due_at=now - 5 * DAY)
        await services["health"].refresh_team_task_health("tenant_a")
        assert len(await services["health"].get_at_risk_tasks("tenant_a", threshold)) == expected
