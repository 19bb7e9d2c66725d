#  Proactive Engine - Collaborator Reader and Capability Tests
#
#  SQL task/calendar/flag readers and the capability snapshot.
#
#  Depends on: proactive_engine/services/readers.py, proactive_engine/services/capabilities.py
#  Used by:    pytest

import sqlite3
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from proactive_engine.models.enums import CeremonyType
from proactive_engine.services.capabilities import Capabilities, CapabilityResolver
from proactive_engine.services.readers import OPEN_STATUSES

TENANT = "tenant_a"
DAY = 86400


class TestSqlTaskReader:
    async def test_orders_by_priority_then_due(self, services, seed_task):
        now = time.time()
        await seed_task("low", priority="low", due_at=now + DAY)
        await seed_task("critical", priority="critical", due_at=now + 3 * DAY)
        await seed_task("urgent", priority="urgent", due_at=now + 2 * DAY)
        await seed_task("high undated", priority="high")
        await seed_task("high dated", priority="high", due_at=now + 5 * DAY)

        tasks = await services["tasks"].get_tasks(TENANT)
        assert [t.title for t in tasks] == [
            "urgent", "critical", "high dated", "high undated", "low",
        ]

    async def test_filters(self, services, seed_task):
        now = time.time()
        await seed_task("mine open", due_at=now + DAY)
        await seed_task("mine done", status="done", due_at=now + DAY)
        await seed_task("theirs", assignee_id="user_2", due_at=now + DAY)
        await seed_task("mine later", due_at=now + 10 * DAY)

        tasks = await services["tasks"].get_tasks(
            TENANT, assignee_id="user_1", statuses=OPEN_STATUSES,
            due_after=now, due_before=now + 2 * DAY,
        )
        assert [t.title for t in tasks] == ["mine open"]

    async def test_limit(self, services, seed_task):
        for i in range(3):
            await seed_task(f"t{i}")
        assert len(await services["tasks"].get_tasks(TENANT, limit=2)) == 2

    async def test_get_by_id(self, services, seed_task):
        task_id = await seed_task("Find me", estimated_hours=3)
        task = await services["tasks"].get_task_by_id(task_id)
        assert task.title == "Find me"
        assert task.estimated_hours == 3
        assert await services["tasks"].get_task_by_id("missing") is None


class TestSqlCalendarReader:
    async def test_half_open_range(self, services, seed_event):
        await seed_event("at start", 1000, 2000)
        await seed_event("inside", 1500, 2500)
        await seed_event("at end", 3000, 4000)
        await seed_event("other tenant", 1500, 2500, tenant_id="tenant_b")

        events = await services["calendar"].get_events(TENANT, 1000, 3000)
        assert [e.title for e in events] == ["at start", "inside"]

    async def test_all_day_flag(self, services, seed_event):
        await seed_event("Offsite", 1000, 1000 + DAY, is_all_day=True)
        [event] = await services["calendar"].get_events(TENANT, 0, 5000)
        assert event.is_all_day is True


class TestFeatureFlags:
    async def test_absent_flag_is_enabled(self, services):
        assert await services["flags"].get_proactive_feature_status(TENANT, "morningFocus") is True

    async def test_disabled_flag(self, services, set_flag):
        await set_flag("morningFocus", False)
        assert await services["flags"].get_proactive_feature_status(TENANT, "morningFocus") is False
        assert await services["flags"].get_proactive_feature_status("tenant_b", "morningFocus") is True


class TestCapabilities:
    async def test_defaults_all_enabled(self, services):
        caps = await services["capabilities"].resolve(TENANT)
        assert caps == Capabilities()

    async def test_reflects_flags(self, services, set_flag):
        await set_flag("weeklyReview", False)
        await set_flag("meetingPrep", False)
        caps = await services["capabilities"].resolve(TENANT)
        assert caps.weekly_review is False
        assert caps.meeting_prep is False
        assert caps.morning_focus is True

    def test_allows_ceremony(self):
        caps = Capabilities(daily_standup=False)
        assert caps.allows_ceremony(CeremonyType.MORNING_FOCUS) is True
        assert caps.allows_ceremony(CeremonyType.STANDUP) is False
        assert caps.allows_ceremony("weekly_review") is True

    def test_snapshot_is_immutable(self):
        caps = Capabilities()
        with pytest.raises(AttributeError):
            caps.smart_nudges = False

    async def test_store_failure_propagates(self):
        flags = MagicMock()
        flags.get_proactive_feature_status = AsyncMock(side_effect=sqlite3.OperationalError("gone"))
        with pytest.raises(sqlite3.OperationalError):
            await CapabilityResolver(flags=flags).resolve(TENANT)
