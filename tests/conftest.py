#  Proactive Engine - Test Fixtures
#
#  Shared fixtures for the test suite.
#  Uses DI container overrides instead of monkey-patching singletons.
#
#  Depends on: proactive_engine/db/connection.py, proactive_engine/container.py,
#              proactive_engine/app.py, proactive_engine/services/*
#  Used by:    all test files

import json
import time
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from dependency_injector import providers

TENANT = "tenant_a"
USER = "user_1"
DAY = 86400


# ---------------------------------------------------------------------------
# Database fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def tmp_db(tmp_path):
    """Create a fresh async database with schema applied."""
    from proactive_engine.db.connection import Database

    test_db = Database()
    db_path = tmp_path / "test.db"
    await test_db.init(str(db_path))

    yield test_db

    await test_db.close()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def seed_task(tmp_db):
    """Factory: insert a task row. Returns its id."""
    async def _seed(
        title="Task",
        *,
        tenant_id=TENANT,
        assignee_id=USER,
        created_by=USER,
        status="todo",
        priority="medium",
        due_at=None,
        created_at=None,
        completed_at=None,
        last_activity_at=None,
        estimated_hours=None,
        actual_hours=None,
        task_id=None,
    ):
        task_id = task_id or uuid.uuid4().hex[:12]
        await tmp_db.execute_write(
            "INSERT INTO tasks (id, tenant_id, title, status, priority, assignee_id, "
            "created_by, due_at, created_at, completed_at, last_activity_at, "
            "estimated_hours, actual_hours) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (task_id, tenant_id, title, status, priority, assignee_id, created_by, due_at,
             created_at if created_at is not None else time.time(),
             completed_at, last_activity_at, estimated_hours, actual_hours),
        )
        return task_id
    return _seed


@pytest.fixture
def seed_event(tmp_db):
    """Factory: insert a calendar event row. Returns its id."""
    async def _seed(title, start_at, end_at, *, tenant_id=TENANT, is_all_day=False, event_id=None):
        event_id = event_id or uuid.uuid4().hex[:12]
        await tmp_db.execute_write(
            "INSERT INTO events (id, tenant_id, title, start_at, end_at, is_all_day) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (event_id, tenant_id, title, start_at, end_at, int(is_all_day)),
        )
        return event_id
    return _seed


@pytest.fixture
def set_flag(tmp_db):
    """Factory: set a team feature flag (team_settings row)."""
    async def _set(feature_key, enabled, *, tenant_id=TENANT):
        await tmp_db.execute_write(
            "INSERT INTO team_settings (tenant_id, feature_key, enabled) VALUES (?, ?, ?) "
            "ON CONFLICT(tenant_id, feature_key) DO UPDATE SET enabled = excluded.enabled",
            (tenant_id, feature_key, int(enabled)),
        )
    return _set


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_provider():
    """AIProvider stand-in returning a canned morning focus plan."""
    from proactive_engine.services.ai_provider import Completion

    provider = MagicMock()
    provider.model = "test-model"
    provider.complete = AsyncMock(return_value=Completion(
        text=json.dumps({
            "greeting": "Good morning, ready to ship?",
            "topPriority": "Write report",
            "scheduledBlocks": [
                {"time": "9:00 AM", "activity": "Write report", "duration": "2h", "type": "focus"},
            ],
            "tasksToComplete": ["Write report"],
            "warnings": [],
            "tip": "Start with the hardest task.",
        }),
        model="test-model",
        prompt_tokens=100,
        completion_tokens=50,
        duration_ms=12,
    ))
    return provider


@pytest.fixture
def services(tmp_db, mock_provider):
    """Every engine service wired to the test database and mock provider."""
    from proactive_engine.services.capabilities import CapabilityResolver
    from proactive_engine.services.ceremonies import CeremonyService
    from proactive_engine.services.health import TaskHealthService
    from proactive_engine.services.insights import InsightsService
    from proactive_engine.services.nudges import NudgeService
    from proactive_engine.services.quota import QuotaLedger
    from proactive_engine.services.readers import (
        SqlCalendarReader,
        SqlFeatureFlagReader,
        SqlTaskReader,
    )
    from proactive_engine.services.workload import WorkloadAnalyzer

    tasks = SqlTaskReader(db=tmp_db)
    calendar = SqlCalendarReader(db=tmp_db)
    flags = SqlFeatureFlagReader(db=tmp_db)
    capabilities = CapabilityResolver(flags=flags)
    quota = QuotaLedger(db=tmp_db)
    workload = WorkloadAnalyzer(tasks=tasks, calendar=calendar)
    nudges = NudgeService(db=tmp_db, tasks=tasks, calendar=calendar, capabilities=capabilities)
    health = TaskHealthService(db=tmp_db, tasks=tasks)

    return {
        "tasks": tasks,
        "calendar": calendar,
        "flags": flags,
        "capabilities": capabilities,
        "quota": quota,
        "health": health,
        "workload": workload,
        "nudges": nudges,
        "ceremonies": CeremonyService(
            db=tmp_db,
            quota=quota,
            nudges=nudges,
            workload=workload,
            tasks=tasks,
            calendar=calendar,
            capabilities=capabilities,
            provider=mock_provider,
        ),
        "insights": InsightsService(
            db=tmp_db,
            quota=quota,
            health=health,
            tasks=tasks,
            capabilities=capabilities,
            provider=mock_provider,
        ),
    }


# ---------------------------------------------------------------------------
# FastAPI TestClient fixture
# ---------------------------------------------------------------------------

_OVERRIDDEN = (
    "db", "ai_provider", "task_reader", "calendar_reader", "flag_reader",
    "capabilities", "quota", "health", "workload", "nudges", "ceremonies", "insights",
)


@pytest.fixture
async def app_client(tmp_db, services, mock_provider):
    """httpx client against the app with a fresh database. Uses DI container overrides.

    Uses explicit try/finally with reset_override() so DI state is restored
    even when async fixture teardown is interrupted.
    """
    from httpx import ASGITransport, AsyncClient
    from proactive_engine.app import app, container

    overrides = {
        "db": tmp_db,
        "ai_provider": mock_provider,
        "task_reader": services["tasks"],
        "calendar_reader": services["calendar"],
        "flag_reader": services["flags"],
        "capabilities": services["capabilities"],
        "quota": services["quota"],
        "health": services["health"],
        "workload": services["workload"],
        "nudges": services["nudges"],
        "ceremonies": services["ceremonies"],
        "insights": services["insights"],
    }
    for name in _OVERRIDDEN:
        getattr(container, name).override(providers.Object(overrides[name]))

    # Reset rate limiter storage so tests don't hit limits from prior tests
    from proactive_engine.rate_limit import limiter as _limiter
    _limiter.reset()

    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(
            transport=transport,
            base_url="http://test",
            headers={"X-Tenant-ID": TENANT, "X-User-ID": USER},
        ) as client:
            yield client
    finally:
        for name in _OVERRIDDEN:
            getattr(container, name).reset_override()


# ---------------------------------------------------------------------------
# Mock Anthropic client
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_anthropic():
    """Mocked anthropic.AsyncAnthropic whose messages.create returns canned text."""
    mock_client = AsyncMock()

    response = MagicMock()
    response.content = [MagicMock(text="Shipped the API; pairing on tests today.", type="text")]
    response.usage = MagicMock(input_tokens=40, output_tokens=12)

    mock_client.messages.create = AsyncMock(return_value=response)
    return mock_client
