#  Proactive Engine - Database Connection
#
#  Async SQLite manager with WAL mode and transaction support.
#  Production uses Alembic migrations; tests use inline schema for speed.
#
#  Depends on: proactive_engine/db/migrate.py (optional, for production migrations)
#  Used by:    container.py (via DI), tests

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

logger = logging.getLogger("proactive.db")


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS rate_limit_windows (
    tenant_id TEXT NOT NULL,
    window_type TEXT NOT NULL,
    window_start REAL NOT NULL,
    call_count INTEGER NOT NULL DEFAULT 0,
    token_count INTEGER NOT NULL DEFAULT 0,
    updated_at REAL NOT NULL,
    PRIMARY KEY (tenant_id, window_type)
);

CREATE TABLE IF NOT EXISTS api_call_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tenant_id TEXT NOT NULL,
    user_id TEXT,
    service TEXT NOT NULL,
    operation TEXT NOT NULL,
    model TEXT NOT NULL DEFAULT '',
    prompt_tokens INTEGER NOT NULL DEFAULT 0,
    completion_tokens INTEGER NOT NULL DEFAULT 0,
    total_tokens INTEGER NOT NULL DEFAULT 0,
    duration_ms INTEGER NOT NULL DEFAULT 0,
    success INTEGER NOT NULL DEFAULT 1,
    error_message TEXT,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS task_health_snapshots (
    task_id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    task_title TEXT NOT NULL DEFAULT '',
    health_score REAL NOT NULL,
    risk_level TEXT NOT NULL,
    risk_factors_json TEXT NOT NULL DEFAULT '[]',
    interventions_json TEXT NOT NULL DEFAULT '[]',
    days_until_due INTEGER,
    computed_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS nudges (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    nudge_type TEXT NOT NULL,
    title TEXT NOT NULL,
    message TEXT NOT NULL,
    priority TEXT NOT NULL DEFAULT 'medium',
    related_task_id TEXT,
    related_event_id TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    suggested_actions_json TEXT NOT NULL DEFAULT '[]',
    created_at REAL NOT NULL,
    expires_at REAL,
    acted_at REAL,
    dismissed_at REAL
);

CREATE TABLE IF NOT EXISTS nudge_preferences (
    tenant_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    nudge_overdue_tasks INTEGER NOT NULL DEFAULT 1,
    nudge_stale_tasks INTEGER NOT NULL DEFAULT 1,
    nudge_upcoming_deadlines INTEGER NOT NULL DEFAULT 1,
    nudge_upcoming_meetings INTEGER NOT NULL DEFAULT 1,
    updated_at REAL NOT NULL,
    PRIMARY KEY (tenant_id, user_id)
);

CREATE TABLE IF NOT EXISTS ceremonies (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    ceremony_type TEXT NOT NULL,
    period_key TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    ai_plan_json TEXT,
    ai_summary TEXT,
    responses_json TEXT,
    created_at REAL NOT NULL,
    completed_at REAL,
    UNIQUE (tenant_id, user_id, ceremony_type, period_key)
);

CREATE TABLE IF NOT EXISTS focus_preferences (
    tenant_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    focus_start_hour INTEGER NOT NULL DEFAULT 9,
    focus_end_hour INTEGER NOT NULL DEFAULT 12,
    min_focus_block_minutes INTEGER NOT NULL DEFAULT 60,
    max_meetings_per_day INTEGER NOT NULL DEFAULT 4,
    work_start_hour INTEGER NOT NULL DEFAULT 9,
    work_end_hour INTEGER NOT NULL DEFAULT 17,
    work_days_json TEXT NOT NULL DEFAULT '[1,2,3,4,5]',
    morning_focus_enabled INTEGER NOT NULL DEFAULT 1,
    morning_focus_time TEXT NOT NULL DEFAULT '09:00',
    daily_standup_enabled INTEGER NOT NULL DEFAULT 1,
    daily_standup_time TEXT NOT NULL DEFAULT '10:00',
    weekly_review_enabled INTEGER NOT NULL DEFAULT 1,
    weekly_review_day INTEGER NOT NULL DEFAULT 5,
    weekly_review_time TEXT NOT NULL DEFAULT '16:00',
    updated_at REAL NOT NULL,
    PRIMARY KEY (tenant_id, user_id)
);

CREATE TABLE IF NOT EXISTS insights_cache (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    insight_type TEXT NOT NULL DEFAULT 'daily',
    scope TEXT NOT NULL DEFAULT 'team',
    insights_json TEXT NOT NULL DEFAULT '[]',
    recommendations_json TEXT NOT NULL DEFAULT '[]',
    summary TEXT,
    metrics_json TEXT NOT NULL DEFAULT '{}',
    valid_from REAL NOT NULL,
    valid_until REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    title TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'todo',
    priority TEXT NOT NULL DEFAULT 'medium',
    assignee_id TEXT,
    created_by TEXT,
    due_at REAL,
    created_at REAL NOT NULL,
    completed_at REAL,
    last_activity_at REAL,
    estimated_hours REAL,
    actual_hours REAL
);

CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    title TEXT NOT NULL,
    start_at REAL NOT NULL,
    end_at REAL NOT NULL,
    is_all_day INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS team_settings (
    tenant_id TEXT NOT NULL,
    feature_key TEXT NOT NULL,
    enabled INTEGER NOT NULL DEFAULT 1,
    PRIMARY KEY (tenant_id, feature_key)
);

-- At most one pending nudge per (user, type, subject)
CREATE UNIQUE INDEX IF NOT EXISTS idx_nudges_pending_unique
    ON nudges(tenant_id, user_id, nudge_type,
              COALESCE(related_task_id, ''), COALESCE(related_event_id, ''))
    WHERE status = 'pending';

-- Indexes
CREATE INDEX IF NOT EXISTS idx_api_calls_tenant_time ON api_call_logs(tenant_id, created_at);
CREATE INDEX IF NOT EXISTS idx_health_tenant_score ON task_health_snapshots(tenant_id, health_score);
CREATE INDEX IF NOT EXISTS idx_nudges_user_status ON nudges(tenant_id, user_id, status);
CREATE INDEX IF NOT EXISTS idx_ceremonies_type_period ON ceremonies(tenant_id, ceremony_type, period_key);
CREATE INDEX IF NOT EXISTS idx_insights_tenant_valid ON insights_cache(tenant_id, insight_type, valid_until);
CREATE INDEX IF NOT EXISTS idx_tasks_tenant_assignee ON tasks(tenant_id, assignee_id);
CREATE INDEX IF NOT EXISTS idx_events_tenant_start ON events(tenant_id, start_at);
"""


# ---------------------------------------------------------------------------
# Database class
# ---------------------------------------------------------------------------

class Database:
    """Async SQLite database with WAL mode.

    Uses aiosqlite which runs SQLite on a dedicated background thread,
    so no threading.Lock is needed on our side.
    """

    def __init__(self):
        self._conn: aiosqlite.Connection | None = None
        self._path: Path | None = None
        self._in_transaction: bool = False
        self._tx_lock: asyncio.Lock = asyncio.Lock()
        self._tx_owner: asyncio.Task | None = None

    async def init(self, db_path: str | Path, *, run_migrations: bool = False):
        """Open or create the database and apply schema.

        Args:
            db_path: Path to the SQLite database file.
            run_migrations: If True, use Alembic migrations (production).
                            If False, use inline schema (tests, faster).
        """
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

        if run_migrations:
            from proactive_engine.db.migrate import run_migrations as _migrate
            await asyncio.to_thread(_migrate, self._path)

        self._conn = await aiosqlite.connect(str(self._path))
        self._conn.row_factory = sqlite3.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")

        if not run_migrations:
            await self._conn.executescript(_SCHEMA)
            await self._conn.commit()

        logger.info("Database initialized at %s", self._path)

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database not initialized. Call await db.init() first.")
        return self._conn

    @asynccontextmanager
    async def transaction(self):
        """Atomic read+write transaction. Rolls back on exception.

        Uses BEGIN IMMEDIATE to acquire a write lock upfront, preventing
        other writers from interleaving. An asyncio.Lock serializes
        concurrent coroutines sharing the same connection, so a second
        coroutine waits until the first transaction commits/rolls back.

        Safe to nest within the same task: if the current asyncio task
        already owns a transaction, inner calls are no-ops. Different
        tasks wait on the lock.
        """
        current = asyncio.current_task()
        if self._in_transaction and self._tx_owner is current:
            yield self.conn
            return

        async with self._tx_lock:
            self._in_transaction = True
            self._tx_owner = current
            try:
                await self.conn.execute("BEGIN IMMEDIATE")
                try:
                    yield self.conn
                    await self.conn.commit()
                except Exception:
                    await self.conn.rollback()
                    raise
            finally:
                self._in_transaction = False
                self._tx_owner = None

    async def execute_write(self, sql: str, params: tuple | list = ()) -> aiosqlite.Cursor:
        """Execute a write query and commit.

        Inside a transaction() block owned by the current task, participates
        in the outer transaction (no auto-commit). Otherwise runs as its own
        transaction, so a write from one coroutine can never land inside
        another coroutine's open transaction on the shared connection.
        """
        async with self.transaction() as conn:
            return await conn.execute(sql, params)

    async def execute_many_write(self, statements: list[tuple[str, tuple | list]]):
        """Execute multiple write statements atomically.

        Uses transaction() internally so all statements commit or roll back
        together.
        """
        async with self.transaction():
            for sql, params in statements:
                await self.conn.execute(sql, params)

    async def fetchone(self, sql: str, params: tuple | list = ()) -> sqlite3.Row | None:
        cursor = await self.conn.execute(sql, params)
        return await cursor.fetchone()

    async def fetchall(self, sql: str, params: tuple | list = ()) -> list[sqlite3.Row]:
        cursor = await self.conn.execute(sql, params)
        return await cursor.fetchall()

    async def close(self):
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
