#  Proactive Engine - Nudge Generator
#
#  Derives proactive reminders (overdue, upcoming deadline, stale work,
#  meetings starting soon) for one user, deduplicates them against pending
#  nudges, expires old ones, and handles user transitions.
#  At most one pending nudge exists per (user, type, subject): the partial
#  unique index on nudges enforces it even for concurrent generators.
#
#  Depends on: db/connection.py, services/readers.py, services/capabilities.py,
#              policy.py, config.py
#  Used by:    container.py, services/ceremonies.py, routes/nudges.py

import json
import logging
import math
import time
import uuid

from proactive_engine.config import (
    NUDGE_CANDIDATE_LIMIT,
    NUDGE_DEADLINE_LOOKAHEAD_HOURS,
    NUDGE_MEETING_LIMIT,
    NUDGE_MEETING_LOOKAHEAD_MINUTES,
    NUDGE_PENDING_LIMIT,
    NUDGE_STALE_AFTER_DAYS,
)
from proactive_engine.exceptions import InvalidStatusError, NotFoundError
from proactive_engine.models.enums import NudgePriority, NudgeStatus, NudgeType, TaskStatus
from proactive_engine.models.schemas import (
    Nudge,
    NudgeActionResult,
    NudgePreferences,
    NudgePreferencesUpdate,
    SuggestedAction,
)
from proactive_engine.policy import guarded
from proactive_engine.services.capabilities import Capabilities
from proactive_engine.services.readers import OPEN_STATUSES

logger = logging.getLogger("proactive.nudges")

HOUR = 3600
DAY = 86400

# Caller-settable statuses; 'expired' belongs to the generator
_SETTABLE_STATUSES = {NudgeStatus.ACTED.value: "acted_at", NudgeStatus.DISMISSED.value: "dismissed_at"}

_PRIORITY_ORDER_SQL = (
    "CASE priority WHEN 'urgent' THEN 0 WHEN 'high' THEN 1 "
    "WHEN 'medium' THEN 2 ELSE 3 END"
)

_OVERDUE_ACTIONS = [
    SuggestedAction(action="complete", label="Mark Complete"),
    SuggestedAction(action="extend", label="Extend Deadline"),
    SuggestedAction(action="reassign", label="Reassign"),
]
_DEADLINE_ACTIONS = [
    SuggestedAction(action="focus", label="Add to Focus Time"),
    SuggestedAction(action="complete", label="Mark Complete"),
]
_STALE_ACTIONS = [
    SuggestedAction(action="update_status", label="Update Status"),
    SuggestedAction(action="add_blocker", label="Mark Blocked"),
    SuggestedAction(action="complete", label="Mark Complete"),
]
_MEETING_ACTIONS = [
    SuggestedAction(action="prepare", label="Prepare Context"),
    SuggestedAction(action="dismiss", label="Skip"),
]


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}" if n == 1 else f"{n} {unit}s"


def _dedup_key(nudge: Nudge) -> tuple[str, str, str]:
    return (nudge.nudge_type.value, nudge.related_task_id or "", nudge.related_event_id or "")


def _owned_by(nudge_id: str, user_id: str, tenant_id: str | None) -> tuple[str, tuple]:
    """WHERE clause matching one nudge of one user, scoped to a tenant when given."""
    if tenant_id is None:
        return "id = ? AND user_id = ?", (nudge_id, user_id)
    return "id = ? AND user_id = ? AND tenant_id = ?", (nudge_id, user_id, tenant_id)


def _row_to_nudge(row) -> Nudge:
    data = dict(row)
    data["suggested_actions"] = json.loads(data.pop("suggested_actions_json") or "[]")
    return Nudge(**data)


class NudgeService:
    """Generates, lists, and transitions nudges for a user."""

    def __init__(self, db, tasks, calendar, capabilities):
        self._db = db
        self._tasks = tasks
        self._calendar = calendar
        self._capabilities = capabilities

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_nudges_for_user(
        self, tenant_id: str, user_id: str, capabilities: Capabilities | None = None,
    ) -> list[Nudge]:
        """Create any nudges the user should see now. Returns only new ones."""
        caps = capabilities or await self._capabilities.resolve(tenant_id)
        if not caps.smart_nudges:
            return []

        now = time.time()
        prefs = await self.get_preferences(tenant_id, user_id)
        await self._expire_pending(tenant_id, user_id, now)

        candidates: list[Nudge] = []
        if prefs.nudge_overdue_tasks:
            candidates += await self._overdue_candidates(tenant_id, user_id, now)
        if prefs.nudge_upcoming_deadlines:
            candidates += await self._deadline_candidates(tenant_id, user_id, now)
        if prefs.nudge_stale_tasks:
            candidates += await self._stale_candidates(tenant_id, user_id, now)
        if caps.meeting_prep and prefs.nudge_upcoming_meetings:
            candidates += await self._meeting_candidates(tenant_id, user_id, now)

        pending_rows = await self._db.fetchall(
            "SELECT nudge_type, related_task_id, related_event_id FROM nudges "
            "WHERE tenant_id = ? AND user_id = ? AND status = 'pending'",
            (tenant_id, user_id),
        )
        pending = {
            (r["nudge_type"], r["related_task_id"] or "", r["related_event_id"] or "")
            for r in pending_rows
        }

        created = []
        for nudge in candidates:
            key = _dedup_key(nudge)
            if key in pending:
                continue
            if await self._insert(nudge):
                created.append(nudge)
            pending.add(key)

        if created:
            logger.info("Created %d nudge(s) for user %s", len(created), user_id)
        return created

    async def _insert(self, nudge: Nudge) -> bool:
        """Insert unless a pending nudge for the same key appeared concurrently."""
        cursor = await guarded(
            "nudges.insert",
            lambda: self._db.execute_write(
                "INSERT INTO nudges (id, tenant_id, user_id, nudge_type, title, message, "
                "priority, related_task_id, related_event_id, status, suggested_actions_json, "
                "created_at, expires_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?, ?) "
                "ON CONFLICT DO NOTHING",
                (nudge.id, nudge.tenant_id, nudge.user_id, nudge.nudge_type.value,
                 nudge.title, nudge.message, nudge.priority.value,
                 nudge.related_task_id, nudge.related_event_id,
                 json.dumps([a.model_dump() for a in nudge.suggested_actions]),
                 nudge.created_at, nudge.expires_at),
            ),
        )
        return cursor.rowcount == 1

    async def _expire_pending(self, tenant_id: str, user_id: str, now: float) -> None:
        """Move lapsed pending nudges to 'expired' so the subject can be nudged again."""
        await guarded(
            "nudges.expire",
            lambda: self._db.execute_write(
                "UPDATE nudges SET status = 'expired' "
                "WHERE tenant_id = ? AND user_id = ? AND status = 'pending' "
                "AND expires_at IS NOT NULL AND expires_at <= ?",
                (tenant_id, user_id, now),
            ),
        )

    def _new(self, tenant_id, user_id, now, **fields) -> Nudge:
        return Nudge(
            id=uuid.uuid4().hex[:12],
            tenant_id=tenant_id,
            user_id=user_id,
            created_at=now,
            **fields,
        )

    async def _overdue_candidates(self, tenant_id, user_id, now) -> list[Nudge]:
        tasks = await self._tasks.get_tasks(
            tenant_id, assignee_id=user_id, statuses=OPEN_STATUSES, due_before=now,
        )
        tasks.sort(key=lambda t: t.due_at)
        nudges = []
        for task in tasks[:NUDGE_CANDIDATE_LIMIT]:
            days = max(1, math.ceil((now - task.due_at) / DAY))
            nudges.append(self._new(
                tenant_id, user_id, now,
                nudge_type=NudgeType.OVERDUE_TASK,
                title="Overdue Task",
                message=f'"{task.title}" is {_plural(days, "day")} overdue',
                priority=NudgePriority.URGENT if days > 7 else NudgePriority.HIGH,
                related_task_id=task.id,
                suggested_actions=_OVERDUE_ACTIONS,
                expires_at=now + DAY,
            ))
        return nudges

    async def _deadline_candidates(self, tenant_id, user_id, now) -> list[Nudge]:
        tasks = await self._tasks.get_tasks(
            tenant_id, assignee_id=user_id, statuses=OPEN_STATUSES,
            due_after=now, due_before=now + NUDGE_DEADLINE_LOOKAHEAD_HOURS * HOUR,
        )
        tasks.sort(key=lambda t: t.due_at)
        nudges = []
        for task in tasks[:NUDGE_CANDIDATE_LIMIT]:
            hours = max(1, math.ceil((task.due_at - now) / HOUR))
            when = _plural(hours, "hour") if hours < 24 else _plural(math.ceil(hours / 24), "day")
            nudges.append(self._new(
                tenant_id, user_id, now,
                nudge_type=NudgeType.UPCOMING_DEADLINE,
                title="Deadline Approaching",
                message=f'"{task.title}" is due in {when}',
                priority=NudgePriority.HIGH if hours < 24 else NudgePriority.MEDIUM,
                related_task_id=task.id,
                suggested_actions=_DEADLINE_ACTIONS,
                expires_at=task.due_at,
            ))
        return nudges

    async def _stale_candidates(self, tenant_id, user_id, now) -> list[Nudge]:
        tasks = await self._tasks.get_tasks(
            tenant_id, assignee_id=user_id, statuses=(TaskStatus.IN_PROGRESS.value,),
        )
        cutoff = now - NUDGE_STALE_AFTER_DAYS * DAY
        stale = [t for t in tasks if (t.last_activity_at or t.created_at) < cutoff]
        stale.sort(key=lambda t: t.last_activity_at or t.created_at)
        nudges = []
        for task in stale[:NUDGE_CANDIDATE_LIMIT]:
            days = math.floor((now - (task.last_activity_at or task.created_at)) / DAY)
            nudges.append(self._new(
                tenant_id, user_id, now,
                nudge_type=NudgeType.STALE_TASK,
                title="Stale Task",
                message=f'"{task.title}" hasn\'t had activity in {days} days',
                priority=NudgePriority.MEDIUM,
                related_task_id=task.id,
                suggested_actions=_STALE_ACTIONS,
                expires_at=now + 7 * DAY,
            ))
        return nudges

    async def _meeting_candidates(self, tenant_id, user_id, now) -> list[Nudge]:
        events = await self._calendar.get_events(
            tenant_id, now, now + NUDGE_MEETING_LOOKAHEAD_MINUTES * 60,
        )
        nudges = []
        for event in [e for e in events if not e.is_all_day][:NUDGE_MEETING_LIMIT]:
            minutes = max(1, math.ceil((event.start_at - now) / 60))
            nudges.append(self._new(
                tenant_id, user_id, now,
                nudge_type=NudgeType.UPCOMING_MEETING,
                title="Meeting Starting Soon",
                message=f'"{event.title}" starts in {_plural(minutes, "minute")}. '
                        "Want me to prepare context?",
                priority=NudgePriority.HIGH,
                related_event_id=event.id,
                suggested_actions=_MEETING_ACTIONS,
                expires_at=event.start_at,
            ))
        return nudges

    # ------------------------------------------------------------------
    # Reads and transitions
    # ------------------------------------------------------------------

    async def get_pending_nudges(
        self, tenant_id: str, user_id: str, limit: int = NUDGE_PENDING_LIMIT,
    ) -> list[Nudge]:
        """Live pending nudges, most urgent first, then newest."""
        rows = await self._db.fetchall(
            "SELECT * FROM nudges WHERE tenant_id = ? AND user_id = ? AND status = 'pending' "
            "AND (expires_at IS NULL OR expires_at > ?) "
            f"ORDER BY {_PRIORITY_ORDER_SQL}, created_at DESC LIMIT ?",
            (tenant_id, user_id, time.time(), limit),
        )
        return [_row_to_nudge(r) for r in rows]

    async def get_nudge(self, nudge_id: str, user_id: str, *, tenant_id: str | None = None) -> Nudge:
        where, params = _owned_by(nudge_id, user_id, tenant_id)
        row = await self._db.fetchone(f"SELECT * FROM nudges WHERE {where}", params)
        if not row:
            raise NotFoundError(f"Nudge {nudge_id} not found")
        return _row_to_nudge(row)

    async def update_nudge_status(
        self, nudge_id: str, status: str, user_id: str, *, tenant_id: str | None = None,
    ) -> dict:
        """Mark a nudge acted or dismissed and stamp the matching timestamp."""
        column = _SETTABLE_STATUSES.get(status)
        if column is None:
            raise InvalidStatusError(
                f"Invalid nudge status '{status}'. Must be one of: {sorted(_SETTABLE_STATUSES)}"
            )
        where, params = _owned_by(nudge_id, user_id, tenant_id)
        cursor = await self._db.execute_write(
            f"UPDATE nudges SET status = ?, {column} = ? WHERE {where}",
            (status, time.time(), *params),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Nudge {nudge_id} not found")
        return {"success": True}

    async def dismiss_nudge(self, nudge_id: str, user_id: str, *, tenant_id: str | None = None) -> dict:
        return await self.update_nudge_status(
            nudge_id, NudgeStatus.DISMISSED.value, user_id, tenant_id=tenant_id,
        )

    async def act_on_nudge(
        self, nudge_id: str, action: str, user_id: str, *, tenant_id: str | None = None,
    ) -> NudgeActionResult:
        """Mark acted, then return what the caller needs to carry out the action."""
        await self.update_nudge_status(nudge_id, NudgeStatus.ACTED.value, user_id, tenant_id=tenant_id)
        nudge = await self.get_nudge(nudge_id, user_id, tenant_id=tenant_id)
        return NudgeActionResult(
            success=True,
            action=action,
            nudge_type=nudge.nudge_type,
            related_task_id=nudge.related_task_id,
            related_event_id=nudge.related_event_id,
        )

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    async def get_preferences(self, tenant_id: str, user_id: str) -> NudgePreferences:
        row = await self._db.fetchone(
            "SELECT nudge_overdue_tasks, nudge_stale_tasks, nudge_upcoming_deadlines, "
            "nudge_upcoming_meetings FROM nudge_preferences WHERE tenant_id = ? AND user_id = ?",
            (tenant_id, user_id),
        )
        if row is None:
            return NudgePreferences()
        return NudgePreferences(**{k: bool(row[k]) for k in row.keys()})

    async def update_preferences(
        self, tenant_id: str, user_id: str, changes: NudgePreferencesUpdate,
    ) -> NudgePreferences:
        current = await self.get_preferences(tenant_id, user_id)
        prefs = current.model_copy(update=changes.model_dump(exclude_none=True))
        await self._db.execute_write(
            "INSERT INTO nudge_preferences (tenant_id, user_id, nudge_overdue_tasks, "
            "nudge_stale_tasks, nudge_upcoming_deadlines, nudge_upcoming_meetings, updated_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(tenant_id, user_id) DO UPDATE SET "
            "nudge_overdue_tasks = excluded.nudge_overdue_tasks, "
            "nudge_stale_tasks = excluded.nudge_stale_tasks, "
            "nudge_upcoming_deadlines = excluded.nudge_upcoming_deadlines, "
            "nudge_upcoming_meetings = excluded.nudge_upcoming_meetings, "
            "updated_at = excluded.updated_at",
            (tenant_id, user_id, int(prefs.nudge_overdue_tasks), int(prefs.nudge_stale_tasks),
             int(prefs.nudge_upcoming_deadlines), int(prefs.nudge_upcoming_meetings), time.time()),
        )
        return prefs
