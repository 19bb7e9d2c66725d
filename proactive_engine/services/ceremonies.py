#  Proactive Engine - Ceremony Orchestrator
#
#  Idempotent generate-or-fetch for AI-authored ceremonies (morning focus,
#  weekly review) and the daily standup lifecycle.
#  At most one completed ceremony exists per (tenant, user, type, period):
#  the UNIQUE key on ceremonies decides concurrent generators, and the
#  loser returns the winner's row as already_completed.
#
#  Depends on: db/connection.py, services/quota.py, services/nudges.py,
#              services/workload.py, services/readers.py,
#              services/capabilities.py, services/ai_provider.py, policy.py
#  Used by:    container.py, routes/ceremonies.py, services/insights.py

import json
import logging
import time
import uuid
from datetime import date, datetime, timedelta, timezone

from pydantic import BaseModel, ValidationError

from proactive_engine.config import (
    CEREMONY_MAX_TOKENS,
    REVIEW_MAX_TOKENS,
    SUMMARY_MAX_TOKENS,
    SUMMARY_MODEL,
)
from proactive_engine.exceptions import (
    ForbiddenError,
    InvalidStateError,
    InvalidStatusError,
    NotFoundError,
    PlanParseError,
    ProviderError,
    RateLimitedError,
)
from proactive_engine.models.enums import (
    CeremonyOutcome,
    CeremonyStatus,
    CeremonyType,
    TaskStatus,
    WorkloadLevel,
)
from proactive_engine.models.schemas import (
    ApiCallRecord,
    CeremonyOut,
    CeremonyResult,
    FocusPreferences,
    FocusPreferencesUpdate,
    MorningFocusPlan,
    ReviewMetrics,
    ScheduledBlock,
    StandupOut,
    StandupQuestion,
    StandupSubmit,
    WeeklyReviewPlan,
)
from proactive_engine.policy import guarded
from proactive_engine.services.capabilities import Capabilities
from proactive_engine.services.readers import OPEN_STATUSES
from proactive_engine.services.workload import week_bounds

logger = logging.getLogger("proactive.ceremonies")

DAY = 86400
MORNING_TASK_LIMIT = 15

# Scalar columns of focus_preferences that map 1:1 onto FocusPreferences
_FOCUS_COLUMNS = set(FocusPreferences.model_fields) - {"work_days"}

STANDUP_QUESTIONS = [
    StandupQuestion(
        key="yesterday",
        question="What did you accomplish yesterday?",
        placeholder="I finished the design review and...",
    ),
    StandupQuestion(
        key="today",
        question="What will you work on today?",
        placeholder="Today I plan to...",
    ),
    StandupQuestion(
        key="blockers",
        question="Any blockers or concerns?",
        placeholder="Nothing blocking me / I need help with...",
    ),
]

_MORNING_SYSTEM = (
    "You are a supportive, efficient productivity coach. Keep responses concise "
    "and actionable. Focus on what matters most. Respond with JSON only."
)

_REVIEW_SYSTEM = (
    "You are an encouraging productivity coach. Celebrate wins and provide "
    "constructive suggestions. Keep it positive and actionable. Respond with JSON only."
)

_STANDUP_SYSTEM = "Summarize this standup in 1-2 sentences. Be concise."


# ---------------------------------------------------------------------------
# Period keys
# ---------------------------------------------------------------------------

def _today() -> date:
    return datetime.now(timezone.utc).date()


def day_key(d: date) -> str:
    return d.isoformat()


def week_key(d: date) -> str:
    """ISO week key, e.g. 2026-W07."""
    year, week, _ = d.isocalendar()
    return f"{year}-W{week:02d}"


def _parse_date(value: date | str | None) -> date:
    if value is None:
        return _today()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


# ---------------------------------------------------------------------------
# Plan parsing
# ---------------------------------------------------------------------------

def _extract_json_object(text: str) -> dict | None:
    """Extract the first balanced JSON object from text.

    Uses brace-counting instead of a greedy regex to avoid capturing
    past the actual closing brace when the model wraps JSON in prose
    or markdown fences.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escape = False
    for i in range(start, len(text)):
        ch = text[i]
        if escape:
            escape = False
            continue
        if ch == "\\":
            escape = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                try:
                    return json.loads(text[start:i + 1])
                except json.JSONDecodeError:
                    return None
    return None


def parse_plan(text: str, model_cls: type[BaseModel]) -> BaseModel:
    """Parse provider text into a closed plan model. Raises PlanParseError."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = _extract_json_object(text)
    if not isinstance(data, dict):
        raise PlanParseError(f"No JSON object in {model_cls.__name__} response")
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise PlanParseError(f"Invalid {model_cls.__name__}: {e.error_count()} error(s)") from e


def _fmt_time(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%H:%M")


def _fmt_date(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")


def _row_to_ceremony(row) -> CeremonyOut:
    return CeremonyOut(
        id=row["id"],
        tenant_id=row["tenant_id"],
        user_id=row["user_id"],
        ceremony_type=row["ceremony_type"],
        period_key=row["period_key"],
        status=row["status"],
        ai_plan=json.loads(row["ai_plan_json"]) if row["ai_plan_json"] else None,
        ai_summary=row["ai_summary"],
        responses=json.loads(row["responses_json"]) if row["responses_json"] else None,
        created_at=row["created_at"],
        completed_at=row["completed_at"],
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class CeremonyService:
    """Drives morning focus, weekly review, and standups for one user.

    generate() never raises for policy outcomes: disabled, rate_limited,
    already_completed, and error are all returned in CeremonyResult.status.
    """

    def __init__(self, db, quota, nudges, workload, tasks, calendar, capabilities, provider):
        self._db = db
        self._quota = quota
        self._nudges = nudges
        self._workload = workload
        self._tasks = tasks
        self._calendar = calendar
        self._capabilities = capabilities
        self._provider = provider

    # ------------------------------------------------------------------
    # Generate-or-fetch
    # ------------------------------------------------------------------

    async def generate(
        self,
        tenant_id: str,
        user_id: str,
        ceremony_type: CeremonyType | str,
        capabilities: Capabilities | None = None,
    ) -> CeremonyResult:
        ceremony_type = CeremonyType(ceremony_type)
        if ceremony_type is CeremonyType.STANDUP:
            raise InvalidStateError("Standups are created with get_or_create_standup")

        today = _today()
        period_key = (
            week_key(today) if ceremony_type is CeremonyType.WEEKLY_REVIEW else day_key(today)
        )
        result = dict(ceremony_type=ceremony_type, period_key=period_key)

        caps = capabilities or await self._capabilities.resolve(tenant_id)
        if not caps.allows_ceremony(ceremony_type):
            return CeremonyResult(status=CeremonyOutcome.DISABLED, **result)
        prefs = await self.get_focus_preferences(tenant_id, user_id)
        if not prefs.allows_ceremony(ceremony_type):
            return CeremonyResult(status=CeremonyOutcome.DISABLED, **result)

        try:
            await self._quota.enforce(tenant_id)
        except RateLimitedError as e:
            logger.warning("Rate limit hit for %s (tenant %s): %s",
                           ceremony_type.value, tenant_id, e)
            return CeremonyResult(
                status=CeremonyOutcome.RATE_LIMITED,
                window_type=e.window_type,
                error=str(e),
                **result,
            )

        existing = await self._fetch(tenant_id, user_id, ceremony_type, period_key)
        if existing and existing.status == CeremonyStatus.COMPLETED:
            return self._already_completed(existing)

        if ceremony_type is CeremonyType.MORNING_FOCUS:
            context, prompt = await self._morning_context(tenant_id, user_id, prefs)
            system, max_tokens, plan_cls = _MORNING_SYSTEM, CEREMONY_MAX_TOKENS, MorningFocusPlan
        else:
            context, prompt = await self._review_context(tenant_id, user_id)
            system, max_tokens, plan_cls = _REVIEW_SYSTEM, REVIEW_MAX_TOKENS, WeeklyReviewPlan

        start = time.monotonic()
        try:
            completion = await self._provider.complete(
                prompt, system=system, max_tokens=max_tokens,
            )
        except ProviderError as e:
            logger.error("Error generating %s for user %s: %s", ceremony_type.value, user_id, e)
            await self._quota.log_api_call(ApiCallRecord(
                tenant_id=tenant_id,
                user_id=user_id,
                service="ceremony",
                operation=ceremony_type.value,
                model=getattr(self._provider, "model", ""),
                duration_ms=int((time.monotonic() - start) * 1000),
                success=False,
                error_message=str(e),
            ))
            return CeremonyResult(status=CeremonyOutcome.ERROR, error=str(e), **result)

        try:
            plan = parse_plan(completion.text, plan_cls)
        except PlanParseError as e:
            logger.warning("Falling back to deterministic %s plan: %s", ceremony_type.value, e)
            plan = (
                _fallback_morning(context) if ceremony_type is CeremonyType.MORNING_FOCUS
                else _fallback_review(context)
            )
        plan_data = plan.model_dump(by_alias=True)
        summary = plan.greeting if isinstance(plan, MorningFocusPlan) else plan.headline

        await self._quota.record_usage(tenant_id, completion.total_tokens)
        ceremony, won = await self._persist_completed(
            tenant_id, user_id, ceremony_type, period_key, plan_data, summary,
        )
        await self._quota.log_api_call(ApiCallRecord(
            tenant_id=tenant_id,
            user_id=user_id,
            service="ceremony",
            operation=ceremony_type.value,
            model=completion.model,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            duration_ms=completion.duration_ms,
            success=True,
        ))

        if not won:
            logger.info("Concurrent %s generation for user %s lost; returning winner %s",
                        ceremony_type.value, user_id, ceremony.id)
            return self._already_completed(ceremony)

        return CeremonyResult(
            status=CeremonyOutcome.GENERATED,
            id=ceremony.id,
            plan=plan_data,
            summary=summary,
            context=context,
            **result,
        )

    async def _persist_completed(
        self, tenant_id, user_id, ceremony_type, period_key, plan_data, summary,
    ) -> tuple[CeremonyOut, bool]:
        """Insert or complete the period's row. Returns (row, whether we wrote it).

        A row already completed by someone else is left untouched.
        """
        now = time.time()
        cursor = await guarded(
            "ceremonies.persist",
            lambda: self._db.execute_write(
                "INSERT INTO ceremonies (id, tenant_id, user_id, ceremony_type, period_key, "
                "status, ai_plan_json, ai_summary, created_at, completed_at) "
                "VALUES (?, ?, ?, ?, ?, 'completed', ?, ?, ?, ?) "
                "ON CONFLICT(tenant_id, user_id, ceremony_type, period_key) DO UPDATE SET "
                "status = 'completed', ai_plan_json = excluded.ai_plan_json, "
                "ai_summary = excluded.ai_summary, completed_at = excluded.completed_at "
                "WHERE ceremonies.status != 'completed'",
                (uuid.uuid4().hex[:12], tenant_id, user_id, ceremony_type.value, period_key,
                 json.dumps(plan_data), summary, now, now),
            ),
        )
        row = await self._fetch(tenant_id, user_id, ceremony_type, period_key)
        return row, cursor.rowcount == 1

    @staticmethod
    def _already_completed(ceremony: CeremonyOut) -> CeremonyResult:
        return CeremonyResult(
            status=CeremonyOutcome.ALREADY_COMPLETED,
            ceremony_type=ceremony.ceremony_type,
            period_key=ceremony.period_key,
            id=ceremony.id,
            plan=ceremony.ai_plan,
            summary=ceremony.ai_summary,
        )

    async def _fetch(self, tenant_id, user_id, ceremony_type, period_key) -> CeremonyOut | None:
        row = await self._db.fetchone(
            "SELECT * FROM ceremonies WHERE tenant_id = ? AND user_id = ? "
            "AND ceremony_type = ? AND period_key = ?",
            (tenant_id, user_id, CeremonyType(ceremony_type).value, period_key),
        )
        return _row_to_ceremony(row) if row else None

    # ------------------------------------------------------------------
    # Context gathering
    # ------------------------------------------------------------------

    async def _morning_context(
        self, tenant_id: str, user_id: str, prefs: FocusPreferences | None = None,
    ) -> tuple[dict, str]:
        prefs = prefs or FocusPreferences()
        day_start = datetime.combine(_today(), datetime.min.time(), tzinfo=timezone.utc).timestamp()
        day_end = day_start + DAY

        open_tasks = await self._tasks.get_tasks(
            tenant_id, assignee_id=user_id, statuses=OPEN_STATUSES,
        )
        # Undated work plus anything due by end of today
        tasks = [t for t in open_tasks if t.due_at is None or t.due_at < day_end]
        tasks = tasks[:MORNING_TASK_LIMIT]
        events = await self._calendar.get_events(tenant_id, day_start, day_end)
        workload = await self._workload.analyze_workload(tenant_id, user_id)
        nudges = await self._nudges.get_pending_nudges(tenant_id, user_id)

        lines = [
            "You are an AI productivity assistant helping plan someone's day. "
            "Create a focused, actionable daily plan.",
            "",
            f"TODAY'S DATE: {_today().strftime('%A, %B %d')}",
            "",
            f"TASKS TO CONSIDER ({len(tasks)} total):",
        ]
        lines += [
            f"- [{t.priority}] {t.title}" + (f" (due: {_fmt_date(t.due_at)})" if t.due_at else "")
            for t in tasks
        ] or ["No tasks"]
        lines += ["", f"TODAY'S CALENDAR ({len(events)} events):"]
        lines += [
            f"- {_fmt_time(e.start_at)}: {e.title}" + (" (all day)" if e.is_all_day else "")
            for e in events
        ] or ["No events"]
        lines += [
            "",
            f"WORKLOAD STATUS: {workload.workload_level.value}",
            f"- {workload.tasks_due} tasks due this week",
            f"- {workload.meeting_hours} hours of meetings",
            f"- {workload.recommendation}",
        ]
        lines += [
            "",
            f"WORKING HOURS: {prefs.work_start_hour}:00-{prefs.work_end_hour}:00",
            f"- Protect a focus block {prefs.focus_start_hour}:00-{prefs.focus_end_hour}:00 "
            f"(at least {prefs.min_focus_block_minutes} minutes)",
            f"- No more than {prefs.max_meetings_per_day} meetings",
        ]
        if nudges:
            lines += ["", "ATTENTION NEEDED:"]
            lines += [f"- {n.title}: {n.message}" for n in nudges]
        lines += [
            "",
            "Generate a daily plan in JSON format:",
            "{",
            '  "greeting": "Personalized good morning message (1 sentence)",',
            '  "topPriority": "The ONE thing to focus on today",',
            '  "scheduledBlocks": [',
            '    {"time": "9:00 AM", "activity": "...", "duration": "1h", "type": "focus|meeting|break"}',
            "  ],",
            '  "tasksToComplete": ["task title 1", "task title 2"],',
            '  "warnings": ["Any concerns or conflicts"],',
            '  "tip": "One productivity tip for the day"',
            "}",
        ]

        context = {
            "tasks": [
                {"id": t.id, "title": t.title, "priority": t.priority, "due_at": t.due_at}
                for t in tasks
            ],
            "events": [e.model_dump() for e in events],
            "workload": workload.model_dump(mode="json", exclude={"tasks", "events"}),
            "nudges": [{"title": n.title, "message": n.message} for n in nudges],
        }
        return context, "\n".join(lines)

    async def _review_context(self, tenant_id: str, user_id: str) -> tuple[dict, str]:
        start, end = week_bounds()
        start_ts, end_ts = start.timestamp(), end.timestamp()

        completed = await self._tasks.get_tasks(
            tenant_id, assignee_id=user_id, statuses=(TaskStatus.DONE.value,),
            completed_after=start_ts, completed_before=end_ts,
        )
        created = await self._tasks.get_tasks(
            tenant_id, created_by=user_id, created_after=start_ts, created_before=end_ts,
        )
        standups = await self._db.fetchall(
            "SELECT ai_summary FROM ceremonies WHERE tenant_id = ? AND user_id = ? "
            "AND ceremony_type = 'standup' AND status = 'completed' "
            "AND period_key >= ? AND period_key < ? ORDER BY period_key",
            (tenant_id, user_id, day_key(start.date()), day_key(end.date())),
        )
        events = await self._calendar.get_events(tenant_id, start_ts, end_ts)
        meetings = [e for e in events if not e.is_all_day]

        week_end = (end - timedelta(days=1)).date()
        lines = [
            "Generate a weekly review summary for this team member.",
            "",
            f"WEEK: {start.date().isoformat()} - {week_end.isoformat()}",
            "",
            "ACCOMPLISHMENTS:",
            f"- Tasks completed: {len(completed)}",
        ]
        lines += [f"  * {t.title}" for t in completed[:10]]
        lines += [
            "",
            "ACTIVITY:",
            f"- Tasks created: {len(created)}",
            f"- Standups completed: {len(standups)}/5",
            f"- Meetings: {len(meetings)}",
        ]
        if standups:
            lines += ["", "STANDUP HIGHLIGHTS:"]
            lines += [s["ai_summary"] for s in standups if s["ai_summary"]]
        lines += [
            "",
            "Generate JSON:",
            "{",
            '  "headline": "One sentence summary of the week (celebratory tone)",',
            '  "highlights": ["Key accomplishment 1", "Key accomplishment 2"],',
            '  "metrics": {',
            '    "productivity": "high|medium|low",',
            '    "collaboration": "high|medium|low"',
            "  },",
            '  "areasOfFocus": ["What to focus on next week"],',
            '  "celebration": "Something to celebrate or be proud of"',
            "}",
        ]

        context = {
            "week_start": start.date().isoformat(),
            "week_end": week_end.isoformat(),
            "completed_titles": [t.title for t in completed],
            "stats": {
                "tasks_completed": len(completed),
                "tasks_created": len(created),
                "standups_completed": len(standups),
                "meetings": len(meetings),
            },
        }
        return context, "\n".join(lines)

    # ------------------------------------------------------------------
    # Public wrappers
    # ------------------------------------------------------------------

    async def generate_morning_focus(self, tenant_id: str, user_id: str) -> CeremonyResult:
        return await self.generate(tenant_id, user_id, CeremonyType.MORNING_FOCUS)

    async def get_morning_focus(
        self, tenant_id: str, user_id: str, on: date | str | None = None,
    ) -> CeremonyOut | None:
        """Stored morning focus for a day (today by default). Never generates."""
        return await self._fetch(
            tenant_id, user_id, CeremonyType.MORNING_FOCUS, day_key(_parse_date(on)),
        )

    async def generate_weekly_review(self, tenant_id: str, user_id: str) -> CeremonyResult:
        return await self.generate(tenant_id, user_id, CeremonyType.WEEKLY_REVIEW)

    async def get_weekly_review(
        self, tenant_id: str, user_id: str, week_of: date | str | None = None,
    ) -> CeremonyOut | None:
        """Stored weekly review for the ISO week containing week_of. Never generates."""
        return await self._fetch(
            tenant_id, user_id, CeremonyType.WEEKLY_REVIEW, week_key(_parse_date(week_of)),
        )

    # ------------------------------------------------------------------
    # Standup
    # ------------------------------------------------------------------

    @staticmethod
    def get_standup_questions() -> list[StandupQuestion]:
        return list(STANDUP_QUESTIONS)

    async def get_or_create_standup(
        self, tenant_id: str, user_id: str, capabilities: Capabilities | None = None,
    ) -> StandupOut:
        """Today's standup, created pending on first request."""
        caps = capabilities or await self._capabilities.resolve(tenant_id)
        if not caps.daily_standup:
            raise InvalidStateError("Daily standup is disabled for this team")
        prefs = await self.get_focus_preferences(tenant_id, user_id)
        if not prefs.daily_standup_enabled:
            raise InvalidStateError("Daily standup is turned off in your focus preferences")

        period_key = day_key(_today())
        await guarded(
            "ceremonies.persist",
            lambda: self._db.execute_write(
                "INSERT INTO ceremonies (id, tenant_id, user_id, ceremony_type, period_key, "
                "status, responses_json, created_at) VALUES (?, ?, ?, 'standup', ?, 'pending', ?, ?) "
                "ON CONFLICT(tenant_id, user_id, ceremony_type, period_key) DO NOTHING",
                (uuid.uuid4().hex[:12], tenant_id, user_id, period_key, "{}", time.time()),
            ),
        )
        ceremony = await self._fetch(tenant_id, user_id, CeremonyType.STANDUP, period_key)
        return StandupOut(ceremony=ceremony, questions=self.get_standup_questions())

    async def submit_standup(
        self,
        ceremony_id: str,
        user_id: str,
        responses: StandupSubmit,
        *,
        tenant_id: str | None = None,
    ) -> CeremonyOut:
        """Record answers and a one-line summary. AI trouble never blocks the submit."""
        row = await self._db.fetchone("SELECT * FROM ceremonies WHERE id = ?", (ceremony_id,))
        if not row or row["ceremony_type"] != CeremonyType.STANDUP.value:
            raise NotFoundError(f"Standup {ceremony_id} not found")
        # Another tenant's row is invisible, not forbidden
        if tenant_id is not None and row["tenant_id"] != tenant_id:
            raise NotFoundError(f"Standup {ceremony_id} not found")
        if row["user_id"] != user_id:
            raise ForbiddenError("Standup belongs to another user")

        summary = await self._summarize_standup(row["tenant_id"], user_id, responses)
        now = time.time()
        await guarded(
            "ceremonies.persist",
            lambda: self._db.execute_write(
                "UPDATE ceremonies SET responses_json = ?, ai_summary = ?, status = 'completed', "
                "completed_at = ? WHERE id = ? AND tenant_id = ?",
                (responses.model_dump_json(), summary, now, ceremony_id, row["tenant_id"]),
            ),
        )
        updated = await self._db.fetchone("SELECT * FROM ceremonies WHERE id = ?", (ceremony_id,))
        return _row_to_ceremony(updated)

    async def _summarize_standup(
        self, tenant_id: str, user_id: str, responses: StandupSubmit,
    ) -> str:
        fallback = f"Working on: {responses.today[:100] or 'Not specified'}"
        try:
            await self._quota.enforce(tenant_id)
        except RateLimitedError:
            return fallback

        prompt = (
            f"Yesterday: {responses.yesterday}\n"
            f"Today: {responses.today}\n"
            f"Blockers: {responses.blockers or 'None'}"
        )
        try:
            completion = await self._provider.complete(
                prompt, system=_STANDUP_SYSTEM, max_tokens=SUMMARY_MAX_TOKENS, model=SUMMARY_MODEL,
            )
        except ProviderError as e:
            logger.warning("Standup summary failed, using fallback: %s", e)
            await self._quota.log_api_call(ApiCallRecord(
                tenant_id=tenant_id,
                user_id=user_id,
                service="ceremony",
                operation="standup_summary",
                model=SUMMARY_MODEL,
                success=False,
                error_message=str(e),
            ))
            return fallback

        await self._quota.record_usage(tenant_id, completion.total_tokens)
        await self._quota.log_api_call(ApiCallRecord(
            tenant_id=tenant_id,
            user_id=user_id,
            service="ceremony",
            operation="standup_summary",
            model=completion.model,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            duration_ms=completion.duration_ms,
        ))
        return completion.text.strip() or fallback

    async def get_team_standups(
        self, tenant_id: str, on: date | str | None = None,
    ) -> list[CeremonyOut]:
        """Completed standups for a day across the tenant, latest first."""
        rows = await self._db.fetchall(
            "SELECT * FROM ceremonies WHERE tenant_id = ? AND ceremony_type = 'standup' "
            "AND period_key = ? AND status = 'completed' ORDER BY completed_at DESC",
            (tenant_id, day_key(_parse_date(on))),
        )
        return [_row_to_ceremony(r) for r in rows]

    # ------------------------------------------------------------------
    # Focus preferences
    # ------------------------------------------------------------------

    async def get_focus_preferences(self, tenant_id: str, user_id: str) -> FocusPreferences:
        """Stored preferences, or defaults for a user who never saved any."""
        row = await self._db.fetchone(
            "SELECT * FROM focus_preferences WHERE tenant_id = ? AND user_id = ?",
            (tenant_id, user_id),
        )
        if row is None:
            return FocusPreferences()
        data = {k: row[k] for k in row.keys() if k in _FOCUS_COLUMNS}
        data["work_days"] = json.loads(row["work_days_json"])
        return FocusPreferences.model_validate(data)

    async def update_focus_preferences(
        self, tenant_id: str, user_id: str, changes: FocusPreferencesUpdate,
    ) -> FocusPreferences:
        current = await self.get_focus_preferences(tenant_id, user_id)
        merged = {**current.model_dump(), **changes.model_dump(exclude_none=True)}
        try:
            prefs = FocusPreferences.model_validate(merged)
        except ValidationError as e:
            raise InvalidStatusError(
                "; ".join(err["msg"] for err in e.errors())
            ) from e

        values = prefs.model_dump()
        values["work_days_json"] = json.dumps(values.pop("work_days"))
        columns = list(values)
        await guarded(
            "ceremonies.focus_preferences",
            lambda: self._db.execute_write(
                f"INSERT INTO focus_preferences (tenant_id, user_id, {', '.join(columns)}, updated_at) "
                f"VALUES (?, ?, {', '.join('?' for _ in columns)}, ?) "
                "ON CONFLICT(tenant_id, user_id) DO UPDATE SET "
                + ", ".join(f"{c} = excluded.{c}" for c in columns + ["updated_at"]),
                (tenant_id, user_id, *values.values(), time.time()),
            ),
        )
        logger.info("Updated focus preferences for user %s", user_id)
        return prefs


# ---------------------------------------------------------------------------
# Deterministic fallbacks
# ---------------------------------------------------------------------------

def _fallback_morning(context: dict) -> MorningFocusPlan:
    tasks = context.get("tasks", [])
    workload = context.get("workload", {})
    blocks = []
    for event in context.get("events", []):
        if event.get("is_all_day"):
            continue
        minutes = int((event["end_at"] - event["start_at"]) // 60)
        blocks.append(ScheduledBlock(
            time=_fmt_time(event["start_at"]),
            activity=event["title"],
            duration=f"{minutes}m",
            block_type="meeting",
        ))
    warnings = [f"{n['title']}: {n['message']}" for n in context.get("nudges", [])[:3]]
    if workload.get("workload_level") == WorkloadLevel.OVERLOADED.value:
        warnings.append("Your week is over capacity.")
    return MorningFocusPlan(
        greeting="Good morning! Here is what needs your attention today.",
        top_priority=tasks[0]["title"] if tasks else None,
        scheduled_blocks=blocks,
        tasks_to_complete=[t["title"] for t in tasks[:3]],
        warnings=warnings,
        tip=workload.get("recommendation", ""),
    )


def _tier(value: int, high: int, medium: int) -> str:
    if value >= high:
        return "high"
    return "medium" if value >= medium else "low"


def _fallback_review(context: dict) -> WeeklyReviewPlan:
    stats = context.get("stats", {})
    done = stats.get("tasks_completed", 0)
    return WeeklyReviewPlan(
        headline=f"You completed {done} task{'s' if done != 1 else ''} this week.",
        highlights=context.get("completed_titles", [])[:5],
        metrics=ReviewMetrics(
            productivity=_tier(done, high=5, medium=1),
            collaboration=_tier(stats.get("standups_completed", 0), high=4, medium=2),
        ),
        areas_of_focus=["Plan your top priorities for next week"],
        celebration=f"{done} task{'s' if done != 1 else ''} done." if done else "You showed up this week.",
    )
