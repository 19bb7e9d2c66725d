#  Proactive Engine - Pydantic Schemas
#
#  Request/response models for the REST API, collaborator records, and the
#  closed plan models for each AI-authored ceremony.
#
#  Depends on: models/enums.py
#  Used by:    services/*, routes/*

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from proactive_engine.models.enums import (
    CeremonyOutcome,
    CeremonyStatus,
    CeremonyType,
    InsightSentiment,
    InsightsOutcome,
    NudgePriority,
    NudgeStatus,
    NudgeType,
    RiskLevel,
    UsagePeriod,
    WindowType,
    WorkloadLevel,
)


# ---------------------------------------------------------------------------
# Collaborator records
# ---------------------------------------------------------------------------

class TaskRecord(BaseModel):
    id: str
    tenant_id: str
    title: str
    status: str = "todo"
    priority: str = "medium"
    assignee_id: str | None = None
    created_by: str | None = None
    due_at: float | None = None
    created_at: float
    completed_at: float | None = None
    last_activity_at: float | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None


class EventRecord(BaseModel):
    id: str
    tenant_id: str
    title: str
    start_at: float
    end_at: float
    is_all_day: bool = False


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------

class WindowCheck(BaseModel):
    allowed: bool
    remaining: int  # -1 when the check failed open
    limit: int
    reason: str | None = None
    reset_at: float | None = None
    error: str | None = None


class RateLimitStatus(BaseModel):
    window_type: WindowType
    call_count: int
    limit: int
    remaining: int
    token_count: int
    token_limit: int | None = None  # No token budget for the minute window
    window_start: float | None = None
    reset_at: float | None = None


class ApiCallRecord(BaseModel):
    tenant_id: str
    user_id: str | None = None
    service: str
    operation: str
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    duration_ms: int = 0
    success: bool = True
    error_message: str | None = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class ServiceUsage(BaseModel):
    calls: int = 0
    failures: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    avg_duration_ms: float = 0.0


class UsageTotals(BaseModel):
    calls: int = 0
    failures: int = 0
    total_tokens: int = 0


class UsageStats(BaseModel):
    period: UsagePeriod
    since: float
    by_service: dict[str, ServiceUsage] = Field(default_factory=dict)
    totals: UsageTotals = Field(default_factory=UsageTotals)
    rate_limits: list[RateLimitStatus] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Task health
# ---------------------------------------------------------------------------

class Intervention(BaseModel):
    action: str
    description: str
    priority: str  # "high" | "medium"


class TaskHealthReport(BaseModel):
    task_id: str
    tenant_id: str
    task_title: str = ""
    health_score: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel
    risk_factors: list[str] = Field(default_factory=list)
    interventions: list[Intervention] = Field(default_factory=list)
    days_until_due: int | None = None
    computed_at: float


# ---------------------------------------------------------------------------
# Nudges
# ---------------------------------------------------------------------------

class SuggestedAction(BaseModel):
    action: str
    label: str


class Nudge(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    nudge_type: NudgeType
    title: str
    message: str
    priority: NudgePriority
    related_task_id: str | None = None
    related_event_id: str | None = None
    status: NudgeStatus = NudgeStatus.PENDING
    suggested_actions: list[SuggestedAction] = Field(default_factory=list)
    created_at: float
    expires_at: float | None = None
    acted_at: float | None = None
    dismissed_at: float | None = None


class NudgeStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1, max_length=32)


class NudgeActionRequest(BaseModel):
    action: str = Field(..., min_length=1, max_length=64)


class NudgeActionResult(BaseModel):
    success: bool
    action: str
    nudge_type: NudgeType
    related_task_id: str | None = None
    related_event_id: str | None = None


class NudgePreferences(BaseModel):
    nudge_overdue_tasks: bool = True
    nudge_stale_tasks: bool = True
    nudge_upcoming_deadlines: bool = True
    nudge_upcoming_meetings: bool = True


class NudgePreferencesUpdate(BaseModel):
    nudge_overdue_tasks: bool | None = None
    nudge_stale_tasks: bool | None = None
    nudge_upcoming_deadlines: bool | None = None
    nudge_upcoming_meetings: bool | None = None


# ---------------------------------------------------------------------------
# Focus preferences
# ---------------------------------------------------------------------------

_CLOCK = r"^([01]\d|2[0-3]):[0-5]\d$"   # HH:MM, 24h
Hour = Annotated[int, Field(ge=0, le=24)]
Weekday = Annotated[int, Field(ge=0, le=6)]  # 0 = Sunday


class FocusPreferences(BaseModel):
    """Per-user working pattern and ceremony opt-ins."""
    focus_start_hour: Hour = 9
    focus_end_hour: Hour = 12
    min_focus_block_minutes: int = Field(default=60, ge=15, le=480)
    max_meetings_per_day: int = Field(default=4, ge=0, le=24)
    work_start_hour: Hour = 9
    work_end_hour: Hour = 17
    work_days: list[Weekday] = Field(default_factory=lambda: [1, 2, 3, 4, 5])
    morning_focus_enabled: bool = True
    morning_focus_time: str = Field(default="09:00", pattern=_CLOCK)
    daily_standup_enabled: bool = True
    daily_standup_time: str = Field(default="10:00", pattern=_CLOCK)
    weekly_review_enabled: bool = True
    weekly_review_day: Weekday = 5
    weekly_review_time: str = Field(default="16:00", pattern=_CLOCK)

    @model_validator(mode="after")
    def _ordered_hours(self):
        if self.work_end_hour <= self.work_start_hour:
            raise ValueError("work_end_hour must be after work_start_hour")
        if self.focus_end_hour <= self.focus_start_hour:
            raise ValueError("focus_end_hour must be after focus_start_hour")
        return self

    @field_validator("work_days")
    @classmethod
    def _unique_days(cls, v: list[int]) -> list[int]:
        return sorted(set(v))

    def allows_ceremony(self, ceremony_type: CeremonyType | str) -> bool:
        flag = {
            CeremonyType.MORNING_FOCUS: self.morning_focus_enabled,
            CeremonyType.STANDUP: self.daily_standup_enabled,
            CeremonyType.WEEKLY_REVIEW: self.weekly_review_enabled,
        }
        return flag[CeremonyType(ceremony_type)]


class FocusPreferencesUpdate(BaseModel):
    focus_start_hour: Hour | None = None
    focus_end_hour: Hour | None = None
    min_focus_block_minutes: int | None = Field(default=None, ge=15, le=480)
    max_meetings_per_day: int | None = Field(default=None, ge=0, le=24)
    work_start_hour: Hour | None = None
    work_end_hour: Hour | None = None
    work_days: list[Weekday] | None = None
    morning_focus_enabled: bool | None = None
    morning_focus_time: str | None = Field(default=None, pattern=_CLOCK)
    daily_standup_enabled: bool | None = None
    daily_standup_time: str | None = Field(default=None, pattern=_CLOCK)
    weekly_review_enabled: bool | None = None
    weekly_review_day: Weekday | None = None
    weekly_review_time: str | None = Field(default=None, pattern=_CLOCK)


# ---------------------------------------------------------------------------
# Workload
# ---------------------------------------------------------------------------

class WorkloadReport(BaseModel):
    week_start: str  # YYYY-MM-DD (Monday)
    week_end: str    # YYYY-MM-DD (Sunday)
    tasks_due: int
    estimated_task_hours: float
    meeting_hours: float
    committed_hours: float
    capacity_hours: float
    available_hours: float
    workload_ratio: float
    workload_level: WorkloadLevel
    recommendation: str
    tasks: list[TaskRecord] = Field(default_factory=list)
    events: list[EventRecord] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Ceremony plans (camelCase on the wire)
# ---------------------------------------------------------------------------

class ScheduledBlock(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    time: str
    activity: str
    duration: str | int = ""
    block_type: str = Field(default="focus", alias="type")  # focus|meeting|break


class MorningFocusPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    greeting: str
    top_priority: str | None = Field(default=None, alias="topPriority")
    scheduled_blocks: list[ScheduledBlock] = Field(default_factory=list, alias="scheduledBlocks")
    tasks_to_complete: list[str] = Field(default_factory=list, alias="tasksToComplete")
    warnings: list[str] = Field(default_factory=list)
    tip: str = ""


class ReviewMetrics(BaseModel):
    productivity: str = "medium"    # high|medium|low
    collaboration: str = "medium"


class WeeklyReviewPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    headline: str
    highlights: list[str] = Field(default_factory=list)
    metrics: ReviewMetrics = Field(default_factory=ReviewMetrics)
    areas_of_focus: list[str] = Field(default_factory=list, alias="areasOfFocus")
    celebration: str = ""


class StandupQuestion(BaseModel):
    key: str
    question: str
    placeholder: str


class StandupSubmit(BaseModel):
    yesterday: str = Field(default="", max_length=5000)
    today: str = Field(default="", max_length=5000)
    blockers: str = Field(default="", max_length=5000)


# ---------------------------------------------------------------------------
# Ceremonies
# ---------------------------------------------------------------------------

class CeremonyOut(BaseModel):
    id: str
    tenant_id: str
    user_id: str
    ceremony_type: CeremonyType
    period_key: str
    status: CeremonyStatus
    ai_plan: dict | None = None
    ai_summary: str | None = None
    responses: dict | None = None
    created_at: float
    completed_at: float | None = None


class CeremonyResult(BaseModel):
    """Outcome of a generate-or-fetch call.

    Policy outcomes (disabled, rate_limited, already_completed) are carried
    in status instead of being raised.
    """
    status: CeremonyOutcome
    ceremony_type: CeremonyType
    period_key: str | None = None
    id: str | None = None
    plan: dict | None = None
    summary: str | None = None
    window_type: WindowType | None = None
    error: str | None = None
    context: dict = Field(default_factory=dict)


class StandupOut(BaseModel):
    ceremony: CeremonyOut
    questions: list[StandupQuestion]


# ---------------------------------------------------------------------------
# Team insights
# ---------------------------------------------------------------------------

class InsightItem(BaseModel):
    title: str
    description: str = ""
    sentiment: InsightSentiment = InsightSentiment.NEUTRAL

    @field_validator("sentiment", mode="before")
    @classmethod
    def _known_sentiment(cls, v):
        # Anything the model invents reads as neutral
        try:
            return InsightSentiment(v)
        except ValueError:
            return InsightSentiment.NEUTRAL


class InsightRecommendation(BaseModel):
    title: str
    action: str = ""


class TeamInsightsPlan(BaseModel):
    """What the provider is asked to return."""
    insights: list[InsightItem] = Field(default_factory=list)
    recommendations: list[InsightRecommendation] = Field(default_factory=list)
    summary: str = ""


class InsightMetrics(BaseModel):
    tasks_completed: int = 0
    overdue_tasks: int = 0
    at_risk_tasks: int = 0


class TeamInsights(BaseModel):
    status: InsightsOutcome
    insights: list[InsightItem] = Field(default_factory=list)
    recommendations: list[InsightRecommendation] = Field(default_factory=list)
    summary: str | None = None
    metrics: InsightMetrics | None = None
    generated_at: float | None = None
    valid_until: float | None = None
    window_type: WindowType | None = None
    error: str | None = None
