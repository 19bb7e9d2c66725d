#  Proactive Engine - Enums
#
#  Status and type enumerations used across the system.
#
#  Depends on: (none)
#  Used by:    models/schemas.py, services/*, routes/*

from enum import Enum


class WindowType(str, Enum):
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"


# Seconds per window; a row older than this is elapsed
WINDOW_SECONDS: dict[WindowType, int] = {
    WindowType.MINUTE: 60,
    WindowType.HOUR: 3600,
    WindowType.DAY: 86400,
}


class UsagePeriod(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"
    CRITICAL = "critical"    # Scored the same as URGENT


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NudgeType(str, Enum):
    OVERDUE_TASK = "overdue_task"
    STALE_TASK = "stale_task"
    UPCOMING_DEADLINE = "upcoming_deadline"
    UPCOMING_MEETING = "upcoming_meeting"


class NudgePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class NudgeStatus(str, Enum):
    PENDING = "pending"
    ACTED = "acted"
    DISMISSED = "dismissed"
    EXPIRED = "expired"      # Set by the generator, never by callers


class WorkloadLevel(str, Enum):
    BALANCED = "balanced"
    BUSY = "busy"
    OVERLOADED = "overloaded"


class CeremonyType(str, Enum):
    MORNING_FOCUS = "morning_focus"
    STANDUP = "standup"
    WEEKLY_REVIEW = "weekly_review"


class CeremonyStatus(str, Enum):
    """Persisted row status."""
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class CeremonyOutcome(str, Enum):
    """Result of a generate call, evaluated fresh per call."""
    DISABLED = "disabled"
    RATE_LIMITED = "rate_limited"
    ALREADY_COMPLETED = "already_completed"
    GENERATED = "generated"
    ERROR = "error"


class InsightsOutcome(str, Enum):
    DISABLED = "disabled"
    RATE_LIMITED = "rate_limited"
    CACHED = "cached"
    GENERATED = "generated"
    ERROR = "error"


class InsightSentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    WARNING = "warning"
