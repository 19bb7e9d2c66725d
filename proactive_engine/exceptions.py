#  Proactive Engine - Custom Exceptions
#
#  Typed exception hierarchy so routes can map business errors to HTTP
#  status codes without pattern-matching on message strings.
#
#  Depends on: (none)
#  Used by:    services/*, app.py

class EngineError(Exception):
    """Base exception for all proactive engine business logic errors."""


class NotFoundError(EngineError):
    """Resource (nudge, ceremony, task) does not exist."""


class ForbiddenError(EngineError):
    """Resource exists but belongs to another user."""


class InvalidStatusError(EngineError):
    """Requested status transition is not one of the allowed values."""


class InvalidStateError(EngineError):
    """Operation not allowed in the current resource state."""


class RateLimitedError(EngineError):
    """A tenant's AI quota window is exhausted.

    window_type tells callers which granularity tripped (minute/hour/day).
    """

    def __init__(self, window_type: str, reason: str = "", reset_at: float | None = None):
        self.window_type = window_type
        self.reason = reason
        self.reset_at = reset_at
        super().__init__(f"Rate limited ({window_type}): {reason}" if reason else f"Rate limited ({window_type})")


class ProviderError(EngineError):
    """The AI provider call failed, timed out, or returned nothing usable."""


class PlanParseError(EngineError):
    """The provider returned text that couldn't be parsed into the expected plan."""
