#  Proactive Engine - Configuration
#
#  Loads config.json and provides typed access to all settings.
#  Dot-notation path lookup: cfg("quota.limits.minute")
#
#  Depends on: config.json (optional)
#  Used by:    all proactive_engine modules

import json
import os
from pathlib import Path

# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------

PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_PATH = PROJECT_ROOT / "config.json"
DATA_DIR = PROJECT_ROOT / "data"
DB_PATH = DATA_DIR / "proactive.db"

# ---------------------------------------------------------------------------
# Load config
# ---------------------------------------------------------------------------

_config: dict = {}


def _load_config(path: Path | None = None):
    """Load configuration from JSON file (internal: called once at import time).

    Module-level constants below are snapshots from _config.
    Do not call this function after import; constants won't update.
    """
    global _config
    config_path = path or CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {config_path}. "
            "Copy config.example.json to config.json."
        )
    with open(config_path) as f:
        _config = json.load(f)


# Config file is optional: every setting has a default
if CONFIG_PATH.exists():
    _load_config()


def cfg(path: str, default=None):
    """Get a config value by dot-notation path.

    Example: cfg("quota.limits.hour") -> 200
    """
    keys = path.split(".")
    val = _config
    for key in keys:
        if isinstance(val, dict) and key in val:
            val = val[key]
        else:
            return default
    return val


# ---------------------------------------------------------------------------
# Convenience constants
# ---------------------------------------------------------------------------

HOST = cfg("server.host", "0.0.0.0")
PORT = cfg("server.port", 5300)
CORS_ORIGINS = cfg("server.cors_origins", [
    "http://localhost:5173",
    f"http://localhost:{PORT}",
    "http://127.0.0.1:5173",
    f"http://127.0.0.1:{PORT}",
])
HTTP_RATE_LIMIT = cfg("server.rate_limit", "120/minute")

# AI provider
ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
AI_MODEL = cfg("anthropic.model", "claude-sonnet-4-6")
SUMMARY_MODEL = cfg("anthropic.summary_model", "claude-haiku-4-5-20251001")
API_TIMEOUT = cfg("anthropic.timeout", 60)
CEREMONY_MAX_TOKENS = cfg("anthropic.ceremony_max_tokens", 800)
REVIEW_MAX_TOKENS = cfg("anthropic.review_max_tokens", 500)
INSIGHTS_MAX_TOKENS = cfg("anthropic.insights_max_tokens", 500)
SUMMARY_MAX_TOKENS = cfg("anthropic.summary_max_tokens", 100)

# Quota (calls per window)
QUOTA_LIMITS: dict[str, int] = {
    "minute": cfg("quota.limits.minute", 20),
    "hour": cfg("quota.limits.hour", 200),
    "day": cfg("quota.limits.day", 2000),
}
# Token budgets are recorded and reported; they gate enforce() only when
# quota.enforce_token_limits is true.
TOKEN_LIMITS: dict[str, int] = {
    "hour": cfg("quota.token_limits.hour", 500_000),
    "day": cfg("quota.token_limits.day", 5_000_000),
}
ENFORCE_TOKEN_LIMITS = cfg("quota.enforce_token_limits", False)

# Nudges
NUDGE_CANDIDATE_LIMIT = cfg("nudges.candidate_limit", 5)
NUDGE_MEETING_LIMIT = cfg("nudges.meeting_limit", 3)
NUDGE_DEADLINE_LOOKAHEAD_HOURS = cfg("nudges.deadline_lookahead_hours", 48)
NUDGE_MEETING_LOOKAHEAD_MINUTES = cfg("nudges.meeting_lookahead_minutes", 30)
NUDGE_STALE_AFTER_DAYS = cfg("nudges.stale_after_days", 7)
NUDGE_PENDING_LIMIT = cfg("nudges.pending_limit", 10)

# Health
AT_RISK_THRESHOLD = cfg("health.at_risk_threshold", 0.6)

# Insights
INSIGHTS_CACHE_HOURS = cfg("insights.cache_hours", 6)
INSIGHTS_LOOKBACK_DAYS = cfg("insights.lookback_days", 7)

# Workload
WEEKLY_CAPACITY_HOURS = cfg("workload.weekly_capacity_hours", 40)
DEFAULT_TASK_HOURS = cfg("workload.default_task_hours", 2)


# ---------------------------------------------------------------------------
# Startup validation
# ---------------------------------------------------------------------------

def validate_config():
    """Validate critical config values. Call during app startup (not at import time).

    Raises ConfigError for fatal issues, logs warnings for non-fatal ones.
    """
    import logging
    _logger = logging.getLogger("proactive.config")

    # Fatal: port must be valid
    if not isinstance(PORT, int) or not (1 <= PORT <= 65535):
        raise ConfigError(f"server.port must be 1-65535, got {PORT}")

    # Fatal: call limits must be positive integers
    for window, val in QUOTA_LIMITS.items():
        if not isinstance(val, int) or val <= 0:
            raise ConfigError(f"quota.limits.{window} must be a positive integer, got {val}")

    for window, val in TOKEN_LIMITS.items():
        if not isinstance(val, int) or val <= 0:
            raise ConfigError(f"quota.token_limits.{window} must be a positive integer, got {val}")

    # Fatal: timeouts and capacity must be positive
    for label, val in [("anthropic.timeout", API_TIMEOUT),
                       ("workload.weekly_capacity_hours", WEEKLY_CAPACITY_HOURS),
                       ("workload.default_task_hours", DEFAULT_TASK_HOURS),
                       ("insights.cache_hours", INSIGHTS_CACHE_HOURS)]:
        if not isinstance(val, (int, float)) or val <= 0:
            raise ConfigError(f"{label} must be > 0, got {val}")

    # Fatal: CORS origins must be valid URLs
    for origin in CORS_ORIGINS:
        if not isinstance(origin, str):
            raise ConfigError(f"CORS origin must be a string, got {type(origin).__name__}")
        if origin == "*":
            _logger.warning("CORS origin '*' allows all origins; not recommended for production")
        elif not origin.startswith(("http://", "https://")):
            raise ConfigError(
                f"CORS origin must start with http:// or https://, got '{origin}'"
            )

    # Warning: without a key every AI call fails and ceremonies fall back
    if not ANTHROPIC_API_KEY:
        _logger.warning(
            "ANTHROPIC_API_KEY is not set. AI calls will fail; ceremonies will "
            "return status=error and standup summaries will use the fallback."
        )

    if ENFORCE_TOKEN_LIMITS:
        _logger.info("Token limits are enforced in addition to call limits")


class ConfigError(Exception):
    """Raised when critical configuration is invalid."""
