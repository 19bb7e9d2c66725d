#  Proactive Engine - Logging Configuration
#
#  Configures structured logging with JSON or text format.
#  Request, tenant, and user ids ride in context variables and are stamped
#  onto every JSON record emitted while they are set.
#
#  Depends on: (none)
#  Used by:    run.py, app.py, middleware/identity.py

import contextvars
import json
import logging
import sys
import time

# Context variables for request/caller tracing
request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)
tenant_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("tenant_id", default=None)
user_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("user_id", default=None)

# JSON key -> variable, in output order
_CONTEXT_FIELDS = (
    ("request_id", request_id_var),
    ("tenant_id", tenant_id_var),
    ("user_id", user_id_var),
)


def set_request_id(rid: str | None):
    request_id_var.set(rid)


def set_tenant_id(tid: str | None):
    tenant_id_var.set(tid)


def set_user_id(uid: str | None):
    user_id_var.set(uid)


def bind_caller(tenant_id: str, user_id: str):
    set_tenant_id(tenant_id)
    set_user_id(user_id)


def clear_context():
    for _, var in _CONTEXT_FIELDS:
        var.set(None)


class JSONFormatter(logging.Formatter):
    """Emit log records as single-line JSON with context variables."""

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, var in _CONTEXT_FIELDS:
            value = var.get(None)
            if value:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


_TEXT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure structured logging for the proactive engine.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR).
        fmt: Log format, "json" for structured output or "text" for human-readable.
    """
    root = logging.getLogger("proactive")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        if fmt == "json":
            handler.setFormatter(JSONFormatter())
        else:
            handler.setFormatter(logging.Formatter(_TEXT_FORMAT, datefmt="%H:%M:%S"))
        root.addHandler(handler)

    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("anthropic").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
