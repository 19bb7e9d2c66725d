#  Proactive Engine - Structured Logging Tests
#
#  Tests for JSON formatter and context variable propagation.
#
#  Depends on: proactive_engine/logging_config.py, proactive_engine/middleware/identity.py
#  Used by:    pytest

import json
import logging
import sys

from proactive_engine.logging_config import (
    JSONFormatter,
    clear_context,
    request_id_var,
    setup_logging,
    tenant_id_var,
    user_id_var,
)
from proactive_engine.middleware.identity import get_caller


def _record(msg: str, level: int = logging.INFO, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="proactive.test", level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=exc_info,
    )


class TestJSONFormatter:
    def test_output_is_valid_json(self):
        data = json.loads(JSONFormatter().format(_record("hello world")))
        assert data["level"] == "INFO"
        assert data["logger"] == "proactive.test"
        assert data["message"] == "hello world"
        assert data["timestamp"].endswith("Z")

    def test_request_id_included_when_set(self):
        token = request_id_var.set("req-abc123")
        try:
            data = json.loads(JSONFormatter().format(_record("with request")))
            assert data["request_id"] == "req-abc123"
        finally:
            request_id_var.reset(token)

    def test_tenant_id_included_when_set(self):
        token = tenant_id_var.set("tenant_a")
        try:
            data = json.loads(JSONFormatter().format(_record("with tenant")))
            assert data["tenant_id"] == "tenant_a"
        finally:
            tenant_id_var.reset(token)

    def test_user_id_included_when_set(self):
        token = user_id_var.set("user_1")
        try:
            data = json.loads(JSONFormatter().format(_record("with user")))
            assert data["user_id"] == "user_1"
        finally:
            user_id_var.reset(token)

    def test_context_vars_absent_when_not_set(self):
        clear_context()
        data = json.loads(JSONFormatter().format(_record("no context")))
        assert "request_id" not in data
        assert "tenant_id" not in data
        assert "user_id" not in data

    def test_exception_included(self):
        try:
            raise ValueError("test error")
        except ValueError:
            exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(_record("oops", logging.ERROR, exc_info)))
        assert "ValueError" in data["exception"]


class TestCallerBinding:
    async def test_get_caller_binds_tenant_and_user(self):
        clear_context()
        try:
            caller = await get_caller(x_tenant_id="tenant_a", x_user_id="user_1")
            assert caller.user_id == "user_1"
            data = json.loads(JSONFormatter().format(_record("in request")))
            assert data["tenant_id"] == "tenant_a"
            assert data["user_id"] == "user_1"
        finally:
            clear_context()

    def test_clear_context_resets_every_field(self):
        request_id_var.set("req-1")
        tenant_id_var.set("tenant_a")
        user_id_var.set("user_1")
        clear_context()
        assert request_id_var.get() is None
        assert tenant_id_var.get() is None
        assert user_id_var.get() is None


class TestSetupLogging:
    def test_json_format(self):
        logger = logging.getLogger("proactive")
        logger.handlers.clear()

        setup_logging("INFO", "json")
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.level == logging.INFO

        logger.handlers.clear()

    def test_text_format(self):
        logger = logging.getLogger("proactive")
        logger.handlers.clear()

        setup_logging("DEBUG", "text")
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
        assert logger.level == logging.DEBUG

        logger.handlers.clear()

    def test_idempotent(self):
        logger = logging.getLogger("proactive")
        logger.handlers.clear()

        setup_logging("INFO", "json")
        setup_logging("INFO", "json")
        assert len(logger.handlers) == 1

        logger.handlers.clear()

    def test_quiets_sdk_loggers(self):
        logger = logging.getLogger("proactive")
        logger.handlers.clear()

        setup_logging("DEBUG", "text")
        assert logging.getLogger("anthropic").level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

        logger.handlers.clear()
