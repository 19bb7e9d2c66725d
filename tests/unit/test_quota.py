#  Proactive Engine - Quota Ledger Tests
#
#  Window checks, enforcement order, atomic usage recording, the audit log,
#  and usage reporting.
#
#  Depends on: proactive_engine/services/quota.py, proactive_engine/db/connection.py
#  Used by:    pytest

import asyncio
import sqlite3
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from proactive_engine.exceptions import RateLimitedError
from proactive_engine.models.enums import UsagePeriod, WindowType
from proactive_engine.models.schemas import ApiCallRecord
from proactive_engine.services.quota import QuotaLedger

TENANT = "tenant_a"


@pytest.fixture
async def ledger(tmp_db):
    """QuotaLedger wired to the test database via constructor injection."""
    yield QuotaLedger(db=tmp_db)


async def _window_row(db, window_type, tenant_id=TENANT):
    return await db.fetchone(
        "SELECT * FROM rate_limit_windows WHERE tenant_id = ? AND window_type = ?",
        (tenant_id, window_type),
    )


async def _insert_window(db, window_type, window_start, call_count, token_count=0):
    await db.execute_write(
        "INSERT INTO rate_limit_windows (tenant_id, window_type, window_start, call_count, "
        "token_count, updated_at) VALUES (?, ?, ?, ?, ?, ?)",
        (TENANT, window_type, window_start, call_count, token_count, window_start),
    )


class TestCheckWindow:
    async def test_no_usage_reports_full_limit(self, ledger):
        check = await ledger.check_window(TENANT, WindowType.MINUTE)
        assert check.allowed is True
        assert check.remaining == 20
        assert check.limit == 20

    async def test_accepts_plain_string_window(self, ledger):
        check = await ledger.check_window(TENANT, "day")
        assert check.limit == 2000

    async def test_remaining_drops_with_usage(self, ledger):
        for _ in range(3):
            await ledger.record_usage(TENANT)
        minute = await ledger.check_window(TENANT, WindowType.MINUTE)
        hour = await ledger.check_window(TENANT, WindowType.HOUR)
        assert minute.remaining == 17
        assert hour.remaining == 197

    async def test_denied_at_limit(self, ledger):
        with patch.dict("proactive_engine.services.quota.QUOTA_LIMITS", {"minute": 2}):
            await ledger.record_usage(TENANT)
            await ledger.record_usage(TENANT)
            check = await ledger.check_window(TENANT, WindowType.MINUTE)
        assert check.allowed is False
        assert check.remaining == 0
        assert check.reason == "Limit: 2 calls per minute"
        assert check.reset_at is not None
        assert check.reset_at > time.time()

    async def test_elapsed_window_resets(self, ledger, tmp_db):
        await _insert_window(tmp_db, "minute", time.time() - 120, call_count=50)
        check = await ledger.check_window(TENANT, WindowType.MINUTE)
        assert check.allowed is True
        assert check.remaining == 20
        row = await _window_row(tmp_db, "minute")
        assert row["call_count"] == 0

    async def test_tenants_are_isolated(self, ledger):
        with patch.dict("proactive_engine.services.quota.QUOTA_LIMITS", {"minute": 1}):
            await ledger.record_usage("other_tenant")
            check = await ledger.check_window(TENANT, WindowType.MINUTE)
        assert check.allowed is True

    async def test_token_limit_ignored_unless_enforced(self, ledger):
        with patch.dict("proactive_engine.services.quota.TOKEN_LIMITS", {"hour": 100}):
            await ledger.record_usage(TENANT, token_count=150)
            check = await ledger.check_window(TENANT, WindowType.HOUR)
        assert check.allowed is True

    async def test_token_limit_enforced_when_enabled(self, ledger):
        with patch.dict("proactive_engine.services.quota.TOKEN_LIMITS", {"hour": 100}), \
             patch("proactive_engine.services.quota.ENFORCE_TOKEN_LIMITS", True):
            await ledger.record_usage(TENANT, token_count=150)
            check = await ledger.check_window(TENANT, WindowType.HOUR)
        assert check.allowed is False
        assert "Token limit" in check.reason

    async def test_store_failure_fails_open(self):
        db = MagicMock()
        db.fetchone = AsyncMock(side_effect=sqlite3.OperationalError("disk I/O error"))
        check = await QuotaLedger(db=db).check_window(TENANT, WindowType.MINUTE)
        assert check.allowed is True
        assert check.remaining == -1
        assert "disk I/O error" in check.error


class TestEnforce:
    async def test_passes_under_limits(self, ledger):
        await ledger.enforce(TENANT)  # should not raise

    async def test_raises_for_minute_window(self, ledger):
        with patch.dict("proactive_engine.services.quota.QUOTA_LIMITS", {"minute": 1}):
            await ledger.record_usage(TENANT)
            with pytest.raises(RateLimitedError) as exc_info:
                await ledger.enforce(TENANT)
        assert exc_info.value.window_type == "minute"
        assert exc_info.value.reset_at is not None

    async def test_reports_first_exhausted_window(self, ledger):
        """Minute has room, hour does not: the hour window is reported."""
        with patch.dict(
            "proactive_engine.services.quota.QUOTA_LIMITS", {"minute": 100, "hour": 2},
        ):
            await ledger.record_usage(TENANT)
            await ledger.record_usage(TENANT)
            with pytest.raises(RateLimitedError) as exc_info:
                await ledger.enforce(TENANT)
        assert exc_info.value.window_type == "hour"

    async def test_store_failure_does_not_block(self):
        db = MagicMock()
        db.fetchone = AsyncMock(side_effect=sqlite3.OperationalError("locked"))
        await QuotaLedger(db=db).enforce(TENANT)  # fails open


class TestRecordUsage:
    async def test_counts_against_all_windows(self, ledger, tmp_db):
        await ledger.record_usage(TENANT, token_count=300)
        for window in ("minute", "hour", "day"):
            row = await _window_row(tmp_db, window)
            assert row["call_count"] == 1
            assert row["token_count"] == 300

    async def test_accumulates_tokens(self, ledger, tmp_db):
        await ledger.record_usage(TENANT, token_count=500)
        await ledger.record_usage(TENANT, token_count=250)
        row = await _window_row(tmp_db, "day")
        assert row["call_count"] == 2
        assert row["token_count"] == 750

    async def test_rolls_elapsed_window_forward(self, ledger, tmp_db):
        old_start = time.time() - 120
        await _insert_window(tmp_db, "minute", old_start, call_count=50, token_count=9000)
        await ledger.record_usage(TENANT, token_count=10)
        row = await _window_row(tmp_db, "minute")
        assert row["call_count"] == 1
        assert row["token_count"] == 10
        assert row["window_start"] > old_start

    async def test_live_window_keeps_its_start(self, ledger, tmp_db):
        start = time.time() - 10
        await _insert_window(tmp_db, "minute", start, call_count=3)
        await ledger.record_usage(TENANT)
        row = await _window_row(tmp_db, "minute")
        assert row["call_count"] == 4
        assert row["window_start"] == start

    async def test_concurrent_records_lose_nothing(self, ledger, tmp_db):
        await asyncio.gather(*(ledger.record_usage(TENANT, token_count=1) for _ in range(10)))
        row = await _window_row(tmp_db, "hour")
        assert row["call_count"] == 10
        assert row["token_count"] == 10

    async def test_store_failure_propagates(self):
        db = MagicMock()
        db.execute_many_write = AsyncMock(side_effect=sqlite3.OperationalError("readonly"))
        with pytest.raises(sqlite3.OperationalError):
            await QuotaLedger(db=db).record_usage(TENANT)


class TestLogApiCall:
    async def test_appends_row(self, ledger, tmp_db):
        await ledger.log_api_call(ApiCallRecord(
            tenant_id=TENANT, user_id="u1", service="ceremony", operation="morning_focus",
            model="m", prompt_tokens=100, completion_tokens=50, duration_ms=900,
        ))
        row = await tmp_db.fetchone("SELECT * FROM api_call_logs")
        assert row["total_tokens"] == 150
        assert row["success"] == 1
        assert row["operation"] == "morning_focus"

    async def test_failure_is_swallowed(self):
        db = MagicMock()
        db.execute_write = AsyncMock(side_effect=sqlite3.OperationalError("readonly"))
        await QuotaLedger(db=db).log_api_call(ApiCallRecord(
            tenant_id=TENANT, service="ceremony", operation="standup_summary",
        ))


class TestUsageStats:
    async def test_empty(self, ledger):
        stats = await ledger.get_usage_stats(TENANT)
        assert stats.period == UsagePeriod.DAY
        assert stats.by_service == {}
        assert stats.totals.calls == 0
        assert [r.window_type for r in stats.rate_limits] == [
            WindowType.MINUTE, WindowType.HOUR, WindowType.DAY,
        ]
        assert all(r.call_count == 0 for r in stats.rate_limits)

    async def test_groups_by_service(self, ledger):
        for success in (True, True, False):
            await ledger.log_api_call(ApiCallRecord(
                tenant_id=TENANT, service="ceremony", operation="morning_focus",
                prompt_tokens=10, completion_tokens=5, success=success,
            ))
        await ledger.log_api_call(ApiCallRecord(
            tenant_id=TENANT, service="nudges", operation="generate",
        ))
        await ledger.log_api_call(ApiCallRecord(
            tenant_id="other_tenant", service="ceremony", operation="morning_focus",
        ))

        stats = await ledger.get_usage_stats(TENANT, "week")
        ceremony = stats.by_service["ceremony"]
        assert ceremony.calls == 3
        assert ceremony.failures == 1
        assert ceremony.total_tokens == 45
        assert stats.totals.calls == 4
        assert stats.totals.failures == 1

    async def test_reports_live_windows(self, ledger):
        await ledger.record_usage(TENANT, token_count=70)
        stats = await ledger.get_usage_stats(TENANT)
        minute = stats.rate_limits[0]
        assert minute.call_count == 1
        assert minute.remaining == 19
        assert minute.token_limit is None
        assert minute.reset_at is not None
        assert stats.rate_limits[2].token_count == 70

    async def test_elapsed_window_reports_empty(self, ledger, tmp_db):
        await _insert_window(tmp_db, "minute", time.time() - 300, call_count=12)
        stats = await ledger.get_usage_stats(TENANT)
        assert stats.rate_limits[0].call_count == 0
        assert stats.rate_limits[0].remaining == 20

    async def test_store_failure_propagates(self):
        db = MagicMock()
        db.fetchall = AsyncMock(side_effect=sqlite3.OperationalError("gone"))
        with pytest.raises(sqlite3.OperationalError):
            await QuotaLedger(db=db).get_usage_stats(TENANT)
