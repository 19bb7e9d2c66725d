#  Proactive Engine - Quota Ledger
#
#  Per-tenant AI call budgets over minute/hour/day windows, an append-only
#  audit log of AI calls, and usage reporting.
#  Window counters are advanced with atomic upserts so concurrent callers
#  never lose an increment.
#
#  Depends on: db/connection.py, config.py, policy.py
#  Used by:    container.py, services/ceremonies.py, routes/usage.py

import logging
import time

from proactive_engine.config import ENFORCE_TOKEN_LIMITS, QUOTA_LIMITS, TOKEN_LIMITS
from proactive_engine.exceptions import RateLimitedError
from proactive_engine.models.enums import WINDOW_SECONDS, UsagePeriod, WindowType
from proactive_engine.models.schemas import (
    ApiCallRecord,
    RateLimitStatus,
    ServiceUsage,
    UsageStats,
    UsageTotals,
    WindowCheck,
)
from proactive_engine.policy import guarded

logger = logging.getLogger("proactive.quota")

_PERIOD_SECONDS: dict[UsagePeriod, int] = {
    UsagePeriod.HOUR: 3600,
    UsagePeriod.DAY: 86400,
    UsagePeriod.WEEK: 7 * 86400,
    UsagePeriod.MONTH: 30 * 86400,
}

# Rolls an elapsed window forward in the same statement that counts the call.
# Parameters: tenant_id, window_type, window_start, token_count, updated_at,
# then the cutoff three times.
_UPSERT_WINDOW = (
    "INSERT INTO rate_limit_windows (tenant_id, window_type, window_start, "
    "call_count, token_count, updated_at) "
    "VALUES (?, ?, ?, 1, ?, ?) "
    "ON CONFLICT(tenant_id, window_type) DO UPDATE SET "
    "call_count = CASE WHEN rate_limit_windows.window_start <= ? "
    "THEN 1 ELSE rate_limit_windows.call_count + 1 END, "
    "token_count = CASE WHEN rate_limit_windows.window_start <= ? "
    "THEN excluded.token_count "
    "ELSE rate_limit_windows.token_count + excluded.token_count END, "
    "window_start = CASE WHEN rate_limit_windows.window_start <= ? "
    "THEN excluded.window_start ELSE rate_limit_windows.window_start END, "
    "updated_at = excluded.updated_at"
)


def _limit_for(window_type: WindowType) -> int:
    return QUOTA_LIMITS[window_type.value]


def _token_limit_for(window_type: WindowType) -> int | None:
    return TOKEN_LIMITS.get(window_type.value)


class QuotaLedger:
    """Tracks AI calls per tenant and enforces call budgets.

    The minute window is burst protection; hour and day are sustained
    budgets. All three are checked in that order by enforce().
    """

    def __init__(self, db):
        self._db = db

    async def check_window(self, tenant_id: str, window_type: WindowType | str) -> WindowCheck:
        """Report whether the tenant may make another call in this window.

        Fails open: a store error reports allowed=True, remaining=-1 with
        the error message attached.
        """
        window_type = WindowType(window_type)
        limit = _limit_for(window_type)

        async def _check() -> WindowCheck:
            row = await self._db.fetchone(
                "SELECT window_start, call_count, token_count FROM rate_limit_windows "
                "WHERE tenant_id = ? AND window_type = ?",
                (tenant_id, window_type.value),
            )
            if row is None:
                return WindowCheck(allowed=True, remaining=limit, limit=limit)

            now = time.time()
            duration = WINDOW_SECONDS[window_type]
            if now - row["window_start"] >= duration:
                # Conditional on the observed start so a concurrent reset
                # or roll-forward is not clobbered
                await self._db.execute_write(
                    "UPDATE rate_limit_windows SET window_start = ?, call_count = 0, "
                    "token_count = 0, updated_at = ? "
                    "WHERE tenant_id = ? AND window_type = ? AND window_start = ?",
                    (now, now, tenant_id, window_type.value, row["window_start"]),
                )
                return WindowCheck(allowed=True, remaining=limit, limit=limit)

            reset_at = row["window_start"] + duration
            if row["call_count"] >= limit:
                return WindowCheck(
                    allowed=False,
                    remaining=0,
                    limit=limit,
                    reason=f"Limit: {limit} calls per {window_type.value}",
                    reset_at=reset_at,
                )

            token_limit = _token_limit_for(window_type)
            if ENFORCE_TOKEN_LIMITS and token_limit and row["token_count"] >= token_limit:
                return WindowCheck(
                    allowed=False,
                    remaining=0,
                    limit=limit,
                    reason=f"Token limit: {token_limit} tokens per {window_type.value}",
                    reset_at=reset_at,
                )

            return WindowCheck(
                allowed=True,
                remaining=max(0, limit - row["call_count"]),
                limit=limit,
            )

        return await guarded(
            "quota.check_window",
            _check,
            fallback=lambda e: WindowCheck(allowed=True, remaining=-1, limit=limit, error=str(e)),
        )

    async def enforce(self, tenant_id: str) -> None:
        """Raise RateLimitedError for the first exhausted window (minute, hour, day)."""
        for window_type in (WindowType.MINUTE, WindowType.HOUR, WindowType.DAY):
            check = await self.check_window(tenant_id, window_type)
            if not check.allowed:
                logger.info(
                    "Tenant %s rate limited on %s window", tenant_id, window_type.value,
                )
                raise RateLimitedError(window_type.value, check.reason or "", check.reset_at)

    async def record_usage(self, tenant_id: str, token_count: int = 0) -> None:
        """Count one call (and its tokens) against all three windows.

        The three upserts commit or roll back together.
        """
        now = time.time()
        statements = []
        for window_type in (WindowType.MINUTE, WindowType.HOUR, WindowType.DAY):
            cutoff = now - WINDOW_SECONDS[window_type]
            statements.append((
                _UPSERT_WINDOW,
                (tenant_id, window_type.value, now, token_count, now,
                 cutoff, cutoff, cutoff),
            ))
        await guarded(
            "quota.record_usage",
            lambda: self._db.execute_many_write(statements),
        )

    async def log_api_call(self, record: ApiCallRecord) -> None:
        """Append an audit row. Failures are logged and swallowed."""
        await guarded(
            "quota.log_api_call",
            lambda: self._db.execute_write(
                "INSERT INTO api_call_logs (tenant_id, user_id, service, operation, model, "
                "prompt_tokens, completion_tokens, total_tokens, duration_ms, success, "
                "error_message, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (record.tenant_id, record.user_id, record.service, record.operation,
                 record.model, record.prompt_tokens, record.completion_tokens,
                 record.total_tokens, record.duration_ms, int(record.success),
                 record.error_message, time.time()),
            ),
        )

    async def get_usage_stats(
        self, tenant_id: str, period: UsagePeriod | str = UsagePeriod.DAY,
    ) -> UsageStats:
        """Aggregate audit-log usage for a trailing period plus live window status."""
        period = UsagePeriod(period)
        now = time.time()
        since = now - _PERIOD_SECONDS[period]

        async def _stats() -> UsageStats:
            service_rows = await self._db.fetchall(
                "SELECT service, COUNT(*) as calls, "
                "SUM(CASE WHEN success = 0 THEN 1 ELSE 0 END) as failures, "
                "COALESCE(SUM(prompt_tokens), 0) as pt, "
                "COALESCE(SUM(completion_tokens), 0) as ct, "
                "COALESCE(SUM(total_tokens), 0) as tt, "
                "COALESCE(AVG(duration_ms), 0) as avg_ms "
                "FROM api_call_logs WHERE tenant_id = ? AND created_at > ? "
                "GROUP BY service ORDER BY calls DESC",
                (tenant_id, since),
            )
            by_service = {
                r["service"]: ServiceUsage(
                    calls=r["calls"],
                    failures=r["failures"],
                    prompt_tokens=r["pt"],
                    completion_tokens=r["ct"],
                    total_tokens=r["tt"],
                    avg_duration_ms=round(r["avg_ms"], 1),
                )
                for r in service_rows
            }
            totals = UsageTotals(
                calls=sum(s.calls for s in by_service.values()),
                failures=sum(s.failures for s in by_service.values()),
                total_tokens=sum(s.total_tokens for s in by_service.values()),
            )

            window_rows = await self._db.fetchall(
                "SELECT window_type, window_start, call_count, token_count "
                "FROM rate_limit_windows WHERE tenant_id = ?",
                (tenant_id,),
            )
            by_window = {r["window_type"]: r for r in window_rows}
            rate_limits = []
            for window_type in (WindowType.MINUTE, WindowType.HOUR, WindowType.DAY):
                limit = _limit_for(window_type)
                row = by_window.get(window_type.value)
                duration = WINDOW_SECONDS[window_type]
                # An elapsed window counts as empty even before it is reset
                if row is None or now - row["window_start"] >= duration:
                    calls, tokens, start, reset_at = 0, 0, None, None
                else:
                    calls, tokens = row["call_count"], row["token_count"]
                    start, reset_at = row["window_start"], row["window_start"] + duration
                rate_limits.append(RateLimitStatus(
                    window_type=window_type,
                    call_count=calls,
                    limit=limit,
                    remaining=max(0, limit - calls),
                    token_count=tokens,
                    token_limit=_token_limit_for(window_type),
                    window_start=start,
                    reset_at=reset_at,
                ))

            return UsageStats(
                period=period,
                since=since,
                by_service=by_service,
                totals=totals,
                rate_limits=rate_limits,
            )

        return await guarded("quota.get_usage_stats", _stats)
