#  Proactive Engine - Team Insights
#
#  Tenant-level AI digest of recent throughput and risk. Results are cached
#  in insights_cache and served as "cached" until they lapse; only a miss
#  spends quota on a new generation.
#
#  Depends on: db/connection.py, services/quota.py, services/health.py,
#              services/readers.py, services/capabilities.py,
#              services/ai_provider.py, services/ceremonies.py (parse_plan), policy.py
#  Used by:    container.py, routes/insights.py

import json
import logging
import time
import uuid

from proactive_engine.config import (
    AT_RISK_THRESHOLD,
    INSIGHTS_CACHE_HOURS,
    INSIGHTS_LOOKBACK_DAYS,
    INSIGHTS_MAX_TOKENS,
)
from proactive_engine.exceptions import PlanParseError, ProviderError, RateLimitedError
from proactive_engine.models.enums import InsightSentiment, InsightsOutcome, TaskStatus
from proactive_engine.models.schemas import (
    ApiCallRecord,
    InsightItem,
    InsightMetrics,
    InsightRecommendation,
    TeamInsights,
    TeamInsightsPlan,
)
from proactive_engine.policy import guarded
from proactive_engine.services.capabilities import Capabilities
from proactive_engine.services.ceremonies import parse_plan
from proactive_engine.services.readers import OPEN_STATUSES

logger = logging.getLogger("proactive.insights")

DAY = 86400
INSIGHT_TYPE = "daily"
PROMPT_TASK_LIMIT = 10
UNAVAILABLE_SUMMARY = "Unable to generate insights at this time."

_SYSTEM = (
    "You are a productivity analyst. Be concise and actionable. Respond with JSON only."
)


def _row_to_insights(row) -> TeamInsights:
    return TeamInsights(
        status=InsightsOutcome.CACHED,
        insights=json.loads(row["insights_json"]),
        recommendations=json.loads(row["recommendations_json"]),
        summary=row["summary"],
        metrics=InsightMetrics.model_validate_json(row["metrics_json"]),
        generated_at=row["valid_from"],
        valid_until=row["valid_until"],
    )


class InsightsService:
    """Generates and caches one team-wide insights digest per tenant."""

    def __init__(self, db, quota, health, tasks, capabilities, provider):
        self._db = db
        self._quota = quota
        self._health = health
        self._tasks = tasks
        self._capabilities = capabilities
        self._provider = provider

    async def get_team_insights(
        self, tenant_id: str, capabilities: Capabilities | None = None,
    ) -> TeamInsights:
        """Newest unexpired digest, generating one on a miss."""
        caps = capabilities or await self._capabilities.resolve(tenant_id)
        if not caps.insights:
            return TeamInsights(status=InsightsOutcome.DISABLED)

        cached = await self.get_cached(tenant_id)
        if cached is not None:
            return cached
        return await self.generate_team_insights(tenant_id, caps)

    async def get_cached(self, tenant_id: str) -> TeamInsights | None:
        async def _read():
            return await self._db.fetchone(
                "SELECT * FROM insights_cache WHERE tenant_id = ? AND insight_type = ? "
                "AND valid_until > ? ORDER BY valid_from DESC LIMIT 1",
                (tenant_id, INSIGHT_TYPE, time.time()),
            )

        # An unreadable cache is a miss
        row = await guarded("insights.read_cache", _read)
        return _row_to_insights(row) if row else None

    async def generate_team_insights(
        self, tenant_id: str, capabilities: Capabilities | None = None,
    ) -> TeamInsights:
        """Build a fresh digest regardless of the cache, then cache it.

        Policy outcomes (disabled, rate_limited) and provider failures are
        returned in TeamInsights.status. An unparseable reply falls back to
        a digest built from the metrics alone.
        """
        caps = capabilities or await self._capabilities.resolve(tenant_id)
        if not caps.insights:
            return TeamInsights(status=InsightsOutcome.DISABLED)

        try:
            await self._quota.enforce(tenant_id)
        except RateLimitedError as e:
            logger.warning("Rate limit hit for insights (tenant %s): %s", tenant_id, e)
            return TeamInsights(
                status=InsightsOutcome.RATE_LIMITED, window_type=e.window_type, error=str(e),
            )

        metrics, prompt = await self._gather(tenant_id)

        start = time.monotonic()
        try:
            completion = await self._provider.complete(
                prompt, system=_SYSTEM, max_tokens=INSIGHTS_MAX_TOKENS,
            )
        except ProviderError as e:
            logger.error("Error generating insights for tenant %s: %s", tenant_id, e)
            await self._quota.log_api_call(ApiCallRecord(
                tenant_id=tenant_id,
                service="proactive",
                operation="generate_insights",
                model=getattr(self._provider, "model", ""),
                duration_ms=int((time.monotonic() - start) * 1000),
                success=False,
                error_message=str(e),
            ))
            return TeamInsights(
                status=InsightsOutcome.ERROR,
                summary=UNAVAILABLE_SUMMARY,
                metrics=metrics,
                error=str(e),
            )

        try:
            plan = parse_plan(completion.text, TeamInsightsPlan)
        except PlanParseError as e:
            logger.warning("Falling back to metric-only insights: %s", e)
            plan = _fallback_insights(metrics)

        await self._quota.record_usage(tenant_id, completion.total_tokens)
        generated_at, valid_until = await self._store(tenant_id, plan, metrics)
        await self._quota.log_api_call(ApiCallRecord(
            tenant_id=tenant_id,
            service="proactive",
            operation="generate_insights",
            model=completion.model,
            prompt_tokens=completion.prompt_tokens,
            completion_tokens=completion.completion_tokens,
            duration_ms=completion.duration_ms,
        ))

        return TeamInsights(
            status=InsightsOutcome.GENERATED,
            insights=plan.insights,
            recommendations=plan.recommendations,
            summary=plan.summary,
            metrics=metrics,
            generated_at=generated_at,
            valid_until=valid_until,
        )

    async def _gather(self, tenant_id: str) -> tuple[InsightMetrics, str]:
        now = time.time()
        completed = await self._tasks.get_tasks(
            tenant_id, statuses=(TaskStatus.DONE.value,),
            completed_after=now - INSIGHTS_LOOKBACK_DAYS * DAY,
        )
        overdue = await self._tasks.get_tasks(
            tenant_id, statuses=OPEN_STATUSES, due_before=now,
        )
        at_risk = await self._health.get_at_risk_tasks(tenant_id, AT_RISK_THRESHOLD)

        metrics = InsightMetrics(
            tasks_completed=len(completed),
            overdue_tasks=len(overdue),
            at_risk_tasks=len(at_risk),
        )
        lines = [
            "Analyze this team's recent activity and generate insights.",
            "",
            f"TASKS COMPLETED (last {INSIGHTS_LOOKBACK_DAYS} days): {metrics.tasks_completed}",
            f"OVERDUE TASKS: {metrics.overdue_tasks}",
        ]
        lines += [f"- {t.title}" for t in overdue[:PROMPT_TASK_LIMIT]]
        lines += ["", f"AT-RISK TASKS: {metrics.at_risk_tasks}"]
        lines += [
            f"- {r.task_title} (risk: {r.risk_level.value}, health {r.health_score:.2f})"
            for r in at_risk[:PROMPT_TASK_LIMIT]
        ]
        lines += [
            "",
            "Generate 3-5 actionable insights in JSON format:",
            "{",
            '  "insights": [',
            '    {"title": "...", "description": "...", "sentiment": "positive|neutral|warning"}',
            "  ],",
            '  "recommendations": [',
            '    {"title": "...", "action": "..."}',
            "  ],",
            '  "summary": "One paragraph summary of team health"',
            "}",
        ]
        return metrics, "\n".join(lines)

    async def _store(
        self, tenant_id: str, plan: TeamInsightsPlan, metrics: InsightMetrics,
    ) -> tuple[float, float]:
        now = time.time()
        valid_until = now + INSIGHTS_CACHE_HOURS * 3600
        await guarded(
            "insights.persist",
            lambda: self._db.execute_many_write([
                (
                    "DELETE FROM insights_cache WHERE tenant_id = ? AND valid_until <= ?",
                    (tenant_id, now),
                ),
                (
                    "INSERT INTO insights_cache (id, tenant_id, insight_type, scope, "
                    "insights_json, recommendations_json, summary, metrics_json, "
                    "valid_from, valid_until) VALUES (?, ?, ?, 'team', ?, ?, ?, ?, ?, ?)",
                    (uuid.uuid4().hex[:12], tenant_id, INSIGHT_TYPE,
                     json.dumps([i.model_dump(mode="json") for i in plan.insights]),
                     json.dumps([r.model_dump() for r in plan.recommendations]),
                     plan.summary, metrics.model_dump_json(), now, valid_until),
                ),
            ]),
        )
        return now, valid_until


def _fallback_insights(metrics: InsightMetrics) -> TeamInsightsPlan:
    insights = [InsightItem(
        title=f"{metrics.tasks_completed} tasks completed this week",
        description="Completed work over the last week.",
        sentiment=(
            InsightSentiment.POSITIVE if metrics.tasks_completed else InsightSentiment.NEUTRAL
        ),
    )]
    recommendations = []
    if metrics.overdue_tasks:
        insights.append(InsightItem(
            title=f"{metrics.overdue_tasks} overdue tasks",
            description="Open tasks are past their due date.",
            sentiment=InsightSentiment.WARNING,
        ))
        recommendations.append(InsightRecommendation(
            title="Clear the overdue backlog",
            action="Reschedule or reassign overdue tasks.",
        ))
    if metrics.at_risk_tasks:
        insights.append(InsightItem(
            title=f"{metrics.at_risk_tasks} tasks at risk",
            description="Health scores suggest these may slip.",
            sentiment=InsightSentiment.WARNING,
        ))
        recommendations.append(InsightRecommendation(
            title="Review at-risk tasks",
            action="Check blockers and deadlines on the riskiest tasks.",
        ))
    summary = (
        f"{metrics.tasks_completed} completed, {metrics.overdue_tasks} overdue, "
        f"{metrics.at_risk_tasks} at risk."
    )
    return TeamInsightsPlan(insights=insights, recommendations=recommendations, summary=summary)
