#  Proactive Engine - Insights Routes
#
#  Team-wide insights digest: served from cache while fresh, regenerated
#  on demand.
#
#  Depends on: container.py, models/schemas.py, middleware/identity.py, rate_limit.py
#  Used by:    app.py

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, Request

from proactive_engine.container import Container
from proactive_engine.middleware.identity import Caller, get_caller
from proactive_engine.models.schemas import TeamInsights
from proactive_engine.rate_limit import GENERATE_LIMIT, limiter
from proactive_engine.services.insights import InsightsService

router = APIRouter(prefix="/insights", tags=["insights"])


@router.get("")
@inject
async def get_team_insights(
    caller: Caller = Depends(get_caller),
    insights: InsightsService = Depends(Provide[Container.insights]),
) -> TeamInsights:
    """Cached digest for the caller's tenant; generated on a cache miss."""
    return await insights.get_team_insights(caller.tenant_id)


@router.post("/generate")
@limiter.limit(GENERATE_LIMIT)
@inject
async def generate_team_insights(
    request: Request,
    caller: Caller = Depends(get_caller),
    insights: InsightsService = Depends(Provide[Container.insights]),
) -> TeamInsights:
    return await insights.generate_team_insights(caller.tenant_id)
