#  Proactive Engine - Usage Routes
#
#  AI usage reporting and live quota window status for the caller's tenant.
#
#  Depends on: container.py, models/schemas.py, middleware/identity.py
#  Used by:    app.py

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends

from proactive_engine.container import Container
from proactive_engine.middleware.identity import Caller, get_caller
from proactive_engine.models.enums import UsagePeriod, WindowType
from proactive_engine.models.schemas import UsageStats, WindowCheck
from proactive_engine.services.quota import QuotaLedger

router = APIRouter(prefix="/usage", tags=["usage"])


@router.get("/stats")
@inject
async def get_usage_stats(
    period: UsagePeriod = UsagePeriod.DAY,
    caller: Caller = Depends(get_caller),
    quota: QuotaLedger = Depends(Provide[Container.quota]),
) -> UsageStats:
    """AI calls and tokens by service for a trailing period, plus window status."""
    return await quota.get_usage_stats(caller.tenant_id, period)


@router.get("/windows/{window_type}")
@inject
async def check_window(
    window_type: WindowType,
    caller: Caller = Depends(get_caller),
    quota: QuotaLedger = Depends(Provide[Container.quota]),
) -> WindowCheck:
    """Whether the tenant may make another AI call in this window."""
    return await quota.check_window(caller.tenant_id, window_type)
