#  Proactive Engine - Ceremony Routes
#
#  Morning focus and weekly review (generate or fetch), the daily standup
#  check-in, and per-user focus preferences. Generation endpoints are
#  throttled per client on top of the tenant's AI quota.
#
#  Depends on: container.py, models/schemas.py, middleware/identity.py, rate_limit.py
#  Used by:    app.py

from datetime import date

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, HTTPException, Request

from proactive_engine.container import Container
from proactive_engine.middleware.identity import Caller, get_caller
from proactive_engine.models.schemas import (
    CeremonyOut,
    CeremonyResult,
    FocusPreferences,
    FocusPreferencesUpdate,
    StandupOut,
    StandupQuestion,
    StandupSubmit,
)
from proactive_engine.rate_limit import GENERATE_LIMIT, limiter
from proactive_engine.services.ceremonies import CeremonyService

router = APIRouter(prefix="/ceremonies", tags=["ceremonies"])


# ---------------------------------------------------------------------------
# Morning focus
# ---------------------------------------------------------------------------

@router.post("/morning-focus")
@limiter.limit(GENERATE_LIMIT)
@inject
async def generate_morning_focus(
    request: Request,
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> CeremonyResult:
    """Generate today's plan, or return it if already generated."""
    return await ceremonies.generate_morning_focus(caller.tenant_id, caller.user_id)


@router.get("/morning-focus")
@inject
async def get_morning_focus(
    on: date | None = None,
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> CeremonyOut:
    ceremony = await ceremonies.get_morning_focus(caller.tenant_id, caller.user_id, on)
    if not ceremony:
        raise HTTPException(404, "No morning focus for that day")
    return ceremony


# ---------------------------------------------------------------------------
# Weekly review
# ---------------------------------------------------------------------------

@router.post("/weekly-review")
@limiter.limit(GENERATE_LIMIT)
@inject
async def generate_weekly_review(
    request: Request,
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> CeremonyResult:
    """Generate this week's review, or return it if already generated."""
    return await ceremonies.generate_weekly_review(caller.tenant_id, caller.user_id)


@router.get("/weekly-review")
@inject
async def get_weekly_review(
    week_of: date | None = None,
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> CeremonyOut:
    ceremony = await ceremonies.get_weekly_review(caller.tenant_id, caller.user_id, week_of)
    if not ceremony:
        raise HTTPException(404, "No weekly review for that week")
    return ceremony


# ---------------------------------------------------------------------------
# Focus preferences
# ---------------------------------------------------------------------------

@router.get("/focus-preferences")
@inject
async def get_focus_preferences(
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> FocusPreferences:
    return await ceremonies.get_focus_preferences(caller.tenant_id, caller.user_id)


@router.patch("/focus-preferences")
@inject
async def update_focus_preferences(
    body: FocusPreferencesUpdate,
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> FocusPreferences:
    """Partial update. Work and focus hours must still end after they start."""
    return await ceremonies.update_focus_preferences(caller.tenant_id, caller.user_id, body)


# ---------------------------------------------------------------------------
# Standup
# ---------------------------------------------------------------------------

@router.get("/standup/questions")
async def get_standup_questions() -> list[StandupQuestion]:
    return CeremonyService.get_standup_questions()


@router.get("/standup/team")
@inject
async def get_team_standups(
    on: date | None = None,
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> list[CeremonyOut]:
    """Completed standups across the caller's tenant for a day."""
    return await ceremonies.get_team_standups(caller.tenant_id, on)


@router.get("/standup")
@inject
async def get_or_create_standup(
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> StandupOut:
    """Today's standup with its questions; created pending on first call."""
    return await ceremonies.get_or_create_standup(caller.tenant_id, caller.user_id)


@router.post("/standup/{ceremony_id}")
@inject
async def submit_standup(
    ceremony_id: str,
    body: StandupSubmit,
    caller: Caller = Depends(get_caller),
    ceremonies: CeremonyService = Depends(Provide[Container.ceremonies]),
) -> CeremonyOut:
    return await ceremonies.submit_standup(
        ceremony_id, caller.user_id, body, tenant_id=caller.tenant_id,
    )
