#  Proactive Engine - Nudge Routes
#
#  Generate, list, and act on the caller's nudges; manage nudge preferences.
#
#  Depends on: container.py, models/schemas.py, middleware/identity.py
#  Used by:    app.py

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, Query

from proactive_engine.container import Container
from proactive_engine.middleware.identity import Caller, get_caller
from proactive_engine.models.schemas import (
    Nudge,
    NudgeActionRequest,
    NudgeActionResult,
    NudgePreferences,
    NudgePreferencesUpdate,
    NudgeStatusUpdate,
)
from proactive_engine.services.nudges import NudgeService

router = APIRouter(prefix="/nudges", tags=["nudges"])


@router.post("/generate")
@inject
async def generate_nudges(
    caller: Caller = Depends(get_caller),
    nudges: NudgeService = Depends(Provide[Container.nudges]),
) -> list[Nudge]:
    """Create any nudges due now. Returns only newly created ones."""
    return await nudges.generate_nudges_for_user(caller.tenant_id, caller.user_id)


@router.get("")
@inject
async def list_pending_nudges(
    limit: int = Query(default=10, ge=1, le=50),
    caller: Caller = Depends(get_caller),
    nudges: NudgeService = Depends(Provide[Container.nudges]),
) -> list[Nudge]:
    return await nudges.get_pending_nudges(caller.tenant_id, caller.user_id, limit)


@router.get("/preferences")
@inject
async def get_preferences(
    caller: Caller = Depends(get_caller),
    nudges: NudgeService = Depends(Provide[Container.nudges]),
) -> NudgePreferences:
    return await nudges.get_preferences(caller.tenant_id, caller.user_id)


@router.patch("/preferences")
@inject
async def update_preferences(
    body: NudgePreferencesUpdate,
    caller: Caller = Depends(get_caller),
    nudges: NudgeService = Depends(Provide[Container.nudges]),
) -> NudgePreferences:
    """Partial update; omitted categories keep their current setting."""
    return await nudges.update_preferences(caller.tenant_id, caller.user_id, body)


@router.post("/{nudge_id}/status")
@inject
async def update_nudge_status(
    nudge_id: str,
    body: NudgeStatusUpdate,
    caller: Caller = Depends(get_caller),
    nudges: NudgeService = Depends(Provide[Container.nudges]),
) -> dict:
    """Mark a nudge acted or dismissed."""
    return await nudges.update_nudge_status(
        nudge_id, body.status, caller.user_id, tenant_id=caller.tenant_id,
    )


@router.post("/{nudge_id}/act")
@inject
async def act_on_nudge(
    nudge_id: str,
    body: NudgeActionRequest,
    caller: Caller = Depends(get_caller),
    nudges: NudgeService = Depends(Provide[Container.nudges]),
) -> NudgeActionResult:
    return await nudges.act_on_nudge(
        nudge_id, body.action, caller.user_id, tenant_id=caller.tenant_id,
    )
