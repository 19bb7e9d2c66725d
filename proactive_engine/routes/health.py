#  Proactive Engine - Health and Workload Routes
#
#  Liveness check, task health scoring, and weekly workload analysis.
#
#  Depends on: config.py, container.py, models/schemas.py, middleware/identity.py
#  Used by:    app.py

from dependency_injector.wiring import inject, Provide
from fastapi import APIRouter, Depends, HTTPException, Query

from proactive_engine.config import AT_RISK_THRESHOLD
from proactive_engine.container import Container
from proactive_engine.db.connection import Database
from proactive_engine.middleware.identity import Caller, get_caller
from proactive_engine.models.schemas import TaskHealthReport, WorkloadReport
from proactive_engine.services.health import TaskHealthService
from proactive_engine.services.workload import WorkloadAnalyzer

# Public liveness check, no identity headers required
health_router = APIRouter(tags=["health"])

router = APIRouter(tags=["tasks"])


@health_router.get("/health")
@inject
async def liveness(
    db: Database = Depends(Provide[Container.db]),
) -> dict:
    """Liveness check: process is up and the store answers."""
    row = await db.fetchone("SELECT 1 AS ok")
    return {"status": "ok" if row and row["ok"] == 1 else "degraded"}


@router.post("/tasks/health")
@inject
async def refresh_team_task_health(
    caller: Caller = Depends(get_caller),
    health: TaskHealthService = Depends(Provide[Container.health]),
) -> list[TaskHealthReport]:
    """Score every open task in the caller's tenant. Worst first."""
    return await health.refresh_team_task_health(caller.tenant_id)


@router.get("/tasks/at-risk")
@inject
async def get_at_risk_tasks(
    threshold: float = Query(default=AT_RISK_THRESHOLD, ge=0.0, le=1.0),
    caller: Caller = Depends(get_caller),
    health: TaskHealthService = Depends(Provide[Container.health]),
) -> list[TaskHealthReport]:
    """Cached snapshots at or below the threshold."""
    return await health.get_at_risk_tasks(caller.tenant_id, threshold)


@router.get("/tasks/{task_id}/health")
@inject
async def compute_task_health(
    task_id: str,
    caller: Caller = Depends(get_caller),
    health: TaskHealthService = Depends(Provide[Container.health]),
) -> TaskHealthReport:
    """Score one task and refresh its snapshot."""
    report = await health.compute_health(task_id, tenant_id=caller.tenant_id)
    if report is None:
        raise HTTPException(404, f"No open task {task_id}")
    return report


@router.get("/workload")
@inject
async def analyze_workload(
    caller: Caller = Depends(get_caller),
    workload: WorkloadAnalyzer = Depends(Provide[Container.workload]),
) -> WorkloadReport:
    """The caller's committed hours this week against capacity."""
    return await workload.analyze_workload(caller.tenant_id, caller.user_id)
