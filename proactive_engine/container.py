#  Proactive Engine - Dependency Injection Container
#
#  DeclarativeContainer wiring all services and their dependencies.
#  Replaces module-level singletons with injectable providers.
#
#  Depends on: db/connection.py, services/*
#  Used by:    app.py, routes/*, middleware/identity.py

import anthropic
from dependency_injector import containers, providers

from proactive_engine.config import AI_MODEL, ANTHROPIC_API_KEY, API_TIMEOUT
from proactive_engine.db.connection import Database
from proactive_engine.services.ai_provider import AIProvider
from proactive_engine.services.capabilities import CapabilityResolver
from proactive_engine.services.ceremonies import CeremonyService
from proactive_engine.services.health import TaskHealthService
from proactive_engine.services.insights import InsightsService
from proactive_engine.services.nudges import NudgeService
from proactive_engine.services.quota import QuotaLedger
from proactive_engine.services.readers import (
    SqlCalendarReader,
    SqlFeatureFlagReader,
    SqlTaskReader,
)
from proactive_engine.services.workload import WorkloadAnalyzer


class Container(containers.DeclarativeContainer):
    """DI container for the Proactive Engine.

    All services are Singletons: one instance per application lifecycle.
    Routes access them via @inject + Depends(Provide[Container.xxx]).
    Tests override them via container.xxx.override(providers.Object(mock)).
    """

    wiring_config = containers.WiringConfiguration(
        modules=[
            "proactive_engine.routes.usage",
            "proactive_engine.routes.health",
            "proactive_engine.routes.nudges",
            "proactive_engine.routes.ceremonies",
            "proactive_engine.routes.insights",
        ]
    )

    # --- Core ---
    db = providers.Singleton(Database)
    anthropic_client = providers.Singleton(anthropic.AsyncAnthropic, api_key=ANTHROPIC_API_KEY)
    ai_provider = providers.Singleton(
        AIProvider, client=anthropic_client, model=AI_MODEL, timeout=API_TIMEOUT,
    )

    # --- Collaborators (replace to integrate external task/calendar systems) ---
    task_reader = providers.Singleton(SqlTaskReader, db=db)
    calendar_reader = providers.Singleton(SqlCalendarReader, db=db)
    flag_reader = providers.Singleton(SqlFeatureFlagReader, db=db)
    capabilities = providers.Singleton(CapabilityResolver, flags=flag_reader)

    # --- Services ---
    quota = providers.Singleton(QuotaLedger, db=db)
    health = providers.Singleton(TaskHealthService, db=db, tasks=task_reader)
    workload = providers.Singleton(WorkloadAnalyzer, tasks=task_reader, calendar=calendar_reader)
    nudges = providers.Singleton(
        NudgeService,
        db=db,
        tasks=task_reader,
        calendar=calendar_reader,
        capabilities=capabilities,
    )
    ceremonies = providers.Singleton(
        CeremonyService,
        db=db,
        quota=quota,
        nudges=nudges,
        workload=workload,
        tasks=task_reader,
        calendar=calendar_reader,
        capabilities=capabilities,
        provider=ai_provider,
    )
    insights = providers.Singleton(
        InsightsService,
        db=db,
        quota=quota,
        health=health,
        tasks=task_reader,
        capabilities=capabilities,
        provider=ai_provider,
    )
