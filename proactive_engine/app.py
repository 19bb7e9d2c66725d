#  Proactive Engine - FastAPI Application
#
#  Main app setup: lifespan, error mapping, CORS, router includes.
#  Creates the DI container and manages service lifecycle.
#
#  Depends on: config.py, container.py, routes/*.py, rate_limit.py
#  Used by:    run.py

import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from proactive_engine.config import CORS_ORIGINS, DB_PATH, validate_config
from proactive_engine.container import Container
from proactive_engine.exceptions import (
    EngineError,
    ForbiddenError,
    InvalidStateError,
    InvalidStatusError,
    NotFoundError,
    PlanParseError,
    ProviderError,
    RateLimitedError,
)
from proactive_engine.logging_config import clear_context, set_request_id
from proactive_engine.rate_limit import limiter
from proactive_engine.routes.ceremonies import router as ceremonies_router
from proactive_engine.routes.health import health_router, router as tasks_router
from proactive_engine.routes.insights import router as insights_router
from proactive_engine.routes.nudges import router as nudges_router
from proactive_engine.routes.usage import router as usage_router

logger = logging.getLogger("proactive.app")

# Create and wire the DI container
container = Container()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle.

    AsyncExitStack unwinds whatever was initialized if a later startup
    step fails.
    """
    logger.info("Proactive Engine starting...")

    validate_config()

    db = container.db()
    client = container.anthropic_client()

    async with AsyncExitStack() as stack:
        await db.init(DB_PATH, run_migrations=True)
        stack.push_async_callback(db.close)
        stack.push_async_callback(client.close)

        yield

    logger.info("Proactive Engine shutting down")


app = FastAPI(
    title="Proactive Engine",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.limiter = limiter


@app.exception_handler(RateLimitExceeded)
async def http_rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."},
    )


# Business errors that escape a route
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(ForbiddenError)
async def forbidden_handler(request: Request, exc: ForbiddenError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})


@app.exception_handler(InvalidStatusError)
async def invalid_status_handler(request: Request, exc: InvalidStatusError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(PlanParseError)
async def plan_parse_handler(request: Request, exc: PlanParseError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(RateLimitedError)
async def quota_handler(request: Request, exc: RateLimitedError):
    return JSONResponse(
        status_code=429,
        content={"detail": str(exc), "window_type": exc.window_type, "reset_at": exc.reset_at},
    )


@app.exception_handler(ProviderError)
async def provider_handler(request: Request, exc: ProviderError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(EngineError)
async def engine_handler(request: Request, exc: EngineError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unhandled_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Request ID tracing
class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
        set_request_id(rid)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = rid
            return response
        finally:
            clear_context()

app.add_middleware(RequestIDMiddleware)

# Applies HTTP_RATE_LIMIT to every route without its own @limiter.limit
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "X-Tenant-ID", "X-User-ID", "X-Request-ID"],
)

# Liveness (no identity headers)
app.include_router(health_router, prefix="/api")

# Caller-scoped routes; identity comes from gateway headers
app.include_router(usage_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")
app.include_router(nudges_router, prefix="/api")
app.include_router(ceremonies_router, prefix="/api")
app.include_router(insights_router, prefix="/api")
