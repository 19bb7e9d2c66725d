#  Proactive Engine - Caller Identity
#
#  FastAPI dependency reading the caller's tenant and user from headers set
#  by the upstream gateway, which authenticates requests before they reach
#  this service.
#
#  Depends on: logging_config.py
#  Used by:    routes/*

from dataclasses import dataclass

from fastapi import Header, HTTPException, status

from proactive_engine.logging_config import bind_caller


@dataclass(frozen=True)
class Caller:
    tenant_id: str
    user_id: str


async def get_caller(
    x_tenant_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
) -> Caller:
    """Return the calling tenant/user. Raises 401 when either header is missing."""
    if not x_tenant_id or not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Tenant-ID or X-User-ID header",
        )
    bind_caller(x_tenant_id, x_user_id)
    return Caller(tenant_id=x_tenant_id, user_id=x_user_id)
