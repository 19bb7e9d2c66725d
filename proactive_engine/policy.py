#  Proactive Engine - Store Failure Policy
#
#  One table mapping each store-touching operation to what happens when the
#  store raises: fail open (degrade to a permissive fallback), fail closed
#  (propagate), or swallow (log and continue).
#
#  Depends on: exceptions.py
#  Used by:    services/quota.py, services/health.py, services/nudges.py,
#              services/ceremonies.py, services/capabilities.py,
#              services/insights.py

import logging
from enum import Enum
from typing import Any, Awaitable, Callable

from proactive_engine.exceptions import EngineError

logger = logging.getLogger("proactive.policy")


class FailurePolicy(str, Enum):
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"
    SWALLOW = "swallow"


OPERATION_POLICIES: dict[str, FailurePolicy] = {
    # Quota reads must not take the product down with the store
    "quota.check_window": FailurePolicy.FAIL_OPEN,
    "quota.record_usage": FailurePolicy.FAIL_CLOSED,
    "quota.log_api_call": FailurePolicy.SWALLOW,
    "quota.get_usage_stats": FailurePolicy.FAIL_CLOSED,
    "health.upsert_snapshot": FailurePolicy.FAIL_CLOSED,
    "nudges.insert": FailurePolicy.FAIL_CLOSED,
    # A stuck pending row blocks regeneration for its subject
    "nudges.expire": FailurePolicy.FAIL_CLOSED,
    "ceremonies.persist": FailurePolicy.FAIL_CLOSED,
    "ceremonies.focus_preferences": FailurePolicy.FAIL_CLOSED,
    "insights.read_cache": FailurePolicy.FAIL_OPEN,
    "insights.persist": FailurePolicy.FAIL_CLOSED,
    "capabilities.resolve": FailurePolicy.FAIL_CLOSED,
}


def policy_for(operation: str) -> FailurePolicy:
    """Unlisted operations fail closed."""
    return OPERATION_POLICIES.get(operation, FailurePolicy.FAIL_CLOSED)


async def guarded(
    operation: str,
    fn: Callable[[], Awaitable[Any]],
    *,
    fallback: Callable[[Exception], Any] | None = None,
) -> Any:
    """Run a store operation under its failure policy.

    Engine errors always propagate: they are business outcomes, not store
    failures. For FAIL_OPEN and SWALLOW the fallback is called with the
    exception and its return value is returned (None without a fallback).
    """
    try:
        return await fn()
    except EngineError:
        raise
    except Exception as e:
        policy = policy_for(operation)
        if policy is FailurePolicy.FAIL_CLOSED:
            logger.error("%s failed: %s", operation, e)
            raise
        if policy is FailurePolicy.FAIL_OPEN:
            logger.warning("%s failed, failing open: %s", operation, e)
        else:
            logger.error("%s failed (ignored): %s", operation, e)
        return fallback(e) if fallback else None
