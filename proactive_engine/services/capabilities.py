#  Proactive Engine - Capabilities
#
#  Resolves a tenant's proactive feature flags once into an immutable
#  snapshot, so a single request sees one consistent set of flags.
#
#  Depends on: services/readers.py, policy.py
#  Used by:    container.py, services/nudges.py, services/ceremonies.py,
#              services/insights.py

import logging
from dataclasses import dataclass, fields

from proactive_engine.models.enums import CeremonyType
from proactive_engine.policy import guarded

logger = logging.getLogger("proactive.capabilities")

# Capability field -> team_settings feature key
FEATURE_KEYS: dict[str, str] = {
    "smart_nudges": "smartNudges",
    "morning_focus": "morningFocus",
    "daily_standup": "dailyStandup",
    "weekly_review": "weeklyReview",
    "meeting_prep": "meetingPrep",
    "insights": "insights",
}


@dataclass(frozen=True)
class Capabilities:
    smart_nudges: bool = True
    morning_focus: bool = True
    daily_standup: bool = True
    weekly_review: bool = True
    meeting_prep: bool = True
    insights: bool = True

    def allows_ceremony(self, ceremony_type: CeremonyType) -> bool:
        return {
            CeremonyType.MORNING_FOCUS: self.morning_focus,
            CeremonyType.STANDUP: self.daily_standup,
            CeremonyType.WEEKLY_REVIEW: self.weekly_review,
        }[CeremonyType(ceremony_type)]


class CapabilityResolver:
    """Reads every proactive flag for a tenant through the FeatureFlagReader."""

    def __init__(self, flags):
        self._flags = flags

    async def resolve(self, tenant_id: str) -> Capabilities:
        async def _resolve() -> Capabilities:
            values = {}
            for f in fields(Capabilities):
                values[f.name] = await self._flags.get_proactive_feature_status(
                    tenant_id, FEATURE_KEYS[f.name],
                )
            return Capabilities(**values)

        caps = await guarded("capabilities.resolve", _resolve)
        logger.debug("Resolved capabilities for tenant %s: %s", tenant_id, caps)
        return caps
