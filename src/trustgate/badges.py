"""
Badge tier evaluation against BADGE_DEFINITIONS.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Optional

from .config.schemas import BadgeTiers
from .config.service import ConfigService
from .errors import UserNotFoundError
from .models import ActivityType, ImpactType, User, utcnow
from .store import TrustStore

logger = logging.getLogger(__name__)

TIER_ORDER = ("bronze", "silver", "gold", "platinum")


def tier_for(value: float, tiers: BadgeTiers) -> Optional[str]:
    """Highest tier whose threshold ``value`` reaches."""
    earned = None
    for name in TIER_ORDER:
        if value >= getattr(tiers, name):
            earned = name
    return earned


class BadgeEvaluator:
    def __init__(self, store: TrustStore, config: ConfigService):
        self.store = store
        self.config = config

    async def metrics(self, user: User, now: Optional[datetime] = None) -> Dict[str, float]:
        """Metric value behind each built-in badge type."""
        now = now or utcnow()
        positive_impacts = sum(
            1
            for log in await self.store.get_logs_by_voucher(user.id)
            if log.impact_type == ImpactType.POSITIVE
        )
        return {
            "VOUCHER": await self.store.count_vouches_given(user.id),
            "CONNECTOR": await self.store.count_activity(user.id, ActivityType.CONNECTION),
            "COMMUNITY_BUILDER": user.communities_joined,
            "EVENT_ENTHUSIAST": user.events_attended,
            "TRUST_LEADER": user.trust_score,
            "RELIABLE": user.events_attended,
            "IMPACT_MAKER": positive_impacts,
            "LONG_STANDING": (now - user.created_at).days,
        }

    async def evaluate(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Optional[str]]:
        """Badge type -> earned tier (None when not yet earned)."""
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        definitions = await self.config.badge_definitions()
        values = await self.metrics(user, now)

        earned: Dict[str, Optional[str]] = {}
        for badge_type, definition in definitions.badges.items():
            value = values.get(badge_type.upper())
            if value is None:
                logger.debug(f"No metric for badge type {badge_type}")
                earned[badge_type] = None
                continue
            earned[badge_type] = tier_for(value, definition.tiers)
        return earned
