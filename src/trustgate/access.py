"""
AccessControlService - dual-gate feature access.

A feature may require a minimum subscription tier, a minimum trust level or
score, or both. The two gates are evaluated independently and both must pass;
a denial says which gate blocked it and what it would take to get through.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .config.schemas import FeatureRequirement, TrustLevels
from .config.service import ConfigService
from .constants import (
    CURRENCY,
    TIER_PRICING,
    TIER_USAGE_LIMITS,
    TRUST_POINTS_PER_WEEK,
    UNLIMITED,
)
from .levels import (
    feature_trust_requirement,
    gating_band,
    level_for_score,
    suggested_actions,
)
from .models import (
    FeatureAccess,
    Subscription,
    SubscriptionTier,
    SubscriptionUpgrade,
    TrustUpgrade,
    UpgradeOptions,
    UsageCheck,
    User,
    utcnow,
)
from .store import TrustStore

logger = logging.getLogger(__name__)


def month_window(now: datetime) -> Tuple[datetime, datetime]:
    """[first instant of this calendar month, first instant of the next)."""
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def estimate_days(points_needed: float) -> int:
    """Rough time to earn ``points_needed`` at ~2 points per week."""
    if points_needed <= 0:
        return 0
    return math.ceil(points_needed / TRUST_POINTS_PER_WEEK) * 7


class AccessControlService:
    def __init__(self, store: TrustStore, config: ConfigService):
        self.store = store
        self.config = config

    async def get_effective_subscription(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Tuple[SubscriptionTier, Optional[Subscription]]:
        """Highest currently effective subscription; FREE when there is none."""
        effective = [
            s for s in await self.store.get_subscriptions(user_id) if s.is_effective(now)
        ]
        if not effective:
            return SubscriptionTier.FREE, None
        best = max(effective, key=lambda s: s.tier)
        return best.tier, best

    def evaluate(
        self,
        code: str,
        user: User,
        tier: SubscriptionTier,
        requirement: FeatureRequirement,
        levels: TrustLevels,
    ) -> FeatureAccess:
        reasons: List[str] = []
        upgrade = UpgradeOptions()

        subscription_ok = True
        if requirement.min_subscription_tier is not None:
            required_tier = SubscriptionTier.parse(requirement.min_subscription_tier)
            if tier < required_tier:
                subscription_ok = False
                reasons.append(
                    f"Requires {required_tier.name} subscription (you have {tier.name})"
                )
                required_price = TIER_PRICING[required_tier.name]["monthly"]
                upgrade.subscription_needed = SubscriptionUpgrade(
                    current_tier=tier.name,
                    required_tier=required_tier.name,
                    price_monthly=required_price,
                    price_difference=required_price - TIER_PRICING[tier.name]["monthly"],
                    currency=CURRENCY,
                )

        trust_ok = True
        required_score, required_level = feature_trust_requirement(code, requirement, levels)
        if required_score is not None and user.trust_score < required_score:
            trust_ok = False
            band = gating_band(user.trust_score, levels)
            current_level = band.code if band else level_for_score(user.trust_score, levels)
            if requirement.min_trust_level is not None and required_level is not None:
                reasons.append(
                    f"Requires {required_level} trust level (you are {current_level})"
                )
            else:
                reasons.append(
                    f"Requires {required_score:g}% trust score (you have {user.trust_score:.1f}%)"
                )
            points_needed = required_score - user.trust_score
            upgrade.trust_needed = TrustUpgrade(
                current_level=current_level,
                required_level=required_level or "",
                current_score=user.trust_score,
                required_score=required_score,
                points_needed=round(points_needed, 1),
                estimated_days=estimate_days(points_needed),
                suggested_actions=suggested_actions(required_level or ""),
            )

        if subscription_ok and trust_ok:
            return FeatureAccess(allowed=True)

        if not subscription_ok and not trust_ok:
            blocked_by = "both"
        elif not subscription_ok:
            blocked_by = "subscription"
        else:
            blocked_by = "trust"
        return FeatureAccess(
            allowed=False,
            reason=" AND ".join(reasons),
            blocked_by=blocked_by,
            upgrade_options=upgrade,
        )

    async def can_access_feature(
        self, user_id: str, feature_code: str, now: Optional[datetime] = None
    ) -> FeatureAccess:
        try:
            user = await self.store.get_user(user_id)
            if user is None:
                return FeatureAccess(allowed=False, reason="User not found")

            gating = await self.config.feature_gating()
            requirement = gating.features.get(feature_code)
            if requirement is None:
                return FeatureAccess(allowed=False, reason="Unknown feature")

            levels = await self.config.trust_levels()
            tier, _ = await self.get_effective_subscription(user_id, now)
            return self.evaluate(feature_code, user, tier, requirement, levels)
        except Exception as e:
            logger.error(f"Error checking access to {feature_code} for {user_id}: {e}")
            return FeatureAccess(allowed=False, reason="Error checking feature access")

    def usage_limit(
        self,
        tier: SubscriptionTier,
        subscription: Optional[Subscription],
        feature_code: str,
    ) -> int:
        """Monthly limit for a feature; -1 means unlimited."""
        if subscription is not None:
            overrides = subscription.features.get("usage_limits") or {}
            if feature_code in overrides:
                return int(overrides[feature_code])
        return int(TIER_USAGE_LIMITS.get(tier.name, {}).get(feature_code, UNLIMITED))

    async def check_feature_usage(
        self, user_id: str, feature_code: str, now: Optional[datetime] = None
    ) -> UsageCheck:
        """Usage against the monthly limit of the user's effective tier."""
        now = now or utcnow()
        try:
            tier, subscription = await self.get_effective_subscription(user_id, now)
            limit = self.usage_limit(tier, subscription, feature_code)
            start, end = month_window(now)
            used = await self.store.count_feature_usage(user_id, feature_code, start, end)
            if limit == UNLIMITED:
                return UsageCheck(can_use=True, used=used, limit=UNLIMITED, remaining=UNLIMITED)
            return UsageCheck(
                can_use=used < limit,
                used=used,
                limit=limit,
                remaining=max(limit - used, 0),
            )
        except Exception as e:
            logger.error(f"Error checking usage of {feature_code} for {user_id}: {e}")
            return UsageCheck(can_use=False, used=0, limit=0, remaining=0)

    async def record_feature_usage(
        self,
        user_id: str,
        feature_code: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        try:
            await self.store.record_feature_usage(
                user_id, feature_code, entity_type, entity_id, now
            )
            return True
        except Exception as e:
            logger.error(f"Failed to record usage of {feature_code} for {user_id}: {e}")
            return False

    async def get_user_access_summary(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Optional[Dict[str, Any]]:
        """Everything a user can and cannot do right now, and why."""
        user = await self.store.get_user(user_id)
        if user is None:
            return None

        now = now or utcnow()
        tier, subscription = await self.get_effective_subscription(user_id, now)
        gating = await self.config.feature_gating()
        levels = await self.config.trust_levels()

        accessible: List[str] = []
        locked: List[Dict[str, Any]] = []
        for code, requirement in gating.features.items():
            access = self.evaluate(code, user, tier, requirement, levels)
            if access.allowed:
                accessible.append(code)
            else:
                locked.append(
                    {
                        "feature": code,
                        "name": requirement.feature,
                        "reason": access.reason,
                        "blocked_by": access.blocked_by,
                        "upgrade_options": asdict(access.upgrade_options),
                    }
                )

        usage = {}
        for code in TIER_USAGE_LIMITS.get(tier.name, {}):
            usage[code] = (await self.check_feature_usage(user_id, code, now)).to_dict()

        vouches = await self.store.get_active_vouches_for_vouchee(user_id)
        moment_count, _ = await self.store.get_public_moment_stats(user_id)
        band = gating_band(user.trust_score, levels)

        return {
            "user_id": user_id,
            "subscription": {
                "tier": tier.name,
                "status": subscription.status.value if subscription else None,
                "current_period_end": (
                    subscription.current_period_end.isoformat()
                    if subscription and subscription.current_period_end
                    else None
                ),
            },
            "trust": {
                "score": user.trust_score,
                "level": band.code if band else user.trust_level,
                "vouch_count": len(vouches),
                "moment_count": moment_count,
                "event_count": user.events_attended,
            },
            "accessible_features": accessible,
            "locked_features": locked,
            "usage": usage,
        }
