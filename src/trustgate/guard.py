"""
Trust-level guards for request handlers.

``require_trust_level`` and ``require_feature`` build async checks that take
a user id and return a GuardDecision. Denials carry a structured payload with
progress and improvement suggestions; they never carry exception text.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from .config.service import ConfigService
from .constants import TRUST_HELP_URL
from .levels import (
    feature_trust_requirement,
    gating_band,
    level_for_score,
    trust_level_info,
    trust_score_suggestions,
)
from .store import TrustStore

logger = logging.getLogger(__name__)

# Denial codes
INSUFFICIENT_TRUST = "insufficient_trust"
INVALID_FEATURE = "invalid_feature"
USER_NOT_FOUND = "user_not_found"
INTERNAL_ERROR = "internal_error"


@dataclass
class GuardDecision:
    allowed: bool
    code: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


GuardCheck = Callable[[str], Awaitable[GuardDecision]]


class TrustGuard:
    def __init__(self, store: TrustStore, config: ConfigService):
        self.store = store
        self.config = config

    async def _check(
        self, user_id: str, min_score: float, feature_name: Optional[str]
    ) -> GuardDecision:
        user = await self.store.get_user(user_id)
        if user is None:
            return GuardDecision(
                allowed=False,
                code=USER_NOT_FOUND,
                payload={"error": "User not found", "message": "User not found"},
            )

        levels = await self.config.trust_levels()
        score = user.trust_score
        current_band = gating_band(score, levels)
        current_level = current_band.code if current_band else level_for_score(score, levels)

        if score >= min_score:
            return GuardDecision(
                allowed=True, payload={"score": score, "level": current_level}
            )

        required_band = gating_band(min_score, levels)
        return GuardDecision(
            allowed=False,
            code=INSUFFICIENT_TRUST,
            payload={
                "error": "Insufficient trust level",
                "message": (
                    f"You need a higher trust score to {feature_name or 'access this feature'}"
                ),
                "requirements": {
                    "feature": feature_name,
                    "minimum_score": min_score,
                    "minimum_level": (
                        required_band.code if required_band else level_for_score(min_score, levels)
                    ),
                },
                "current": {
                    "score": round(score, 1),
                    "level": current_level,
                    "level_name": current_band.name if current_band else current_level.title(),
                },
                "progress": {
                    "points_needed": round(min_score - score, 1),
                    "percentage": round(score / min_score * 100) if min_score > 0 else 100,
                },
                "suggestions": trust_score_suggestions(score, min_score),
                "help_url": TRUST_HELP_URL,
            },
        )

    def require_trust_level(
        self, min_score: float, feature_name: Optional[str] = None
    ) -> GuardCheck:
        """Build a check that passes users scoring at least ``min_score``."""

        async def check(user_id: str) -> GuardDecision:
            try:
                return await self._check(user_id, min_score, feature_name)
            except Exception as e:
                logger.error(f"Trust level check failed for {user_id}: {e}")
                return GuardDecision(
                    allowed=False,
                    code=INTERNAL_ERROR,
                    payload={
                        "error": "Internal server error",
                        "message": "Failed to verify trust level",
                    },
                )

        return check

    def require_feature(self, feature_key: str) -> GuardCheck:
        """Build a check from the FEATURE_GATING entry for ``feature_key``."""

        async def check(user_id: str) -> GuardDecision:
            try:
                gating = await self.config.feature_gating()
                requirement = gating.features.get(feature_key)
                if requirement is None:
                    logger.warning(f"Guard requested for unconfigured feature {feature_key}")
                    return GuardDecision(
                        allowed=False,
                        code=INVALID_FEATURE,
                        payload={
                            "error": "Invalid feature configuration",
                            "message": f"Feature {feature_key} is not configured",
                        },
                    )
                levels = await self.config.trust_levels()
                min_score, _ = feature_trust_requirement(feature_key, requirement, levels)
                return await self._check(
                    user_id, min_score or 0.0, requirement.feature or feature_key
                )
            except Exception as e:
                logger.error(f"Feature guard {feature_key} failed for {user_id}: {e}")
                return GuardDecision(
                    allowed=False,
                    code=INTERNAL_ERROR,
                    payload={
                        "error": "Internal server error",
                        "message": "Failed to verify feature access",
                    },
                )

        return check

    async def check_trust_level(self, user_id: str, min_score: float) -> bool:
        """Plain boolean variant for service code."""
        user = await self.store.get_user(user_id)
        return user is not None and user.trust_score >= min_score

    async def trust_level_info(self, score: float) -> Dict[str, Any]:
        return trust_level_info(score, await self.config.trust_levels())
