"""
TrustScoreCalculator - weighted multi-factor trust score.

composite = vouch_weight * vouch + activity_weight * activity
            + trust_moment_weight * moments

Each sub-score is in [0, 100]; a failing sub-score is logged and counts as 0.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, Optional, Tuple

from .config.schemas import ActivityWeights, TrustFormula
from .config.service import ConfigService
from .constants import (
    MAX_TRUST_SCORE,
    MOMENT_COUNT_BONUS_CAP,
    MOMENT_COUNT_BONUS_PER_MOMENT,
    MOMENT_MAX_RATING,
    VOUCH_TYPE_CAPS,
)
from .errors import UserNotFoundError
from .ledger import ScoreLedger, clamp
from .levels import level_for_score
from .models import BatchResult, ScoreBreakdown, ScoreChangeCategory, User, VouchType
from .store import TrustStore

logger = logging.getLogger(__name__)

RECALCULATION_REASON = "Trust score recalculated"


class TrustScoreCalculator:
    """Computes and persists composite trust scores."""

    def __init__(
        self,
        store: TrustStore,
        config: ConfigService,
        ledger: ScoreLedger,
        auditor=None,
    ):
        self.store = store
        self.config = config
        self.ledger = ledger
        self.auditor = auditor

    # ------------------------------------------------------------------
    # Sub-scores
    # ------------------------------------------------------------------

    async def vouch_score(self, user_id: str, formula: TrustFormula) -> float:
        counts = await self.store.count_active_vouches_by_type(user_id)
        breakdown = formula.vouch_breakdown

        score = 0.0
        if counts[VouchType.PRIMARY] >= 1:
            score += breakdown.primary * 100

        secondary_cap = VOUCH_TYPE_CAPS[VouchType.SECONDARY.value]
        score += breakdown.secondary * 100 * min(counts[VouchType.SECONDARY], secondary_cap) / secondary_cap

        community_cap = VOUCH_TYPE_CAPS[VouchType.COMMUNITY.value]
        score += breakdown.community * 100 * min(counts[VouchType.COMMUNITY], community_cap) / community_cap

        return min(score, MAX_TRUST_SCORE)

    def activity_score(self, user: User, weights: ActivityWeights) -> float:
        raw = (
            user.events_attended * weights.event_attended
            + user.events_hosted * weights.event_hosted
            + user.communities_joined * weights.community_joined
            + user.services_provided * weights.service_created
        )
        return clamp(raw, 0.0, weights.max_activity_score)

    async def trust_moment_score(self, user_id: str) -> float:
        count, avg_rating = await self.store.get_public_moment_stats(user_id)
        if count == 0:
            return 0.0
        score = (avg_rating / MOMENT_MAX_RATING) * 100 + min(
            count * MOMENT_COUNT_BONUS_PER_MOMENT, MOMENT_COUNT_BONUS_CAP
        )
        return min(score, MAX_TRUST_SCORE)

    async def _safe(self, name: str, user_id: str, coro) -> float:
        try:
            return await coro
        except Exception as e:
            logger.error(f"Failed to compute {name} score for {user_id}: {e}")
            return 0.0

    async def get_score_breakdown(self, user_id: str, user: Optional[User] = None) -> ScoreBreakdown:
        """Raw and weighted sub-scores without persisting anything."""
        if user is None:
            user = await self.store.get_user(user_id)
            if user is None:
                raise UserNotFoundError(user_id)

        formula = await self.config.trust_formula()
        weights = await self.config.activity_weights()

        vouch = await self._safe("vouch", user_id, self.vouch_score(user_id, formula))
        try:
            activity = self.activity_score(user, weights)
        except Exception as e:
            logger.error(f"Failed to compute activity score for {user_id}: {e}")
            activity = 0.0
        moments = await self._safe("trust moment", user_id, self.trust_moment_score(user_id))

        weighted_vouch = vouch * formula.vouch_weight
        weighted_activity = activity * formula.activity_weight
        weighted_moments = moments * formula.trust_moment_weight
        total = clamp(weighted_vouch + weighted_activity + weighted_moments)

        levels = await self.config.trust_levels()
        return ScoreBreakdown(
            vouch=vouch,
            activity=activity,
            trust_moments=moments,
            weighted_vouch=weighted_vouch,
            weighted_activity=weighted_activity,
            weighted_trust_moments=weighted_moments,
            total=total,
            level=level_for_score(total, levels),
        )

    # ------------------------------------------------------------------
    # Persisting operations
    # ------------------------------------------------------------------

    async def calculate_trust_score(
        self, user_id: str, reason: str = RECALCULATION_REASON
    ) -> float:
        """Recompute, persist and return the user's trust score."""

        async def compute(user: User) -> Tuple[float, Dict[str, Any]]:
            breakdown = await self.get_score_breakdown(user_id, user)
            return breakdown.total, {
                "vouch_score": round(breakdown.weighted_vouch, 2),
                "activity_score": round(breakdown.weighted_activity, 2),
                "trust_moment_score": round(breakdown.weighted_trust_moments, 2),
            }

        change = await self.ledger.set_score(
            user_id, compute, reason, ScoreChangeCategory.RECALCULATION
        )
        if change.recorded:
            logger.info(
                f"Trust score for {user_id}: {change.previous_score:.2f} -> "
                f"{change.new_score:.2f} ({change.level})"
            )
        return change.new_score

    async def trigger_trust_score_update(
        self, user_id: str, reason: str = RECALCULATION_REASON
    ) -> Optional[float]:
        """Event-driven recompute. Never raises; returns None on failure."""
        try:
            return await self.calculate_trust_score(user_id, reason)
        except Exception as e:
            logger.error(f"Trust score update failed for {user_id} ({reason}): {e}")
            return None

    async def recalculate_trust_scores(
        self, user_ids: Optional[Iterable[str]] = None
    ) -> BatchResult:
        """Batch recompute; all users when ``user_ids`` is None."""
        start = time.monotonic()
        if user_ids is None:
            user_ids = await self.store.list_user_ids()

        result = BatchResult()
        for user_id in user_ids:
            try:
                await self.calculate_trust_score(user_id)
                result.succeeded += 1
            except Exception as e:
                logger.error(f"Recalculation failed for {user_id}: {e}")
                result.record_failure(user_id, e)

        duration_ms = (time.monotonic() - start) * 1000
        logger.info(
            f"Recalculated {result.succeeded} trust scores, {result.failed} failed "
            f"in {duration_ms:.0f}ms"
        )
        if self.auditor is not None:
            await self.auditor.log_batch_summary(
                "recalculation_batch", result, duration_ms=duration_ms
            )
        return result
