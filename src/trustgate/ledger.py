"""
ScoreLedger - the only way a user's trust score changes.

Every mutation (recalculation, accountability, decay, activity bonus) goes
through here so the score, the derived level and the append-only history row
are always written together.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from .config.service import ConfigService
from .constants import (
    MAX_TRUST_SCORE,
    MIN_TRUST_SCORE,
    SCORE_CHANGE_EPSILON,
    SCORE_WRITE_MAX_RETRIES,
)
from .errors import ScoreConflictError, UserNotFoundError
from .levels import level_for_score
from .models import ScoreChange, ScoreChangeCategory, ScoreHistoryEntry, User, utcnow
from .store import TrustStore, new_id

logger = logging.getLogger(__name__)

# compute(user) -> (target score, history metadata)
TargetComputation = Callable[[User], Awaitable[Tuple[float, Dict[str, Any]]]]


def clamp(value: float, low: float = MIN_TRUST_SCORE, high: float = MAX_TRUST_SCORE) -> float:
    return max(low, min(high, value))


class ScoreLedger:
    def __init__(self, store: TrustStore, config: ConfigService):
        self.store = store
        self.config = config

    def _entry(
        self,
        user_id: str,
        previous: float,
        new: float,
        reason: str,
        category: ScoreChangeCategory,
        related_entity_type: Optional[str],
        related_entity_id: Optional[str],
        metadata: Optional[Dict[str, Any]],
        now: Optional[datetime],
    ) -> ScoreHistoryEntry:
        return ScoreHistoryEntry(
            id=new_id(),
            user_id=user_id,
            previous_score=previous,
            new_score=new,
            change=new - previous,
            reason=reason,
            category=category,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            metadata=metadata or {},
            created_at=now or utcnow(),
        )

    async def apply_delta(
        self,
        user_id: str,
        delta: float,
        reason: str,
        category: ScoreChangeCategory,
        floor: float = MIN_TRUST_SCORE,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        processed_log_id: Optional[str] = None,
        record_zero_change: bool = False,
        now: Optional[datetime] = None,
    ) -> Optional[ScoreChange]:
        """
        Atomically add ``delta`` to the current score, clamped to
        [floor, 100], and append a history row.

        Returns None only when ``processed_log_id`` was already claimed.
        """
        levels = await self.config.trust_levels()

        def compute(user: User):
            new_score = clamp(user.trust_score + delta, floor, MAX_TRUST_SCORE)
            change = new_score - user.trust_score
            if change == 0 and not record_zero_change:
                return None
            history = self._entry(
                user_id,
                user.trust_score,
                new_score,
                reason,
                category,
                related_entity_type,
                related_entity_id,
                metadata,
                now,
            )
            return new_score, level_for_score(new_score, levels), history

        return await self.store.mutate_score(
            user_id, compute, processed_log_id=processed_log_id, now=now
        )

    async def set_score(
        self,
        user_id: str,
        compute: TargetComputation,
        reason: str,
        category: ScoreChangeCategory = ScoreChangeCategory.RECALCULATION,
        now: Optional[datetime] = None,
    ) -> ScoreChange:
        """
        Replace the score with a recomputed target under an optimistic
        version check, recomputing on conflict.

        History is only appended when the score moved by more than
        SCORE_CHANGE_EPSILON.
        """
        levels = await self.config.trust_levels()

        for attempt in range(1, SCORE_WRITE_MAX_RETRIES + 1):
            user = await self.store.get_user(user_id)
            if user is None:
                raise UserNotFoundError(user_id)

            target, metadata = await compute(user)
            score = clamp(target)
            level = level_for_score(score, levels)
            change = score - user.trust_score

            if change == 0 and level == user.trust_level:
                return ScoreChange(user_id, user.trust_score, score, level, recorded=False)

            history = None
            if abs(change) > SCORE_CHANGE_EPSILON:
                history = self._entry(
                    user_id,
                    user.trust_score,
                    score,
                    reason,
                    category,
                    None,
                    None,
                    {**metadata, "level": level},
                    now,
                )

            if await self.store.set_score_if_version(
                user_id, user.score_version, score, level, history
            ):
                return ScoreChange(
                    user_id, user.trust_score, score, level, recorded=history is not None
                )
            logger.debug(f"Score version conflict for {user_id} (attempt {attempt})")

        raise ScoreConflictError(user_id, SCORE_WRITE_MAX_RETRIES)

    async def get_history(
        self,
        user_id: str,
        limit: int = 50,
        offset: int = 0,
        category: Optional[ScoreChangeCategory] = None,
    ) -> Dict[str, Any]:
        """History page plus per-category gains and losses."""
        user = await self.store.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        entries = await self.store.get_score_history(user_id, limit, offset, category)
        by_category = await self.store.get_history_summary(user_id)
        return {
            "user_id": user_id,
            "current_score": user.trust_score,
            "current_level": user.trust_level,
            "entries": entries,
            "summary": {
                "total_gained": round(sum(c["gained"] for c in by_category.values()), 2),
                "total_lost": round(sum(c["lost"] for c in by_category.values()), 2),
                "by_category": by_category,
            },
        }
