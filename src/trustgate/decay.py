"""
TrustDecayJob - periodic decay of idle users' trust scores.

A user is idle when their last activity (event participation, trust moment
given, listing, connection; else account creation) is older than the
shortest configured inactivity threshold. The most severe matching rule wins:

    decay = score * decay_rate_per_week, floored at minimum_score

A full run is: warnings -> decay -> reactivation bonuses.
"""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .config.schemas import DecayRule, TrustDecay
from .config.service import ConfigService
from .constants import (
    REACTIVATION_ACTIVITY_WINDOW_DAYS,
    REACTIVATION_BONUS_POINTS,
    REACTIVATION_BONUS_REASON,
    REACTIVATION_DECAY_WINDOW_DAYS,
)
from .errors import JobAlreadyRunningError
from .ledger import ScoreLedger
from .models import DecayRunResult, ScoreChangeCategory, utcnow
from .notifier import DECAY_WARNING, REACTIVATION_BONUS, Notifier, send_safely
from .store import TrustStore

logger = logging.getLogger(__name__)


def select_rule(inactive_days: int, decay: TrustDecay) -> Optional[DecayRule]:
    """Most severe rule whose inactivity threshold has been reached."""
    for rule in decay.by_severity():
        if inactive_days >= rule.inactivity_days:
            return rule
    return None


class TrustDecayJob:
    def __init__(
        self,
        store: TrustStore,
        config: ConfigService,
        ledger: ScoreLedger,
        notifier: Optional[Notifier] = None,
        auditor=None,
    ):
        self.store = store
        self.config = config
        self.ledger = ledger
        self.notifier = notifier
        self.auditor = auditor
        self._run_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    async def run(self, now: Optional[datetime] = None) -> DecayRunResult:
        """Apply decay to every idle user above the minimum score."""
        now = now or utcnow()
        start = time.monotonic()
        decay = await self.config.decay_rules()
        result = DecayRunResult()

        threshold = decay.min_threshold
        if threshold is None:
            logger.info("No decay rules configured, skipping decay")
            return result

        for user, last_activity in await self.store.get_users_with_last_activity(
            decay.minimum_score
        ):
            inactive_days = (now - last_activity).days
            if inactive_days < threshold:
                continue
            rule = select_rule(inactive_days, decay)
            if rule is None:
                continue

            result.candidates += 1
            try:
                amount = user.trust_score * rule.decay_rate_per_week
                change = await self.ledger.apply_delta(
                    user.id,
                    -amount,
                    reason=f"Inactivity decay ({inactive_days} days inactive)",
                    category=ScoreChangeCategory.DECAY,
                    floor=decay.minimum_score,
                    metadata={
                        "inactiveDays": inactive_days,
                        "decayRate": rule.decay_rate_per_week,
                        "ruleDays": rule.inactivity_days,
                        "lastActivity": last_activity.isoformat(),
                    },
                    now=now,
                )
                if change is not None and change.change < 0:
                    result.decayed += 1
                    result.total_decay += -change.change
            except Exception as e:
                logger.error(f"Decay failed for {user.id}: {e}")
                result.failed += 1
                result.errors.append(f"{user.id}: {e}")

        result.total_decay = round(result.total_decay, 4)
        duration_ms = (time.monotonic() - start) * 1000
        logger.info(
            f"Trust decay: {result.decayed}/{result.candidates} users decayed, "
            f"{result.failed} failed, total {result.total_decay:.2f} points"
        )
        if self.auditor is not None:
            await self.auditor.log_job(
                "decay_run",
                candidates=result.candidates,
                decayed=result.decayed,
                failed=result.failed,
                total_decay=result.total_decay,
                duration_ms=round(duration_ms, 1),
            )
        return result

    async def send_decay_warnings(self, now: Optional[datetime] = None) -> int:
        """Warn users who will cross the first decay threshold in warning_threshold days."""
        now = now or utcnow()
        decay = await self.config.decay_rules()
        threshold = decay.min_threshold
        if threshold is None:
            return 0

        warn_at = threshold - decay.warning_threshold
        if warn_at <= 0:
            return 0

        sent = 0
        for user, last_activity in await self.store.get_users_with_last_activity(
            decay.minimum_score
        ):
            if (now - last_activity).days != warn_at:
                continue
            delivered = await send_safely(
                self.notifier,
                user.id,
                DECAY_WARNING,
                {
                    "message": (
                        f"Your trust score will start to decay in {decay.warning_threshold} days. "
                        "Stay active to keep it."
                    ),
                    "days_until_decay": decay.warning_threshold,
                    "current_score": user.trust_score,
                },
            )
            if delivered:
                sent += 1

        logger.info(f"Sent {sent} trust decay warnings")
        if self.auditor is not None:
            await self.auditor.log_job("decay_warnings", sent=sent)
        return sent

    async def grant_reactivation_bonuses(self, now: Optional[datetime] = None) -> int:
        """
        Reward users who came back after a recent decay: decayed within the
        last 30 days, active within the last 7 and after that decay, and not
        already rewarded for it.
        """
        now = now or utcnow()
        active_since = now - timedelta(days=REACTIVATION_ACTIVITY_WINDOW_DAYS)
        granted = 0

        for user_id, last_decay in await self.store.get_recent_decays(
            now - timedelta(days=REACTIVATION_DECAY_WINDOW_DAYS)
        ):
            try:
                last_activity = await self.store.get_last_activity(user_id)
                if last_activity is None:
                    continue
                if last_activity <= last_decay or last_activity < active_since:
                    continue
                if await self.store.has_history_since(
                    user_id, ScoreChangeCategory.ACTIVITY, REACTIVATION_BONUS_REASON, last_decay
                ):
                    continue

                change = await self.ledger.apply_delta(
                    user_id,
                    REACTIVATION_BONUS_POINTS,
                    reason=REACTIVATION_BONUS_REASON,
                    category=ScoreChangeCategory.ACTIVITY,
                    metadata={
                        "lastDecay": last_decay.isoformat(),
                        "lastActivity": last_activity.isoformat(),
                    },
                    now=now,
                )
                if change is None or change.change <= 0:
                    continue
                granted += 1
                await send_safely(
                    self.notifier,
                    user_id,
                    REACTIVATION_BONUS,
                    {
                        "message": f"Welcome back! You earned {REACTIVATION_BONUS_POINTS:g} trust points.",
                        "bonus": REACTIVATION_BONUS_POINTS,
                        "new_score": change.new_score,
                    },
                )
            except Exception as e:
                logger.error(f"Reactivation bonus failed for {user_id}: {e}")

        logger.info(f"Granted {granted} reactivation bonuses")
        if self.auditor is not None:
            await self.auditor.log_job("reactivation_bonuses", granted=granted)
        return granted

    async def run_all(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Warnings, then decay, then bonuses. Not re-entrant."""
        if self._run_lock.locked():
            raise JobAlreadyRunningError("Trust decay job is already running")

        async with self._run_lock:
            now = now or utcnow()
            warnings_sent = await self.send_decay_warnings(now)
            decay_result = await self.run(now)
            bonuses = await self.grant_reactivation_bonuses(now)

        return {
            "warnings_sent": warnings_sent,
            "decay": decay_result.to_dict(),
            "bonuses_granted": bonuses,
        }
