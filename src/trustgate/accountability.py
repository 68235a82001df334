"""
AccountabilityPropagator - vouchers share the consequences of their vouchees.

A behavioural event on a vouchee becomes one AccountabilityLog per active
voucher. Processing a log moves that voucher's score by a configured share
of the raw impact:

    NEGATIVE: -impact * penalty_distribution   (default 0.40)
    POSITIVE: +impact * reward_distribution    (default 0.20)
    NEUTRAL:  0

Processing is idempotent: the log is claimed in the same transaction that
changes the score, so a retry or a concurrent sweep cannot apply it twice.
"""

from __future__ import annotations

import logging
import math
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from .config.schemas import AccountabilityRules
from .config.service import ConfigService
from .constants import ACCOUNTABILITY_HISTORY_PAGE_SIZE, ACCOUNTABILITY_RECENT_LOGS
from .errors import AccountabilityLogNotFoundError
from .ledger import ScoreLedger
from .models import (
    AccountabilityLog,
    BatchResult,
    ImpactType,
    ProcessOutcome,
    ScoreChangeCategory,
    utcnow,
)
from .notifier import ACCOUNTABILITY_IMPACT, Notifier, send_safely
from .store import TrustStore, new_id

logger = logging.getLogger(__name__)

MAX_HISTORY_PAGE_SIZE = 100


def voucher_impact(
    impact_type: ImpactType, impact_value: float, rules: AccountabilityRules
) -> float:
    """Signed score change for the voucher of one log."""
    magnitude = abs(impact_value)
    if impact_type == ImpactType.NEGATIVE:
        return -magnitude * rules.penalty_distribution
    if impact_type == ImpactType.POSITIVE:
        return magnitude * rules.reward_distribution
    return 0.0


class AccountabilityPropagator:
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

    async def record_accountability_event(
        self,
        vouchee_id: str,
        impact_type: ImpactType,
        impact_value: float,
        reason: str,
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        event_kind: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BatchResult:
        """
        Fan a vouchee's event out to every active voucher.

        ``event_kind`` (e.g. EVENT_NO_SHOW) scales the impact by the configured
        multiplier before it is logged. A failed log stays unprocessed for
        ``process_unprocessed_logs``.
        """
        impact_type = ImpactType(impact_type)
        metadata = dict(metadata or {})

        if event_kind is not None:
            rules = await self.config.accountability_rules()
            multiplier = rules.impact_multipliers.get(event_kind, 1.0)
            metadata.update(
                {"event_kind": event_kind, "base_impact": impact_value, "multiplier": multiplier}
            )
            impact_value = impact_value * multiplier

        result = BatchResult()
        vouches = await self.store.get_active_vouches_for_vouchee(vouchee_id)
        if not vouches:
            logger.debug(f"No active vouchers for {vouchee_id}, nothing to propagate")
            return result

        for vouch in vouches:
            log = AccountabilityLog(
                id=new_id(),
                voucher_id=vouch.voucher_id,
                vouchee_id=vouchee_id,
                vouch_id=vouch.id,
                impact_type=impact_type,
                impact_value=impact_value,
                description=reason,
                related_entity_type=related_entity_type,
                related_entity_id=related_entity_id,
                metadata=metadata,
                occurred_at=now or utcnow(),
            )
            try:
                await self.store.insert_accountability_log(log)
                await self.process_accountability(log.id, now=now)
                result.succeeded += 1
            except Exception as e:
                logger.error(
                    f"Accountability for voucher {vouch.voucher_id} of {vouchee_id} failed: {e}"
                )
                result.record_failure(vouch.voucher_id, e)

        logger.info(
            f"Propagated {impact_type.value} impact {impact_value} from {vouchee_id} "
            f"to {result.succeeded} vouchers ({result.failed} failed)"
        )
        return result

    async def process_accountability(
        self, log_id: str, now: Optional[datetime] = None
    ) -> ProcessOutcome:
        log = await self.store.get_accountability_log(log_id)
        if log is None:
            raise AccountabilityLogNotFoundError(log_id)
        if log.is_processed:
            return ProcessOutcome(log_id=log_id, status="already_processed", voucher_id=log.voucher_id)

        rules = await self.config.accountability_rules()
        delta = voucher_impact(log.impact_type, log.impact_value, rules)

        if delta == 0:
            flipped = await self.store.mark_log_processed(log_id, now)
            return ProcessOutcome(
                log_id=log_id,
                status="processed" if flipped else "already_processed",
                voucher_id=log.voucher_id,
            )

        change = await self.ledger.apply_delta(
            log.voucher_id,
            delta,
            reason=f"Accountability: {log.description}" if log.description else "Accountability",
            category=ScoreChangeCategory.ACCOUNTABILITY,
            related_entity_type="accountability_log",
            related_entity_id=log.id,
            metadata={
                "vouchee_id": log.vouchee_id,
                "vouch_id": log.vouch_id,
                "impact_type": log.impact_type.value,
                "vouchee_impact": log.impact_value,
                "voucher_impact": delta,
            },
            processed_log_id=log.id,
            record_zero_change=True,
            now=now,
        )
        if change is None:
            return ProcessOutcome(log_id=log_id, status="already_processed", voucher_id=log.voucher_id)

        direction = "decreased" if delta < 0 else "increased"
        await send_safely(
            self.notifier,
            log.voucher_id,
            ACCOUNTABILITY_IMPACT,
            {
                "message": (
                    f"Your trust score {direction} by {abs(delta):.1f} points "
                    f"because of someone you vouched for"
                ),
                "vouchee_id": log.vouchee_id,
                "impact_type": log.impact_type.value,
                "voucher_impact": delta,
                "new_score": change.new_score,
            },
        )
        if self.auditor is not None:
            await self.auditor.log_accountability(
                log.id, log.voucher_id, log.vouchee_id, log.impact_type.value, delta
            )

        return ProcessOutcome(
            log_id=log_id,
            status="processed",
            voucher_id=log.voucher_id,
            voucher_impact=delta,
            new_score=change.new_score,
        )

    async def process_unprocessed_logs(self) -> BatchResult:
        """Recovery sweep over unprocessed logs, oldest first."""
        start = time.monotonic()
        result = BatchResult()
        for log in await self.store.get_unprocessed_logs():
            try:
                await self.process_accountability(log.id)
                result.succeeded += 1
            except Exception as e:
                logger.error(f"Failed to process accountability log {log.id}: {e}")
                result.record_failure(log.id, e)

        if result.total:
            logger.info(
                f"Accountability sweep processed {result.succeeded} logs, {result.failed} failed"
            )
        if self.auditor is not None:
            await self.auditor.log_batch_summary(
                "accountability_sweep", result, duration_ms=(time.monotonic() - start) * 1000
            )
        return result

    # ------------------------------------------------------------------
    # Read aggregations (recomputed from raw impact values)
    # ------------------------------------------------------------------

    def _log_to_dict(self, log: AccountabilityLog, impact: float) -> Dict[str, Any]:
        return {
            "id": log.id,
            "voucher_id": log.voucher_id,
            "vouchee_id": log.vouchee_id,
            "impact_type": log.impact_type.value,
            "impact_value": log.impact_value,
            "voucher_impact": round(impact, 2),
            "description": log.description,
            "related_entity_type": log.related_entity_type,
            "related_entity_id": log.related_entity_id,
            "is_processed": log.is_processed,
            "occurred_at": log.occurred_at.isoformat(),
        }

    async def get_accountability_impact(self, user_id: str) -> Dict[str, Any]:
        """How the user's vouchees have affected the user's score, as voucher."""
        rules = await self.config.accountability_rules()
        logs = await self.store.get_logs_by_voucher(user_id)

        counts = {t.value: 0 for t in ImpactType}
        total = positive = negative = 0.0
        by_vouchee: Dict[str, Dict[str, Any]] = {}

        for log in logs:
            impact = voucher_impact(log.impact_type, log.impact_value, rules)
            counts[log.impact_type.value] += 1
            total += impact
            if impact > 0:
                positive += impact
            elif impact < 0:
                negative += impact

            entry = by_vouchee.setdefault(
                log.vouchee_id,
                {"vouchee_id": log.vouchee_id, "count": 0, "total_impact": 0.0, "last_occurred_at": None},
            )
            entry["count"] += 1
            entry["total_impact"] += impact
            if entry["last_occurred_at"] is None or log.occurred_at > entry["last_occurred_at"]:
                entry["last_occurred_at"] = log.occurred_at

        vouchees = sorted(by_vouchee.values(), key=lambda e: e["last_occurred_at"], reverse=True)
        for entry in vouchees:
            entry["total_impact"] = round(entry["total_impact"], 2)
            entry["last_occurred_at"] = entry["last_occurred_at"].isoformat()

        return {
            "user_id": user_id,
            "total_logs": len(logs),
            "total_impact": round(total, 2),
            "positive_impact": round(positive, 2),
            "negative_impact": round(negative, 2),
            "counts": counts,
            "by_vouchee": vouchees,
            "recent_logs": [
                self._log_to_dict(log, voucher_impact(log.impact_type, log.impact_value, rules))
                for log in logs[:ACCOUNTABILITY_RECENT_LOGS]
            ],
        }

    async def get_accountability_history(
        self,
        user_id: str,
        page: int = 1,
        limit: int = ACCOUNTABILITY_HISTORY_PAGE_SIZE,
        impact_type: Optional[ImpactType] = None,
    ) -> Dict[str, Any]:
        """Paginated logs where the user is the vouchee."""
        page = max(1, page)
        limit = max(1, min(limit, MAX_HISTORY_PAGE_SIZE))
        rules = await self.config.accountability_rules()

        logs, total = await self.store.get_logs_by_vouchee(
            user_id,
            ImpactType(impact_type) if impact_type is not None else None,
            limit=limit,
            offset=(page - 1) * limit,
        )
        items: List[Dict[str, Any]] = [
            self._log_to_dict(log, voucher_impact(log.impact_type, log.impact_value, rules))
            for log in logs
        ]
        return {
            "user_id": user_id,
            "logs": items,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }
