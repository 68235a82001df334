"""
TrustAuditor - JSONL operational audit log with levels and sampling.

Records configuration changes and job summaries next to the score history,
which remains the per-user source of truth.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from enum import IntEnum
from pathlib import Path
from typing import Any, List, Optional

import aiofiles

from .constants import DEFAULT_AUDIT_SAMPLE_RATE
from .models import BatchResult, utcnow

logger = logging.getLogger(__name__)


class AuditLevel(IntEnum):
    """Audit event levels with numeric values for comparison."""
    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40

    @classmethod
    def parse(cls, value: str) -> "AuditLevel":
        return cls[value.strip().upper()]


class TrustAuditor:
    """
    Audit trust operations with level control and async file writes.

    - DEBUG: per-item detail (sampled)
    - INFO: job summaries and config changes
    - WARN/ERROR: failures
    """

    def __init__(
        self,
        audit_path: Optional[Path] = None,
        level: AuditLevel = AuditLevel.INFO,
        sample_rate: float = DEFAULT_AUDIT_SAMPLE_RATE,
    ):
        self.audit_path = audit_path
        self.level = level
        self.sample_rate = sample_rate
        self._lock = asyncio.Lock()

    async def log(
        self,
        event: str,
        level: AuditLevel = AuditLevel.DEBUG,
        **kwargs: Any,
    ) -> None:
        """Append one event if it passes the level filter and sampling."""
        if level < self.level:
            return

        if level == AuditLevel.DEBUG and random.random() > self.sample_rate:
            return

        if not self.audit_path:
            return

        self.audit_path.parent.mkdir(parents=True, exist_ok=True)

        record = {
            "ts": utcnow().isoformat(),
            "event": f"trust_{event}",
            "level": level.name.lower(),
            **kwargs,
        }

        async with self._lock:
            try:
                async with aiofiles.open(self.audit_path, "a") as f:
                    await f.write(json.dumps(record, default=str) + "\n")
            except Exception as e:
                logger.error(f"Failed to write audit log: {e}")

    async def log_config_update(
        self,
        category: str,
        key: str,
        version: int,
        changed_by: str,
        warnings: List[str],
    ) -> None:
        await self.log(
            "config_update",
            AuditLevel.INFO,
            category=category,
            key=key,
            version=version,
            changed_by=changed_by,
            warnings=warnings,
        )

    async def log_batch_summary(
        self,
        job: str,
        result: BatchResult,
        duration_ms: float = 0.0,
    ) -> None:
        """Log a fan-out job summary; escalates to WARN when items failed."""
        await self.log(
            job,
            AuditLevel.WARN if result.failed else AuditLevel.INFO,
            succeeded=result.succeeded,
            failed=result.failed,
            errors=result.errors[:20],
            duration_ms=round(duration_ms, 1),
        )

    async def log_accountability(
        self,
        log_id: str,
        voucher_id: str,
        vouchee_id: str,
        impact_type: str,
        voucher_impact: float,
    ) -> None:
        await self.log(
            "accountability_processed",
            AuditLevel.DEBUG,
            log_id=log_id,
            voucher_id=voucher_id,
            vouchee_id=vouchee_id,
            impact_type=impact_type,
            voucher_impact=voucher_impact,
        )

    async def log_job(self, job: str, **counts: Any) -> None:
        await self.log(job, AuditLevel.INFO, **counts)
