"""
TrustOrchestrator - wires the trust components and runs the periodic jobs.

Single entry point: build it from TrustSettings, ``initialize()`` it, use its
components, ``shutdown()`` when done.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

from .access import AccessControlService
from .accountability import AccountabilityPropagator
from .auditor import AuditLevel, TrustAuditor
from .badges import BadgeEvaluator
from .calculator import TrustScoreCalculator
from .config.service import ConfigService
from .decay import TrustDecayJob
from .errors import JobAlreadyRunningError
from .guard import TrustGuard
from .ledger import ScoreLedger
from .notifier import LoggingNotifier, Notifier, WebhookNotifier
from .settings import TrustSettings
from .store import TrustStore

logger = logging.getLogger(__name__)


class TrustOrchestrator:
    """Owns the store connection and every component built on it."""

    def __init__(
        self,
        settings: Optional[TrustSettings] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.settings = settings or TrustSettings.from_env()

        self.store = TrustStore(db_path=self.settings.db_path)
        self.auditor = TrustAuditor(
            self.settings.audit_path,
            level=AuditLevel.parse(self.settings.audit_level),
        )
        if notifier is None:
            if self.settings.notify_webhook_url:
                notifier = WebhookNotifier(
                    self.settings.notify_webhook_url, timeout=self.settings.notify_timeout
                )
            else:
                notifier = LoggingNotifier()
        self.notifier = notifier

        self.config = ConfigService(
            self.store, ttl_seconds=self.settings.config_cache_ttl, auditor=self.auditor
        )
        self.ledger = ScoreLedger(self.store, self.config)
        self.calculator = TrustScoreCalculator(
            self.store, self.config, self.ledger, auditor=self.auditor
        )
        self.accountability = AccountabilityPropagator(
            self.store, self.config, self.ledger, notifier=self.notifier, auditor=self.auditor
        )
        self.decay = TrustDecayJob(
            self.store, self.config, self.ledger, notifier=self.notifier, auditor=self.auditor
        )
        self.access = AccessControlService(self.store, self.config)
        self.guard = TrustGuard(self.store, self.config)
        self.badges = BadgeEvaluator(self.store, self.config)

        self._background_loop_task: Optional[asyncio.Task] = None

    async def initialize(self, start_background: bool = False) -> None:
        """Create the schema, seed default configuration, optionally start jobs."""
        await self.store.initialize()
        await self.config.seed_defaults()
        if start_background:
            self.start_background_tasks()
        logger.info("TrustOrchestrator initialized")

    def start_background_tasks(self) -> None:
        if self._background_loop_task is None:
            self._background_loop_task = asyncio.create_task(self._background_loop())

    async def _background_loop(self) -> None:
        """Run maintenance every decay interval."""
        while True:
            try:
                await asyncio.sleep(self.settings.decay_interval_hours * 3600)
                await self.run_maintenance()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Background task error: {e}")

    async def run_maintenance(self) -> Dict[str, Any]:
        """Decay job (warnings, decay, bonuses) followed by the accountability sweep."""
        try:
            decay_summary = await self.decay.run_all()
        except JobAlreadyRunningError:
            logger.warning("Skipping decay, previous run still in progress")
            decay_summary = None
        sweep = await self.accountability.process_unprocessed_logs()
        return {"decay": decay_summary, "accountability_sweep": sweep.to_dict()}

    async def shutdown(self) -> None:
        """Stop background work and release resources."""
        if self._background_loop_task is not None:
            self._background_loop_task.cancel()
            try:
                await self._background_loop_task
            except asyncio.CancelledError:
                pass
            self._background_loop_task = None

        await self.notifier.aclose()
        await self.store.close()
        logger.info("TrustOrchestrator shut down")
