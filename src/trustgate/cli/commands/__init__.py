"""CLI command implementations."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from trustgate.orchestrator import TrustOrchestrator
from trustgate.settings import TrustSettings


@asynccontextmanager
async def open_orchestrator(db_path: Optional[str] = None) -> AsyncIterator[TrustOrchestrator]:
    """Initialized orchestrator for one command, shut down afterwards."""
    settings = TrustSettings.from_env()
    if db_path:
        settings.db_path = Path(db_path)
    orchestrator = TrustOrchestrator(settings)
    await orchestrator.initialize()
    try:
        yield orchestrator
    finally:
        await orchestrator.shutdown()
