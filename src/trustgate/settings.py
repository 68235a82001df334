"""Runtime settings for the trust subsystem.

Read from the environment (a .env file is loaded by the CLI first).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .constants import (
    AUDIT_LOG_FILENAME,
    CONFIG_CACHE_TTL_SECONDS,
    DEFAULT_AUDIT_LEVEL,
    DEFAULT_DATA_DIR,
    DEFAULT_DECAY_INTERVAL_HOURS,
    DEFAULT_NOTIFY_TIMEOUT,
    TRUST_DB_FILENAME,
)


@dataclass
class TrustSettings:
    """Where data lives and how the background jobs behave."""

    db_path: Path = Path(DEFAULT_DATA_DIR) / TRUST_DB_FILENAME
    config_cache_ttl: float = CONFIG_CACHE_TTL_SECONDS
    audit_path: Optional[Path] = Path(DEFAULT_DATA_DIR) / AUDIT_LOG_FILENAME
    audit_level: str = DEFAULT_AUDIT_LEVEL
    notify_webhook_url: Optional[str] = None
    notify_timeout: float = DEFAULT_NOTIFY_TIMEOUT
    decay_interval_hours: float = DEFAULT_DECAY_INTERVAL_HOURS

    @classmethod
    def from_env(cls) -> "TrustSettings":
        """Create settings from environment variables."""
        data_dir = Path(os.environ.get("TRUSTGATE_DATA_DIR", DEFAULT_DATA_DIR))
        audit = os.environ.get("TRUSTGATE_AUDIT_PATH", str(data_dir / AUDIT_LOG_FILENAME))
        return cls(
            db_path=Path(os.environ.get("TRUSTGATE_DB_PATH", str(data_dir / TRUST_DB_FILENAME))),
            config_cache_ttl=float(
                os.environ.get("TRUSTGATE_CONFIG_CACHE_TTL", str(CONFIG_CACHE_TTL_SECONDS))
            ),
            audit_path=Path(audit) if audit else None,
            audit_level=os.environ.get("TRUSTGATE_AUDIT_LEVEL", DEFAULT_AUDIT_LEVEL),
            notify_webhook_url=os.environ.get("TRUSTGATE_NOTIFY_WEBHOOK_URL") or None,
            notify_timeout=float(
                os.environ.get("TRUSTGATE_NOTIFY_TIMEOUT", str(DEFAULT_NOTIFY_TIMEOUT))
            ),
            decay_interval_hours=float(
                os.environ.get(
                    "TRUSTGATE_DECAY_INTERVAL_HOURS", str(DEFAULT_DECAY_INTERVAL_HOURS)
                )
            ),
        )
