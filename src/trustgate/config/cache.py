"""
TTL cache for configuration documents.

Entries are stored as (value, timestamp) tuples keyed by ``category:key`` and
expire after ``ttl_seconds``. The clock is injectable so tests can move time.
"""

from __future__ import annotations

import copy
import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from ..constants import CONFIG_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


def cache_key(category: str, key: str) -> str:
    return f"{category}:{key}"


class ConfigCache:
    """Process-local cache; stale reads are bounded by the TTL."""

    def __init__(
        self,
        ttl_seconds: float = CONFIG_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}

    def get(self, category: str, key: str) -> Optional[Any]:
        entry = self._entries.get(cache_key(category, key))
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[cache_key(category, key)]
            return None
        # Callers may mutate what they get back
        return copy.deepcopy(value)

    def set(self, category: str, key: str, value: Any) -> None:
        self._entries[cache_key(category, key)] = (copy.deepcopy(value), self._clock())

    def invalidate(self, category: Optional[str] = None, key: Optional[str] = None) -> None:
        """Drop one entry, every entry of a category, or everything."""
        if category is None:
            self._entries.clear()
            logger.debug("Config cache cleared")
            return
        if key is not None:
            self._entries.pop(cache_key(category, key), None)
            return
        prefix = f"{category}:"
        for k in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[k]

    def __len__(self) -> int:
        return len(self._entries)
