"""
Dynamic platform configuration: defaults, document schemas, validation and
the cached ConfigService.
"""

from __future__ import annotations

from .cache import ConfigCache
from .defaults import CATEGORY_KEYS, DEFAULT_CONFIGS, get_default
from .service import ConfigService, ConfigUpdateResult
from .validator import validate

__all__ = [
    "ConfigCache",
    "ConfigService",
    "ConfigUpdateResult",
    "CATEGORY_KEYS",
    "DEFAULT_CONFIGS",
    "get_default",
    "validate",
]
