"""
ConfigService - dynamic platform configuration with cache and fallbacks.

Read path: cache -> store -> hardcoded default -> ConfigNotFoundError.
Write path: validate -> persist with history -> invalidate cache.

The service is constructed explicitly and handed to every component that
needs configuration; there is no module-level instance.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..constants import CONFIG_CACHE_TTL_SECONDS, CONFIG_HISTORY_DEFAULT_LIMIT
from ..errors import ConfigNotFoundError, ConfigValidationError
from ..models import ConfigCategory, ConfigHistoryEntry, PlatformConfig, ValidationResult
from ..store import new_id
from .cache import ConfigCache
from .defaults import CATEGORY_KEYS, DEFAULT_CONFIGS, get_default, get_defaults_for_category
from .schemas import (
    AccountabilityRules,
    ActivityWeights,
    BadgeDefinitions,
    FeatureGating,
    TrustDecay,
    TrustFormula,
    TrustLevels,
    VouchEligibility,
)
from . import validator

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _category_name(category: Any) -> str:
    return category.value if isinstance(category, ConfigCategory) else str(category)


@dataclass
class ConfigUpdateResult:
    config: PlatformConfig
    warnings: List[str] = field(default_factory=list)


class ConfigService:
    """Configuration store and cache for the trust subsystem."""

    def __init__(
        self,
        store,
        ttl_seconds: float = CONFIG_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        auditor=None,
    ):
        self.store = store
        self.cache = ConfigCache(ttl_seconds=ttl_seconds, clock=clock)
        self.auditor = auditor

    async def get(self, category: Any, key: str) -> Dict[str, Any]:
        """Return the current document for (category, key)."""
        category = _category_name(category)

        cached = self.cache.get(category, key)
        if cached is not None:
            return cached

        try:
            row = await self.store.get_config(category, key)
        except Exception as e:
            default = get_default(category, key)
            if default is None:
                logger.error(f"Failed to load config {category}:{key}, no default: {e}")
                raise ConfigNotFoundError(category, key) from e
            logger.error(f"Failed to load config {category}:{key}, using default: {e}")
            return default

        if row is not None:
            self.cache.set(category, key, row.value)
            return row.value

        default = get_default(category, key)
        if default is None:
            raise ConfigNotFoundError(category, key)
        logger.warning(f"Config {category}:{key} not found in store, using default")
        return default

    async def get_all(self, category: Any) -> Dict[str, Dict[str, Any]]:
        """All documents of a category; stored rows override defaults key by key."""
        category = _category_name(category)
        documents = get_defaults_for_category(category)
        try:
            rows = await self.store.get_configs_by_category(category)
        except Exception as e:
            logger.error(f"Failed to load {category} configs, using defaults: {e}")
            return documents

        for row in rows:
            self.cache.set(category, row.key, row.value)
            documents[row.key] = row.value
        return documents

    async def update(
        self,
        category: Any,
        key: str,
        new_value: Dict[str, Any],
        changed_by: str,
        reason: Optional[str] = None,
    ) -> ConfigUpdateResult:
        """
        Validate and persist a new document.

        Raises ConfigValidationError (nothing written) or ConfigNotFoundError
        when no row exists yet. Store failures propagate.
        """
        category = _category_name(category)
        result = validator.validate(category, new_value)
        if not result.is_valid:
            logger.warning(f"Rejected {category}:{key} update by {changed_by}: {result.errors}")
            raise ConfigValidationError(category, result.errors, result.warnings)

        updated = await self.store.update_config(category, key, new_value, changed_by, reason)
        if updated is None:
            raise ConfigNotFoundError(category, key)

        self.cache.invalidate(category, key)
        logger.info(
            f"Updated config {category}:{key} to version {updated.version} by {changed_by}"
        )
        if self.auditor is not None:
            await self.auditor.log_config_update(
                category, key, updated.version, changed_by, result.warnings
            )
        return ConfigUpdateResult(config=updated, warnings=result.warnings)

    def validate(self, category: Any, document: Dict[str, Any]) -> ValidationResult:
        return validator.validate(_category_name(category), document)

    async def get_history(
        self,
        category: Any,
        key: str,
        limit: int = CONFIG_HISTORY_DEFAULT_LIMIT,
    ) -> List[ConfigHistoryEntry]:
        row = await self.store.get_config(_category_name(category), key)
        if row is None:
            return []
        return await self.store.get_config_history(row.id, limit)

    async def seed_defaults(self, updated_by: str = "system") -> int:
        """Insert any missing default rows. Returns how many were created."""
        created = 0
        for (category, key), (_, description) in DEFAULT_CONFIGS.items():
            inserted = await self.store.insert_config(
                PlatformConfig(
                    id=new_id(),
                    category=category,
                    key=key,
                    value=get_default(category, key),
                    description=description,
                    updated_by=updated_by,
                )
            )
            if inserted:
                created += 1
        if created:
            logger.info(f"Seeded {created} default configuration documents")
        return created

    def invalidate(self, category: Any = None, key: Optional[str] = None) -> None:
        self.cache.invalidate(_category_name(category) if category is not None else None, key)

    # ------------------------------------------------------------------
    # Typed getters
    # ------------------------------------------------------------------

    async def _typed(self, category: str, model: Type[M]) -> M:
        key = CATEGORY_KEYS[category]
        document = await self.get(category, key)
        try:
            return model.model_validate(document)
        except ValidationError as e:
            logger.error(f"Stored {category}:{key} is malformed, using default: {e}")
            return model.model_validate(get_default(category, key))

    async def trust_formula(self) -> TrustFormula:
        return await self._typed("TRUST_FORMULA", TrustFormula)

    async def trust_levels(self) -> TrustLevels:
        return await self._typed("TRUST_LEVELS", TrustLevels)

    async def feature_gating(self) -> FeatureGating:
        return await self._typed("FEATURE_GATING", FeatureGating)

    async def accountability_rules(self) -> AccountabilityRules:
        return await self._typed("ACCOUNTABILITY_RULES", AccountabilityRules)

    async def badge_definitions(self) -> BadgeDefinitions:
        return await self._typed("BADGE_DEFINITIONS", BadgeDefinitions)

    async def decay_rules(self) -> TrustDecay:
        return await self._typed("TRUST_DECAY", TrustDecay)

    async def vouch_eligibility(self) -> VouchEligibility:
        return await self._typed("VOUCH_ELIGIBILITY", VouchEligibility)

    async def activity_weights(self) -> ActivityWeights:
        return await self._typed("ACTIVITY_WEIGHTS", ActivityWeights)
