"""Pydantic models for the configuration documents.

Structural shape lives here; range and consistency rules live in
`trustgate.config.validator` so they can be reported as error lists rather
than a single exception.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..constants import DECAY_WARNING_LEAD_DAYS


class VouchBreakdown(BaseModel):
    primary: float = Field(..., description="Weight of one primary vouch")
    secondary: float = Field(..., description="Weight of up to three secondary vouches")
    community: float = Field(..., description="Weight of up to two community vouches")


class TrustFormula(BaseModel):
    """TRUST_FORMULA / weights"""

    vouch_weight: float
    activity_weight: float
    trust_moment_weight: float
    vouch_breakdown: VouchBreakdown


class TrustLevelBand(BaseModel):
    level: int = 0
    name: str = ""
    min_score: float
    max_score: float
    description: Optional[str] = None
    color: Optional[str] = None

    @property
    def code(self) -> str:
        """Lower-cased name used as the stored level label."""
        return self.name.strip().lower()


class TrustLevels(BaseModel):
    """TRUST_LEVELS / levels"""

    levels: List[TrustLevelBand] = Field(default_factory=list)

    def sorted_bands(self) -> List[TrustLevelBand]:
        return sorted(self.levels, key=lambda b: b.min_score)


class FeatureRequirement(BaseModel):
    feature: str = Field("", description="Human readable action name")
    min_subscription_tier: Optional[str] = None
    min_trust_level: Optional[str] = None
    min_trust_score: Optional[float] = None
    description: Optional[str] = None

    @field_validator("min_subscription_tier", "min_trust_level")
    @classmethod
    def normalize_optional_code(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not str(v).strip():
            return None
        return str(v).strip()


class FeatureGating(BaseModel):
    """FEATURE_GATING / features"""

    features: Dict[str, FeatureRequirement] = Field(default_factory=dict)


class AccountabilityRules(BaseModel):
    """ACCOUNTABILITY_RULES / rules"""

    penalty_distribution: float
    reward_distribution: float
    impact_multipliers: Dict[str, float] = Field(default_factory=dict)


class BadgeTiers(BaseModel):
    bronze: float
    silver: float
    gold: float
    platinum: float


class BadgeDefinition(BaseModel):
    name: str = ""
    description: Optional[str] = None
    icon: Optional[str] = None
    tiers: BadgeTiers


class BadgeDefinitions(BaseModel):
    """BADGE_DEFINITIONS / badges"""

    badges: Dict[str, BadgeDefinition] = Field(default_factory=dict)


class DecayRule(BaseModel):
    inactivity_days: int
    decay_rate_per_week: float = Field(..., description="Fraction of score removed per run")
    description: Optional[str] = None


class TrustDecay(BaseModel):
    """TRUST_DECAY / decay_rules"""

    rules: List[DecayRule] = Field(default_factory=list)
    minimum_score: float = 0
    warning_threshold: int = DECAY_WARNING_LEAD_DAYS

    def by_severity(self) -> List[DecayRule]:
        """Rules ordered most severe (longest inactivity) first."""
        return sorted(self.rules, key=lambda r: r.inactivity_days, reverse=True)

    @property
    def min_threshold(self) -> Optional[int]:
        if not self.rules:
            return None
        return min(r.inactivity_days for r in self.rules)


class VouchEligibility(BaseModel):
    """VOUCH_ELIGIBILITY / eligibility_criteria"""

    min_events_attended: int = 5
    min_membership_days: int = 90
    max_negative_feedback: int = 0
    offer_expiration_days: int = 30
    check_frequency: str = "daily"


class ActivityWeights(BaseModel):
    """ACTIVITY_WEIGHTS / activity_points"""

    event_attended: float = 0
    community_joined: float = 0
    service_created: float = 0
    event_hosted: float = 0
    community_moderated: float = 0
    marketplace_sale: float = 0
    connection_made: float = 0
    vouch_given: float = 0
    max_activity_score: float = 100


# category -> document model
CATEGORY_SCHEMAS = {
    "TRUST_FORMULA": TrustFormula,
    "TRUST_LEVELS": TrustLevels,
    "FEATURE_GATING": FeatureGating,
    "ACCOUNTABILITY_RULES": AccountabilityRules,
    "BADGE_DEFINITIONS": BadgeDefinitions,
    "TRUST_DECAY": TrustDecay,
    "VOUCH_ELIGIBILITY": VouchEligibility,
    "ACTIVITY_WEIGHTS": ActivityWeights,
}
