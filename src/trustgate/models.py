"""
Shared enums and dataclasses for the trust subsystem.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VouchType(str, Enum):
    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    COMMUNITY = "COMMUNITY"


class VouchStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    ACTIVE = "ACTIVE"
    REJECTED = "REJECTED"
    REVOKED = "REVOKED"


# Only these statuses count toward scoring and accountability
COUNTING_VOUCH_STATUSES = (VouchStatus.APPROVED, VouchStatus.ACTIVE)


class ImpactType(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class ScoreChangeCategory(str, Enum):
    """Tag on every trust score history row."""
    ACTIVITY = "activity"
    DECAY = "decay"
    ACCOUNTABILITY = "accountability"
    RECALCULATION = "recalculation"


class ActivityType(str, Enum):
    """Activity signals emitted by business modules, used for decay."""
    EVENT_PARTICIPATION = "EVENT_PARTICIPATION"
    LISTING = "LISTING"
    CONNECTION = "CONNECTION"


class SubscriptionTier(IntEnum):
    """Ordered subscription tiers; comparison follows entitlement."""
    FREE = 0
    BASIC = 1
    PREMIUM = 2

    @classmethod
    def parse(cls, value: Any) -> "SubscriptionTier":
        if isinstance(value, cls):
            return value
        return cls[str(value).upper()]


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    TRIALING = "TRIALING"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class ConfigCategory(str, Enum):
    TRUST_FORMULA = "TRUST_FORMULA"
    TRUST_LEVELS = "TRUST_LEVELS"
    FEATURE_GATING = "FEATURE_GATING"
    ACCOUNTABILITY_RULES = "ACCOUNTABILITY_RULES"
    BADGE_DEFINITIONS = "BADGE_DEFINITIONS"
    TRUST_DECAY = "TRUST_DECAY"
    VOUCH_ELIGIBILITY = "VOUCH_ELIGIBILITY"
    ACTIVITY_WEIGHTS = "ACTIVITY_WEIGHTS"


# === Entities ===

@dataclass
class User:
    id: str
    full_name: str = ""
    trust_score: float = 0.0
    trust_level: str = "starter"
    events_attended: int = 0
    events_hosted: int = 0
    communities_joined: int = 0
    services_provided: int = 0
    score_version: int = 0
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Vouch:
    id: str
    voucher_id: str
    vouchee_id: str
    vouch_type: VouchType
    status: VouchStatus = VouchStatus.ACTIVE
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class TrustMoment:
    id: str
    giver_id: str
    receiver_id: str
    rating: int
    is_public: bool = True
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class AccountabilityLog:
    """One voucher's share of a vouchee's behavioural event."""
    id: str
    voucher_id: str
    vouchee_id: str
    vouch_id: str
    impact_type: ImpactType
    impact_value: float
    description: str = ""
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    is_processed: bool = False
    processed_at: Optional[datetime] = None
    occurred_at: datetime = field(default_factory=utcnow)


@dataclass
class ScoreHistoryEntry:
    """Append-only ledger row. Never updated once written."""
    id: str
    user_id: str
    previous_score: float
    new_score: float
    change: float
    reason: str
    category: ScoreChangeCategory
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class PlatformConfig:
    id: str
    category: str
    key: str
    value: Dict[str, Any]
    version: int = 1
    description: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass
class ConfigHistoryEntry:
    id: str
    config_id: str
    old_value: Dict[str, Any]
    new_value: Dict[str, Any]
    changed_by: str
    reason: Optional[str] = None
    changed_at: datetime = field(default_factory=utcnow)


@dataclass
class Subscription:
    id: str
    user_id: str
    tier: SubscriptionTier
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    features: Dict[str, Any] = field(default_factory=dict)

    def is_effective(self, now: Optional[datetime] = None) -> bool:
        """Active or trialing, and not past the end of the paid period."""
        if self.status not in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING):
            return False
        if self.current_period_end is None:
            return True
        return self.current_period_end > (now or utcnow())


# === Results ===

@dataclass
class ValidationResult:
    """Outcome of validating one configuration document."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class BatchResult:
    """Counts for a fan-out operation with per-item failure isolation."""
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.succeeded + self.failed

    def record_failure(self, item_id: str, error: Exception) -> None:
        self.failed += 1
        self.errors.append(f"{item_id}: {error}")

    def to_dict(self) -> dict:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "total": self.total,
            "errors": list(self.errors),
        }


@dataclass
class ScoreBreakdown:
    vouch: float
    activity: float
    trust_moments: float
    weighted_vouch: float
    weighted_activity: float
    weighted_trust_moments: float
    total: float
    level: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ScoreChange:
    """Result of a single ledger mutation."""
    user_id: str
    previous_score: float
    new_score: float
    level: str
    recorded: bool

    @property
    def change(self) -> float:
        return self.new_score - self.previous_score


@dataclass
class ProcessOutcome:
    log_id: str
    status: str  # "processed" or "already_processed"
    voucher_id: Optional[str] = None
    voucher_impact: float = 0.0
    new_score: Optional[float] = None


@dataclass
class SubscriptionUpgrade:
    current_tier: str
    required_tier: str
    price_monthly: float
    price_difference: float
    currency: str


@dataclass
class TrustUpgrade:
    current_level: str
    required_level: str
    current_score: float
    required_score: float
    points_needed: float
    estimated_days: int
    suggested_actions: List[str] = field(default_factory=list)


@dataclass
class UpgradeOptions:
    subscription_needed: Optional[SubscriptionUpgrade] = None
    trust_needed: Optional[TrustUpgrade] = None


@dataclass
class FeatureAccess:
    """Dual-gate decision. Denial is data, never an exception."""
    allowed: bool
    reason: Optional[str] = None
    blocked_by: Optional[str] = None  # "subscription", "trust", "both"
    upgrade_options: Optional[UpgradeOptions] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UsageCheck:
    can_use: bool
    used: int
    limit: int  # -1 means unlimited
    remaining: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DecayRunResult:
    candidates: int = 0
    decayed: int = 0
    failed: int = 0
    total_decay: float = 0.0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
