"""
trustgate - trust scores, vouch accountability, inactivity decay and
dual-gate feature access for community platforms.

- Every score change goes through the ScoreLedger and leaves a history row
- Vouchers share the consequences of their vouchees
- Business rules are configuration documents, validated before they apply
- Access denials are data with upgrade guidance, never exceptions
"""

from __future__ import annotations

from .access import AccessControlService
from .accountability import AccountabilityPropagator
from .auditor import AuditLevel, TrustAuditor
from .badges import BadgeEvaluator
from .calculator import TrustScoreCalculator
from .config import ConfigService
from .decay import TrustDecayJob
from .guard import GuardDecision, TrustGuard
from .ledger import ScoreLedger
from .models import (
    FeatureAccess,
    ImpactType,
    ScoreChangeCategory,
    SubscriptionTier,
    User,
    UsageCheck,
    VouchType,
)
from .orchestrator import TrustOrchestrator
from .settings import TrustSettings
from .store import TrustStore

__all__ = [
    "AccessControlService",
    "AccountabilityPropagator",
    "AuditLevel",
    "BadgeEvaluator",
    "ConfigService",
    "FeatureAccess",
    "GuardDecision",
    "ImpactType",
    "ScoreChangeCategory",
    "ScoreLedger",
    "SubscriptionTier",
    "TrustAuditor",
    "TrustDecayJob",
    "TrustGuard",
    "TrustOrchestrator",
    "TrustScoreCalculator",
    "TrustSettings",
    "TrustStore",
    "UsageCheck",
    "User",
    "VouchType",
]
