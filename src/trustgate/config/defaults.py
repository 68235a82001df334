"""
Hardcoded fallback configuration documents.

These are served when the store has no row for a (category, key) pair or the
store is unreachable, and are what `ConfigService.seed_defaults` writes.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Optional

from ..constants import (
    DECAY_WARNING_LEAD_DAYS,
    DEFAULT_PENALTY_DISTRIBUTION,
    DEFAULT_REWARD_DISTRIBUTION,
)

# === Trust formula ===
DEFAULT_TRUST_FORMULA = {
    "vouch_weight": 0.40,
    "activity_weight": 0.30,
    "trust_moment_weight": 0.30,
    "vouch_breakdown": {
        "primary": 0.12,
        "secondary": 0.12,
        "community": 0.16,
    },
}

# === Trust levels (contiguous integer bands) ===
DEFAULT_TRUST_LEVELS = {
    "levels": [
        {
            "level": 1,
            "name": "Starter",
            "min_score": 0,
            "max_score": 30,
            "description": "New member building trust",
            "color": "#94A3B8",
        },
        {
            "level": 2,
            "name": "Trusted",
            "min_score": 31,
            "max_score": 60,
            "description": "Established member with proven reliability",
            "color": "#3B82F6",
        },
        {
            "level": 3,
            "name": "Leader",
            "min_score": 61,
            "max_score": 100,
            "description": "Community leader and trusted voice",
            "color": "#F59E0B",
        },
    ]
}


def _gate(
    feature: str,
    tier: Optional[str] = None,
    level: Optional[str] = None,
    score: Optional[float] = None,
) -> Dict[str, Any]:
    return {
        "feature": feature,
        "min_subscription_tier": tier,
        "min_trust_level": level,
        "min_trust_score": score,
    }


# === Feature gating ===
# Dual-gate codes (subscription x trust level) plus trust-only action keys.
DEFAULT_FEATURE_GATING = {
    "features": {
        # Events
        "VIEW_EVENTS": _gate("view events"),
        "JOIN_EVENTS": _gate("join events", level="starter"),
        "CREATE_EVENTS": _gate("create events", "BASIC", "trusted"),
        "HOST_EVENTS": _gate("host events", "BASIC", "trusted"),
        "CREATE_PAID_EVENTS": _gate("create paid events", "PREMIUM", "trusted"),
        # Marketplace
        "VIEW_MARKETPLACE": _gate("view the marketplace"),
        "BUY_MARKETPLACE": _gate("buy on the marketplace", "BASIC", "trusted"),
        "SELL_MARKETPLACE": _gate("sell on the marketplace", "BASIC", "leader"),
        # Travel and homestay
        "JOIN_TRAVEL": _gate("join trips", "BASIC", "trusted"),
        "HOST_TRAVEL": _gate("host trips", "BASIC", "leader"),
        "HOMESTAY_GUEST": _gate("book homestays", "BASIC", "trusted"),
        "HOMESTAY_HOST": _gate("host homestays", "BASIC", "leader"),
        # Services and mentorship
        "USE_SERVICE_MATCHING_CLIENT": _gate("use service matching", "PREMIUM", "trusted"),
        "OFFER_PROFESSIONAL_SERVICES": _gate("offer professional services", "PREMIUM", "leader"),
        "SEEK_MENTORSHIP": _gate("seek mentorship", "PREMIUM", "trusted"),
        "PROVIDE_MENTORSHIP": _gate("provide mentorship", "PREMIUM", "leader"),
        # Communities and social
        "JOIN_COMMUNITIES": _gate("join communities", level="starter"),
        "CREATE_COMMUNITIES": _gate("create communities", "BASIC", "trusted"),
        "MODERATE_COMMUNITIES": _gate("moderate communities", level="trusted"),
        "ADMIN_COMMUNITIES": _gate("administer communities", level="leader"),
        "SEND_CONNECTIONS": _gate("send connection requests", level="trusted"),
        "SEND_MESSAGES": _gate("send messages", level="starter"),
        "VOUCH_FOR_USERS": _gate("vouch for other users", level="trusted"),
        # Premium programmes
        "FUNDRAISING": _gate("run fundraisers", "PREMIUM", "leader"),
        "PLATFORM_AMBASSADOR": _gate("become a platform ambassador", "PREMIUM", "leader"),
        "REVENUE_SHARING": _gate("join revenue sharing", "PREMIUM", "leader"),
        "CUSTOM_BADGES": _gate("use custom badges", "PREMIUM"),
        "ANALYTICS": _gate("view analytics", "PREMIUM"),
        "PRIORITY_SUPPORT": _gate("get priority support", "PREMIUM"),
        # Trust-only action keys
        "createEvent": _gate("create events", score=31),
        "publishEvent": _gate("publish events", score=31),
        "hostPaidEvent": _gate("host paid events", score=31),
        "createRecurringEvent": _gate("create recurring events", score=31),
        "createCommunity": _gate("create communities", score=61),
        "moderateCommunity": _gate("moderate communities", score=31),
        "createCommunityEvent": _gate("create community events", score=31),
        "createListing": _gate("create marketplace listings", score=31),
        "createPremiumListing": _gate("create premium listings", score=61),
        "acceptPayments": _gate("accept payments", score=31),
        "createService": _gate("create services", score=31),
        "createPremiumService": _gate("create premium services", score=61),
        "offerPaidService": _gate("offer paid services", score=31),
        "vouchOthers": _gate("vouch for others", score=31),
        "secondaryVouch": _gate("give secondary vouches", score=31),
        "communityVouch": _gate("give community vouches", score=61),
        "createAnnouncement": _gate("create announcements", score=61),
        "sendMassMessage": _gate("send mass messages", score=61),
        "accessAnalytics": _gate("access analytics", score=31),
        "createPoll": _gate("create polls", score=31),
        "scheduleContent": _gate("schedule content", score=31),
        "requestVerification": _gate("request verification", score=31),
        "applyForGuide": _gate("apply to become a guide", score=61),
        "nominateForAward": _gate("nominate members for awards", score=61),
    }
}

# === Accountability ===
DEFAULT_ACCOUNTABILITY_RULES = {
    "penalty_distribution": DEFAULT_PENALTY_DISTRIBUTION,
    "reward_distribution": DEFAULT_REWARD_DISTRIBUTION,
    "impact_multipliers": {
        "TRUST_MOMENT_NEGATIVE": 1.0,
        "EVENT_NO_SHOW": 1.5,
        "DISPUTE_RESOLVED_AGAINST": 2.0,
        "TRUST_MOMENT_POSITIVE": 1.0,
        "COMMUNITY_CONTRIBUTION": 1.2,
        "EVENT_COMPLETION": 1.0,
        "SERVICE_COMPLETION": 1.0,
    },
}


def _badge(name, description, icon, bronze, silver, gold, platinum):
    return {
        "name": name,
        "description": description,
        "icon": icon,
        "tiers": {
            "bronze": bronze,
            "silver": silver,
            "gold": gold,
            "platinum": platinum,
        },
    }


# === Badges ===
DEFAULT_BADGE_DEFINITIONS = {
    "badges": {
        "VOUCHER": _badge("Voucher", "Vouched for other members", "shield", 1, 5, 15, 50),
        "CONNECTOR": _badge("Connector", "Built a wide network", "link", 5, 25, 100, 500),
        "COMMUNITY_BUILDER": _badge(
            "Community Builder", "Active across communities", "users", 3, 10, 25, 50
        ),
        "EVENT_ENTHUSIAST": _badge(
            "Event Enthusiast", "Attends events regularly", "calendar", 5, 20, 50, 150
        ),
        "TRUST_LEADER": _badge("Trust Leader", "Holds a high trust score", "star", 51, 76, 90, 95),
        "RELIABLE": _badge("Reliable", "Shows up when committed", "check", 5, 15, 30, 100),
        "IMPACT_MAKER": _badge(
            "Impact Maker", "Vouchees reflect well on them", "sparkles", 5, 20, 50, 150
        ),
        "LONG_STANDING": _badge(
            "Long Standing", "Member for a long time", "clock", 30, 90, 180, 365
        ),
    }
}

# === Decay ===
DEFAULT_TRUST_DECAY = {
    "rules": [
        {
            "inactivity_days": 30,
            "decay_rate_per_week": 0.01,
            "description": "1% weekly decay after 30 days of inactivity",
        },
        {
            "inactivity_days": 90,
            "decay_rate_per_week": 0.02,
            "description": "2% weekly decay after 90 days of inactivity",
        },
    ],
    "minimum_score": 0,
    "warning_threshold": DECAY_WARNING_LEAD_DAYS,
}

# === Vouch eligibility ===
DEFAULT_VOUCH_ELIGIBILITY = {
    "min_events_attended": 5,
    "min_membership_days": 90,
    "max_negative_feedback": 0,
    "offer_expiration_days": 30,
    "check_frequency": "daily",
}

# === Activity points ===
DEFAULT_ACTIVITY_WEIGHTS = {
    "event_attended": 2,
    "community_joined": 1,
    "service_created": 3,
    "event_hosted": 5,
    "community_moderated": 4,
    "marketplace_sale": 3,
    "connection_made": 1,
    "vouch_given": 2,
    "max_activity_score": 100,
}

# (category, key) -> (document, description)
DEFAULT_CONFIGS: Dict[tuple, tuple] = {
    ("TRUST_FORMULA", "weights"): (
        DEFAULT_TRUST_FORMULA,
        "Trust score component weights",
    ),
    ("TRUST_LEVELS", "levels"): (
        DEFAULT_TRUST_LEVELS,
        "Trust level bands",
    ),
    ("FEATURE_GATING", "features"): (
        DEFAULT_FEATURE_GATING,
        "Feature subscription and trust requirements",
    ),
    ("ACCOUNTABILITY_RULES", "rules"): (
        DEFAULT_ACCOUNTABILITY_RULES,
        "Voucher penalty and reward distribution",
    ),
    ("BADGE_DEFINITIONS", "badges"): (
        DEFAULT_BADGE_DEFINITIONS,
        "Badge tiers",
    ),
    ("TRUST_DECAY", "decay_rules"): (
        DEFAULT_TRUST_DECAY,
        "Inactivity decay rules",
    ),
    ("VOUCH_ELIGIBILITY", "eligibility_criteria"): (
        DEFAULT_VOUCH_ELIGIBILITY,
        "Community vouch eligibility criteria",
    ),
    ("ACTIVITY_WEIGHTS", "activity_points"): (
        DEFAULT_ACTIVITY_WEIGHTS,
        "Activity point values",
    ),
}

# Canonical key for each category
CATEGORY_KEYS = {category: key for (category, key) in DEFAULT_CONFIGS}


def get_default(category: str, key: str) -> Optional[Dict[str, Any]]:
    """Return a deep copy of the default document, or None."""
    entry = DEFAULT_CONFIGS.get((category, key))
    if entry is None:
        return None
    return copy.deepcopy(entry[0])


def get_defaults_for_category(category: str) -> Dict[str, Dict[str, Any]]:
    return {
        key: copy.deepcopy(doc)
        for (cat, key), (doc, _) in DEFAULT_CONFIGS.items()
        if cat == category
    }
