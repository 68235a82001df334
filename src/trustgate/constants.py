"""
Internal constants for the trust subsystem.

Tunable business rules live in the configuration documents
(trustgate.config.defaults); this module holds the fixed parameters around them.
"""

from __future__ import annotations

# === Database ===
TRUST_DB_FILENAME = "trustgate.db"
DEFAULT_DATA_DIR = ".trustgate"

# === Config cache ===
CONFIG_CACHE_TTL_SECONDS = 300
CONFIG_HISTORY_DEFAULT_LIMIT = 10

# === Score bounds ===
MIN_TRUST_SCORE = 0.0
MAX_TRUST_SCORE = 100.0
SCORE_CHANGE_EPSILON = 0.01
WEIGHT_SUM_TOLERANCE = 1e-4
SCORE_WRITE_MAX_RETRIES = 3

# === Vouch caps (enforced when scoring) ===
VOUCH_TYPE_CAPS = {
    "PRIMARY": 1,
    "SECONDARY": 3,
    "COMMUNITY": 2,
}

# === Trust moments sub-score ===
MOMENT_MAX_RATING = 5
MOMENT_COUNT_BONUS_PER_MOMENT = 0.3
MOMENT_COUNT_BONUS_CAP = 10.0

# Used when no configured band contains a score
FALLBACK_LEVEL_BANDS = [
    (90, "elite"),
    (75, "trusted"),
    (60, "established"),
    (40, "growing"),
    (20, "starter"),
]
FALLBACK_LEVEL_FLOOR = "new"

# === Accountability ===
DEFAULT_PENALTY_DISTRIBUTION = 0.40
DEFAULT_REWARD_DISTRIBUTION = 0.20
ACCOUNTABILITY_RECENT_LOGS = 10
ACCOUNTABILITY_HISTORY_PAGE_SIZE = 20

# === Decay ===
DECAY_WARNING_LEAD_DAYS = 7
DEFAULT_DECAY_INTERVAL_HOURS = 24 * 7
REACTIVATION_DECAY_WINDOW_DAYS = 30
REACTIVATION_ACTIVITY_WINDOW_DAYS = 7
REACTIVATION_BONUS_POINTS = 2.0
REACTIVATION_BONUS_REASON = "Reactivation bonus"

# === Access control ===
# Heuristic for upgrade guidance: roughly 2 trust points per week
TRUST_POINTS_PER_WEEK = 2
CURRENCY = "MYR"
TIER_PRICING = {
    "FREE": {"monthly": 0, "annual": 0},
    "BASIC": {"monthly": 30, "annual": 300},
    "PREMIUM": {"monthly": 50, "annual": 500},
}
UNLIMITED = -1

# Per-tier monthly limits; features absent from a tier's map are unlimited
TIER_USAGE_LIMITS = {
    "FREE": {
        "CREATE_EVENTS": 5,
        "JOIN_COMMUNITIES": 3,
        "SELL_MARKETPLACE": 0,
        "OFFER_PROFESSIONAL_SERVICES": 0,
    },
    "BASIC": {
        "CREATE_EVENTS": 20,
        "JOIN_COMMUNITIES": 10,
        "SELL_MARKETPLACE": 10,
        "OFFER_PROFESSIONAL_SERVICES": 0,
    },
    "PREMIUM": {},
}

# === Guards ===
TRUST_HELP_URL = "/help/trust-score"

# === Audit settings ===
DEFAULT_AUDIT_LEVEL = "INFO"          # "DEBUG", "INFO", "WARN", "ERROR"
DEFAULT_AUDIT_SAMPLE_RATE = 0.1       # 10% sample for DEBUG events
AUDIT_LOG_FILENAME = "audit.jsonl"

# === Notifications ===
DEFAULT_NOTIFY_TIMEOUT = 10.0
