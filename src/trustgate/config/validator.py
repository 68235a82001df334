"""
Configuration validation.

One pure function per category. Errors block persistence, warnings are
advisory and returned to the administrator alongside a successful update.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List

from pydantic import BaseModel, ValidationError

from ..constants import WEIGHT_SUM_TOLERANCE
from ..models import SubscriptionTier, ValidationResult
from .schemas import (
    CATEGORY_SCHEMAS,
    AccountabilityRules,
    ActivityWeights,
    BadgeDefinitions,
    FeatureGating,
    TrustDecay,
    TrustFormula,
    TrustLevels,
    VouchEligibility,
)

logger = logging.getLogger(__name__)


def _pct(value: float, digits: int = 0) -> str:
    return f"{value * 100:.{digits}f}%"


def _result(errors: List[str], warnings: List[str]) -> ValidationResult:
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_trust_formula(config: TrustFormula) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    total = config.vouch_weight + config.activity_weight + config.trust_moment_weight
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
        errors.append(
            f"Trust formula weights must sum to 100%. Current: {_pct(total, 2)} "
            f"(vouch: {_pct(config.vouch_weight)}, activity: {_pct(config.activity_weight)}, "
            f"trust moments: {_pct(config.trust_moment_weight)})"
        )

    for name in ("vouch_weight", "activity_weight", "trust_moment_weight"):
        value = getattr(config, name)
        if value < 0 or value > 1:
            errors.append(f"{name} must be between 0-100%. Current: {_pct(value)}")

    breakdown = config.vouch_breakdown
    breakdown_total = breakdown.primary + breakdown.secondary + breakdown.community
    if abs(breakdown_total - config.vouch_weight) > WEIGHT_SUM_TOLERANCE:
        errors.append(
            f"Vouch breakdown weights must sum to vouch_weight ({_pct(config.vouch_weight)}). "
            f"Current: {_pct(breakdown_total, 2)} (primary: {_pct(breakdown.primary)}, "
            f"secondary: {_pct(breakdown.secondary)}, community: {_pct(breakdown.community)})"
        )

    for name in ("primary", "secondary", "community"):
        value = getattr(breakdown, name)
        if value < 0 or value > 1:
            errors.append(f"{name} vouch weight must be between 0-100%. Current: {_pct(value)}")

    if config.vouch_weight < 0.20:
        warnings.append(
            f"Vouch weight is quite low ({_pct(config.vouch_weight)}). "
            "Consider if vouches should have more impact."
        )
    if config.activity_weight > 0.50:
        warnings.append(
            f"Activity weight is quite high ({_pct(config.activity_weight)}). "
            "This might overvalue activity compared to vouches."
        )

    return _result(errors, warnings)


def validate_trust_levels(config: TrustLevels) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    bands = config.sorted_bands()
    if not bands:
        return _result(["At least one trust level must be defined"], warnings)

    if bands[0].min_score != 0:
        errors.append(f"First trust level must start at 0%. Current: {bands[0].min_score}%")
    if bands[-1].max_score != 100:
        errors.append(f"Last trust level must end at 100%. Current: {bands[-1].max_score}%")

    for i, band in enumerate(bands):
        if band.min_score >= band.max_score:
            errors.append(
                f'Level "{band.name}" has invalid range: {band.min_score}-{band.max_score}%'
            )
        if i + 1 < len(bands):
            nxt = bands[i + 1]
            if band.max_score >= nxt.min_score:
                errors.append(
                    f'Levels "{band.name}" and "{nxt.name}" overlap: '
                    f"{band.max_score}% >= {nxt.min_score}%"
                )
            elif band.max_score + 1 != nxt.min_score:
                errors.append(
                    f'Gap between "{band.name}" (ends {band.max_score}%) '
                    f'and "{nxt.name}" (starts {nxt.min_score}%)'
                )

    for band in bands:
        if not band.name.strip():
            errors.append(
                f"Trust level at {band.min_score}-{band.max_score}% is missing a name"
            )
        if not (band.color or "").strip():
            errors.append(f'Trust level "{band.name}" is missing a color')

    return _result(errors, warnings)


def validate_feature_gating(config: FeatureGating) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    for code, req in config.features.items():
        if req.min_trust_score is not None:
            if req.min_trust_score < 0 or req.min_trust_score > 100:
                errors.append(
                    f'Feature "{code}" has invalid required score: {req.min_trust_score}%. '
                    "Must be between 0-100%"
                )
            elif req.min_trust_score > 90:
                warnings.append(
                    f'Feature "{code}" requires a very high trust score ({req.min_trust_score}%). '
                    "Few users may be able to access it."
                )
        if req.min_subscription_tier is not None:
            try:
                SubscriptionTier.parse(req.min_subscription_tier)
            except KeyError:
                errors.append(
                    f'Feature "{code}" has unknown subscription tier: {req.min_subscription_tier}'
                )
        if not req.feature.strip():
            warnings.append(f'Feature "{code}" is missing a feature name')

    return _result(errors, warnings)


def validate_accountability_rules(config: AccountabilityRules) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    for name in ("penalty_distribution", "reward_distribution"):
        value = getattr(config, name)
        if value < 0 or value > 1:
            errors.append(f"{name} must be between 0-100%. Current: {_pct(value)}")

    for kind, multiplier in config.impact_multipliers.items():
        if multiplier < 0:
            errors.append(f"Impact multiplier for {kind} must be non-negative. Current: {multiplier}")

    if 0 <= config.penalty_distribution < 0.25:
        warnings.append(
            f"Penalty distribution is low ({_pct(config.penalty_distribution)}). "
            "Vouchers may not feel accountable for their vouchees."
        )

    return _result(errors, warnings)


def validate_badge_definitions(config: BadgeDefinitions) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    for badge_type, badge in config.badges.items():
        label = badge.name or badge_type
        if not badge.name.strip():
            errors.append(f'Badge "{badge_type}" is missing a name')
        if not (badge.description or "").strip():
            warnings.append(f'Badge "{label}" is missing a description')
        if not (badge.icon or "").strip():
            warnings.append(f'Badge "{label}" is missing an icon')

        tiers = badge.tiers
        for tier_name in ("bronze", "silver", "gold", "platinum"):
            value = getattr(tiers, tier_name)
            if value < 0:
                errors.append(f'Badge "{label}" has negative {tier_name} threshold: {value}')

        ordered = [
            ("bronze", tiers.bronze),
            ("silver", tiers.silver),
            ("gold", tiers.gold),
            ("platinum", tiers.platinum),
        ]
        for (lower_name, lower), (upper_name, upper) in zip(ordered, ordered[1:]):
            if lower > upper:
                errors.append(
                    f'Badge "{label}" has {lower_name} threshold ({lower}) '
                    f"higher than {upper_name} ({upper})"
                )

        if tiers.bronze == 0:
            warnings.append(
                f'Badge "{label}" has bronze tier at 0. '
                "Consider if this is too easy to achieve."
            )

    seen: Dict[str, str] = {}
    duplicates = []
    for badge_type in config.badges:
        normalized = badge_type.strip().upper()
        if normalized in seen:
            duplicates.append(badge_type)
        seen[normalized] = badge_type
    if duplicates:
        errors.append(f"Duplicate badge types found: {', '.join(duplicates)}")

    return _result(errors, warnings)


def validate_trust_decay(config: TrustDecay) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    for rule in config.rules:
        if rule.inactivity_days <= 0:
            errors.append(
                f"Decay rule has invalid inactivity period: {rule.inactivity_days} days"
            )
        if rule.decay_rate_per_week < 0 or rule.decay_rate_per_week > 1:
            errors.append(
                f"Decay rate for {rule.inactivity_days} days must be between 0-100%. "
                f"Current: {_pct(rule.decay_rate_per_week)}"
            )
        if not (rule.description or "").strip():
            warnings.append(
                f"Decay rule for {rule.inactivity_days} days is missing a description"
            )

    ordered = sorted(config.rules, key=lambda r: r.inactivity_days)
    for current, nxt in zip(ordered, ordered[1:]):
        if current.decay_rate_per_week > nxt.decay_rate_per_week:
            warnings.append(
                f"Decay rate for {current.inactivity_days} days ({_pct(current.decay_rate_per_week)}) "
                f"is higher than for {nxt.inactivity_days} days ({_pct(nxt.decay_rate_per_week)}). "
                "Consider if longer inactivity should have higher decay."
            )

    if config.minimum_score < 0:
        errors.append(f"minimum_score must be non-negative. Current: {config.minimum_score}")
    if config.warning_threshold < 0:
        errors.append(
            f"warning_threshold must be non-negative. Current: {config.warning_threshold}"
        )

    return _result(errors, warnings)


def validate_vouch_eligibility(config: VouchEligibility) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    for name in (
        "min_events_attended",
        "min_membership_days",
        "max_negative_feedback",
        "offer_expiration_days",
    ):
        value = getattr(config, name)
        if value < 0:
            errors.append(f"{name} must be non-negative. Current: {value}")

    if config.min_events_attended > 50:
        warnings.append(
            f"min_events_attended is quite high ({config.min_events_attended}). "
            "This might make eligibility very difficult to achieve."
        )
    if config.min_membership_days > 365:
        warnings.append(
            f"min_membership_days is quite high ({config.min_membership_days} days). "
            "This might make eligibility very difficult to achieve."
        )

    return _result(errors, warnings)


def validate_activity_weights(config: ActivityWeights) -> ValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    for name, value in config.model_dump().items():
        if value < 0:
            errors.append(f"{name} weight must be non-negative. Current: {value}")
        elif value > 100:
            warnings.append(
                f"{name} weight is quite high ({value}). "
                "Consider if this provides too much impact."
            )
        elif value == 0 and name != "max_activity_score":
            warnings.append(f"{name} weight is 0. This activity will not contribute to trust score.")

    return _result(errors, warnings)


_VALIDATORS: Dict[str, Callable[[Any], ValidationResult]] = {
    "TRUST_FORMULA": validate_trust_formula,
    "TRUST_LEVELS": validate_trust_levels,
    "FEATURE_GATING": validate_feature_gating,
    "ACCOUNTABILITY_RULES": validate_accountability_rules,
    "BADGE_DEFINITIONS": validate_badge_definitions,
    "TRUST_DECAY": validate_trust_decay,
    "VOUCH_ELIGIBILITY": validate_vouch_eligibility,
    "ACTIVITY_WEIGHTS": validate_activity_weights,
}


def parse_document(category: str, document: Any) -> BaseModel:
    """Parse a raw document into its category model (raises ValidationError/KeyError)."""
    schema = CATEGORY_SCHEMAS[category]
    return schema.model_validate(document)


def validate(category: str, document: Any) -> ValidationResult:
    """Validate a raw configuration document for a category."""
    category = str(getattr(category, "value", category))
    validator = _VALIDATORS.get(category)
    if validator is None:
        return _result([f"Unknown configuration category: {category}"], [])

    try:
        parsed = parse_document(category, document)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or category}: {err['msg']}"
            for err in e.errors()
        ]
        logger.debug(f"Malformed {category} document: {errors}")
        return _result(errors, [])

    return validator(parsed)
