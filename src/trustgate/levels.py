"""
Trust level resolution over the configured bands.

Two lookups exist on purpose:
- ``level_for_score`` labels a computed score: the band whose [min, max]
  contains it, else the fixed fallback bands.
- ``gating_band`` is used for access decisions: the highest band whose
  minimum the score has reached, so fractional scores between integer
  bands never fall through.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .config.schemas import FeatureRequirement, TrustLevelBand, TrustLevels
from .constants import FALLBACK_LEVEL_BANDS, FALLBACK_LEVEL_FLOOR

logger = logging.getLogger(__name__)

# Guidance shown when a user is below a level
LEVEL_ACTIONS = {
    "trusted": [
        "Attend 5-8 events",
        "Get 2-3 vouches from connections",
        "Complete your profile fully",
        "Join and participate in communities",
    ],
    "leader": [
        "Attend 15+ events",
        "Get all vouches (1 primary, 3 secondary, 2 community)",
        "Host multiple events with positive reviews",
        "Contribute consistently to communities",
        "Demonstrate leadership in your communities",
    ],
}


def fallback_level(score: float) -> str:
    for minimum, name in FALLBACK_LEVEL_BANDS:
        if score >= minimum:
            return name
    return FALLBACK_LEVEL_FLOOR


def level_for_score(score: float, levels: TrustLevels) -> str:
    """Lower-cased name of the band containing ``score``."""
    for band in levels.sorted_bands():
        if band.min_score <= score <= band.max_score:
            return band.code
    return fallback_level(score)


def gating_band(score: float, levels: TrustLevels) -> Optional[TrustLevelBand]:
    bands = levels.sorted_bands()
    if not bands:
        return None
    current = bands[0]
    for band in bands:
        if score >= band.min_score:
            current = band
    return current


def band_for_level(level: str, levels: TrustLevels) -> Optional[TrustLevelBand]:
    wanted = level.strip().lower()
    for band in levels.sorted_bands():
        if band.code == wanted:
            return band
    return None


def next_band(band: TrustLevelBand, levels: TrustLevels) -> Optional[TrustLevelBand]:
    for candidate in levels.sorted_bands():
        if candidate.min_score > band.max_score:
            return candidate
    return None


def feature_trust_requirement(
    code: str, requirement: FeatureRequirement, levels: TrustLevels
) -> Tuple[Optional[float], Optional[str]]:
    """(required score, required level code) for a feature, or (None, None).

    A level requirement resolves to its band's minimum score; when both a
    level and an explicit score are set the stricter one applies.
    """
    required_score = requirement.min_trust_score
    required_level = None

    if requirement.min_trust_level is not None:
        band = band_for_level(requirement.min_trust_level, levels)
        if band is None:
            logger.warning(
                f"Feature {code} requires unknown trust level "
                f"{requirement.min_trust_level}, ignoring level requirement"
            )
        else:
            required_level = band.code
            if required_score is None or band.min_score > required_score:
                required_score = band.min_score

    if required_score is not None and required_level is None:
        band = gating_band(required_score, levels)
        required_level = band.code if band else level_for_score(required_score, levels)
    return required_score, required_level


def trust_level_info(score: float, levels: TrustLevels) -> Dict[str, Any]:
    """Current band of a score and how far away the next one is."""
    band = gating_band(score, levels)
    if band is None:
        return {
            "level": fallback_level(score),
            "label": fallback_level(score).title(),
            "min": 0,
            "max": 100,
            "next_level": None,
        }

    info: Dict[str, Any] = {
        "level": band.code,
        "label": band.name,
        "min": band.min_score,
        "max": band.max_score,
        "next_level": None,
    }
    upcoming = next_band(band, levels)
    if upcoming is not None:
        info["next_level"] = {
            "level": upcoming.code,
            "label": upcoming.name,
            "required_score": upcoming.min_score,
            "points_needed": round(max(upcoming.min_score - score, 0.0), 1),
        }
    return info


def trust_score_suggestions(score: float, target_score: float) -> List[str]:
    points_needed = target_score - score
    if points_needed <= 0:
        return ["You meet the requirements!"]

    suggestions = []
    if score < 26:
        suggestions.append("Request vouches from trusted connections you've met in person")
        suggestions.append("Attend community events and build your reputation")
        suggestions.append("Complete your profile to show authenticity")
    if score < 51:
        suggestions.append("Host or organize events to demonstrate leadership")
        suggestions.append("Receive positive trust moments from connections")
        suggestions.append("Join and actively participate in communities")
    if score < 76:
        suggestions.append("Create valuable services for the community")
        suggestions.append("Maintain consistent positive interactions")
        suggestions.append("Help new members and give trust moments")

    suggestions.append(
        f"You need {points_needed:.1f} more trust points to unlock this feature"
    )
    return suggestions


def suggested_actions(target_level: str) -> List[str]:
    return list(LEVEL_ACTIONS.get(target_level.strip().lower(), []))
