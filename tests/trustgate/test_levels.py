"""Tests for trust level resolution."""

import pytest

from trustgate.config.defaults import get_default
from trustgate.config.schemas import FeatureRequirement, TrustLevels
from trustgate.levels import (
    band_for_level,
    fallback_level,
    feature_trust_requirement,
    gating_band,
    level_for_score,
    suggested_actions,
    trust_level_info,
    trust_score_suggestions,
)


@pytest.fixture
def levels():
    return TrustLevels.model_validate(get_default("TRUST_LEVELS", "levels"))


@pytest.mark.parametrize(
    "score,expected",
    [(0, "starter"), (30, "starter"), (31, "trusted"), (60, "trusted"), (61, "leader"), (100, "leader")],
)
def test_level_for_score_within_bands(levels, score, expected):
    assert level_for_score(score, levels) == expected


def test_level_for_score_between_bands_uses_fallback(levels):
    assert level_for_score(30.5, levels) == fallback_level(30.5) == "starter"
    assert level_for_score(60.5, levels) == "established"


def test_fallback_floor():
    assert fallback_level(5) == "new"
    assert fallback_level(95) == "elite"


def test_gating_band_never_falls_through(levels):
    assert gating_band(30.5, levels).code == "starter"
    assert gating_band(60.5, levels).code == "trusted"
    assert gating_band(-1, levels).code == "starter"
    assert gating_band(10, TrustLevels()) is None


def test_band_for_level_is_case_insensitive(levels):
    assert band_for_level("Leader", levels).min_score == 61
    assert band_for_level("gold", levels) is None


def test_feature_requirement_from_level(levels):
    req = FeatureRequirement(feature="create events", min_trust_level="trusted")
    assert feature_trust_requirement("CREATE_EVENTS", req, levels) == (31, "trusted")


def test_feature_requirement_stricter_of_level_and_score(levels):
    req = FeatureRequirement(feature="x", min_trust_level="trusted", min_trust_score=50)
    assert feature_trust_requirement("X", req, levels) == (50, "trusted")

    req = FeatureRequirement(feature="x", min_trust_level="leader", min_trust_score=50)
    assert feature_trust_requirement("X", req, levels) == (61, "leader")


def test_feature_requirement_from_score_only(levels):
    req = FeatureRequirement(feature="x", min_trust_score=40)
    assert feature_trust_requirement("X", req, levels) == (40, "trusted")


def test_feature_requirement_unknown_level_is_ignored(levels):
    req = FeatureRequirement(feature="x", min_trust_level="gold")
    assert feature_trust_requirement("X", req, levels) == (None, None)

    req = FeatureRequirement(feature="x", min_trust_level="gold", min_trust_score=20)
    assert feature_trust_requirement("X", req, levels) == (20, "starter")


def test_feature_requirement_blank_values_mean_none(levels):
    req = FeatureRequirement(feature="x", min_trust_level="  ", min_subscription_tier="")
    assert req.min_trust_level is None
    assert req.min_subscription_tier is None
    assert feature_trust_requirement("X", req, levels) == (None, None)


def test_trust_level_info_next_level(levels):
    info = trust_level_info(45, levels)
    assert info["level"] == "trusted"
    assert info["label"] == "Trusted"
    assert info["next_level"] == {
        "level": "leader",
        "label": "Leader",
        "required_score": 61,
        "points_needed": 16.0,
    }
    assert trust_level_info(80, levels)["next_level"] is None


def test_suggestions():
    assert trust_score_suggestions(80, 61) == ["You meet the requirements!"]

    low = trust_score_suggestions(10, 31)
    assert "Request vouches from trusted connections you've met in person" in low
    assert low[-1] == "You need 21.0 more trust points to unlock this feature"

    assert suggested_actions("Leader")[0] == "Attend 15+ events"
    assert suggested_actions("starter") == []
