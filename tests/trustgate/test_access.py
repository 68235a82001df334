"""Tests for dual-gate access control."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from trustgate.access import AccessControlService, estimate_days, month_window
from trustgate.config.defaults import get_default
from trustgate.config.schemas import FeatureRequirement, TrustLevels
from trustgate.models import (
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
    User,
)
from trustgate.store import new_id


@pytest.fixture
def access(store, config):
    return AccessControlService(store, config)


@pytest.fixture
def levels():
    return TrustLevels.model_validate(get_default("TRUST_LEVELS", "levels"))


@pytest.fixture
def subscribe(store, now):
    async def _subscribe(user_id, tier, status=SubscriptionStatus.ACTIVE, ends_in_days=20, **features):
        return await store.upsert_subscription(
            Subscription(
                id=new_id(),
                user_id=user_id,
                tier=tier,
                status=status,
                current_period_start=now - timedelta(days=10),
                current_period_end=now + timedelta(days=ends_in_days),
                features=features,
            )
        )

    return _subscribe


def test_estimate_days():
    assert estimate_days(0) == 0
    assert estimate_days(1) == 7
    assert estimate_days(45) == 161


def test_month_window_rolls_over_year():
    start, end = month_window(datetime(2026, 12, 20, 8, 30, tzinfo=timezone.utc))
    assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)


def test_premium_user_blocked_by_trust_only(access, levels):
    user = User(id="alice", trust_score=5)
    requirement = FeatureRequirement(
        feature="test", min_subscription_tier="BASIC", min_trust_score=50
    )

    result = access.evaluate("TEST", user, SubscriptionTier.PREMIUM, requirement, levels)

    assert not result.allowed
    assert result.blocked_by == "trust"
    assert result.reason == "Requires 50% trust score (you have 5.0%)"
    assert result.upgrade_options.subscription_needed is None
    trust = result.upgrade_options.trust_needed
    assert trust.points_needed == 45
    assert trust.estimated_days == 161
    assert trust.required_level == "trusted"
    assert trust.current_level == "starter"


@pytest.mark.asyncio
async def test_free_low_trust_user_blocked_by_both(access, make_user):
    await make_user("alice", score=5)

    result = await access.can_access_feature("alice", "CREATE_EVENTS")

    assert not result.allowed
    assert result.blocked_by == "both"
    assert result.reason == (
        "Requires BASIC subscription (you have FREE) AND Requires trusted trust level (you are starter)"
    )
    sub = result.upgrade_options.subscription_needed
    assert sub.required_tier == "BASIC"
    assert sub.price_monthly == 30
    assert sub.price_difference == 30
    assert sub.currency == "MYR"
    trust = result.upgrade_options.trust_needed
    assert trust.required_score == 31
    assert trust.points_needed == 26
    assert trust.suggested_actions[0] == "Attend 5-8 events"


@pytest.mark.asyncio
async def test_free_trusted_user_blocked_by_subscription(access, make_user, subscribe, now):
    await make_user("alice", score=40)
    await subscribe("alice", SubscriptionTier.BASIC)

    result = await access.can_access_feature("alice", "CREATE_PAID_EVENTS", now)

    assert result.blocked_by == "subscription"
    assert result.upgrade_options.subscription_needed.price_difference == 20
    assert result.upgrade_options.trust_needed is None


@pytest.mark.asyncio
async def test_both_gates_pass(access, make_user, subscribe, now):
    await make_user("alice", score=40)
    await subscribe("alice", SubscriptionTier.BASIC)

    result = await access.can_access_feature("alice", "CREATE_EVENTS", now)

    assert result.allowed
    assert result.reason is None
    assert result.blocked_by is None


@pytest.mark.asyncio
async def test_fractional_score_between_bands_keeps_level(access, make_user, subscribe, now):
    await make_user("alice", score=60.5)
    await subscribe("alice", SubscriptionTier.BASIC)

    assert (await access.can_access_feature("alice", "CREATE_EVENTS", now)).allowed


@pytest.mark.asyncio
async def test_lapsed_subscriptions_count_as_free(access, make_user, subscribe, now):
    await make_user("alice", score=40)
    await subscribe("alice", SubscriptionTier.PREMIUM, ends_in_days=-1)
    await subscribe("alice", SubscriptionTier.BASIC, status=SubscriptionStatus.CANCELED)

    tier, sub = await access.get_effective_subscription("alice", now)

    assert tier == SubscriptionTier.FREE
    assert sub is None


@pytest.mark.asyncio
async def test_highest_effective_subscription_wins(access, subscribe, now):
    await subscribe("alice", SubscriptionTier.BASIC)
    await subscribe("alice", SubscriptionTier.PREMIUM, status=SubscriptionStatus.TRIALING)

    tier, sub = await access.get_effective_subscription("alice", now)

    assert tier == SubscriptionTier.PREMIUM
    assert sub.status == SubscriptionStatus.TRIALING


@pytest.mark.asyncio
async def test_configured_feature_takes_effect(access, config, make_user, subscribe, now):
    gating = get_default("FEATURE_GATING", "features")
    gating["features"]["TEST_FEATURE"] = {
        "feature": "test the gate",
        "min_subscription_tier": "BASIC",
        "min_trust_score": 50,
    }
    await config.update("FEATURE_GATING", "features", gating, "admin")
    await make_user("alice", score=5)
    await subscribe("alice", SubscriptionTier.PREMIUM)

    result = await access.can_access_feature("alice", "TEST_FEATURE", now)

    assert result.blocked_by == "trust"


@pytest.mark.asyncio
async def test_unknown_user_and_feature(access, make_user):
    await make_user("alice", score=90)

    assert (await access.can_access_feature("ghost", "CREATE_EVENTS")).reason == "User not found"
    unknown = await access.can_access_feature("alice", "TIME_TRAVEL")
    assert not unknown.allowed
    assert unknown.reason == "Unknown feature"


@pytest.mark.asyncio
async def test_errors_deny_without_leaking(access, store, make_user):
    await make_user("alice", score=90)

    with patch.object(store, "get_subscriptions", AsyncMock(side_effect=RuntimeError("db locked"))):
        result = await access.can_access_feature("alice", "CREATE_EVENTS")

    assert not result.allowed
    assert result.reason == "Error checking feature access"


@pytest.mark.asyncio
async def test_free_usage_limit(access, store, now):
    last_month = now.replace(day=1) - timedelta(days=1)
    for _ in range(5):
        await access.record_feature_usage("alice", "CREATE_EVENTS", "event", new_id(), now=now)
    await access.record_feature_usage("alice", "CREATE_EVENTS", now=last_month)

    usage = await access.check_feature_usage("alice", "CREATE_EVENTS", now)

    assert usage.used == 5
    assert usage.limit == 5
    assert usage.remaining == 0
    assert not usage.can_use


@pytest.mark.asyncio
async def test_premium_usage_is_unlimited(access, subscribe, now):
    await subscribe("alice", SubscriptionTier.PREMIUM)
    await access.record_feature_usage("alice", "CREATE_EVENTS", now=now)

    usage = await access.check_feature_usage("alice", "CREATE_EVENTS", now)

    assert usage.can_use
    assert usage.used == 1
    assert usage.limit == -1
    assert usage.remaining == -1


@pytest.mark.asyncio
async def test_subscription_limit_override(access, subscribe, now):
    await subscribe("alice", SubscriptionTier.BASIC, usage_limits={"CREATE_EVENTS": 2})
    await access.record_feature_usage("alice", "CREATE_EVENTS", now=now)

    usage = await access.check_feature_usage("alice", "CREATE_EVENTS", now)

    assert usage.limit == 2
    assert usage.remaining == 1
    assert usage.can_use


@pytest.mark.asyncio
async def test_usage_check_fails_closed(access, store, now):
    with patch.object(store, "count_feature_usage", AsyncMock(side_effect=RuntimeError("boom"))):
        usage = await access.check_feature_usage("alice", "CREATE_EVENTS", now)

    assert not usage.can_use
    assert usage.limit == 0


@pytest.mark.asyncio
async def test_access_summary(access, make_user, vouch_for, now):
    await make_user("alice", score=40, events_attended=6)
    await vouch_for("bob", "alice")

    summary = await access.get_user_access_summary("alice", now)

    assert summary["subscription"]["tier"] == "FREE"
    assert summary["trust"]["level"] == "trusted"
    assert summary["trust"]["vouch_count"] == 1
    assert summary["trust"]["event_count"] == 6
    assert "VIEW_EVENTS" in summary["accessible_features"]
    assert "createEvent" in summary["accessible_features"]
    locked = {f["feature"]: f for f in summary["locked_features"]}
    assert locked["CREATE_EVENTS"]["blocked_by"] == "subscription"
    assert locked["createCommunity"]["blocked_by"] == "trust"
    assert summary["usage"]["CREATE_EVENTS"]["limit"] == 5


@pytest.mark.asyncio
async def test_access_summary_missing_user(access):
    assert await access.get_user_access_summary("ghost") is None


@pytest.mark.asyncio
async def test_basic_tier_has_its_own_limits(access, subscribe, now):
    await subscribe("alice", SubscriptionTier.BASIC)

    events = await access.check_feature_usage("alice", "CREATE_EVENTS", now)
    services = await access.check_feature_usage("alice", "OFFER_PROFESSIONAL_SERVICES", now)
    moderation = await access.check_feature_usage("alice", "MODERATE_COMMUNITIES", now)

    assert events.limit == 20
    assert services.limit == 0
    assert not services.can_use
    assert moderation.limit == -1
