"""Tests for TrustStore."""

from datetime import timedelta

import pytest

from trustgate.constants import DEFAULT_DATA_DIR, TRUST_DB_FILENAME
from trustgate.errors import UserNotFoundError
from trustgate.models import (
    AccountabilityLog,
    ActivityType,
    ImpactType,
    ScoreChangeCategory,
    ScoreHistoryEntry,
    Subscription,
    SubscriptionStatus,
    SubscriptionTier,
    TrustMoment,
    VouchStatus,
    VouchType,
)
from trustgate.store import TrustStore, new_id


def _log(voucher_id, vouchee_id, occurred_at, impact_type=ImpactType.NEGATIVE, value=10.0):
    return AccountabilityLog(
        id=new_id(),
        voucher_id=voucher_id,
        vouchee_id=vouchee_id,
        vouch_id=new_id(),
        impact_type=impact_type,
        impact_value=value,
        description="no-show",
        occurred_at=occurred_at,
    )


@pytest.mark.asyncio
async def test_store_initialization(temp_repo):
    """Store creates the database under the data directory."""
    store = TrustStore(temp_repo)
    await store.initialize()

    assert (temp_repo / DEFAULT_DATA_DIR / TRUST_DB_FILENAME).exists()

    await store.close()


def test_store_requires_location():
    with pytest.raises(ValueError):
        TrustStore()


@pytest.mark.asyncio
async def test_user_roundtrip(store, make_user, now):
    await make_user("alice", score=42.5, age_days=3, events_attended=4)

    user = await store.get_user("alice")
    assert user.trust_score == 42.5
    assert user.events_attended == 4
    assert user.created_at == now - timedelta(days=3)
    assert await store.get_user("nobody") is None


@pytest.mark.asyncio
async def test_increment_counter(store, make_user):
    await make_user("alice")
    await store.increment_counter("alice", "events_hosted", 2)

    assert (await store.get_user("alice")).events_hosted == 2

    with pytest.raises(ValueError):
        await store.increment_counter("alice", "trust_score")
    with pytest.raises(UserNotFoundError):
        await store.increment_counter("nobody", "events_hosted")


@pytest.mark.asyncio
async def test_set_score_if_version_rejects_stale_write(store, make_user):
    await make_user("alice", score=10)

    assert await store.set_score_if_version("alice", 0, 20.0, "starter")
    assert not await store.set_score_if_version("alice", 0, 30.0, "trusted")

    user = await store.get_user("alice")
    assert user.trust_score == 20.0
    assert user.score_version == 1


@pytest.mark.asyncio
async def test_mutate_score_claims_log_once(store, make_user, now):
    await make_user("voucher", score=50)
    log = await store.insert_accountability_log(_log("voucher", "vouchee", now))

    def compute(user):
        entry = ScoreHistoryEntry(
            id=new_id(),
            user_id=user.id,
            previous_score=user.trust_score,
            new_score=user.trust_score - 4,
            change=-4,
            reason="Accountability",
            category=ScoreChangeCategory.ACCOUNTABILITY,
        )
        return user.trust_score - 4, "trusted", entry

    first = await store.mutate_score("voucher", compute, processed_log_id=log.id)
    second = await store.mutate_score("voucher", compute, processed_log_id=log.id)

    assert first.new_score == 46
    assert first.recorded
    assert second is None
    assert (await store.get_user("voucher")).trust_score == 46
    assert len(await store.get_score_history("voucher")) == 1
    assert (await store.get_accountability_log(log.id)).is_processed


@pytest.mark.asyncio
async def test_mutate_score_missing_user(store):
    with pytest.raises(UserNotFoundError):
        await store.mutate_score("nobody", lambda user: None)


@pytest.mark.asyncio
async def test_active_vouch_counts(store, make_user, vouch_for):
    await vouch_for("a", "alice", VouchType.PRIMARY)
    await vouch_for("b", "alice", VouchType.SECONDARY)
    await vouch_for("c", "alice", VouchType.SECONDARY, VouchStatus.APPROVED)
    await vouch_for("d", "alice", VouchType.COMMUNITY, VouchStatus.PENDING)
    await vouch_for("e", "alice", VouchType.COMMUNITY, VouchStatus.REVOKED)

    counts = await store.count_active_vouches_by_type("alice")
    assert counts == {VouchType.PRIMARY: 1, VouchType.SECONDARY: 2, VouchType.COMMUNITY: 0}
    assert await store.count_vouches_given("b") == 1
    assert await store.count_vouches_given("d") == 0


@pytest.mark.asyncio
async def test_public_moment_stats(store):
    for rating, public in ((5, True), (3, True), (1, False)):
        await store.add_trust_moment(
            TrustMoment(id=new_id(), giver_id="g", receiver_id="alice", rating=rating, is_public=public)
        )

    assert await store.get_public_moment_stats("alice") == (2, 4.0)
    assert await store.get_public_moment_stats("bob") == (0, 0.0)
    assert await store.count_moments_given("g") == 3


@pytest.mark.asyncio
async def test_last_activity_uses_latest_signal(store, make_user, now):
    await make_user("idle", score=50, age_days=60)
    await make_user("active", score=50, age_days=60)
    await make_user("giver", score=50, age_days=60)
    await make_user("zero", score=0, age_days=60)

    await store.record_activity("active", ActivityType.LISTING, now - timedelta(days=40))
    await store.record_activity("active", ActivityType.CONNECTION, now - timedelta(days=5))
    await store.add_trust_moment(
        TrustMoment(
            id=new_id(),
            giver_id="giver",
            receiver_id="idle",
            rating=4,
            created_at=now - timedelta(days=2),
        )
    )

    rows = {user.id: last for user, last in await store.get_users_with_last_activity(0)}

    assert set(rows) == {"idle", "active", "giver"}
    assert rows["idle"] == now - timedelta(days=60)
    assert rows["active"] == now - timedelta(days=5)
    assert rows["giver"] == now - timedelta(days=2)
    assert await store.get_last_activity("active") == now - timedelta(days=5)
    assert await store.get_last_activity("nobody") is None


@pytest.mark.asyncio
async def test_logs_by_vouchee_paginates_newest_first(store, now):
    for days_ago in (3, 2, 1):
        await store.insert_accountability_log(_log("v", "alice", now - timedelta(days=days_ago)))
    await store.insert_accountability_log(
        _log("v", "alice", now, impact_type=ImpactType.POSITIVE, value=5)
    )

    page, total = await store.get_logs_by_vouchee("alice", limit=2, offset=0)
    assert total == 4
    assert [log.occurred_at for log in page] == [now, now - timedelta(days=1)]

    negatives, total = await store.get_logs_by_vouchee("alice", ImpactType.NEGATIVE)
    assert total == 3
    assert all(log.impact_type == ImpactType.NEGATIVE for log in negatives)


@pytest.mark.asyncio
async def test_unprocessed_logs_oldest_first(store, now):
    newer = await store.insert_accountability_log(_log("v", "alice", now))
    older = await store.insert_accountability_log(_log("v", "alice", now - timedelta(hours=1)))

    assert [log.id for log in await store.get_unprocessed_logs()] == [older.id, newer.id]

    assert await store.mark_log_processed(older.id)
    assert not await store.mark_log_processed(older.id)
    assert [log.id for log in await store.get_unprocessed_logs()] == [newer.id]


@pytest.mark.asyncio
async def test_subscription_upsert(store, now):
    sub = Subscription(
        id=new_id(),
        user_id="alice",
        tier=SubscriptionTier.BASIC,
        current_period_end=now + timedelta(days=10),
        features={"usage_limits": {"CREATE_EVENTS": 50}},
    )
    await store.upsert_subscription(sub)

    sub.tier = SubscriptionTier.PREMIUM
    sub.status = SubscriptionStatus.CANCELED
    await store.upsert_subscription(sub)

    stored = await store.get_subscriptions("alice")
    assert len(stored) == 1
    assert stored[0].tier == SubscriptionTier.PREMIUM
    assert stored[0].status == SubscriptionStatus.CANCELED
    assert stored[0].features == {"usage_limits": {"CREATE_EVENTS": 50}}


@pytest.mark.asyncio
async def test_feature_usage_window_is_half_open(store, now):
    start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    end = start.replace(month=start.month + 1)

    await store.record_feature_usage("alice", "CREATE_EVENTS", used_at=start)
    await store.record_feature_usage("alice", "CREATE_EVENTS", used_at=now)
    await store.record_feature_usage("alice", "CREATE_EVENTS", used_at=end)
    await store.record_feature_usage("alice", "JOIN_COMMUNITIES", used_at=now)

    assert await store.count_feature_usage("alice", "CREATE_EVENTS", start, end) == 2


@pytest.mark.asyncio
async def test_revoked_vouch_stops_counting(store, vouch_for):
    vouch = await vouch_for("a", "alice", VouchType.PRIMARY)

    await store.update_vouch_status(vouch.id, VouchStatus.REVOKED)

    assert await store.get_active_vouches_for_vouchee("alice") == []
    assert (await store.count_active_vouches_by_type("alice"))[VouchType.PRIMARY] == 0
