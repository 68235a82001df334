"""Tests for AccountabilityPropagator."""

from datetime import timedelta

import pytest

from trustgate.accountability import AccountabilityPropagator, voucher_impact
from trustgate.config.defaults import get_default
from trustgate.config.schemas import AccountabilityRules
from trustgate.errors import AccountabilityLogNotFoundError
from trustgate.models import AccountabilityLog, ImpactType, ScoreChangeCategory, VouchStatus
from trustgate.notifier import ACCOUNTABILITY_IMPACT
from trustgate.store import new_id


class BrokenNotifier:
    async def notify(self, user_id, kind, payload):
        raise ConnectionError("notification service down")

    async def aclose(self):
        return None


@pytest.fixture
def propagator(store, config, ledger, notifier):
    return AccountabilityPropagator(store, config, ledger, notifier=notifier)


@pytest.fixture
async def two_vouchers(make_user, vouch_for):
    """vouchee 'carol' vouched for by 'alice' and 'bob', both at 50."""
    await make_user("alice", score=50)
    await make_user("bob", score=50)
    await make_user("carol", score=40)
    await vouch_for("alice", "carol")
    await vouch_for("bob", "carol")


def test_voucher_impact_distribution():
    rules = AccountabilityRules.model_validate(get_default("ACCOUNTABILITY_RULES", "rules"))
    assert voucher_impact(ImpactType.NEGATIVE, 10, rules) == pytest.approx(-4.0)
    assert voucher_impact(ImpactType.NEGATIVE, -10, rules) == pytest.approx(-4.0)
    assert voucher_impact(ImpactType.POSITIVE, 10, rules) == pytest.approx(2.0)
    assert voucher_impact(ImpactType.NEUTRAL, 10, rules) == 0


@pytest.mark.asyncio
async def test_negative_event_penalizes_every_voucher(propagator, store, notifier, two_vouchers):
    result = await propagator.record_accountability_event(
        "carol", ImpactType.NEGATIVE, 10, "Event no-show", "event", "evt-1"
    )

    assert result.succeeded == 2
    assert result.failed == 0
    for voucher in ("alice", "bob"):
        assert (await store.get_user(voucher)).trust_score == pytest.approx(46.0)
        entry = (await store.get_score_history(voucher))[0]
        assert entry.category == ScoreChangeCategory.ACCOUNTABILITY
        assert entry.related_entity_type == "accountability_log"
        assert entry.metadata["vouchee_id"] == "carol"
        assert entry.metadata["voucher_impact"] == pytest.approx(-4.0)

    # The vouchee's own score is untouched here
    assert (await store.get_user("carol")).trust_score == 40
    sent = notifier.of_kind(ACCOUNTABILITY_IMPACT)
    assert {user_id for user_id, _, _ in sent} == {"alice", "bob"}
    assert "decreased by 4.0 points" in sent[0][2]["message"]
    assert await store.get_unprocessed_logs() == []


@pytest.mark.asyncio
async def test_positive_event_rewards_voucher(propagator, store, two_vouchers):
    await propagator.record_accountability_event("carol", ImpactType.POSITIVE, 10, "Great host")

    assert (await store.get_user("alice")).trust_score == pytest.approx(52.0)


@pytest.mark.asyncio
async def test_neutral_event_only_marks_processed(propagator, store, notifier, two_vouchers):
    result = await propagator.record_accountability_event("carol", ImpactType.NEUTRAL, 10, "Noted")

    assert result.succeeded == 2
    assert (await store.get_user("alice")).trust_score == 50
    assert await store.get_score_history("alice") == []
    assert await store.get_unprocessed_logs() == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_event_kind_multiplier(propagator, store, two_vouchers):
    await propagator.record_accountability_event(
        "carol", ImpactType.NEGATIVE, 10, "No-show", event_kind="EVENT_NO_SHOW"
    )

    # 10 * 1.5 * 0.4
    assert (await store.get_user("alice")).trust_score == pytest.approx(44.0)
    log = (await store.get_logs_by_voucher("alice"))[0]
    assert log.impact_value == 15
    assert log.metadata["multiplier"] == 1.5


@pytest.mark.asyncio
async def test_revoked_vouchers_are_not_affected(propagator, store, make_user, vouch_for):
    await make_user("alice", score=50)
    await make_user("carol", score=40)
    await vouch_for("alice", "carol", status=VouchStatus.REVOKED)

    result = await propagator.record_accountability_event("carol", ImpactType.NEGATIVE, 10, "x")

    assert result.total == 0
    assert (await store.get_user("alice")).trust_score == 50


@pytest.mark.asyncio
async def test_processing_is_idempotent(propagator, store, make_user, now):
    await make_user("alice", score=50)
    log = await store.insert_accountability_log(
        AccountabilityLog(
            id=new_id(),
            voucher_id="alice",
            vouchee_id="carol",
            vouch_id=new_id(),
            impact_type=ImpactType.NEGATIVE,
            impact_value=10,
            description="Dispute",
            occurred_at=now,
        )
    )

    first = await propagator.process_accountability(log.id)
    second = await propagator.process_accountability(log.id)

    assert first.status == "processed"
    assert first.voucher_impact == pytest.approx(-4.0)
    assert second.status == "already_processed"
    assert (await store.get_user("alice")).trust_score == pytest.approx(46.0)
    assert len(await store.get_score_history("alice")) == 1


@pytest.mark.asyncio
async def test_penalty_clamps_at_zero(propagator, store, make_user, vouch_for):
    await make_user("alice", score=2)
    await make_user("zoe", score=0)
    await make_user("carol", score=40)
    await vouch_for("alice", "carol")
    await vouch_for("zoe", "carol")

    await propagator.record_accountability_event("carol", ImpactType.NEGATIVE, 10, "x")

    assert (await store.get_user("alice")).trust_score == 0
    assert (await store.get_score_history("alice"))[0].change == pytest.approx(-2.0)
    # A voucher already at zero still gets an audit row
    assert (await store.get_score_history("zoe"))[0].change == 0


@pytest.mark.asyncio
async def test_unknown_log(propagator):
    with pytest.raises(AccountabilityLogNotFoundError):
        await propagator.process_accountability("missing")


@pytest.mark.asyncio
async def test_sweep_processes_leftover_logs(propagator, store, make_user, now):
    await make_user("alice", score=50)
    for i in range(2):
        await store.insert_accountability_log(
            AccountabilityLog(
                id=new_id(),
                voucher_id="alice",
                vouchee_id="carol",
                vouch_id=new_id(),
                impact_type=ImpactType.POSITIVE,
                impact_value=5,
                occurred_at=now - timedelta(minutes=i),
            )
        )
    await store.insert_accountability_log(
        AccountabilityLog(
            id=new_id(),
            voucher_id="ghost",
            vouchee_id="carol",
            vouch_id=new_id(),
            impact_type=ImpactType.POSITIVE,
            impact_value=5,
            occurred_at=now,
        )
    )

    result = await propagator.process_unprocessed_logs()

    assert result.succeeded == 2
    assert result.failed == 1
    assert (await store.get_user("alice")).trust_score == pytest.approx(52.0)
    # The failed log is left for the next sweep
    assert len(await store.get_unprocessed_logs()) == 1


@pytest.mark.asyncio
async def test_notification_failure_does_not_undo_score(store, config, ledger, two_vouchers):
    propagator = AccountabilityPropagator(store, config, ledger, notifier=BrokenNotifier())

    result = await propagator.record_accountability_event("carol", ImpactType.NEGATIVE, 10, "x")

    assert result.succeeded == 2
    assert (await store.get_user("alice")).trust_score == pytest.approx(46.0)


@pytest.mark.asyncio
async def test_accountability_impact_aggregates(propagator, store, make_user, vouch_for, now):
    await make_user("alice", score=50)
    await make_user("carol", score=40)
    await make_user("dave", score=40)
    await vouch_for("alice", "carol")
    await vouch_for("alice", "dave")

    await propagator.record_accountability_event(
        "carol", ImpactType.NEGATIVE, 10, "No-show", now=now - timedelta(days=2)
    )
    await propagator.record_accountability_event(
        "carol", ImpactType.POSITIVE, 5, "Hosted", now=now - timedelta(days=1)
    )
    await propagator.record_accountability_event("dave", ImpactType.NEUTRAL, 5, "Noted", now=now)

    impact = await propagator.get_accountability_impact("alice")

    assert impact["total_logs"] == 3
    assert impact["total_impact"] == pytest.approx(-3.0)
    assert impact["positive_impact"] == pytest.approx(1.0)
    assert impact["negative_impact"] == pytest.approx(-4.0)
    assert impact["counts"] == {"POSITIVE": 1, "NEGATIVE": 1, "NEUTRAL": 1}
    assert [v["vouchee_id"] for v in impact["by_vouchee"]] == ["dave", "carol"]
    assert impact["by_vouchee"][1]["count"] == 2
    assert impact["recent_logs"][0]["vouchee_id"] == "dave"


@pytest.mark.asyncio
async def test_accountability_history_pagination(propagator, make_user, vouch_for, now):
    await make_user("alice", score=50)
    await make_user("carol", score=40)
    await vouch_for("alice", "carol")
    for days_ago in (3, 2, 1):
        await propagator.record_accountability_event(
            "carol", ImpactType.NEGATIVE, 1, "Late", now=now - timedelta(days=days_ago)
        )

    first = await propagator.get_accountability_history("carol", page=1, limit=2)
    second = await propagator.get_accountability_history("carol", page=2, limit=2)

    assert first["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2}
    assert len(first["logs"]) == 2
    assert len(second["logs"]) == 1
    assert first["logs"][0]["voucher_impact"] == pytest.approx(-0.4)

    positives = await propagator.get_accountability_history("carol", impact_type=ImpactType.POSITIVE)
    assert positives["pagination"]["total"] == 0
    assert positives["pagination"]["total_pages"] == 0


@pytest.mark.asyncio
async def test_failing_voucher_does_not_stop_the_others(propagator, store, make_user, vouch_for):
    await make_user("alice", score=50)
    await make_user("carol", score=40)
    await vouch_for("alice", "carol")
    # voucher without a user row
    await vouch_for("ghost", "carol")

    result = await propagator.record_accountability_event("carol", ImpactType.NEGATIVE, 10, "x")

    assert result.succeeded == 1
    assert result.failed == 1
    assert result.errors[0].startswith("ghost:")
    assert (await store.get_user("alice")).trust_score == pytest.approx(46.0)
    leftover = await store.get_unprocessed_logs()
    assert [log.voucher_id for log in leftover] == ["ghost"]
