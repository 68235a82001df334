"""Tests for TrustGuard."""

from unittest.mock import AsyncMock, patch

import pytest

from trustgate.constants import TRUST_HELP_URL
from trustgate.guard import (
    INSUFFICIENT_TRUST,
    INTERNAL_ERROR,
    INVALID_FEATURE,
    USER_NOT_FOUND,
    TrustGuard,
)


@pytest.fixture
def guard(store, config):
    return TrustGuard(store, config)


@pytest.mark.asyncio
async def test_denial_payload(guard, make_user):
    await make_user("alice", score=20)

    decision = await guard.require_trust_level(31, "create events")("alice")

    assert not decision.allowed
    assert decision.code == INSUFFICIENT_TRUST
    payload = decision.payload
    assert payload["error"] == "Insufficient trust level"
    assert payload["message"] == "You need a higher trust score to create events"
    assert payload["requirements"] == {
        "feature": "create events",
        "minimum_score": 31,
        "minimum_level": "trusted",
    }
    assert payload["current"] == {"score": 20, "level": "starter", "level_name": "Starter"}
    assert payload["progress"] == {"points_needed": 11, "percentage": 65}
    assert payload["suggestions"][-1] == "You need 11.0 more trust points to unlock this feature"
    assert payload["help_url"] == TRUST_HELP_URL


@pytest.mark.asyncio
async def test_threshold_is_inclusive(guard, make_user):
    await make_user("alice", score=31)

    decision = await guard.require_trust_level(31)("alice")

    assert decision.allowed
    assert decision.payload["level"] == "trusted"


@pytest.mark.asyncio
async def test_missing_user(guard):
    decision = await guard.require_trust_level(10)("ghost")
    assert decision.code == USER_NOT_FOUND


@pytest.mark.asyncio
async def test_require_feature_uses_gating_config(guard, make_user):
    await make_user("leader", score=70)
    await make_user("member", score=40)

    check = guard.require_feature("createCommunity")

    assert (await check("leader")).allowed
    denied = await check("member")
    assert denied.code == INSUFFICIENT_TRUST
    assert denied.payload["requirements"]["minimum_score"] == 61
    assert denied.payload["requirements"]["feature"] == "create communities"


@pytest.mark.asyncio
async def test_require_feature_from_level(guard, make_user):
    await make_user("alice", score=25)

    denied = await guard.require_feature("VOUCH_FOR_USERS")("alice")

    assert denied.payload["requirements"]["minimum_score"] == 31


@pytest.mark.asyncio
async def test_require_unknown_feature(guard, make_user):
    await make_user("alice", score=99)

    decision = await guard.require_feature("teleport")("alice")

    assert decision.code == INVALID_FEATURE
    assert decision.payload["error"] == "Invalid feature configuration"


@pytest.mark.asyncio
async def test_internal_error_does_not_leak(guard, store):
    with patch.object(store, "get_user", AsyncMock(side_effect=RuntimeError("secret dsn"))):
        decision = await guard.require_trust_level(10)("alice")

    assert decision.code == INTERNAL_ERROR
    assert "secret" not in str(decision.payload)


@pytest.mark.asyncio
async def test_check_trust_level(guard, make_user):
    await make_user("alice", score=50)

    assert await guard.check_trust_level("alice", 50)
    assert not await guard.check_trust_level("alice", 51)
    assert not await guard.check_trust_level("ghost", 0)


@pytest.mark.asyncio
async def test_trust_level_info(guard):
    info = await guard.trust_level_info(45)
    assert info["level"] == "trusted"
    assert info["next_level"]["level"] == "leader"
