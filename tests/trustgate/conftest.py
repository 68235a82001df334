"""Shared fixtures for trustgate tests."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from trustgate.config.service import ConfigService
from trustgate.ledger import ScoreLedger
from trustgate.models import User, Vouch, VouchStatus, VouchType
from trustgate.notifier import RecordingNotifier
from trustgate.store import TrustStore, new_id

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def temp_repo():
    """Create a temporary repository root."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
async def store(temp_repo):
    """Create an initialized TrustStore."""
    store = TrustStore(temp_repo)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def config(store):
    """ConfigService over a store seeded with the default documents."""
    service = ConfigService(store)
    await service.seed_defaults()
    return service


@pytest.fixture
def ledger(store, config):
    return ScoreLedger(store, config)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def make_user(store):
    """Factory: insert a user with a score, age and counters."""

    async def _make(user_id, score=0.0, age_days=0, level="starter", **counters):
        user = User(
            id=user_id,
            full_name=user_id.title(),
            trust_score=score,
            trust_level=level,
            created_at=NOW - timedelta(days=age_days),
            **counters,
        )
        return await store.add_user(user)

    return _make


@pytest.fixture
def vouch_for(store):
    """Factory: voucher vouches for vouchee."""

    async def _vouch(voucher_id, vouchee_id, vouch_type=VouchType.SECONDARY, status=VouchStatus.ACTIVE):
        return await store.add_vouch(
            Vouch(
                id=new_id(),
                voucher_id=voucher_id,
                vouchee_id=vouchee_id,
                vouch_type=vouch_type,
                status=status,
            )
        )

    return _vouch
