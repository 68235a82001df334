"""Tests for TrustAuditor."""

import json

import pytest

from trustgate.auditor import AuditLevel, TrustAuditor
from trustgate.config.defaults import get_default
from trustgate.config.service import ConfigService
from trustgate.models import BatchResult


def _records(path):
    return [json.loads(line) for line in path.read_text().splitlines()]


def test_parse_level():
    assert AuditLevel.parse(" warn ") == AuditLevel.WARN
    with pytest.raises(KeyError):
        AuditLevel.parse("loud")


@pytest.mark.asyncio
async def test_log_writes_jsonl(temp_repo):
    path = temp_repo / "audit" / "audit.jsonl"
    auditor = TrustAuditor(path)

    await auditor.log_job("decay_run", decayed=3)

    records = _records(path)
    assert len(records) == 1
    assert records[0]["event"] == "trust_decay_run"
    assert records[0]["level"] == "info"
    assert records[0]["decayed"] == 3


@pytest.mark.asyncio
async def test_level_filter_and_sampling(temp_repo):
    path = temp_repo / "audit.jsonl"

    quiet = TrustAuditor(path, level=AuditLevel.WARN)
    await quiet.log_job("decay_run")
    assert not path.exists()

    never = TrustAuditor(path, level=AuditLevel.DEBUG, sample_rate=0.0)
    await never.log("detail", AuditLevel.DEBUG)
    assert not path.exists()

    always = TrustAuditor(path, level=AuditLevel.DEBUG, sample_rate=1.0)
    await always.log_accountability("log-1", "alice", "carol", "NEGATIVE", -4.0)
    assert _records(path)[0]["voucher_impact"] == -4.0


@pytest.mark.asyncio
async def test_no_path_is_noop():
    await TrustAuditor(None).log_job("decay_run")


@pytest.mark.asyncio
async def test_batch_summary_escalates_on_failure(temp_repo):
    path = temp_repo / "audit.jsonl"
    auditor = TrustAuditor(path)
    result = BatchResult(succeeded=3)
    result.record_failure("ghost", RuntimeError("missing"))

    await auditor.log_batch_summary("recalculation_batch", result, duration_ms=12.34)

    record = _records(path)[0]
    assert record["level"] == "warn"
    assert record["failed"] == 1
    assert record["errors"] == ["ghost: missing"]
    assert record["duration_ms"] == 12.3


@pytest.mark.asyncio
async def test_config_update_is_audited(store, temp_repo):
    path = temp_repo / "audit.jsonl"
    service = ConfigService(store, auditor=TrustAuditor(path))
    await service.seed_defaults()

    doc = get_default("TRUST_DECAY", "decay_rules")
    doc["warning_threshold"] = 5
    await service.update("TRUST_DECAY", "decay_rules", doc, "admin-1")

    record = _records(path)[0]
    assert record["event"] == "trust_config_update"
    assert record["category"] == "TRUST_DECAY"
    assert record["version"] == 2
    assert record["changed_by"] == "admin-1"
