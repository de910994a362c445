"""Tests for tamper-evident audit trail behavior."""

import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from raincloud.audit import AuditTrail, EventType, PendingAudit
from raincloud.errors import StateError


ALICE = "0x1234567890123456789012345678901234567890"
BOB = "0x00000000000000000000000000000000000000b0"


def _trail(tmp_path):
    return AuditTrail(
        path=tmp_path / "audit.jsonl",
        key_path=tmp_path / "secret" / "audit_hmac.key",
    )


def test_audit_hash_chain_detects_tampering(tmp_path):
    trail = _trail(tmp_path)
    trail.log(EventType.DELEGATED_MINT, account=None, counterparty=ALICE, amount=5, nonce=0)
    trail.log(EventType.TRANSFER, account=ALICE, counterparty=BOB, amount=2)

    lines = (tmp_path / "audit.jsonl").read_text().splitlines()
    first = json.loads(lines[0])
    first["amount"] = 9999
    lines[0] = json.dumps(first, separators=(",", ":"))
    (tmp_path / "audit.jsonl").write_text("\n".join(lines) + "\n")

    with pytest.raises(StateError, match="Audit chain broken"):
        trail.read_events()


def test_deleted_entry_breaks_chain(tmp_path):
    trail = _trail(tmp_path)
    for amount in (1, 2, 3):
        trail.log(EventType.TRANSFER, account=ALICE, counterparty=BOB, amount=amount)

    lines = (tmp_path / "audit.jsonl").read_text().splitlines()
    del lines[1]
    (tmp_path / "audit.jsonl").write_text("\n".join(lines) + "\n")

    with pytest.raises(StateError, match="previous hash"):
        trail.read_events()


def test_chain_continues_across_instances(tmp_path):
    _trail(tmp_path).log(EventType.PAUSED, account=ALICE)
    reopened = _trail(tmp_path)
    reopened.log(EventType.UNPAUSED, account=ALICE)

    events = reopened.read_events()
    assert [e.event_type for e in events] == ["paused", "unpaused"]
    assert events[1].prev_hash == events[0].event_hash


def test_filters_and_limit(tmp_path):
    trail = _trail(tmp_path)
    trail.log(EventType.DELEGATED_MINT, counterparty=ALICE, amount=1, nonce=0)
    trail.log(EventType.MINT_REJECTED, counterparty=BOB, amount=1, success=False, reason="ExpiredError")
    trail.log(EventType.TRANSFER, account=ALICE, counterparty=BOB, amount=1)

    assert len(trail.read_events(account=ALICE)) == 2
    assert len(trail.read_events(account=BOB)) == 2
    rejected = trail.read_events(event_type=EventType.MINT_REJECTED)
    assert len(rejected) == 1
    assert rejected[0].reason == "ExpiredError"
    assert not rejected[0].success
    assert [e.event_type for e in trail.read_events(limit=1)] == ["transfer"]


def test_env_key_overrides_key_file(tmp_path, monkeypatch):
    monkeypatch.setenv("RAINCLOUD_AUDIT_HMAC_KEY", "from-env")
    trail = _trail(tmp_path)
    trail.log(EventType.PAUSED, account=ALICE)

    monkeypatch.setenv("RAINCLOUD_AUDIT_HMAC_KEY", "different")
    with pytest.raises(StateError, match="event hash"):
        _trail(tmp_path).read_events()


def test_instances_opened_together_keep_one_chain(tmp_path):
    first = _trail(tmp_path)
    second = _trail(tmp_path)

    first.log(EventType.TRANSFER, account=ALICE, counterparty=BOB, amount=1)
    second.log(EventType.TRANSFER, account=BOB, counterparty=ALICE, amount=1)
    first.log(EventType.PAUSED, account=ALICE)

    events = _trail(tmp_path).read_events()
    assert len(events) == 3
    assert events[1].prev_hash == events[0].event_hash
    assert events[2].prev_hash == events[1].event_hash


def test_concurrent_appends_from_many_trails(tmp_path):
    trails = [_trail(tmp_path) for _ in range(4)]

    def append(i):
        trails[i % len(trails)].log(EventType.TRANSFER, account=ALICE, counterparty=BOB, amount=i)

    with ThreadPoolExecutor(max_workers=4) as ex:
        list(ex.map(append, range(40)))

    events = _trail(tmp_path).read_events(limit=100)
    assert sorted(e.amount for e in events) == list(range(40))


def test_pending_audit_flushes_rejections_only(tmp_path):
    trail = _trail(tmp_path)
    pending = PendingAudit()
    pending.log(EventType.DELEGATED_MINT, counterparty=ALICE, amount=1, nonce=0)
    pending.log(EventType.MINT_REJECTED, counterparty=BOB, amount=1, success=False, reason="ExpiredError")

    assert pending.flush(trail, rejections_only=True) == 1
    assert pending.flush(trail) == 0
    assert [e.event_type for e in trail.read_events()] == ["mint_rejected"]
