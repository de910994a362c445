"""
Tamper-evident record of token events.

Each line of the JSONL file carries ``event_hash = HMAC(key, prev_hash | payload)``,
so editing, dropping or reordering a line breaks every later link. Appends
take an exclusive flock next to the log and chain from the tail as it is on
disk at that moment, so several processes can share one log.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import secrets
import time
from collections import deque
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

from .errors import StateError
from .storage import ensure_private_dir, ensure_private_file, exclusive_lock


KEY_ENV_VAR = "RAINCLOUD_AUDIT_HMAC_KEY"
_CHAIN_FIELDS = ("prev_hash", "event_hash")


class EventType(str, Enum):
    TRANSFER = "transfer"
    APPROVAL = "approval"
    DELEGATED_MINT = "delegated_mint"
    MINT_REJECTED = "mint_rejected"
    PAUSED = "paused"
    UNPAUSED = "unpaused"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"


@dataclass
class AuditEvent:
    event_type: str
    timestamp: float
    account: Optional[str] = None
    counterparty: Optional[str] = None
    amount: Optional[int] = None
    nonce: Optional[int] = None
    success: bool = True
    reason: Optional[str] = None
    details: Optional[dict[str, Any]] = None
    prev_hash: Optional[str] = None
    event_hash: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AuditEvent":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in record.items() if k in known})

    def to_record(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def _canonical(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode()


class AuditTrail:
    """Append-only HMAC hash chain over token events."""

    def __init__(self, path: Path, key_path: Path):
        self.path = path
        self.key_path = key_path
        self._lock_path = path.parent / f".{path.name}.lock"

        for directory in (path.parent, key_path.parent):
            ensure_private_dir(directory)
        for file in (path, key_path):
            ensure_private_file(file)

        self._key = self._signing_key()

    def _signing_key(self) -> bytes:
        from_env = os.getenv(KEY_ENV_VAR)
        if from_env:
            return from_env.encode()
        stored = self.key_path.read_bytes().strip()
        if stored:
            return stored
        # First use: mint a key under the lock so concurrent starts agree on it.
        with exclusive_lock(self._lock_path):
            stored = self.key_path.read_bytes().strip()
            if not stored:
                stored = secrets.token_hex(32).encode()
                self.key_path.write_bytes(stored)
        return stored

    def _link(self, prev_hash: str, payload: dict[str, Any]) -> str:
        mac = hmac.new(self._key, prev_hash.encode() + b"|" + _canonical(payload), hashlib.sha256)
        return mac.hexdigest()

    def _records(self) -> Iterator[dict[str, Any]]:
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    yield json.loads(line)

    def _tail_hash(self) -> str:
        last = deque(self._records(), maxlen=1)
        return last[0].get("event_hash", "") if last else ""

    def log(
        self,
        event_type: EventType,
        account: Optional[str] = None,
        counterparty: Optional[str] = None,
        amount: Optional[int] = None,
        nonce: Optional[int] = None,
        success: bool = True,
        reason: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        event = AuditEvent(
            event_type=event_type.value,
            timestamp=time.time(),
            account=account,
            counterparty=counterparty,
            amount=amount,
            nonce=nonce,
            success=success,
            reason=reason,
            details=details,
        )
        payload = event.to_record()

        with exclusive_lock(self._lock_path):
            prev_hash = self._tail_hash()
            event.prev_hash = prev_hash or None
            event.event_hash = self._link(prev_hash, payload)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_record(), separators=(",", ":")) + "\n")
                f.flush()
                os.fsync(f.fileno())
        return event

    def read_events(
        self,
        account: Optional[str] = None,
        event_type: Optional[EventType] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Verify the whole chain, then return the newest matching events.

        ``account`` matches either side of an event.
        """
        matched: list[AuditEvent] = []
        expected_prev = ""
        with exclusive_lock(self._lock_path):
            for record in self._records():
                payload = {k: v for k, v in record.items() if k not in _CHAIN_FIELDS}
                if (record.get("prev_hash") or "") != expected_prev:
                    raise StateError("Audit chain broken: previous hash mismatch")
                if not hmac.compare_digest(self._link(expected_prev, payload), record.get("event_hash", "")):
                    raise StateError("Audit chain broken: event hash mismatch")
                expected_prev = record["event_hash"]

                if account and account not in (record.get("account"), record.get("counterparty")):
                    continue
                if event_type and record.get("event_type") != event_type.value:
                    continue
                matched.append(AuditEvent.from_record(record))
        return matched[-limit:]


class PendingAudit:
    """Collects events during a state transaction until it is known to stick.

    Exposes the same ``log`` signature as ``AuditTrail`` so the token can
    record into either.
    """

    def __init__(self):
        self._entries: list[tuple[EventType, dict[str, Any]]] = []

    def log(self, event_type: EventType, **fields: Any) -> None:
        self._entries.append((event_type, fields))

    def flush(self, trail: AuditTrail, rejections_only: bool = False) -> int:
        """Write buffered events to trail; return how many were written."""
        written = 0
        for event_type, entry in self._entries:
            if rejections_only and entry.get("success", True):
                continue
            trail.log(event_type, **entry)
            written += 1
        self._entries.clear()
        return written
