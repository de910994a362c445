"""File-backed token state with lock-based concurrency control."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from .audit import AuditTrail, PendingAudit
from .errors import StateError
from .storage import atomic_write_json, ensure_private_dir, exclusive_lock
from .token import RainCloudToken

logger = logging.getLogger(__name__)


class TokenStateStore:
    """
    Persists one token instance as a JSON snapshot.

    ``transaction`` holds an exclusive flock from load to save and writes
    back only when the block finishes without raising, so each operation
    is all-or-nothing across processes, not just threads.
    """

    def __init__(
        self,
        path: Path,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.path = path
        self.audit = audit
        self.clock = clock
        ensure_private_dir(self.path.parent)
        self._lock_path = self.path.parent / f".{self.path.name}.lock"

    def exists(self) -> bool:
        return self.path.exists()

    def initialize(self, token: RainCloudToken) -> None:
        """Write the first snapshot; refuses to overwrite an existing token."""
        with exclusive_lock(self._lock_path):
            if self.path.exists():
                raise StateError(f"Token state already exists at {self.path}")
            atomic_write_json(self.path, token.to_state())
        logger.info("Initialized token state at %s (owner %s)", self.path, token.owner())

    def load(self) -> RainCloudToken:
        """Read-only snapshot; changes to the returned token are not saved."""
        with exclusive_lock(self._lock_path):
            return self._read()

    @contextmanager
    def transaction(self) -> Iterator[RainCloudToken]:
        """Load, yield, save. Audit entries are written once the outcome is known.

        On success every buffered event is written after the snapshot lands.
        If the block raises, only rejection records (``success=False``) are
        kept, since the state changes they sit beside were never saved.
        """
        with exclusive_lock(self._lock_path):
            token = self._read()
            pending = PendingAudit()
            if self.audit is not None:
                token.audit = pending
            try:
                yield token
            except Exception:
                self._flush(pending, rejections_only=True)
                raise
            atomic_write_json(self.path, token.to_state())
            self._flush(pending)

    def _flush(self, pending: PendingAudit, rejections_only: bool = False) -> None:
        if self.audit is None:
            return
        written = pending.flush(self.audit, rejections_only=rejections_only)
        logger.debug("Flushed %d audit events to %s", written, self.audit.path)

    def _read(self) -> RainCloudToken:
        if not self.path.exists():
            raise StateError(f"No token state at {self.path}; run 'raincloud init' first")
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
            return RainCloudToken.from_state(raw, audit=self.audit, clock=self.clock)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StateError(f"Corrupt token state at {self.path}: {e}") from e
