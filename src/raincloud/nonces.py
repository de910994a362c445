"""Per-account delegated mint nonces."""

from __future__ import annotations

import threading
from typing import Mapping, Optional

from .accounts import normalize_address


class NonceConflictError(RuntimeError):
    """Stored nonce moved between read and advance."""

    def __init__(self, account: str, expected: int, actual: int):
        self.account = account
        self.expected = expected
        self.actual = actual
        super().__init__(f"Nonce for {account} is {actual}, expected {expected}")


class MintNonceTable:
    """
    Account -> next unused mint nonce.

    Unseen accounts read as 0. The only mutation is ``advance``, a
    compare-and-swap from the nonce that was signed over to its successor,
    so two submissions carrying the same nonce can never both land.
    """

    def __init__(self, initial: Optional[Mapping[str, int]] = None):
        self._lock = threading.Lock()
        self._nonces: dict[str, int] = {}
        for account, value in (initial or {}).items():
            if int(value) < 0:
                raise ValueError(f"Negative nonce for {account}: {value}")
            self._nonces[normalize_address(account)] = int(value)

    def current(self, account: str) -> int:
        key = normalize_address(account)
        with self._lock:
            return self._nonces.get(key, 0)

    def advance(self, account: str, expected: int) -> int:
        """Move ``account`` from ``expected`` to ``expected + 1``; return the new value."""
        key = normalize_address(account)
        with self._lock:
            actual = self._nonces.get(key, 0)
            if actual != expected:
                raise NonceConflictError(key, expected, actual)
            self._nonces[key] = actual + 1
            return actual + 1

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._nonces)
