"""Single-owner access control and the emergency pause switch."""

from __future__ import annotations

from .accounts import ZERO_ADDRESS, normalize_address
from .errors import (
    InvalidRecipientError,
    NotSuspendedError,
    SuspendedError,
    UnauthorizedError,
)


class AccessControl:
    """Owner principal plus a process-wide paused flag.

    The owner is also the only member of the authorized mint-signer set;
    ``authorized_signers`` is the seam for widening that to several signers.
    """

    def __init__(self, owner: str, paused: bool = False):
        self._owner = normalize_address(owner)
        self._paused = bool(paused)

    def current_owner(self) -> str:
        return self._owner

    def is_paused(self) -> bool:
        return self._paused

    def authorized_signers(self) -> frozenset[str]:
        if self._owner == ZERO_ADDRESS:
            return frozenset()
        return frozenset({self._owner})

    def is_authorized_signer(self, account: str) -> bool:
        return normalize_address(account) in self.authorized_signers()

    def require_owner(self, caller: str) -> None:
        normalized = normalize_address(caller)
        if self._owner == ZERO_ADDRESS or normalized != self._owner:
            raise UnauthorizedError(
                "Caller is not the owner", expected=self._owner, actual=normalized
            )

    def require_not_paused(self) -> None:
        if self._paused:
            raise SuspendedError()

    def pause(self, caller: str) -> None:
        self.require_owner(caller)
        self.require_not_paused()
        self._paused = True

    def unpause(self, caller: str) -> None:
        self.require_owner(caller)
        if not self._paused:
            raise NotSuspendedError()
        self._paused = False

    def transfer_ownership(self, caller: str, new_owner: str) -> str:
        """Hand ownership to new_owner and return the previous owner."""
        self.require_owner(caller)
        normalized = normalize_address(new_owner)
        if normalized == ZERO_ADDRESS:
            raise InvalidRecipientError("new owner")
        previous, self._owner = self._owner, normalized
        return previous

    def renounce_ownership(self, caller: str) -> str:
        self.require_owner(caller)
        previous, self._owner = self._owner, ZERO_ADDRESS
        return previous
