"""
ERC20-style balance and allowance bookkeeping.

Plain arithmetic over dicts with no access control and no pause checks;
the token facade decides who may call what. Every operation validates
everything before it writes, so a raised error leaves the ledger as it was.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from .accounts import ZERO_ADDRESS, normalize_address
from .errors import (
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidRecipientError,
    SupplyOverflowError,
)
from .units import DEFAULT_DECIMALS, MAX_UINT256, require_uint256


class Ledger:
    """Balances, allowances, and the total-supply counter."""

    def __init__(self, decimals: int = DEFAULT_DECIMALS):
        self._decimals = decimals
        self._balances: dict[str, int] = {}
        self._allowances: dict[str, dict[str, int]] = {}
        self._total_supply = 0

    # ── Views ─────────────────────────────────────────────────────

    def decimals(self) -> int:
        return self._decimals

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        return self._balances.get(normalize_address(account), 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get(normalize_address(owner), {}).get(
            normalize_address(spender), 0
        )

    # ── Supply ────────────────────────────────────────────────────

    def mint(self, account: str, amount: int) -> None:
        account = _require_account(account, "recipient")
        require_uint256(amount, "amount")
        self.require_mintable(amount)
        self._total_supply += amount
        self._balances[account] = self._balances.get(account, 0) + amount

    def require_mintable(self, amount: int) -> None:
        if self._total_supply + amount > MAX_UINT256:
            raise SupplyOverflowError(self._total_supply, amount)

    def burn(self, account: str, amount: int) -> None:
        account = _require_account(account, "burner")
        require_uint256(amount, "amount")
        balance = self._balances.get(account, 0)
        if balance < amount:
            raise InsufficientBalanceError(account, balance, amount)
        self._balances[account] = balance - amount
        self._total_supply -= amount

    # ── Transfers ─────────────────────────────────────────────────

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        sender = _require_account(sender, "sender")
        recipient = _require_account(recipient, "recipient")
        require_uint256(amount, "amount")
        balance = self._balances.get(sender, 0)
        if balance < amount:
            raise InsufficientBalanceError(sender, balance, amount)
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        owner = _require_account(owner, "approver")
        spender = _require_account(spender, "spender")
        require_uint256(amount, "amount")
        self._allowances.setdefault(owner, {})[spender] = amount

    def spend_allowance(self, owner: str, spender: str, amount: int) -> None:
        """Decrease allowance by amount; the max-uint256 allowance is infinite."""
        owner = normalize_address(owner)
        spender = normalize_address(spender)
        require_uint256(amount, "amount")
        current = self.allowance(owner, spender)
        if current == MAX_UINT256:
            return
        if current < amount:
            raise InsufficientAllowanceError(owner, spender, current, amount)
        self.approve(owner, spender, current - amount)

    def transfer_from(self, spender: str, owner: str, recipient: str, amount: int) -> None:
        owner = _require_account(owner, "sender")
        recipient = _require_account(recipient, "recipient")
        require_uint256(amount, "amount")
        balance = self._balances.get(owner, 0)
        current = self.allowance(owner, spender)
        if current != MAX_UINT256 and current < amount:
            raise InsufficientAllowanceError(owner, normalize_address(spender), current, amount)
        if balance < amount:
            raise InsufficientBalanceError(owner, balance, amount)
        self.spend_allowance(owner, spender, amount)
        self.transfer(owner, recipient, amount)

    def increase_allowance(self, owner: str, spender: str, added: int) -> int:
        require_uint256(added, "amount")
        new_value = require_uint256(self.allowance(owner, spender) + added, "allowance")
        self.approve(owner, spender, new_value)
        return new_value

    def decrease_allowance(self, owner: str, spender: str, subtracted: int) -> int:
        require_uint256(subtracted, "amount")
        current = self.allowance(owner, spender)
        if current < subtracted:
            raise InsufficientAllowanceError(
                normalize_address(owner), normalize_address(spender), current, subtracted
            )
        self.approve(owner, spender, current - subtracted)
        return current - subtracted

    # ── Persistence ───────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            "decimals": self._decimals,
            "total_supply": str(self._total_supply),
            "balances": {a: str(v) for a, v in sorted(self._balances.items()) if v},
            "allowances": {
                o: {s: str(v) for s, v in sorted(spenders.items()) if v}
                for o, spenders in sorted(self._allowances.items())
                if any(spenders.values())
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Ledger":
        ledger = cls(decimals=int(payload.get("decimals", DEFAULT_DECIMALS)))
        for account, value in payload.get("balances", {}).items():
            ledger._balances[normalize_address(account)] = int(value)
        for owner, spenders in payload.get("allowances", {}).items():
            ledger._allowances[normalize_address(owner)] = {
                normalize_address(s): int(v) for s, v in spenders.items()
            }
        ledger._total_supply = int(payload.get("total_supply", 0))
        if ledger._total_supply != sum(ledger._balances.values()):
            raise ValueError("Ledger total supply does not match sum of balances")
        return ledger


def _require_account(account: Optional[str], role: str) -> str:
    normalized = normalize_address(account or "")
    if normalized == ZERO_ADDRESS:
        raise InvalidRecipientError(role)
    return normalized
