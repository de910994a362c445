"""
Rain Cloud Protocol token.

Composes the ledger, owner/pause access control, the mint nonce table and
the delegated mint authorizer behind one API. Every mutating call runs
under a single re-entrant lock, so guard checks, nonce advance and the
ledger write of one call never interleave with another call.

Callers identify themselves with an explicit ``caller`` address; key
handling is the job of whoever fronts the token (CLI, relayer).
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Mapping, Optional

from .access import AccessControl
from .accounts import ZERO_ADDRESS, normalize_address
from .audit import AuditTrail, EventType
from .authorizer import MintAuthorizer
from .config import DEFAULT_SYMBOL
from .errors import (
    AuthorizationError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidRecipientError,
    LedgerError,
)
from .ledger import Ledger
from .nonces import MintNonceTable
from .typed_data import MintDomain, Signature
from .units import DEFAULT_DECIMALS, MAX_UINT256, require_uint256, whole_units

logger = logging.getLogger(__name__)

STATE_SCHEMA_VERSION = 1


class RainCloudToken:
    """Pausable, owner-mintable token with signature-authorized minting."""

    def __init__(
        self,
        owner: str,
        domain: MintDomain,
        symbol: str = DEFAULT_SYMBOL,
        decimals: int = DEFAULT_DECIMALS,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], int]] = None,
        *,
        ledger: Optional[Ledger] = None,
        access: Optional[AccessControl] = None,
        nonces: Optional[MintNonceTable] = None,
    ):
        self.domain = domain
        self.symbol = symbol
        self.audit = audit
        self.ledger = ledger or Ledger(decimals=decimals)
        self.access = access or AccessControl(owner)
        self.nonce_table = nonces or MintNonceTable()
        self.authorizer = MintAuthorizer(
            domain, self.access, self.nonce_table, self.ledger, clock=clock
        )
        self._lock = threading.RLock()

    # ── Views ─────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self.domain.name

    def decimals(self) -> int:
        return self.ledger.decimals()

    def total_supply(self) -> int:
        return self.ledger.total_supply()

    def total_supply_in_whole_units(self) -> int:
        return whole_units(self.ledger.total_supply(), self.ledger.decimals())

    def balance_of(self, account: str) -> int:
        return self.ledger.balance_of(account)

    def allowance(self, owner: str, spender: str) -> int:
        return self.ledger.allowance(owner, spender)

    def nonces(self, account: str) -> int:
        return self.nonce_table.current(account)

    def domain_separator(self) -> bytes:
        return self.authorizer.domain_separator

    def owner(self) -> str:
        return self.access.current_owner()

    def paused(self) -> bool:
        return self.access.is_paused()

    # ── Minting ───────────────────────────────────────────────────

    def mint(self, caller: str, to: str, amount: int) -> None:
        """Owner-only direct mint."""
        require_uint256(amount, "amount")
        with self._lock:
            self.access.require_owner(caller)
            self.access.require_not_paused()
            recipient = normalize_address(to)
            if recipient == ZERO_ADDRESS:
                raise InvalidRecipientError("recipient")
            self.ledger.mint(recipient, amount)
            self._record(EventType.TRANSFER, ZERO_ADDRESS, recipient, amount)

    def mint_with_signature(
        self,
        recipient: str,
        amount: int,
        deadline: int,
        signature: Signature,
    ) -> int:
        """Relay an owner-signed mint. Returns the consumed nonce."""
        with self._lock:
            try:
                nonce = self.authorizer.authorize_and_mint(recipient, amount, deadline, signature)
            except (AuthorizationError, LedgerError) as e:
                logger.warning("Delegated mint rejected for %s: %s", recipient, e)
                try:
                    party = normalize_address(recipient)
                except ValueError:
                    party = str(recipient)
                self._record(
                    EventType.MINT_REJECTED,
                    None,
                    party,
                    amount,
                    success=False,
                    reason=type(e).__name__,
                    details={"deadline": deadline, "message": str(e)},
                )
                raise
            to = normalize_address(recipient)
            self._record(EventType.DELEGATED_MINT, ZERO_ADDRESS, to, amount, nonce=nonce)
            return nonce

    authorize_and_mint = mint_with_signature

    # ── Burning ───────────────────────────────────────────────────

    def burn(self, caller: str, amount: int) -> None:
        with self._lock:
            self.access.require_not_paused()
            account = normalize_address(caller)
            self.ledger.burn(account, amount)
            self._record(EventType.TRANSFER, account, ZERO_ADDRESS, amount)

    def burn_from(self, caller: str, account: str, amount: int) -> None:
        """Burn from ``account`` using the caller's allowance over it."""
        require_uint256(amount, "amount")
        with self._lock:
            self.access.require_not_paused()
            holder = normalize_address(account)
            spender = normalize_address(caller)
            allowance = self.ledger.allowance(holder, spender)
            if allowance != MAX_UINT256 and allowance < amount:
                raise InsufficientAllowanceError(holder, spender, allowance, amount)
            balance = self.ledger.balance_of(holder)
            if balance < amount:
                raise InsufficientBalanceError(holder, balance, amount)
            self.ledger.spend_allowance(holder, spender, amount)
            self.ledger.burn(holder, amount)
            self._record(EventType.TRANSFER, holder, ZERO_ADDRESS, amount)

    # ── Transfers & allowances ────────────────────────────────────

    def transfer(self, caller: str, to: str, amount: int) -> None:
        with self._lock:
            self.access.require_not_paused()
            self.ledger.transfer(caller, to, amount)
            self._record(EventType.TRANSFER, normalize_address(caller), normalize_address(to), amount)

    def transfer_from(self, caller: str, owner: str, to: str, amount: int) -> None:
        with self._lock:
            self.access.require_not_paused()
            self.ledger.transfer_from(caller, owner, to, amount)
            self._record(EventType.TRANSFER, normalize_address(owner), normalize_address(to), amount)

    def approve(self, caller: str, spender: str, amount: int) -> None:
        with self._lock:
            self.ledger.approve(caller, spender, amount)
            self._record(EventType.APPROVAL, normalize_address(caller), normalize_address(spender), amount)

    def increase_allowance(self, caller: str, spender: str, added: int) -> int:
        with self._lock:
            value = self.ledger.increase_allowance(caller, spender, added)
            self._record(EventType.APPROVAL, normalize_address(caller), normalize_address(spender), value)
            return value

    def decrease_allowance(self, caller: str, spender: str, subtracted: int) -> int:
        with self._lock:
            value = self.ledger.decrease_allowance(caller, spender, subtracted)
            self._record(EventType.APPROVAL, normalize_address(caller), normalize_address(spender), value)
            return value

    # ── Administration ────────────────────────────────────────────

    def pause(self, caller: str) -> None:
        with self._lock:
            self.access.pause(caller)
            logger.info("Token paused by %s", normalize_address(caller))
            self._record(EventType.PAUSED, normalize_address(caller))

    def unpause(self, caller: str) -> None:
        with self._lock:
            self.access.unpause(caller)
            logger.info("Token unpaused by %s", normalize_address(caller))
            self._record(EventType.UNPAUSED, normalize_address(caller))

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._lock:
            previous = self.access.transfer_ownership(caller, new_owner)
            current = self.access.current_owner()
            logger.info("Ownership transferred from %s to %s", previous, current)
            self._record(EventType.OWNERSHIP_TRANSFERRED, previous, current)

    def renounce_ownership(self, caller: str) -> None:
        with self._lock:
            previous = self.access.renounce_ownership(caller)
            logger.info("Ownership renounced by %s", previous)
            self._record(EventType.OWNERSHIP_TRANSFERRED, previous, ZERO_ADDRESS)

    # ── Persistence ───────────────────────────────────────────────

    def to_state(self) -> dict:
        with self._lock:
            return {
                "schema_version": STATE_SCHEMA_VERSION,
                "symbol": self.symbol,
                "domain": self.domain.to_eip712(),
                "owner": self.access.current_owner(),
                "paused": self.access.is_paused(),
                "nonces": dict(sorted(self.nonce_table.snapshot().items())),
                "ledger": self.ledger.to_dict(),
            }

    @classmethod
    def from_state(
        cls,
        state: Mapping[str, Any],
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> "RainCloudToken":
        version = int(state.get("schema_version", 0))
        if version != STATE_SCHEMA_VERSION:
            raise ValueError(f"Unsupported token state schema version: {version}")
        raw_domain = state["domain"]
        domain = MintDomain(
            chain_id=int(raw_domain["chainId"]),
            verifying_contract=str(raw_domain["verifyingContract"]),
            name=str(raw_domain["name"]),
            version=str(raw_domain["version"]),
        )
        return cls(
            owner=str(state["owner"]),
            domain=domain,
            symbol=str(state.get("symbol", DEFAULT_SYMBOL)),
            audit=audit,
            clock=clock,
            ledger=Ledger.from_dict(state["ledger"]),
            access=AccessControl(str(state["owner"]), paused=bool(state.get("paused", False))),
            nonces=MintNonceTable(state.get("nonces", {})),
        )

    def _record(
        self,
        event_type: EventType,
        account: Optional[str] = None,
        counterparty: Optional[str] = None,
        amount: Optional[int] = None,
        **kwargs,
    ) -> None:
        if self.audit is None:
            return
        self.audit.log(event_type, account=account, counterparty=counterparty, amount=amount, **kwargs)
