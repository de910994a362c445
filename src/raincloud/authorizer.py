"""
Delegated ("gasless") mint authorization.

Flow:
1. Reject while paused
2. Reject past the deadline (deadline itself is still valid)
3. Reject the zero-address recipient
4. Read the recipient's current nonce
5. Rebuild the EIP-712 Mint digest with that nonce
6. Recover the signer
7. Require the signer to be an authorized signer (the owner)
8. Advance the nonce, then mint

The nonce is never checked on its own: it is baked into the digest, so a
replayed or out-of-order request recovers to some unrelated address and is
rejected as unauthorized.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .access import AccessControl
from .accounts import ZERO_ADDRESS, normalize_address
from .errors import ExpiredError, InvalidRecipientError, UnauthorizedError
from .ledger import Ledger
from .nonces import MintNonceTable, NonceConflictError
from .typed_data import MintDomain, MintRequest, Signature, mint_signable, recover_signer
from .units import require_uint256

logger = logging.getLogger(__name__)


def _system_clock() -> int:
    return int(time.time())


class MintAuthorizer:
    """Validates owner-signed mint requests and applies them to the ledger."""

    def __init__(
        self,
        domain: MintDomain,
        access: AccessControl,
        nonces: MintNonceTable,
        ledger: Ledger,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.domain = domain
        self.access = access
        self.nonces = nonces
        self.ledger = ledger
        self._clock = clock or _system_clock
        self._domain_separator = domain.separator()

    @property
    def domain_separator(self) -> bytes:
        return self._domain_separator

    def authorize_and_mint(
        self,
        recipient: str,
        amount: int,
        deadline: int,
        signature: Signature,
    ) -> int:
        """Mint ``amount`` to ``recipient`` if the owner signed for it.

        Returns the nonce that was consumed. Raises an AuthorizationError or a
        LedgerError (zero recipient, supply overflow) without touching any
        state otherwise.
        """
        require_uint256(amount, "amount")
        require_uint256(deadline, "deadline")

        self.access.require_not_paused()

        now = int(self._clock())
        if now > deadline:
            raise ExpiredError(deadline, now)

        to = normalize_address(recipient)
        if to == ZERO_ADDRESS:
            raise InvalidRecipientError("recipient")

        nonce = self.nonces.current(to)
        request = MintRequest(to=to, amount=amount, nonce=nonce, deadline=deadline)
        signer = recover_signer(mint_signable(self._domain_separator, request), signature)

        if not self.access.is_authorized_signer(signer):
            raise UnauthorizedError(
                "Mint signature is not from an authorized signer",
                expected=self.access.current_owner(),
                actual=signer,
            )

        # Supply overflow is the only way ledger.mint can fail past this point.
        self.ledger.require_mintable(amount)

        try:
            self.nonces.advance(to, nonce)
        except NonceConflictError as e:
            raise UnauthorizedError(
                f"Mint nonce {nonce} for {to} was already consumed",
                actual=signer,
            ) from e
        self.ledger.mint(to, amount)

        logger.info("Delegated mint: %s received %d (nonce %d)", to, amount, nonce)
        return nonce
