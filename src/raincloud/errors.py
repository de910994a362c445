"""
Rain Cloud error types.

Specific exceptions for each failure mode of the token, so relayers and
callers can tell a stale signature from a paused token from an empty
balance without parsing messages.
"""

from __future__ import annotations


class RainCloudError(Exception):
    """Base error for all Rain Cloud operations."""
    pass


# Authorization errors
class AuthorizationError(RainCloudError):
    """Base error for rejected mint/admin authorizations."""
    pass


class SuspendedError(AuthorizationError):
    """Token is paused; state-changing operations are blocked."""
    def __init__(self, message: str = "Token is paused"):
        super().__init__(message)


class NotSuspendedError(AuthorizationError):
    """Unpause requested while the token is not paused."""
    def __init__(self, message: str = "Token is not paused"):
        super().__init__(message)


class ExpiredError(AuthorizationError):
    """Signed mint request is past its deadline."""
    def __init__(self, deadline: int, now: int):
        self.deadline = deadline
        self.now = now
        super().__init__(f"Mint request expired at {deadline} (now {now})")


class MalformedSignatureError(AuthorizationError):
    """Signature could not be decoded or does not recover to any signer."""
    pass


class UnauthorizedError(AuthorizationError):
    """Caller or recovered signer is not allowed to perform the operation."""
    def __init__(self, message: str, expected: str | None = None, actual: str | None = None):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


# Ledger errors
class LedgerError(RainCloudError):
    """Base error for balance/allowance bookkeeping failures."""
    pass


class InvalidRecipientError(LedgerError):
    """Zero address used where a real account is required."""
    def __init__(self, role: str = "recipient"):
        self.role = role
        super().__init__(f"Invalid {role}: zero address")


class InsufficientBalanceError(LedgerError):
    """Account balance is lower than the amount to burn or transfer."""
    def __init__(self, account: str, balance: int, needed: int):
        self.account = account
        self.balance = balance
        self.needed = needed
        super().__init__(f"{account} balance {balance} is below {needed}")


class SupplyOverflowError(LedgerError):
    """Mint would push total supply past the uint256 ceiling."""
    def __init__(self, supply: int, amount: int):
        self.supply = supply
        self.amount = amount
        super().__init__(f"Minting {amount} would overflow total supply {supply}")


class InsufficientAllowanceError(LedgerError):
    """Spender allowance is lower than the amount requested."""
    def __init__(self, owner: str, spender: str, allowance: int, needed: int):
        self.owner = owner
        self.spender = spender
        self.allowance = allowance
        self.needed = needed
        super().__init__(
            f"Allowance {allowance} of {spender} over {owner} is below {needed}"
        )


# State errors
class StateError(RainCloudError):
    """Persisted token state or audit log is missing, corrupt, or tampered."""
    pass
