"""
Rain Cloud Protocol: pausable token with gasless minting.

The owner signs EIP-712 mint requests off-chain; anyone can relay them.
Each request binds the recipient's current nonce, so it lands at most once.
"""

__version__ = "0.1.0"

from .access import AccessControl
from .audit import AuditTrail, EventType
from .authorizer import MintAuthorizer
from .config import TokenConfig
from .errors import (
    ExpiredError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    InvalidRecipientError,
    MalformedSignatureError,
    NotSuspendedError,
    RainCloudError,
    SupplyOverflowError,
    SuspendedError,
    UnauthorizedError,
)
from .ledger import Ledger
from .nonces import MintNonceTable
from .state_store import TokenStateStore
from .token import RainCloudToken
from .typed_data import (
    MintDomain,
    MintRequest,
    SignedMintRequest,
    mint_digest,
    recover_signer,
    sign_mint,
)

__all__ = [
    "RainCloudToken", "MintAuthorizer", "Ledger", "AccessControl", "MintNonceTable",
    "MintDomain", "MintRequest", "SignedMintRequest", "sign_mint", "mint_digest", "recover_signer",
    "TokenConfig", "TokenStateStore", "AuditTrail", "EventType",
    "RainCloudError", "SuspendedError", "NotSuspendedError", "ExpiredError",
    "InvalidRecipientError", "MalformedSignatureError", "UnauthorizedError",
    "InsufficientBalanceError", "InsufficientAllowanceError", "SupplyOverflowError",
]
