"""
EIP-712 encoding for delegated mint requests.

The owner signs a ``Mint`` struct off-chain; a relayer submits it and the
token rebuilds the same digest from the stored nonce. Everything in here is
pure: no token state is read or written.

Wire format (must stay bit-exact for existing signers)::

    EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)
    Mint(address to,uint256 amount,uint256 nonce,uint256 deadline)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

from eth_abi import encode
from eth_account import Account
from eth_account.messages import SignableMessage
from eth_utils import keccak

from .accounts import DEFAULT_NETWORK, network_to_chain_id, normalize_address
from .errors import MalformedSignatureError
from .units import require_uint256


DOMAIN_NAME = "Rain Cloud Protocol"
DOMAIN_VERSION = "1"

EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
MINT_TYPE = "Mint(address to,uint256 amount,uint256 nonce,uint256 deadline)"

EIP712_DOMAIN_TYPEHASH = keccak(text=EIP712_DOMAIN_TYPE)
MINT_TYPEHASH = keccak(text=MINT_TYPE)

MINT_FIELDS = [
    {"name": "to", "type": "address"},
    {"name": "amount", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "deadline", "type": "uint256"},
]
DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

Signature = Union[str, bytes, Sequence[Any]]


@dataclass(frozen=True)
class MintDomain:
    """Deployment identity a mint signature is bound to."""

    chain_id: int
    verifying_contract: str
    name: str = DOMAIN_NAME
    version: str = DOMAIN_VERSION

    def __post_init__(self):
        object.__setattr__(self, "verifying_contract", normalize_address(self.verifying_contract))
        require_uint256(self.chain_id, "chain_id")

    @classmethod
    def for_network(cls, verifying_contract: str, network: str = DEFAULT_NETWORK) -> "MintDomain":
        return cls(chain_id=network_to_chain_id(network), verifying_contract=verifying_contract)

    def to_eip712(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    def separator(self) -> bytes:
        """keccak256 of the encoded EIP712Domain struct."""
        return keccak(
            encode(
                ["bytes32", "bytes32", "bytes32", "uint256", "address"],
                [
                    EIP712_DOMAIN_TYPEHASH,
                    keccak(text=self.name),
                    keccak(text=self.version),
                    self.chain_id,
                    self.verifying_contract,
                ],
            )
        )


@dataclass(frozen=True)
class MintRequest:
    """The four fields an owner signature covers."""

    to: str
    amount: int
    nonce: int
    deadline: int

    def __post_init__(self):
        object.__setattr__(self, "to", normalize_address(self.to))
        require_uint256(self.amount, "amount")
        require_uint256(self.nonce, "nonce")
        require_uint256(self.deadline, "deadline")

    def struct_hash(self) -> bytes:
        return keccak(
            encode(
                ["bytes32", "address", "uint256", "uint256", "uint256"],
                [MINT_TYPEHASH, self.to, self.amount, self.nonce, self.deadline],
            )
        )

    def to_eip712_message(self, domain: MintDomain) -> dict:
        """Convert the request to full EIP-712 typed data for external signers."""
        return {
            "types": {"EIP712Domain": DOMAIN_FIELDS, "Mint": MINT_FIELDS},
            "primaryType": "Mint",
            "domain": domain.to_eip712(),
            "message": {
                "to": self.to,
                "amount": self.amount,
                "nonce": self.nonce,
                "deadline": self.deadline,
            },
        }


@dataclass(frozen=True)
class SignedMintRequest:
    """A mint request plus the owner's signature, as handed to a relayer."""

    request: MintRequest
    signature: str
    chain_id: int
    verifying_contract: str

    def to_dict(self) -> dict:
        return {
            "to": self.request.to,
            "amount": str(self.request.amount),
            "nonce": self.request.nonce,
            "deadline": self.request.deadline,
            "signature": self.signature,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SignedMintRequest":
        data = dict(payload)
        try:
            request = MintRequest(
                to=str(data["to"]),
                amount=int(data["amount"]),
                nonce=int(data["nonce"]),
                deadline=int(data["deadline"]),
            )
            return cls(
                request=request,
                signature=str(data["signature"]),
                chain_id=int(data["chainId"]),
                verifying_contract=normalize_address(str(data["verifyingContract"])),
            )
        except KeyError as e:
            raise ValueError(f"Signed mint request missing field: {e.args[0]}") from e


def mint_signable(domain_separator: bytes, request: MintRequest) -> SignableMessage:
    """EIP-191 version 0x01 envelope around the Mint struct."""
    if len(domain_separator) != 32:
        raise ValueError("domain_separator must be 32 bytes")
    return SignableMessage(
        version=b"\x01",
        header=bytes(domain_separator),
        body=request.struct_hash(),
    )


def mint_digest(domain_separator: bytes, request: MintRequest) -> bytes:
    """keccak256(0x19 0x01 || domainSeparator || hashStruct(Mint))."""
    signable = mint_signable(domain_separator, request)
    return keccak(b"\x19" + signable.version + signable.header + signable.body)


def sign_mint(
    private_key: str | bytes,
    domain: MintDomain,
    to: str,
    amount: int,
    nonce: int,
    deadline: int,
) -> SignedMintRequest:
    """Create and sign a delegated mint request."""
    account = Account.from_key(private_key)
    request = MintRequest(to=to, amount=amount, nonce=nonce, deadline=deadline)
    typed_data = request.to_eip712_message(domain)
    signed = Account.sign_typed_data(
        account.key,
        typed_data["domain"],
        {"Mint": typed_data["types"]["Mint"]},
        typed_data["message"],
    )
    return SignedMintRequest(
        request=request,
        signature="0x" + bytes(signed.signature).hex(),
        chain_id=domain.chain_id,
        verifying_contract=domain.verifying_contract,
    )


def parse_signature(signature: Signature) -> tuple[int, int, int]:
    """Decode a compact 65-byte signature or a (v, r, s) triple.

    Rejects anything ECDSA recovery would treat as ambiguous: v outside
    {0, 1, 27, 28}, r/s outside [1, n), and upper-half s values.
    """
    if isinstance(signature, (tuple, list)):
        if len(signature) != 3:
            raise MalformedSignatureError("Signature triple must be (v, r, s)")
        v = _component_to_int(signature[0], "v")
        r = _component_to_int(signature[1], "r")
        s = _component_to_int(signature[2], "s")
    else:
        raw = _signature_bytes(signature)
        if len(raw) != 65:
            raise MalformedSignatureError(f"Invalid signature length: {len(raw)} bytes")
        r = int.from_bytes(raw[0:32], "big")
        s = int.from_bytes(raw[32:64], "big")
        v = raw[64]

    if v in (0, 1):
        v += 27
    if v not in (27, 28):
        raise MalformedSignatureError(f"Invalid signature 'v' value: {v}")
    if not 0 < r < SECP256K1_N:
        raise MalformedSignatureError("Invalid signature 'r' value")
    if not 0 < s <= SECP256K1_N // 2:
        raise MalformedSignatureError("Invalid signature 's' value")
    return v, r, s


def recover_signer(signable: SignableMessage, signature: Signature) -> str:
    """Recover the checksummed address that produced signature."""
    vrs = parse_signature(signature)
    try:
        recovered = Account.recover_message(signable, vrs=vrs)
    except Exception as e:
        raise MalformedSignatureError(f"Signature recovery failed: {e}") from e
    return normalize_address(recovered)


def _signature_bytes(signature: str | bytes) -> bytes:
    if isinstance(signature, (bytes, bytearray)):
        return bytes(signature)
    if not isinstance(signature, str):
        raise MalformedSignatureError(f"Unsupported signature type: {type(signature).__name__}")
    text = signature.strip()
    if text.startswith(("0x", "0X")):
        text = text[2:]
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise MalformedSignatureError("Signature is not valid hex") from e


def _component_to_int(value: Any, name: str) -> int:
    if isinstance(value, bool):
        raise MalformedSignatureError(f"Invalid signature '{name}' component")
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) > 32:
            raise MalformedSignatureError(f"Signature '{name}' component too long")
        return int.from_bytes(value, "big")
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
        except ValueError as e:
            raise MalformedSignatureError(f"Invalid signature '{name}' component") from e
    raise MalformedSignatureError(f"Invalid signature '{name}' component")
