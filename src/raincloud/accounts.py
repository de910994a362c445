"""Account address validation and normalization."""

from __future__ import annotations

import re

from eth_utils import to_checksum_address


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
DEFAULT_NETWORK = "eip155:8453"

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
_CAIP_NETWORK_RE = re.compile(r"^eip155:(\d+)$")


def normalize_address(address: str) -> str:
    """Validate an address and return its EIP-55 checksummed form."""
    if not isinstance(address, str):
        raise ValueError(f"Invalid Ethereum address: {address!r}")
    candidate = address.strip()
    if candidate.startswith("0X"):
        candidate = "0x" + candidate[2:]
    if not _ADDRESS_RE.match(candidate):
        raise ValueError(f"Invalid Ethereum address: {address}")
    return to_checksum_address(candidate)


def normalize_caip2_network(network: str) -> str:
    """Validate and normalize CAIP-2 network identifiers."""
    match = _CAIP_NETWORK_RE.match(network.strip())
    if match is None:
        raise ValueError(f"Invalid CAIP-2 network identifier: {network}")
    return f"eip155:{int(match.group(1))}"


def network_to_chain_id(network: str) -> int:
    return int(normalize_caip2_network(network).split(":", 1)[1])
