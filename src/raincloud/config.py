"""Token configuration from defaults, environment, and CLI overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .accounts import DEFAULT_NETWORK, normalize_address, normalize_caip2_network
from .typed_data import DOMAIN_NAME, DOMAIN_VERSION, MintDomain
from .units import DEFAULT_DECIMALS


DEFAULT_SYMBOL = "RAIN"
PLACEHOLDER_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000001"


def default_home() -> Path:
    override = os.getenv("RAINCLOUD_HOME")
    return Path(override) if override else Path.home() / ".raincloud"


@dataclass
class TokenConfig:
    name: str = DOMAIN_NAME
    version: str = DOMAIN_VERSION
    symbol: str = DEFAULT_SYMBOL
    decimals: int = DEFAULT_DECIMALS
    network: str = DEFAULT_NETWORK
    verifying_contract: str = PLACEHOLDER_TOKEN_ADDRESS
    home: Path = field(default_factory=default_home)
    state_path: Optional[Path] = None
    audit_path: Optional[Path] = None
    audit_key_path: Optional[Path] = None

    def __post_init__(self):
        self.network = normalize_caip2_network(self.network)
        self.verifying_contract = normalize_address(self.verifying_contract)
        if self.state_path is None:
            self.state_path = self.home / "state.json"
        if self.audit_path is None:
            self.audit_path = self.home / "audit.jsonl"
        if self.audit_key_path is None:
            self.audit_key_path = self.home.parent / f"{self.home.name}-secrets" / "audit_hmac.key"

    @classmethod
    def from_env(cls, **overrides) -> "TokenConfig":
        """Build config from RAINCLOUD_* variables; explicit overrides win."""
        values: dict = {}
        if os.getenv("RAINCLOUD_NETWORK"):
            values["network"] = os.environ["RAINCLOUD_NETWORK"]
        if os.getenv("RAINCLOUD_TOKEN_ADDRESS"):
            values["verifying_contract"] = os.environ["RAINCLOUD_TOKEN_ADDRESS"]
        if os.getenv("RAINCLOUD_STATE_PATH"):
            values["state_path"] = Path(os.environ["RAINCLOUD_STATE_PATH"])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def domain(self) -> MintDomain:
        return MintDomain.for_network(self.verifying_contract, self.network)
