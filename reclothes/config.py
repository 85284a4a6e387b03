"""Environment driven settings for a Besu deployment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .channel import validate_channel_key
from .contracts import CLOTH_TYPES


DEFAULT_CHAIN_ID = 1337
DEFAULT_INITIAL_SUPPLY = 1_000_000_000
DEFAULT_CONFIDENTIAL_PRICING = [3, 5, 8, 16, 9, 11]

# Role -> node whose key signs for it when no dedicated key is configured.
NODE_ROLES = {"dealer": 1, "recycler1": 2, "recycler2": 3}
ACCOUNT_ROLES = ("token_manager", "dealer", "customer1", "customer2", "recycler1", "recycler2")


class NodeSettings(BaseModel):
    url: str
    private_key: str
    channel_key: str

    @field_validator("channel_key")
    @classmethod
    def _check_channel_key(cls, value: str) -> str:
        return validate_channel_key(value)


class Settings(BaseModel):
    chain_id: int = Field(default=DEFAULT_CHAIN_ID, gt=0)
    nodes: List[NodeSettings] = Field(default_factory=list)
    accounts: Dict[str, str] = Field(default_factory=dict)
    reselling_address: Optional[str] = None
    regeneration_address: Optional[str] = None
    reclothes_shop_address: Optional[str] = None
    initial_supply: int = Field(default=DEFAULT_INITIAL_SUPPLY, gt=0)
    confidential_pricing: List[int] = Field(default_factory=lambda: list(DEFAULT_CONFIDENTIAL_PRICING))
    receipt_timeout: float = Field(default=120.0, gt=0)
    poll_interval: float = Field(default=0.5, gt=0)
    artifacts_dir: Optional[str] = None

    @field_validator("confidential_pricing")
    @classmethod
    def _check_pricing(cls, value: List[int]) -> List[int]:
        if len(value) != CLOTH_TYPES:
            raise ValueError(f"confidential pricing needs {CLOTH_TYPES} entries, got {len(value)}")
        if any(price < 0 for price in value):
            raise ValueError("confidential pricing cannot be negative")
        return value

    def node(self, index: int) -> NodeSettings:
        """1-based node lookup, as in ``NODE1_URL``."""

        if not 1 <= index <= len(self.nodes):
            raise ValueError(f"NODE{index} is not configured")
        return self.nodes[index - 1]

    def account_key(self, role: str) -> str:
        key = self.accounts.get(role)
        if key:
            return key
        if role in NODE_ROLES:
            return self.node(NODE_ROLES[role]).private_key
        raise ValueError(f"No private key configured for {role}")


def _parse_pricing(raw: str) -> List[int]:
    try:
        return [int(item) for item in raw.replace(" ", "").split(",") if item]
    except ValueError as exc:
        raise ValueError(f"Invalid CONFIDENTIAL_PRICING {raw!r}") from exc


def load_settings(
    env_file: Union[str, Path, None] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build :class:`Settings` from ``environ`` (default: ``.env`` + process environment)."""

    if environ is None:
        load_dotenv(env_file)
        environ = os.environ

    nodes = []
    index = 1
    while environ.get(f"NODE{index}_URL"):
        nodes.append(NodeSettings(
            url=environ[f"NODE{index}_URL"],
            private_key=environ.get(f"NODE{index}_PRIVATE_KEY", ""),
            channel_key=environ.get(f"ORION{index}_PUBLIC_KEY", ""),
        ))
        index += 1

    accounts = {}
    for role in ACCOUNT_ROLES:
        value = environ.get(f"{role.upper()}_PRIVATE_KEY")
        if value:
            accounts[role] = value

    values = {
        "nodes": nodes,
        "accounts": accounts,
        "reselling_address": environ.get("RESELLING_ADDRESS") or None,
        "regeneration_address": environ.get("REGENERATION_ADDRESS") or None,
        "reclothes_shop_address": environ.get("RECLOTHES_SHOP_ADDRESS") or None,
        "artifacts_dir": environ.get("ARTIFACTS_DIR") or None,
    }
    numeric = {
        "chain_id": "CHAIN_ID",
        "initial_supply": "INITIAL_SUPPLY",
        "receipt_timeout": "RECEIPT_TIMEOUT",
        "poll_interval": "RECEIPT_POLL_INTERVAL",
    }
    for field_name, variable in numeric.items():
        if environ.get(variable):
            values[field_name] = environ[variable]
    if environ.get("CONFIDENTIAL_PRICING"):
        values["confidential_pricing"] = _parse_pricing(environ["CONFIDENTIAL_PRICING"])

    return Settings(**values)


__all__ = ["NodeSettings", "Settings", "load_settings"]
