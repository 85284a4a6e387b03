"""Error taxonomy shared by the private, public and orchestration layers."""

from __future__ import annotations

from typing import Optional, Union

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes


ERROR_SELECTOR = bytes.fromhex("08c379a0")  # Error(string)
PANIC_SELECTOR = bytes.fromhex("4e487b71")  # Panic(uint256)

ROLE_REASONS = frozenset({"NOT-DEALER", "NOT-RECYCLER", "NOT-CUSTOMER"})
ALLOWANCE_REASONS = frozenset({
    "ERC20: transfer amount exceeds allowance",
    "ERC20: insufficient allowance",
})
RESOURCE_REASONS = frozenset({
    "INVALID-INVENTORY-AMOUNT",
    "INVENTORY-ZERO-QUANTITY",
    "ERC20: transfer amount exceeds balance",
    "ERC20: insufficient balance",
})


class ReclothesError(Exception):
    """Base class for every error raised by this package."""


class EncodingError(ReclothesError):
    """Arguments do not match the declared contract interface."""


class ChannelMismatchError(ReclothesError):
    """Sender/recipients differ from the channel that deployed the target."""


class LedgerRejectedError(ReclothesError):
    """The ledger refused or reverted a submission."""

    def __init__(self, reason: str, *, tx_hash: Optional[bytes] = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.tx_hash = HexBytes(tx_hash) if tx_hash is not None else None


class RoleRejectedError(LedgerRejectedError):
    """The sender lacks the role required by the contract method."""


class ResourcePreconditionError(LedgerRejectedError):
    """Balance, inventory or allowance is insufficient for the call."""


class AllowanceExceededError(ResourcePreconditionError):
    """A token spend exceeds the allowance granted to the spender."""


class UniquenessError(LedgerRejectedError):
    """An identifier is already bound to a previous record."""


class TransportError(LedgerRejectedError):
    """Node unreachable or timed out; the call outcome is indeterminate."""


def classify_revert(reason: str, *, tx_hash: Optional[bytes] = None) -> LedgerRejectedError:
    """Map a verbatim revert reason to the matching error category."""

    reason = (reason or "").strip()
    if reason in ROLE_REASONS or reason.startswith("AccessControl:"):
        cls = RoleRejectedError
    elif reason in ALLOWANCE_REASONS:
        cls = AllowanceExceededError
    elif reason in RESOURCE_REASONS:
        cls = ResourcePreconditionError
    elif reason.startswith("ALREADY-"):
        cls = UniquenessError
    else:
        cls = LedgerRejectedError
    return cls(reason or "transaction reverted", tx_hash=tx_hash)


def decode_revert_reason(data: Union[str, bytes, None]) -> str:
    """Decode an ``Error(string)`` revert payload into its reason string.

    Nodes report either the ABI-encoded payload or an already human readable
    message (``execution reverted: NOT-DEALER``); both are accepted.
    """

    if data is None:
        return ""
    if isinstance(data, str):
        text = data.strip()
        if text.startswith("execution reverted"):
            return text.partition(":")[2].strip()
        if not text.startswith("0x"):
            return text
        raw = bytes(HexBytes(text))
    else:
        raw = bytes(data)

    if raw[:4] == ERROR_SELECTOR:
        try:
            (reason,) = abi_decode(["string"], raw[4:])
        except DecodingError:
            return raw.hex()
        return reason
    if raw[:4] == PANIC_SELECTOR:
        try:
            (code,) = abi_decode(["uint256"], raw[4:])
        except DecodingError:
            return raw.hex()
        return f"Panic(0x{code:02x})"
    return raw.hex()


__all__ = [
    "AllowanceExceededError",
    "ChannelMismatchError",
    "EncodingError",
    "LedgerRejectedError",
    "ReclothesError",
    "ResourcePreconditionError",
    "RoleRejectedError",
    "TransportError",
    "UniquenessError",
    "classify_revert",
    "decode_revert_reason",
]
