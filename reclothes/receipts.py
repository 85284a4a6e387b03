"""Ledger-neutral transaction receipts and event logs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from eth_utils import to_checksum_address
from hexbytes import HexBytes

from .errors import decode_revert_reason


def _to_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(str(value), 16) if str(value).startswith("0x") else int(value)


@dataclass(frozen=True)
class Log:
    """A single event log entry as emitted by a contract."""

    address: str
    topics: Tuple[bytes, ...]
    data: bytes

    @classmethod
    def from_rpc(cls, payload: Mapping[str, Any]) -> "Log":
        return cls(
            address=to_checksum_address(payload["address"]),
            topics=tuple(bytes(HexBytes(topic)) for topic in payload.get("topics", [])),
            data=bytes(HexBytes(payload.get("data") or b"")),
        )


@dataclass
class Receipt:
    """Outcome of a mined public or private transaction."""

    tx_hash: HexBytes
    status: bool
    block_number: Optional[int] = None
    contract_address: Optional[str] = None
    sender: Optional[str] = None
    logs: List[Log] = field(default_factory=list)
    revert_reason: Optional[str] = None

    @classmethod
    def from_rpc(cls, payload: Mapping[str, Any]) -> "Receipt":
        """Build a receipt from ``eth_getTransactionReceipt`` or ``priv_getTransactionReceipt``."""

        status = _to_int(payload.get("status"))
        contract_address = payload.get("contractAddress")
        sender = payload.get("from")
        reason = payload.get("revertReason")
        return cls(
            tx_hash=HexBytes(payload["transactionHash"]),
            status=status == 1,
            block_number=_to_int(payload.get("blockNumber")),
            contract_address=to_checksum_address(contract_address) if contract_address else None,
            sender=to_checksum_address(sender) if sender else None,
            logs=[Log.from_rpc(entry) for entry in payload.get("logs") or []],
            revert_reason=decode_revert_reason(reason) if reason else None,
        )


__all__ = ["Log", "Receipt"]
