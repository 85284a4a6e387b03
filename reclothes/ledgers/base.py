"""Abstract ledger clients the channel and settlement layers are written against."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple

from eth_account.signers.local import LocalAccount

from ..receipts import Receipt


@dataclass(frozen=True)
class PrivateTransaction:
    """A call (or deploy when ``to`` is ``None``) restricted to a privacy group."""

    to: Optional[str]
    data: bytes
    private_from: str
    private_for: Tuple[str, ...]
    signer: LocalAccount = field(compare=False, repr=False)

    @property
    def members(self) -> FrozenSet[str]:
        return frozenset((self.private_from, *self.private_for))


class PublicLedger(abc.ABC):
    """Client of the public chain."""

    @abc.abstractmethod
    async def send_transaction(self, sender: LocalAccount, to: Optional[str], data: bytes) -> Receipt:
        """Sign, submit and wait for a transaction.

        Reverts are reported either by raising a ``LedgerRejectedError``
        (pre-flight) or by a receipt whose ``status`` is false.
        """

    @abc.abstractmethod
    async def call(self, to: str, data: bytes, sender: Optional[str] = None) -> bytes:
        """Evaluate a read-only call against the latest state."""


class PrivateLedger(abc.ABC):
    """Client of one node's private transaction manager."""

    @abc.abstractmethod
    async def send_private_transaction(self, transaction: PrivateTransaction) -> bytes:
        """Submit *transaction* and return its hash once the node accepted it."""

    @abc.abstractmethod
    async def get_private_receipt(self, tx_hash: bytes, participant: str) -> Optional[Receipt]:
        """Return the private receipt, or ``None`` while it is not yet recorded."""

    @abc.abstractmethod
    async def call_private(self, transaction: PrivateTransaction) -> bytes:
        """Evaluate a read-only call against the privacy group's state."""


__all__ = ["PrivateLedger", "PrivateTransaction", "PublicLedger"]
