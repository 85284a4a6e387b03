"""Private channel client: confidential contract calls inside a privacy group.

A private call is replicated only to the nodes named by its channel.  The hash
the private ledger assigns to it is returned as a :class:`CorrelationToken`;
public settlement calls carry that token so observers can link them to a
private action without learning its contents.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass, field
from typing import Any, FrozenSet, Optional, Sequence, Tuple, Union

from eth_account.signers.local import LocalAccount
from eth_utils import to_hex
from nacl.exceptions import CryptoError
from nacl.public import PublicKey

from .abi import ContractInterface
from .errors import ChannelMismatchError, LedgerRejectedError, TransportError, classify_revert
from .ledgers.base import PrivateLedger, PrivateTransaction
from .receipts import Receipt


RECEIPT_TIMEOUT = 120.0
POLL_INTERVAL = 0.5
TOKEN_LENGTH = 32


def validate_channel_key(key: str) -> str:
    """Check that *key* is a base64 Curve25519 public key of a transaction manager."""

    try:
        PublicKey(base64.b64decode(key, validate=True))
    except (binascii.Error, TypeError, ValueError, CryptoError) as exc:
        raise ValueError(f"Invalid channel key {key!r}") from exc
    return key


@dataclass(frozen=True)
class PrivateChannel:
    """Sender and recipients of a private call, plus the sender's signing account."""

    private_from: str
    private_for: Tuple[str, ...]
    signer: LocalAccount = field(compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "private_for", tuple(self.private_for))
        if not self.private_for:
            raise ValueError("A private channel needs at least one recipient")
        if self.private_from in self.private_for:
            raise ValueError("The sender cannot also be a recipient")
        for key in (self.private_from, *self.private_for):
            validate_channel_key(key)

    @property
    def members(self) -> FrozenSet[str]:
        return frozenset((self.private_from, *self.private_for))


@dataclass(frozen=True)
class PrivateContract:
    """A contract deployed privately; ``members`` is the deploying channel."""

    address: str
    interface: ContractInterface = field(compare=False)
    members: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class PrivateAction:
    contract: PrivateContract
    method: str
    args: Tuple[Any, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class CorrelationToken:
    """Opaque identifier of a recorded private transaction."""

    value: bytes

    def __post_init__(self) -> None:
        value = bytes(self.value)
        if len(value) != TOKEN_LENGTH:
            raise ValueError(f"Correlation tokens are {TOKEN_LENGTH} bytes, got {len(value)}")
        object.__setattr__(self, "value", value)

    def __bytes__(self) -> bytes:
        return self.value

    def hex(self) -> str:
        return to_hex(self.value)

    def __str__(self) -> str:
        return self.hex()


class PrivateChannelClient:
    """Submit and read private calls through one node's private ledger."""

    def __init__(
        self,
        ledger: PrivateLedger,
        *,
        receipt_timeout: float = RECEIPT_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ) -> None:
        self.ledger = ledger
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

    @staticmethod
    def _check_channel(contract: PrivateContract, channel: PrivateChannel) -> None:
        if channel.members != contract.members:
            raise ChannelMismatchError(
                f"{contract.interface.name} at {contract.address} was deployed for "
                f"{sorted(contract.members)}, not {sorted(channel.members)}"
            )

    def _transaction(self, to: Optional[str], data: bytes, channel: PrivateChannel) -> PrivateTransaction:
        return PrivateTransaction(
            to=to,
            data=data,
            private_from=channel.private_from,
            private_for=channel.private_for,
            signer=channel.signer,
        )

    async def _poll_receipt(self, tx_hash: bytes, participant: str) -> Receipt:
        while True:
            receipt = await self.ledger.get_private_receipt(tx_hash, participant)
            if receipt is not None:
                return receipt
            await asyncio.sleep(self.poll_interval)

    async def wait_for_receipt(self, tx_hash: bytes, participant: str) -> Receipt:
        try:
            return await asyncio.wait_for(self._poll_receipt(tx_hash, participant), self.receipt_timeout)
        except asyncio.TimeoutError as exc:
            raise TransportError(
                f"No private receipt for {to_hex(tx_hash)} after {self.receipt_timeout}s; outcome indeterminate",
                tx_hash=tx_hash,
            ) from exc

    async def _submit(self, to: Optional[str], data: bytes, channel: PrivateChannel) -> Receipt:
        tx_hash = await self.ledger.send_private_transaction(self._transaction(to, data, channel))
        receipt = await self.wait_for_receipt(tx_hash, channel.private_from)
        if not receipt.status:
            raise classify_revert(receipt.revert_reason or "", tx_hash=tx_hash)
        return receipt

    async def submit_private(self, action: PrivateAction, channel: PrivateChannel) -> CorrelationToken:
        """Record *action* in *channel* and return its correlation token.

        The channel is checked and the arguments encoded before anything is
        sent, so channel and encoding errors never reach the ledger.
        """

        self._check_channel(action.contract, channel)
        data = action.contract.interface.encode_call(action.method, action.args)
        receipt = await self._submit(action.contract.address, data, channel)
        token = CorrelationToken(bytes(receipt.tx_hash))
        print(f"[private] {action.contract.interface.name}.{action.method} recorded as {token}")
        return token

    async def deploy_private(
        self,
        interface: ContractInterface,
        channel: PrivateChannel,
        args: Sequence[Any] = (),
        bytecode: Union[bytes, str, None] = None,
    ) -> PrivateContract:
        """Deploy *interface* so that every member of *channel* holds it."""

        data = interface.encode_deploy(bytecode, args)
        receipt = await self._submit(None, data, channel)
        if not receipt.contract_address:
            raise LedgerRejectedError(f"Private deploy of {interface.name} returned no address", tx_hash=receipt.tx_hash)
        print(f"[private] {interface.name} deployed at {receipt.contract_address} for {len(channel.members)} members")
        return PrivateContract(address=receipt.contract_address, interface=interface, members=channel.members)

    async def call_private(
        self,
        contract: PrivateContract,
        method: str,
        args: Sequence[Any] = (),
        channel: Optional[PrivateChannel] = None,
        *,
        as_dict: bool = False,
    ) -> Any:
        """Read *method* from the channel's private state."""

        if channel is None:
            raise ValueError("Private reads need the channel the contract lives in")
        self._check_channel(contract, channel)
        data = contract.interface.encode_call(method, args)
        raw = await self.ledger.call_private(self._transaction(contract.address, data, channel))
        return contract.interface.decode_output(method, raw, as_dict=as_dict)

    async def fetch_receipt(self, token: CorrelationToken, channel: PrivateChannel) -> Receipt:
        receipt = await self.ledger.get_private_receipt(token.value, channel.private_from)
        if receipt is None:
            raise LedgerRejectedError(f"No private transaction {token} visible to this node", tx_hash=token.value)
        return receipt


__all__ = [
    "CorrelationToken",
    "PrivateAction",
    "PrivateChannel",
    "PrivateChannelClient",
    "PrivateContract",
    "validate_channel_key",
]
