"""Public settlement client.

Public calls are what the consortium observes.  A correlated settlement
carries the correlation token of a private action as its final argument; the
receiving contract enforces roles and balances but never verifies the token.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union

from eth_account.signers.local import LocalAccount

from .abi import ContractInterface
from .channel import CorrelationToken
from .errors import LedgerRejectedError, classify_revert
from .ledgers.base import PublicLedger
from .receipts import Receipt


@dataclass(frozen=True)
class PublicContract:
    address: str
    interface: ContractInterface = field(compare=False)


class PublicSettlementClient:
    """Sign and submit public calls through a :class:`PublicLedger`."""

    def __init__(self, ledger: PublicLedger) -> None:
        self.ledger = ledger

    async def transact(
        self,
        contract: PublicContract,
        method: str,
        args: Sequence[Any],
        sender: LocalAccount,
    ) -> Receipt:
        """Submit an uncorrelated public write and return its successful receipt."""

        data = contract.interface.encode_call(method, args)
        receipt = await self.ledger.send_transaction(sender, contract.address, data)
        if not receipt.status:
            raise classify_revert(receipt.revert_reason or "", tx_hash=receipt.tx_hash)
        return receipt

    async def submit_public_settlement(
        self,
        contract: PublicContract,
        method: str,
        args: Sequence[Any],
        token: CorrelationToken,
        sender: LocalAccount,
    ) -> Receipt:
        """Submit *method* with *token* appended as its final argument."""

        receipt = await self.transact(contract, method, (*args, token.value), sender)
        print(f"[settlement] {contract.interface.name}.{method} by {sender.address} settled {token}")
        return receipt

    async def call(
        self,
        contract: PublicContract,
        method: str,
        args: Sequence[Any] = (),
        *,
        as_dict: bool = False,
        sender: Optional[str] = None,
    ) -> Any:
        data = contract.interface.encode_call(method, args)
        raw = await self.ledger.call(contract.address, data, sender)
        return contract.interface.decode_output(method, raw, as_dict=as_dict)

    async def deploy(
        self,
        interface: ContractInterface,
        args: Sequence[Any],
        sender: LocalAccount,
        bytecode: Union[bytes, str, None] = None,
    ) -> PublicContract:
        data = interface.encode_deploy(bytecode, args)
        receipt = await self.ledger.send_transaction(sender, None, data)
        if not receipt.status:
            raise classify_revert(receipt.revert_reason or "", tx_hash=receipt.tx_hash)
        if not receipt.contract_address:
            raise LedgerRejectedError(f"Deploy of {interface.name} returned no address", tx_hash=receipt.tx_hash)
        print(f"[deploy] {interface.name} deployed at {receipt.contract_address}")
        return PublicContract(address=receipt.contract_address, interface=interface)


__all__ = ["PublicContract", "PublicSettlementClient"]
