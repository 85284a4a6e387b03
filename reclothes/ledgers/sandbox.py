"""In-memory ledger network with Python models of the contracts.

Every chain is a hash-linked list of blocks, one block per transaction, each
block committing to its transaction hashes through a Merkle root.  The
network holds one public chain and one private chain per privacy group;
private contracts may read, but never write, public contract state.
"""

from __future__ import annotations

import copy
import time
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Type

import rlp
from eth_account.signers.local import LocalAccount
from eth_utils import keccak, to_canonical_address, to_checksum_address, to_hex
from hexbytes import HexBytes

from ..abi import ContractInterface
from ..errors import EncodingError, LedgerRejectedError, classify_revert
from ..receipts import Log, Receipt
from ..utils.merkle import compute_merkle_root
from ..utils.serialization import canonical_hash
from .base import PrivateLedger, PrivateTransaction, PublicLedger


GENESIS_HASH = "0" * 64
BYTECODE_PREFIX = "reclothes-sandbox:"


def sandbox_bytecode(name: str) -> bytes:
    """Placeholder bytecode identifying the Python model of contract *name*."""

    return keccak(text=BYTECODE_PREFIX + name)


def compute_hash(block: "Block") -> str:
    """Hash of a block header; transaction bodies are covered by the Merkle root."""

    return canonical_hash({
        "index": block.index,
        "timestamp": block.timestamp,
        "merkle_root": block.merkle_root,
        "previous_hash": block.previous_hash,
    }).hex()


@dataclass
class Block:
    index: int
    timestamp: float
    transactions: List[str]
    previous_hash: str
    hash: str = ""
    merkle_root: str = ""

    def __post_init__(self):
        if not self.merkle_root:
            self.merkle_root = compute_merkle_root([bytes.fromhex(tx) for tx in self.transactions])
        if not self.hash:
            self.hash = compute_hash(self)


class Revert(Exception):
    """Raised by contract models; rolls back every state change of the call."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


def require(condition: bool, reason: str) -> None:
    if not condition:
        raise Revert(reason)


def external(name: Optional[str] = None):
    """Expose a model method under the ABI method *name*."""

    def decorator(func):
        func.__external__ = name or func.__name__
        return func

    return decorator


class ContractModel:
    """Python stand-in for a deployed contract.

    State lives in ``self.storage`` so a transaction can be rolled back by
    restoring a snapshot of it.
    """

    name: str = ""
    _handlers: Dict[str, str] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        handlers = {}
        for klass in reversed(cls.__mro__):
            for attr, value in vars(klass).items():
                method_name = getattr(value, "__external__", None)
                if method_name:
                    handlers[method_name] = attr
        cls._handlers = handlers

    def __init__(self, address: str, interface: ContractInterface) -> None:
        self.address = address
        self.interface = interface
        self.storage: Dict[str, Any] = {}

    def setup(self, ctx: "CallContext", *args: Any) -> None:
        """Constructor body."""

    def dispatch(self, ctx: "CallContext", method: str, args: Tuple[Any, ...]) -> Tuple[Any, ...]:
        attr = self._handlers.get(method)
        if attr is None:
            raise Revert(f"{self.name}: method {method} not implemented")
        result = getattr(self, attr)(ctx, *args)
        if result is None:
            return ()
        return result if isinstance(result, tuple) else (result,)


@dataclass
class CallContext:
    """Execution environment handed to contract models (``msg.sender`` and friends)."""

    chain: "SandboxChain"
    sender: str
    address: str
    logs: List[Log]
    read_only: bool = False

    def emit(self, event: str, *values: Any) -> None:
        model = self.chain.contracts[self.address]
        self.logs.append(model.interface.encode_event(event, values, self.address))

    def call(self, address: str, method: str, *args: Any) -> Any:
        """Call another contract with this contract as ``msg.sender``.

        Addresses unknown to the current chain are looked up on its public
        parent, read-only.
        """

        address = to_checksum_address(address)
        chain = self.chain
        read_only = self.read_only
        if address not in chain.contracts and chain.parent is not None:
            chain = chain.parent
            read_only = True
        outputs = chain.invoke(self.address, address, method, args, self.logs if chain is self.chain else [], read_only)
        if len(outputs) == 1:
            return outputs[0]
        return outputs


ModelFactory = Type[ContractModel]


class SandboxChain:
    """A single hash-linked chain and the contract state it carries."""

    def __init__(self, label: str, registry: Dict[bytes, Tuple[ContractInterface, ModelFactory]],
                 parent: Optional["SandboxChain"] = None) -> None:
        self.label = label
        self.registry = registry
        self.parent = parent
        self.chain: List[Block] = [Block(index=0, timestamp=time.time(), transactions=[], previous_hash=GENESIS_HASH)]
        self.receipts: Dict[bytes, Receipt] = {}
        self.nonces: Dict[str, int] = {}
        self.contracts: Dict[str, ContractModel] = {}

    def _snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {address: copy.deepcopy(model.storage) for address, model in self.contracts.items()}

    def _restore(self, snapshot: Dict[str, Dict[str, Any]]) -> None:
        for address in list(self.contracts):
            if address not in snapshot:
                del self.contracts[address]
            else:
                self.contracts[address].storage = snapshot[address]

    def invoke(self, sender: str, address: str, method: str, args: Tuple[Any, ...],
               logs: List[Log], read_only: bool = False) -> Tuple[Any, ...]:
        model = self.contracts.get(address)
        if model is None:
            raise Revert(f"no contract at {address}")
        spec = model.interface.method(method)
        if read_only and not spec.read_only:
            raise Revert(f"{model.name}.{method} cannot modify state from a read-only call")
        ctx = CallContext(chain=self, sender=sender, address=address, logs=logs, read_only=read_only)
        if not read_only:
            return model.dispatch(ctx, method, args)
        snapshot = self._snapshot()
        try:
            return model.dispatch(ctx, method, args)
        finally:
            self._restore(snapshot)

    def _deploy(self, sender: str, nonce: int, data: bytes, logs: List[Log]) -> str:
        code, ctor_data = data[:32], data[32:]
        try:
            interface, factory = self.registry[code]
        except KeyError as exc:
            raise Revert("unknown bytecode") from exc
        fields = [to_canonical_address(sender), nonce]
        if self.parent is not None:
            # private addresses also depend on the group
            fields.append(self.label.encode("utf-8"))
        address = to_checksum_address(keccak(rlp.encode(fields))[12:])
        model = factory(address, interface)
        self.contracts[address] = model
        ctx = CallContext(chain=self, sender=sender, address=address, logs=logs)
        model.setup(ctx, *interface.decode_constructor(ctor_data))
        return address

    def transact(self, sender: str, to: Optional[str], data: bytes,
                 extra: Optional[Dict[str, Any]] = None) -> Receipt:
        """Execute and mine one transaction; a revert is mined with a failed status."""

        sender = to_checksum_address(sender)
        nonce = self.nonces.get(sender, 0)
        self.nonces[sender] = nonce + 1
        tx = {
            "chain": self.label,
            "from": sender,
            "to": to,
            "nonce": nonce,
            "data": to_hex(data),
        }
        tx.update(extra or {})
        tx_hash = canonical_hash(tx)

        logs: List[Log] = []
        contract_address = None
        revert_reason = None
        snapshot = self._snapshot()
        try:
            if to is None:
                contract_address = self._deploy(sender, nonce, bytes(data), logs)
            else:
                to = to_checksum_address(to)
                if to in self.contracts:
                    model = self.contracts[to]
                    method, args = model.interface.decode_call(data)
                    self.invoke(sender, to, method, args, logs)
        except (Revert, EncodingError) as exc:
            self._restore(snapshot)
            logs = []
            contract_address = None
            revert_reason = exc.reason if isinstance(exc, Revert) else ""
        except Exception:
            # a model bug is not a revert: nothing is mined and the nonce is unused
            self._restore(snapshot)
            self.nonces[sender] = nonce
            raise

        block = self._append_block([tx_hash.hex()])
        receipt = Receipt(
            tx_hash=HexBytes(tx_hash),
            status=revert_reason is None,
            block_number=block.index,
            contract_address=contract_address,
            sender=sender,
            logs=logs,
            revert_reason=revert_reason,
        )
        self.receipts[tx_hash] = receipt
        if revert_reason is not None:
            print(f"[sandbox] {self.label}: tx {to_hex(tx_hash)} reverted: {revert_reason or 'no reason'}")
        return receipt

    def call(self, to: str, data: bytes, sender: Optional[str] = None) -> bytes:
        to = to_checksum_address(to)
        model = self.contracts.get(to)
        if model is None:
            raise LedgerRejectedError(f"No contract at {to} on {self.label}")
        method, args = model.interface.decode_call(data)
        try:
            outputs = self.invoke(to_checksum_address(sender) if sender else to, to, method, args, [], read_only=True)
        except Revert as exc:
            raise classify_revert(exc.reason) from exc
        return model.interface.encode_output(method, outputs)

    def _append_block(self, transactions: List[str]) -> Block:
        previous = self.chain[-1]
        block = Block(
            index=len(self.chain),
            timestamp=max(time.time(), previous.timestamp + 1e-6),
            transactions=transactions,
            previous_hash=previous.hash,
        )
        self.chain.append(block)
        return block

    def is_chain_valid(self) -> bool:
        """Check hash links, Merkle roots and header hashes of every block."""
        for i in range(1, len(self.chain)):
            block = self.chain[i]
            prev = self.chain[i - 1]
            if block.previous_hash != prev.hash:
                print(f"[sandbox] {self.label}: invalid link at block {i}")
                return False
            if block.merkle_root != compute_merkle_root([bytes.fromhex(tx) for tx in block.transactions]):
                print(f"[sandbox] {self.label}: invalid merkle root at block {i}")
                return False
            if compute_hash(block) != block.hash:
                print(f"[sandbox] {self.label}: invalid hash at block {i}")
                return False
        return True


class SandboxNetwork:
    """Public chain plus one private chain per privacy group."""

    def __init__(self, registry: Dict[bytes, Tuple[ContractInterface, ModelFactory]]) -> None:
        self.registry = registry
        self.public = SandboxChain("public", registry)
        self.groups: Dict[FrozenSet[str], SandboxChain] = {}
        self.private_receipts: Dict[bytes, Tuple[FrozenSet[str], Receipt]] = {}

    @classmethod
    def with_models(cls, models: Dict[str, Tuple[ContractInterface, ModelFactory]]) -> "SandboxNetwork":
        return cls({sandbox_bytecode(name): entry for name, entry in models.items()})

    def group(self, members: FrozenSet[str], *, create: bool = False) -> Optional[SandboxChain]:
        chain = self.groups.get(members)
        if chain is None and create:
            label = "private:" + keccak(text=",".join(sorted(members))).hex()[:16]
            chain = SandboxChain(label, self.registry, parent=self.public)
            self.groups[members] = chain
            print(f"[sandbox] created privacy group {label} with {len(members)} members")
        return chain


class SandboxPublicLedger(PublicLedger):
    def __init__(self, network: SandboxNetwork) -> None:
        self.network = network

    async def send_transaction(self, sender: LocalAccount, to: Optional[str], data: bytes) -> Receipt:
        return self.network.public.transact(sender.address, to, data)

    async def call(self, to: str, data: bytes, sender: Optional[str] = None) -> bytes:
        return self.network.public.call(to, data, sender)


class SandboxPrivateLedger(PrivateLedger):
    """Private transaction manager of one node, identified by its channel key.

    ``pending_polls`` delays receipt visibility by that many lookups, the way
    a real node only reports a receipt once the marker transaction is mined.
    """

    def __init__(self, network: SandboxNetwork, channel_key: str, *, pending_polls: int = 0) -> None:
        self.network = network
        self.channel_key = channel_key
        self.pending_polls = pending_polls
        self._polls: Dict[bytes, int] = {}

    def _check_sender(self, transaction: PrivateTransaction) -> None:
        if transaction.private_from != self.channel_key:
            raise LedgerRejectedError("privateFrom does not match the node's transaction manager key")

    async def send_private_transaction(self, transaction: PrivateTransaction) -> bytes:
        self._check_sender(transaction)
        members = transaction.members
        chain = self.network.group(members, create=transaction.to is None)
        if chain is None:
            raise LedgerRejectedError("no privacy group for the given privateFrom/privateFor")
        receipt = chain.transact(
            transaction.signer.address,
            transaction.to,
            transaction.data,
            extra={"privateFrom": transaction.private_from, "privateFor": sorted(transaction.private_for)},
        )
        tx_hash = bytes(receipt.tx_hash)
        self.network.private_receipts[tx_hash] = (members, receipt)
        return tx_hash

    async def get_private_receipt(self, tx_hash: bytes, participant: str) -> Optional[Receipt]:
        entry = self.network.private_receipts.get(bytes(tx_hash))
        if entry is None or participant not in entry[0]:
            return None
        seen = self._polls.get(bytes(tx_hash), 0)
        if seen < self.pending_polls:
            self._polls[bytes(tx_hash)] = seen + 1
            return None
        return entry[1]

    async def call_private(self, transaction: PrivateTransaction) -> bytes:
        self._check_sender(transaction)
        chain = self.network.group(transaction.members)
        if chain is None:
            raise LedgerRejectedError("no privacy group for the given privateFrom/privateFor")
        return chain.call(transaction.to, transaction.data, transaction.signer.address)


__all__ = [
    "Block",
    "CallContext",
    "ContractModel",
    "Revert",
    "SandboxChain",
    "SandboxNetwork",
    "SandboxPrivateLedger",
    "SandboxPublicLedger",
    "external",
    "require",
    "sandbox_bytecode",
]
