"""Hyperledger Besu ledgers over JSON-RPC.

Public transactions are ordinary signed Ethereum transactions.  Private
transactions use the EEA extensions: the payload is RLP-encoded together with
``privateFrom``/``privateFor``/``restricted``, signed with the node account and
sent through ``eea_sendRawTransaction``.  Only the members' transaction
managers ever see the payload.
"""

from __future__ import annotations

import asyncio
import base64
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Sequence

import aiohttp
import rlp
from eth_account.signers.local import LocalAccount
from eth_keys import keys
from eth_utils import keccak, to_bytes, to_canonical_address, to_checksum_address, to_hex
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from ..errors import LedgerRejectedError, TransportError, classify_revert, decode_revert_reason
from ..receipts import Receipt
from .base import PrivateLedger, PrivateTransaction, PublicLedger


GAS_PRICE = int(os.getenv("GAS_PRICE", "0"))
GAS_LIMIT = int(os.getenv("GAS_LIMIT", "6000000"))
PRIVATE_GAS_LIMIT = int(os.getenv("PRIVATE_GAS_LIMIT", "3000000"))
RESTRICTED = b"restricted"


def _revert_reason(exc: ContractLogicError) -> str:
    data = exc.data
    if isinstance(data, str) and data.startswith("0x") and len(data) > 10:
        return decode_revert_reason(data)
    return decode_revert_reason(exc.message or str(exc))


@asynccontextmanager
async def _transport(url: str):
    try:
        yield
    except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
        raise TransportError(f"{url} unreachable: {exc}; outcome indeterminate") from exc


def encode_private_transaction(
    *,
    nonce: int,
    to: Optional[str],
    data: bytes,
    private_from: str,
    private_for: Sequence[str],
    private_key: bytes,
    chain_id: int,
    gas_price: int = GAS_PRICE,
    gas_limit: int = PRIVATE_GAS_LIMIT,
) -> bytes:
    """Return the signed raw private transaction (EIP-155 replay protected)."""

    head = [
        nonce,
        gas_price,
        gas_limit,
        to_canonical_address(to) if to else b"",
        0,
        bytes(data),
    ]
    tail = [
        base64.b64decode(private_from),
        [base64.b64decode(key) for key in private_for],
        RESTRICTED,
    ]
    message_hash = keccak(rlp.encode(head + [chain_id, 0, 0] + tail))
    signature = keys.PrivateKey(private_key).sign_msg_hash(message_hash)
    v = signature.v + chain_id * 2 + 35
    return rlp.encode(head + [v, signature.r, signature.s] + tail)


def decode_private_transaction(raw: bytes) -> Dict[str, Any]:
    """Inverse of :func:`encode_private_transaction`, recovering the signer."""

    fields = rlp.decode(bytes(raw))
    nonce, gas_price, gas_limit, to, value, data, v, r, s, private_from, private_for, restriction = fields
    v = int.from_bytes(v, "big")
    chain_id = (v - 35) // 2
    head = list(fields[:6])
    message_hash = keccak(rlp.encode(head + [chain_id, 0, 0] + [private_from, list(private_for), restriction]))
    signature = keys.Signature(vrs=(v - chain_id * 2 - 35, int.from_bytes(r, "big"), int.from_bytes(s, "big")))
    sender = signature.recover_public_key_from_msg_hash(message_hash).to_checksum_address()
    return {
        "nonce": int.from_bytes(nonce, "big"),
        "gasPrice": int.from_bytes(gas_price, "big"),
        "gas": int.from_bytes(gas_limit, "big"),
        "to": to_checksum_address(to) if to else None,
        "value": int.from_bytes(value, "big"),
        "data": bytes(data),
        "chainId": chain_id,
        "from": sender,
        "privateFrom": base64.b64encode(private_from).decode("ascii"),
        "privateFor": [base64.b64encode(key).decode("ascii") for key in private_for],
        "restriction": restriction.decode("ascii"),
    }


class BesuPublicLedger(PublicLedger):
    def __init__(self, url: str, chain_id: int, *, receipt_timeout: float = 120.0, w3: Optional[AsyncWeb3] = None) -> None:
        self.url = url
        self.chain_id = chain_id
        self.receipt_timeout = receipt_timeout
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(url))

    async def send_transaction(self, sender: LocalAccount, to: Optional[str], data: bytes) -> Receipt:
        async with _transport(self.url):
            tx: Dict[str, Any] = {
                "from": sender.address,
                "data": to_hex(data),
                "chainId": self.chain_id,
                "gasPrice": GAS_PRICE,
            }
            if to is not None:
                tx["to"] = to_checksum_address(to)
            try:
                tx["gas"] = await self.w3.eth.estimate_gas(tx)
            except ContractLogicError as exc:
                raise classify_revert(_revert_reason(exc)) from exc
            except Web3RPCError as exc:
                raise LedgerRejectedError(str(exc)) from exc

            tx["nonce"] = await self.w3.eth.get_transaction_count(sender.address, "pending")
            signed = sender.sign_transaction(tx)
            try:
                tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
            except Web3RPCError as exc:
                raise LedgerRejectedError(str(exc)) from exc
            try:
                raw = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
            except TimeExhausted as exc:
                raise TransportError(
                    f"No receipt for {to_hex(tx_hash)} after {self.receipt_timeout}s; outcome indeterminate",
                    tx_hash=tx_hash,
                ) from exc
        return Receipt.from_rpc(raw)

    async def call(self, to: str, data: bytes, sender: Optional[str] = None) -> bytes:
        request: Dict[str, Any] = {"to": to_checksum_address(to), "data": to_hex(data)}
        if sender:
            request["from"] = to_checksum_address(sender)
        async with _transport(self.url):
            try:
                return bytes(await self.w3.eth.call(request))
            except ContractLogicError as exc:
                raise classify_revert(_revert_reason(exc)) from exc
            except Web3RPCError as exc:
                raise LedgerRejectedError(str(exc)) from exc


class BesuPrivateLedger(PrivateLedger):
    """One Besu node paired with its private transaction manager (Orion/Tessera)."""

    def __init__(self, url: str, chain_id: int, *, w3: Optional[AsyncWeb3] = None) -> None:
        self.url = url
        self.chain_id = chain_id
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(url))

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        async with _transport(self.url):
            response = await self.w3.provider.make_request(method, params)
        error = response.get("error")
        if error:
            message = error.get("message", "") if isinstance(error, dict) else str(error)
            data = error.get("data") if isinstance(error, dict) else None
            raise classify_revert(decode_revert_reason(data or message))
        return response.get("result")

    async def send_private_transaction(self, transaction: PrivateTransaction) -> bytes:
        signer = transaction.signer
        nonce = await self._rpc(
            "priv_getEeaTransactionCount",
            [signer.address, transaction.private_from, list(transaction.private_for)],
        )
        raw = encode_private_transaction(
            nonce=int(nonce, 16) if isinstance(nonce, str) else int(nonce),
            to=transaction.to,
            data=transaction.data,
            private_from=transaction.private_from,
            private_for=transaction.private_for,
            private_key=bytes(signer.key),
            chain_id=self.chain_id,
        )
        result = await self._rpc("eea_sendRawTransaction", [to_hex(raw)])
        return to_bytes(hexstr=result)

    async def get_private_receipt(self, tx_hash: bytes, participant: str) -> Optional[Receipt]:
        result = await self._rpc("priv_getTransactionReceipt", [to_hex(tx_hash), participant])
        if not result:
            return None
        return Receipt.from_rpc(result)

    async def _privacy_group(self, members: Sequence[str]) -> str:
        groups = await self._rpc("priv_findPrivacyGroup", [sorted(members)])
        if not groups:
            raise LedgerRejectedError("no privacy group for the given privateFrom/privateFor")
        return groups[0]["privacyGroupId"]

    async def call_private(self, transaction: PrivateTransaction) -> bytes:
        group_id = await self._privacy_group(transaction.members)
        request = {
            "from": transaction.signer.address,
            "to": to_checksum_address(transaction.to),
            "data": to_hex(transaction.data),
        }
        result = await self._rpc("priv_call", [group_id, request, "latest"])
        return to_bytes(hexstr=result)


__all__ = [
    "BesuPrivateLedger",
    "BesuPublicLedger",
    "decode_private_transaction",
    "encode_private_transaction",
]
