import asyncio
import base64
from types import SimpleNamespace

import aiohttp
import pytest
from eth_abi import encode
from eth_account import Account
from hexbytes import HexBytes
from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from reclothes.contracts import RECLOTHES_SHOP, load_interface
from reclothes.errors import LedgerRejectedError, RoleRejectedError, TransportError
from reclothes.ledgers.base import PrivateTransaction
from reclothes.ledgers.besu import (
    BesuPrivateLedger,
    BesuPublicLedger,
    decode_private_transaction,
    encode_private_transaction,
)
from reclothes.settlement import PublicContract, PublicSettlementClient


ACCOUNT = Account.from_key("0x" + "4c" * 32)
FROM_KEY = base64.b64encode(b"\x01" * 32).decode("ascii")
FOR_KEY = base64.b64encode(b"\x02" * 32).decode("ascii")
TARGET = "0x" + "ab" * 20
TX_HASH = "0x" + "cd" * 32


def _transaction(to=TARGET):
    return PrivateTransaction(to=to, data=b"\x12\x34", private_from=FROM_KEY, private_for=(FOR_KEY,), signer=ACCOUNT)


class FakeProvider:
    def __init__(self, responses):
        self.responses = dict(responses)
        self.requests = []

    async def make_request(self, method, params):
        self.requests.append((method, params))
        response = self.responses[method]
        if isinstance(response, Exception):
            raise response
        return response


def _ledger(responses):
    provider = FakeProvider(responses)
    return BesuPrivateLedger("http://node1:8545", 2018, w3=SimpleNamespace(provider=provider)), provider


def test_private_transaction_signature_recovers_the_sender():
    raw = encode_private_transaction(
        nonce=7, to=TARGET, data=b"\x12\x34", private_from=FROM_KEY, private_for=[FOR_KEY],
        private_key=bytes(ACCOUNT.key), chain_id=2018,
    )
    decoded = decode_private_transaction(raw)
    assert decoded["from"] == ACCOUNT.address
    assert decoded["nonce"] == 7
    assert decoded["chainId"] == 2018
    assert decoded["to"].lower() == TARGET
    assert decoded["data"] == b"\x12\x34"
    assert decoded["privateFrom"] == FROM_KEY
    assert decoded["privateFor"] == [FOR_KEY]
    assert decoded["restriction"] == "restricted"


def test_private_deploy_has_no_recipient_address():
    raw = encode_private_transaction(
        nonce=0, to=None, data=b"\x60\x80", private_from=FROM_KEY, private_for=[FOR_KEY],
        private_key=bytes(ACCOUNT.key), chain_id=1337,
    )
    assert decode_private_transaction(raw)["to"] is None


def test_send_private_transaction_uses_the_group_nonce():
    ledger, provider = _ledger({
        "priv_getEeaTransactionCount": {"result": "0x5"},
        "eea_sendRawTransaction": {"result": TX_HASH},
    })
    tx_hash = asyncio.run(ledger.send_private_transaction(_transaction()))

    assert tx_hash == bytes.fromhex("cd" * 32)
    method, params = provider.requests[0]
    assert method == "priv_getEeaTransactionCount"
    assert params == [ACCOUNT.address, FROM_KEY, [FOR_KEY]]
    raw = bytes.fromhex(provider.requests[1][1][0][2:])
    assert decode_private_transaction(raw)["nonce"] == 5


def test_pending_private_receipt_is_none():
    ledger, _ = _ledger({"priv_getTransactionReceipt": {"result": None}})
    assert asyncio.run(ledger.get_private_receipt(bytes.fromhex("cd" * 32), FROM_KEY)) is None


def test_private_receipt_revert_reason_is_decoded():
    reason = "0x08c379a0" + encode(["string"], ["NOT-RECYCLER"]).hex()
    ledger, _ = _ledger({"priv_getTransactionReceipt": {"result": {
        "transactionHash": TX_HASH,
        "status": "0x0",
        "blockNumber": "0x10",
        "from": ACCOUNT.address,
        "logs": [],
        "revertReason": reason,
    }}})
    receipt = asyncio.run(ledger.get_private_receipt(bytes.fromhex("cd" * 32), FROM_KEY))
    assert receipt.status is False
    assert receipt.block_number == 16
    assert receipt.revert_reason == "NOT-RECYCLER"


def test_rpc_errors_are_classified():
    ledger, _ = _ledger({
        "priv_findPrivacyGroup": {"result": [{"privacyGroupId": "group-1"}]},
        "priv_call": {"error": {"code": -32000, "message": "execution reverted: NOT-DEALER"}},
    })
    with pytest.raises(RoleRejectedError, match="NOT-DEALER"):
        asyncio.run(ledger.call_private(_transaction()))


def test_private_call_targets_the_privacy_group():
    ledger, provider = _ledger({
        "priv_findPrivacyGroup": {"result": [{"privacyGroupId": "group-1"}]},
        "priv_call": {"result": "0x" + "00" * 31 + "2a"},
    })
    assert asyncio.run(ledger.call_private(_transaction())) == b"\x00" * 31 + b"\x2a"
    assert provider.requests[0] == ("priv_findPrivacyGroup", [sorted([FROM_KEY, FOR_KEY])])
    assert provider.requests[1][1][0] == "group-1"


def test_unreachable_node_is_a_transport_error():
    ledger, _ = _ledger({"priv_getTransactionReceipt": aiohttp.ClientConnectionError("refused")})
    with pytest.raises(TransportError, match="indeterminate"):
        asyncio.run(ledger.get_private_receipt(bytes.fromhex("cd" * 32), FROM_KEY))


class FakeEth:
    def __init__(self, **overrides):
        self.overrides = overrides
        self.sent = []

    async def _answer(self, name, default):
        value = self.overrides.get(name, default)
        if isinstance(value, Exception):
            raise value
        return value

    async def estimate_gas(self, tx):
        return await self._answer("estimate_gas", 21000)

    async def get_transaction_count(self, address, block):
        return await self._answer("get_transaction_count", 3)

    async def send_raw_transaction(self, raw):
        self.sent.append(raw)
        return await self._answer("send_raw_transaction", HexBytes(TX_HASH))

    async def wait_for_transaction_receipt(self, tx_hash, timeout):
        return await self._answer("wait_for_transaction_receipt", {
            "transactionHash": HexBytes(TX_HASH), "status": 1, "blockNumber": 9, "logs": [],
        })

    async def call(self, request):
        return await self._answer("call", HexBytes("0x" + "00" * 31 + "07"))


def _public(**overrides):
    eth = FakeEth(**overrides)
    return BesuPublicLedger("http://node1:8545", 2018, receipt_timeout=0.1, w3=SimpleNamespace(eth=eth)), eth


def test_public_transaction_is_signed_and_mined():
    ledger, eth = _public()
    receipt = asyncio.run(ledger.send_transaction(ACCOUNT, TARGET, b"\x12\x34"))
    assert receipt.status is True
    assert receipt.block_number == 9
    assert len(eth.sent) == 1


def test_public_revert_during_estimation_is_classified():
    ledger, eth = _public(estimate_gas=ContractLogicError("execution reverted: NOT-DEALER"))
    with pytest.raises(RoleRejectedError, match="NOT-DEALER"):
        asyncio.run(ledger.send_transaction(ACCOUNT, TARGET, b"\x12\x34"))
    assert eth.sent == []


def test_failed_public_receipt_raises_on_settlement():
    ledger, _ = _public(wait_for_transaction_receipt={
        "transactionHash": HexBytes(TX_HASH), "status": 0, "blockNumber": 9, "logs": [],
    })
    client = PublicSettlementClient(ledger)
    contract = PublicContract(TARGET, load_interface(RECLOTHES_SHOP))
    with pytest.raises(LedgerRejectedError) as excinfo:
        asyncio.run(client.transact(contract, "registerAsCustomer", (), ACCOUNT))
    assert excinfo.value.tx_hash == HexBytes(TX_HASH)


def test_missing_public_receipt_is_indeterminate():
    ledger, _ = _public(wait_for_transaction_receipt=TimeExhausted("not mined"))
    with pytest.raises(TransportError, match="indeterminate") as excinfo:
        asyncio.run(ledger.send_transaction(ACCOUNT, TARGET, b"\x12\x34"))
    assert excinfo.value.tx_hash == HexBytes(TX_HASH)


def test_node_rejection_on_send_is_a_ledger_error():
    ledger, _ = _public(send_raw_transaction=Web3RPCError("nonce too low"))
    with pytest.raises(LedgerRejectedError, match="nonce too low"):
        asyncio.run(ledger.send_transaction(ACCOUNT, TARGET, b"\x12\x34"))


def test_public_call_errors_stay_in_the_taxonomy():
    ledger, _ = _public()
    assert asyncio.run(ledger.call(TARGET, b"\x12\x34")) == b"\x00" * 31 + b"\x07"

    ledger, _ = _public(call=Web3RPCError("method handler crashed"))
    with pytest.raises(LedgerRejectedError, match="handler crashed") as excinfo:
        asyncio.run(ledger.call(TARGET, b"\x12\x34"))
    assert type(excinfo.value) is LedgerRejectedError

    ledger, _ = _public(call=aiohttp.ServerDisconnectedError())
    with pytest.raises(TransportError):
        asyncio.run(ledger.call(TARGET, b"\x12\x34"))
