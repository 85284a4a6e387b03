import json

import pytest
from eth_utils import keccak

from reclothes.abi import ContractInterface
from reclothes.contracts import PRIVATE_RECLOTHES_SHOP, RECLOTHES_SHOP, load_interface, load_interfaces
from reclothes.errors import EncodingError
from reclothes.receipts import Receipt


DEALER = "0x" + "11" * 20
SHOP = "0x" + "22" * 20


def test_selector_matches_solidity_signature():
    shop = load_interface(RECLOTHES_SHOP)
    spec = shop.method("decreaseStockForConfidentialBox")
    assert spec.signature == "decreaseStockForConfidentialBox(uint8[],uint256[],bytes32)"
    assert spec.selector == keccak(text=spec.signature)[:4]


def test_encode_call_round_trips_through_decode_call():
    shop = load_interface(RECLOTHES_SHOP)
    token = b"\x07" * 32
    data = shop.encode_call("transferRSCForConfidentialTx", (DEALER, 60, token))
    method, args = shop.decode_call(data)
    assert method == "transferRSCForConfidentialTx"
    assert args[1:] == (60, token)
    assert args[0].lower() == DEALER


def test_wrong_argument_count_fails_before_encoding():
    shop = load_interface(RECLOTHES_SHOP)
    with pytest.raises(EncodingError, match="expects 3 arguments"):
        shop.encode_call("decreaseStockForConfidentialBox", ([1], [2]))


def test_wrong_argument_type_is_an_encoding_error():
    shop = load_interface(RECLOTHES_SHOP)
    with pytest.raises(EncodingError):
        shop.encode_call("decreaseStockForConfidentialBox", ([1], [2], b"\x00" * 33))
    with pytest.raises(EncodingError):
        shop.encode_call("inventory", (256,))


def test_unknown_method_is_an_encoding_error():
    with pytest.raises(EncodingError, match="no method"):
        load_interface(PRIVATE_RECLOTHES_SHOP).encode_call("transferRGCForConfidentialTx", (1, b"\x00" * 32))


def test_overloaded_methods_are_rejected_at_construction():
    abi = [
        {"type": "function", "name": "buy", "inputs": [{"type": "uint256", "name": "id"}], "outputs": []},
        {"type": "function", "name": "buy", "inputs": [], "outputs": []},
    ]
    with pytest.raises(ValueError, match="overloaded"):
        ContractInterface("Broken", abi)


def test_invalid_type_is_rejected_at_construction():
    abi = [{"type": "function", "name": "f", "inputs": [{"type": "uint7", "name": "x"}], "outputs": []}]
    with pytest.raises(ValueError, match="Invalid ABI type"):
        ContractInterface("Broken", abi)


def test_event_encoding_and_lookup_in_receipt():
    shop = load_interface(RECLOTHES_SHOP)
    log = shop.encode_event("ConfidentialTokenTransfer", (DEALER, SHOP, 37, b"\x01" * 32), SHOP)
    receipt = Receipt(tx_hash=b"\x02" * 32, status=True, logs=[log])

    fields = shop.find_event(receipt, "ConfidentialTokenTransfer")
    assert fields["amount"] == 37
    assert fields["confidentialTxHash"] == b"\x01" * 32
    assert shop.find_event(receipt, "SaleableClothSold") is None
    assert [name for name, _ in shop.events_in(receipt)] == ["ConfidentialTokenTransfer"]


def test_decode_output_as_dict_uses_output_names():
    private = load_interface(PRIVATE_RECLOTHES_SHOP)
    raw = private.encode_output("idToBox", (5, "Jackets", 37, DEALER))
    values = private.decode_output("idToBox", raw, as_dict=True)
    assert values["id"] == 5
    assert values["evaluationInToken"] == 37
    assert private.decode_output("confidentialClothTypeToEvaluationPrice", private.encode_output(
        "confidentialClothTypeToEvaluationPrice", (16,))) == 16


def test_interface_from_artifact_directory(tmp_path):
    artifact = {"contractName": RECLOTHES_SHOP, "abi": load_interface(RECLOTHES_SHOP).abi, "bytecode": "0x6080"}
    for name, interface in load_interfaces().items():
        payload = dict(artifact, contractName=name, abi=interface.abi)
        (tmp_path / f"{name}.json").write_text(json.dumps(payload), encoding="utf-8")
    (tmp_path / "binary").mkdir()
    (tmp_path / "binary" / f"{PRIVATE_RECLOTHES_SHOP}.bin").write_text("6001\n", encoding="utf-8")

    interfaces = load_interfaces(tmp_path)
    assert bytes(interfaces[RECLOTHES_SHOP].bytecode) == bytes.fromhex("6080")
    assert bytes(interfaces[PRIVATE_RECLOTHES_SHOP].bytecode) == bytes.fromhex("6001")
    assert interfaces[RECLOTHES_SHOP].encode_deploy(None, (DEALER, SHOP))[:2] == bytes.fromhex("6080")
