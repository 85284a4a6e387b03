"""Published interfaces of the ReClothes contracts.

The Solidity sources are an external collaborator; only their ABI is
consumed here.  Compiled artifacts (``build/contracts/*.json``) can be loaded
instead of the bundled descriptors with :func:`load_interface`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .abi import ContractInterface


CLOTH_TYPES = 6

RESELLING_CREDIT = "ResellingCredit"
REGENERATION_CREDIT = "RegenerationCredit"
RECLOTHES_SHOP = "ReclothesShop"
PRIVATE_RECLOTHES_SHOP = "PrivateReclothesShop"


def _params(spec: Sequence[str], *, indexed: Sequence[str] = ()) -> List[Dict[str, Any]]:
    params = []
    for item in spec:
        kind, _, name = item.partition(" ")
        entry: Dict[str, Any] = {"type": kind, "name": name, "internalType": kind}
        if indexed:
            entry["indexed"] = name in indexed
        params.append(entry)
    return params


def _fn(name: str, inputs: Sequence[str] = (), outputs: Sequence[str] = (), mutability: str = "nonpayable") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": _params(inputs),
        "outputs": _params(outputs),
        "stateMutability": mutability,
    }


def _view(name: str, inputs: Sequence[str] = (), outputs: Sequence[str] = ()) -> Dict[str, Any]:
    return _fn(name, inputs, outputs, "view")


def _event(name: str, inputs: Sequence[str], indexed: Sequence[str] = ()) -> Dict[str, Any]:
    return {"type": "event", "name": name, "anonymous": False, "inputs": _params(inputs, indexed=indexed)}


def _constructor(inputs: Sequence[str]) -> Dict[str, Any]:
    return {"type": "constructor", "inputs": _params(inputs), "stateMutability": "nonpayable"}


BOX_OUTPUTS = ("uint256 id", "string description", "uint256 evaluationInToken", "address sender")
SALEABLE_CLOTH_OUTPUTS = (
    "uint256 id",
    "uint256 price",
    "uint8 clothType",
    "uint8 clothSize",
    "string description",
    "bytes32 extClothDataHash",
    "address buyer",
)
SALEABLE_CLOTH_ARGS = (
    "uint256 clothId",
    "uint256 rscPrice",
    "uint8 clothType",
    "uint8 clothSize",
    "string description",
    "bytes32 extClothDataHash",
)


def erc20_abi() -> List[Dict[str, Any]]:
    return [
        _constructor(["uint256 initialSupply"]),
        _view("name", outputs=["string"]),
        _view("symbol", outputs=["string"]),
        _view("decimals", outputs=["uint8"]),
        _view("totalSupply", outputs=["uint256"]),
        _view("balanceOf", ["address account"], ["uint256"]),
        _view("allowance", ["address owner", "address spender"], ["uint256"]),
        _fn("transfer", ["address recipient", "uint256 amount"], ["bool"]),
        _fn("approve", ["address spender", "uint256 amount"], ["bool"]),
        _fn("transferFrom", ["address sender", "address recipient", "uint256 amount"], ["bool"]),
        _fn("increaseAllowance", ["address spender", "uint256 addedValue"], ["bool"]),
        _fn("decreaseAllowance", ["address spender", "uint256 subtractedValue"], ["bool"]),
        _event("Transfer", ["address from", "address to", "uint256 value"], indexed=["from", "to"]),
        _event("Approval", ["address owner", "address spender", "uint256 value"], indexed=["owner", "spender"]),
    ]


def reclothes_shop_abi() -> List[Dict[str, Any]]:
    return [
        _constructor(["address resellingCreditAddress", "address regenerationCreditAddress"]),
        _view("reclothesDealer", outputs=["address"]),
        _view("resellingCreditInstance", outputs=["address"]),
        _view("regenerationCreditInstance", outputs=["address"]),
        _view("DEFAULT_ADMIN_ROLE", outputs=["bytes32"]),
        _view("CUSTOMER_ROLE", outputs=["bytes32"]),
        _view("RECYCLER_ROLE", outputs=["bytes32"]),
        _view("hasRole", ["bytes32 role", "address account"], ["bool"]),
        _view("inventory", ["uint8 clothType"], ["uint256"]),
        _view("clothTypeToEvaluationPrice", ["uint8 clothType"], ["uint256"]),
        _view("idToBox", ["uint256 boxId"], BOX_OUTPUTS),
        _view("boxToSecondHandClothes", ["uint256 boxId", "uint256 index"], ["uint8 clothType", "uint256 quantity"]),
        _view("idToSaleableCloth", ["uint256 clothId"], SALEABLE_CLOTH_OUTPUTS),
        _fn("registerAsCustomer"),
        _fn("renounceToCustomerRole"),
        _fn("grantRecyclerRole", ["address recycler"]),
        _fn("revokeRecyclerRole", ["address recycler"]),
        _fn("sendBoxForEvaluation", ["uint256 boxId", "string description", "uint8[] clothesTypes", "uint256[] quantities"]),
        _fn("evaluateBox", ["uint256 boxId", "uint256 extraAmountRSC"]),
        _fn("sellSecondHandCloth", SALEABLE_CLOTH_ARGS),
        _fn("buyCloth", ["uint256 clothId"]),
        _fn("decreaseStockForConfidentialBox", ["uint8[] clothesTypes", "uint256[] quantities", "bytes32 confidentialTxHash"]),
        _fn("transferRGCForConfidentialTx", ["uint256 rgcAmount", "bytes32 confidentialTxHash"]),
        _fn("transferRSCForConfidentialTx", ["address recycler", "uint256 rscAmount", "bytes32 confidentialTxHash"]),
        _fn("sellUpcycledCloth", list(SALEABLE_CLOTH_ARGS) + ["bytes32 confidentialTxHash"]),
        _event("CustomerRegistered", ["address user"]),
        _event("CustomerUnregistered", ["address customer"]),
        _event("RecyclerRoleGranted", ["address user"]),
        _event("RecyclerRoleRevoked", ["address recycler"]),
        _event("SecondHandBoxSent", ["uint256 boxId", "string description", "uint8[] clothesTypes", "uint256[] quantities"]),
        _event("SecondHandClothesStored", ["uint8 clothType", "uint256 quantity"]),
        _event("SecondHandBoxEvaluated", ["uint256 boxId", "uint256 rscAmount"]),
        _event("SaleableClothAdded", SALEABLE_CLOTH_ARGS),
        _event("SaleableClothSold", ["uint256 clothId", "uint256 rscPrice"]),
        _event("ConfidentialBoxSent", ["uint8[] clothesTypes", "uint256[] quantities", "bytes32 confidentialTxHash"]),
        _event(
            "ConfidentialTokenTransfer",
            ["address sender", "address receiver", "uint256 amount", "bytes32 confidentialTxHash"],
        ),
        _event("ConfidentialUpcycledClothOnSale", ["uint256 clothId", "bytes32 confidentialTxHash"]),
    ]


def private_reclothes_shop_abi() -> List[Dict[str, Any]]:
    return [
        _constructor([
            "address resellingCreditAddress",
            "address regenerationCreditAddress",
            "address reclothesShopAddress",
            "uint256[] confidentialPricing",
        ]),
        _view("resellingCreditInstance", outputs=["address"]),
        _view("regenerationCreditInstance", outputs=["address"]),
        _view("reclothesShopInstance", outputs=["address"]),
        _view("confidentialClothTypeToEvaluationPrice", ["uint8 clothType"], ["uint256"]),
        _view("idToBox", ["uint256 boxId"], BOX_OUTPUTS),
        _view("boxToSecondHandClothes", ["uint256 boxId", "uint256 index"], ["uint8 clothType", "uint256 quantity"]),
        _view("idToSaleableCloth", ["uint256 clothId"], SALEABLE_CLOTH_OUTPUTS),
        _fn("sendBoxForEvaluation", ["uint256 boxId", "string description", "uint8[] clothesTypes", "uint256[] quantities"]),
        _fn("evaluateBox", ["uint256 boxId", "uint256 extraAmountRGC"]),
        _fn("sellUpcycledCloth", SALEABLE_CLOTH_ARGS),
        _fn("buyCloth", ["uint256 clothId"]),
        _event("SecondHandBoxSent", ["uint256 boxId", "string description", "uint8[] clothesTypes", "uint256[] quantities"]),
        _event("SecondHandBoxEvaluated", ["uint256 boxId", "uint256 rgcAmount"]),
        _event("SaleableClothAdded", SALEABLE_CLOTH_ARGS),
        _event("SaleableClothSold", ["uint256 clothId", "uint256 rscPrice"]),
    ]


_BUNDLED = {
    RESELLING_CREDIT: erc20_abi,
    REGENERATION_CREDIT: erc20_abi,
    RECLOTHES_SHOP: reclothes_shop_abi,
    PRIVATE_RECLOTHES_SHOP: private_reclothes_shop_abi,
}


def load_interface(name: str, artifacts_dir: Union[str, Path, None] = None) -> ContractInterface:
    """Return the interface of contract *name*.

    With *artifacts_dir* the compiled ``<name>.json`` artifact is used (ABI
    and bytecode); a sibling ``binary/<name>.bin`` overrides the bytecode, as
    the private shop is deployed from its raw binary.
    """

    if artifacts_dir is None:
        try:
            factory = _BUNDLED[name]
        except KeyError as exc:
            raise ValueError(f"Unknown contract {name!r}") from exc
        return ContractInterface(name, factory())

    base = Path(artifacts_dir)
    interface = ContractInterface.from_artifact(base / f"{name}.json")
    binary = base / "binary" / f"{name}.bin"
    if binary.exists():
        code = binary.read_text(encoding="utf-8").strip()
        interface = ContractInterface(interface.name, interface.abi, code if code.startswith("0x") else "0x" + code)
    return interface


def load_interfaces(artifacts_dir: Union[str, Path, None] = None) -> Dict[str, ContractInterface]:
    return {name: load_interface(name, artifacts_dir) for name in _BUNDLED}


__all__ = [
    "CLOTH_TYPES",
    "PRIVATE_RECLOTHES_SHOP",
    "RECLOTHES_SHOP",
    "REGENERATION_CREDIT",
    "RESELLING_CREDIT",
    "load_interface",
    "load_interfaces",
]
