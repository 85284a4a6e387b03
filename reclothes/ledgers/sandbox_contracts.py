"""Python models of the ReClothes contracts for the sandbox network.

They mirror the published behaviour of the Solidity contracts closely enough
for the revert reasons, events and balances the clients rely on.
"""

from __future__ import annotations

from typing import Any, Dict, Sequence, Tuple

from eth_utils import keccak, to_checksum_address

from ..contracts import (
    CLOTH_TYPES,
    PRIVATE_RECLOTHES_SHOP,
    RECLOTHES_SHOP,
    REGENERATION_CREDIT,
    RESELLING_CREDIT,
    load_interface,
)
from .sandbox import CallContext, ContractModel, SandboxNetwork, external, require


ZERO_ADDRESS = "0x" + "00" * 20
ZERO_HASH = b"\x00" * 32

DEFAULT_ADMIN_ROLE = ZERO_HASH
CUSTOMER_ROLE = keccak(text="CUSTOMER")
RECYCLER_ROLE = keccak(text="RECYCLER")

# OTHER, TSHIRT, PANTS, JACKET, DRESS, SHIRT
EVALUATION_PRICING = (2, 4, 7, 15, 8, 10)


class ERC20Model(ContractModel):
    """OpenZeppelin 3.x ERC20 with ``increaseAllowance``/``decreaseAllowance``."""

    symbol = ""

    def setup(self, ctx: CallContext, initial_supply: int) -> None:
        self.storage.update(balances={ctx.sender: initial_supply}, allowances={}, total_supply=initial_supply)
        ctx.emit("Transfer", ZERO_ADDRESS, ctx.sender, initial_supply)

    def _balance(self, account: str) -> int:
        return self.storage["balances"].get(account, 0)

    def _allowance(self, owner: str, spender: str) -> int:
        return self.storage["allowances"].get(owner, {}).get(spender, 0)

    def _transfer(self, ctx: CallContext, sender: str, recipient: str, amount: int) -> None:
        require(sender != ZERO_ADDRESS, "ERC20: transfer from the zero address")
        require(recipient != ZERO_ADDRESS, "ERC20: transfer to the zero address")
        balances = self.storage["balances"]
        require(balances.get(sender, 0) >= amount, "ERC20: transfer amount exceeds balance")
        balances[sender] = balances.get(sender, 0) - amount
        balances[recipient] = balances.get(recipient, 0) + amount
        ctx.emit("Transfer", sender, recipient, amount)

    def _approve(self, ctx: CallContext, owner: str, spender: str, amount: int) -> None:
        require(spender != ZERO_ADDRESS, "ERC20: approve to the zero address")
        self.storage["allowances"].setdefault(owner, {})[spender] = amount
        ctx.emit("Approval", owner, spender, amount)

    @external("name")
    def get_name(self, ctx):
        return self.name

    @external("symbol")
    def get_symbol(self, ctx):
        return self.symbol

    @external()
    def decimals(self, ctx):
        return 18

    @external()
    def totalSupply(self, ctx):
        return self.storage["total_supply"]

    @external()
    def balanceOf(self, ctx, account):
        return self._balance(account)

    @external()
    def allowance(self, ctx, owner, spender):
        return self._allowance(owner, spender)

    @external()
    def transfer(self, ctx, recipient, amount):
        self._transfer(ctx, ctx.sender, recipient, amount)
        return True

    @external()
    def approve(self, ctx, spender, amount):
        self._approve(ctx, ctx.sender, spender, amount)
        return True

    @external()
    def transferFrom(self, ctx, sender, recipient, amount):
        self._transfer(ctx, sender, recipient, amount)
        current = self._allowance(sender, ctx.sender)
        require(current >= amount, "ERC20: transfer amount exceeds allowance")
        self._approve(ctx, sender, ctx.sender, current - amount)
        return True

    @external()
    def increaseAllowance(self, ctx, spender, added_value):
        self._approve(ctx, ctx.sender, spender, self._allowance(ctx.sender, spender) + added_value)
        return True

    @external()
    def decreaseAllowance(self, ctx, spender, subtracted_value):
        current = self._allowance(ctx.sender, spender)
        require(current >= subtracted_value, "ERC20: decreased allowance below zero")
        self._approve(ctx, ctx.sender, spender, current - subtracted_value)
        return True


class ResellingCreditModel(ERC20Model):
    name = RESELLING_CREDIT
    symbol = "RSC"


class RegenerationCreditModel(ERC20Model):
    name = REGENERATION_CREDIT
    symbol = "RGC"


# Solidity 0.8 reverts with this panic when a uint8 does not fit the ClothType enum
ENUM_CONVERSION_PANIC = "Panic(0x21)"


def _check_cloth_type(cloth_type: int) -> None:
    require(0 <= cloth_type < CLOTH_TYPES, ENUM_CONVERSION_PANIC)


def _check_box_arrays(types: Sequence[int], quantities: Sequence[int]) -> None:
    require(len(types) == len(quantities) and len(types) <= CLOTH_TYPES, "INVALID-ARRAYS")
    for cloth_type in types:
        _check_cloth_type(cloth_type)
    for quantity in quantities:
        require(quantity > 0, "ZERO-QUANTITY")


class _ShopStorage(ContractModel):
    """Boxes and saleable clothes shared by the public and private shop."""

    def _init_shop(self, rsc: str, rgc: str) -> None:
        self.storage.update(rsc=rsc, rgc=rgc, boxes={}, box_clothes={}, clothes={})

    def _box(self, box_id: int) -> Dict[str, Any]:
        return self.storage["boxes"].get(box_id, {"id": 0, "description": "", "evaluation": 0, "sender": ZERO_ADDRESS})

    def _store_box(self, ctx: CallContext, box_id: int, description: str, types, quantities) -> None:
        require(box_id not in self.storage["boxes"], "ALREADY-USED-ID")
        self.storage["boxes"][box_id] = {"id": box_id, "description": description, "evaluation": 0, "sender": ctx.sender}
        self.storage["box_clothes"][box_id] = [(int(kind), int(qty)) for kind, qty in zip(types, quantities)]
        ctx.emit("SecondHandBoxSent", box_id, description, list(types), list(quantities))

    def _open_box(self, box_id: int) -> Dict[str, Any]:
        box = self.storage["boxes"].get(box_id)
        require(box is not None, "NOT-BOX")
        require(box["evaluation"] == 0, "ALREADY-EVALUATED")
        return box

    def _add_cloth(self, ctx: CallContext, cloth_id, price, cloth_type, cloth_size, description, ext_hash) -> None:
        require(cloth_id not in self.storage["clothes"], "ALREADY-SALEABLE-CLOTH")
        self.storage["clothes"][cloth_id] = {
            "id": cloth_id,
            "price": price,
            "type": cloth_type,
            "size": cloth_size,
            "description": description,
            "ext_hash": bytes(ext_hash),
            "buyer": ZERO_ADDRESS,
        }
        ctx.emit("SaleableClothAdded", cloth_id, price, cloth_type, cloth_size, description, bytes(ext_hash))

    def _sell_cloth(self, ctx: CallContext, cloth_id: int) -> Dict[str, Any]:
        cloth = self.storage["clothes"].get(cloth_id)
        require(cloth is not None, "INVALID-CLOTH")
        require(cloth["buyer"] == ZERO_ADDRESS, "ALREADY-SOLD")
        cloth["buyer"] = ctx.sender
        return cloth

    @external()
    def resellingCreditInstance(self, ctx):
        return self.storage["rsc"]

    @external()
    def regenerationCreditInstance(self, ctx):
        return self.storage["rgc"]

    @external()
    def idToBox(self, ctx, box_id):
        box = self._box(box_id)
        return box["id"], box["description"], box["evaluation"], box["sender"]

    @external()
    def boxToSecondHandClothes(self, ctx, box_id, index):
        clothes = self.storage["box_clothes"].get(box_id, [])
        require(index < len(clothes), "")
        return clothes[index]

    @external()
    def idToSaleableCloth(self, ctx, cloth_id):
        cloth = self.storage["clothes"].get(cloth_id)
        if cloth is None:
            return 0, 0, 0, 0, "", ZERO_HASH, ZERO_ADDRESS
        return (
            cloth["id"], cloth["price"], cloth["type"], cloth["size"],
            cloth["description"], cloth["ext_hash"], cloth["buyer"],
        )


class ReclothesShopModel(_ShopStorage):
    name = RECLOTHES_SHOP

    def setup(self, ctx: CallContext, rsc: str, rgc: str) -> None:
        self._init_shop(rsc, rgc)
        self.storage.update(
            dealer=ctx.sender,
            roles={DEFAULT_ADMIN_ROLE: {ctx.sender}, CUSTOMER_ROLE: set(), RECYCLER_ROLE: set()},
            inventory=[0] * CLOTH_TYPES,
            pricing=list(EVALUATION_PRICING),
        )

    def _has(self, role: bytes, account: str) -> bool:
        return account in self.storage["roles"].get(role, set())

    def _only_dealer(self, ctx: CallContext) -> str:
        dealer = self.storage["dealer"]
        require(ctx.sender == dealer, "NOT-DEALER")
        return dealer

    @external()
    def reclothesDealer(self, ctx):
        return self.storage["dealer"]

    @external("DEFAULT_ADMIN_ROLE")
    def default_admin_role(self, ctx):
        return DEFAULT_ADMIN_ROLE

    @external("CUSTOMER_ROLE")
    def customer_role(self, ctx):
        return CUSTOMER_ROLE

    @external("RECYCLER_ROLE")
    def recycler_role(self, ctx):
        return RECYCLER_ROLE

    @external()
    def hasRole(self, ctx, role, account):
        return self._has(bytes(role), account)

    @external()
    def inventory(self, ctx, cloth_type):
        _check_cloth_type(cloth_type)
        return self.storage["inventory"][cloth_type]

    @external()
    def clothTypeToEvaluationPrice(self, ctx, cloth_type):
        _check_cloth_type(cloth_type)
        return self.storage["pricing"][cloth_type]

    @external()
    def registerAsCustomer(self, ctx):
        require(ctx.sender != self.storage["dealer"], "ALREADY-DEALER")
        require(not self._has(CUSTOMER_ROLE, ctx.sender), "ALREADY-CUSTOMER")
        require(not self._has(RECYCLER_ROLE, ctx.sender), "ALREADY-RECYCLER")
        self.storage["roles"][CUSTOMER_ROLE].add(ctx.sender)
        ctx.emit("CustomerRegistered", ctx.sender)

    @external()
    def renounceToCustomerRole(self, ctx):
        require(self._has(CUSTOMER_ROLE, ctx.sender), "NOT-CUSTOMER")
        self.storage["roles"][CUSTOMER_ROLE].discard(ctx.sender)
        ctx.emit("CustomerUnregistered", ctx.sender)

    @external()
    def grantRecyclerRole(self, ctx, recycler):
        dealer = self._only_dealer(ctx)
        require(recycler != dealer, "ALREADY-DEALER")
        require(not self._has(RECYCLER_ROLE, recycler), "ALREADY-RECYCLER")
        require(not self._has(CUSTOMER_ROLE, recycler), "ALREADY-CUSTOMER")
        self.storage["roles"][RECYCLER_ROLE].add(recycler)
        ctx.emit("RecyclerRoleGranted", recycler)

    @external()
    def revokeRecyclerRole(self, ctx, recycler):
        self._only_dealer(ctx)
        require(self._has(RECYCLER_ROLE, recycler), "NOT-RECYCLER")
        self.storage["roles"][RECYCLER_ROLE].discard(recycler)
        ctx.emit("RecyclerRoleRevoked", recycler)

    @external()
    def sendBoxForEvaluation(self, ctx, box_id, description, types, quantities):
        require(self._has(CUSTOMER_ROLE, ctx.sender), "NOT-CUSTOMER")
        require(box_id != 0, "ZERO-ID")
        _check_box_arrays(types, quantities)
        self._store_box(ctx, box_id, description, types, quantities)

    @external()
    def evaluateBox(self, ctx, box_id, extra_amount):
        dealer = self._only_dealer(ctx)
        box = self._open_box(box_id)
        amount = extra_amount
        for cloth_type, quantity in self.storage["box_clothes"][box_id]:
            amount += self.storage["pricing"][cloth_type] * quantity
            self.storage["inventory"][cloth_type] += quantity
            ctx.emit("SecondHandClothesStored", cloth_type, quantity)
        box["evaluation"] = amount
        ctx.call(self.storage["rsc"], "transferFrom", dealer, box["sender"], amount)
        ctx.emit("SecondHandBoxEvaluated", box_id, amount)

    @external()
    def sellSecondHandCloth(self, ctx, cloth_id, price, cloth_type, cloth_size, description, ext_hash):
        self._only_dealer(ctx)
        require(cloth_id != 0, "ZERO-ID")
        _check_cloth_type(cloth_type)
        require(self.storage["inventory"][cloth_type] > 0, "INVENTORY-ZERO-QUANTITY")
        require(price > 0, "INVALID-PRICE")
        self._add_cloth(ctx, cloth_id, price, cloth_type, cloth_size, description, ext_hash)
        self.storage["inventory"][cloth_type] -= 1

    @external()
    def buyCloth(self, ctx, cloth_id):
        require(self._has(CUSTOMER_ROLE, ctx.sender), "NOT-CUSTOMER")
        cloth = self._sell_cloth(ctx, cloth_id)
        ctx.call(self.storage["rsc"], "transferFrom", ctx.sender, self.storage["dealer"], cloth["price"])
        ctx.emit("SaleableClothSold", cloth_id, cloth["price"])

    @external()
    def decreaseStockForConfidentialBox(self, ctx, types, quantities, tx_hash):
        self._only_dealer(ctx)
        _check_box_arrays(types, quantities)
        inventory = self.storage["inventory"]
        for cloth_type, quantity in zip(types, quantities):
            require(inventory[cloth_type] >= quantity, "INVALID-INVENTORY-AMOUNT")
            inventory[cloth_type] -= quantity
        ctx.emit("ConfidentialBoxSent", list(types), list(quantities), bytes(tx_hash))

    @external()
    def transferRGCForConfidentialTx(self, ctx, amount, tx_hash):
        require(self._has(RECYCLER_ROLE, ctx.sender), "NOT-RECYCLER")
        require(amount > 0, "ZERO-AMOUNT")
        dealer = self.storage["dealer"]
        ctx.call(self.storage["rgc"], "transferFrom", ctx.sender, dealer, amount)
        ctx.emit("ConfidentialTokenTransfer", ctx.sender, dealer, amount, bytes(tx_hash))

    @external()
    def transferRSCForConfidentialTx(self, ctx, recycler, amount, tx_hash):
        dealer = self._only_dealer(ctx)
        require(self._has(RECYCLER_ROLE, recycler), "NOT-RECYCLER")
        require(amount > 0, "ZERO-AMOUNT")
        ctx.call(self.storage["rsc"], "transferFrom", dealer, recycler, amount)
        ctx.emit("ConfidentialTokenTransfer", dealer, recycler, amount, bytes(tx_hash))

    @external()
    def sellUpcycledCloth(self, ctx, cloth_id, price, cloth_type, cloth_size, description, ext_hash, tx_hash):
        self._only_dealer(ctx)
        require(cloth_id != 0, "ZERO-ID")
        _check_cloth_type(cloth_type)
        require(price > 0, "INVALID-PRICE")
        self._add_cloth(ctx, cloth_id, price, cloth_type, cloth_size, description, ext_hash)
        ctx.emit("ConfidentialUpcycledClothOnSale", cloth_id, bytes(tx_hash))


class PrivateReclothesShopModel(_ShopStorage):
    """Roles and inventory are read from the public shop the contract points at."""

    name = PRIVATE_RECLOTHES_SHOP

    def setup(self, ctx: CallContext, rsc: str, rgc: str, shop: str, pricing: Sequence[int]) -> None:
        require(len(pricing) == CLOTH_TYPES, "INVALID-ARRAYS")
        self._init_shop(rsc, rgc)
        self.storage.update(shop=shop, pricing=list(pricing))

    def _only_dealer(self, ctx: CallContext) -> None:
        require(ctx.sender == ctx.call(self.storage["shop"], "reclothesDealer"), "NOT-DEALER")

    def _only_recycler(self, ctx: CallContext) -> None:
        require(ctx.call(self.storage["shop"], "hasRole", RECYCLER_ROLE, ctx.sender), "NOT-RECYCLER")

    def _public_inventory(self, ctx: CallContext, cloth_type: int) -> int:
        return ctx.call(self.storage["shop"], "inventory", cloth_type)

    @external()
    def reclothesShopInstance(self, ctx):
        return self.storage["shop"]

    @external()
    def confidentialClothTypeToEvaluationPrice(self, ctx, cloth_type):
        _check_cloth_type(cloth_type)
        return self.storage["pricing"][cloth_type]

    @external()
    def sendBoxForEvaluation(self, ctx, box_id, description, types, quantities):
        self._only_dealer(ctx)
        require(box_id != 0, "ZERO-ID")
        # id reuse is reported before the stock check
        require(box_id not in self.storage["boxes"], "ALREADY-USED-ID")
        _check_box_arrays(types, quantities)
        for cloth_type, quantity in zip(types, quantities):
            require(self._public_inventory(ctx, cloth_type) >= quantity, "INVALID-INVENTORY-AMOUNT")
        self._store_box(ctx, box_id, description, types, quantities)

    @external()
    def evaluateBox(self, ctx, box_id, extra_amount):
        self._only_recycler(ctx)
        box = self._open_box(box_id)
        amount = extra_amount
        for cloth_type, quantity in self.storage["box_clothes"][box_id]:
            amount += self.storage["pricing"][cloth_type] * quantity
        box["evaluation"] = amount
        ctx.emit("SecondHandBoxEvaluated", box_id, amount)

    @external()
    def sellUpcycledCloth(self, ctx, cloth_id, price, cloth_type, cloth_size, description, ext_hash):
        self._only_recycler(ctx)
        require(cloth_id != 0, "ZERO-ID")
        require(price > 0, "INVALID-PRICE")
        _check_cloth_type(cloth_type)
        require(self._public_inventory(ctx, cloth_type) > 0, "INVENTORY-ZERO-QUANTITY")
        self._add_cloth(ctx, cloth_id, price, cloth_type, cloth_size, description, ext_hash)

    @external()
    def buyCloth(self, ctx, cloth_id):
        self._only_dealer(ctx)
        cloth = self._sell_cloth(ctx, cloth_id)
        ctx.emit("SaleableClothSold", cloth_id, cloth["price"])


def sandbox_models(artifacts_dir=None) -> Dict[str, Tuple[Any, type]]:
    """Interface and model of every ReClothes contract, keyed by contract name."""

    models = {
        RESELLING_CREDIT: ResellingCreditModel,
        REGENERATION_CREDIT: RegenerationCreditModel,
        RECLOTHES_SHOP: ReclothesShopModel,
        PRIVATE_RECLOTHES_SHOP: PrivateReclothesShopModel,
    }
    return {name: (load_interface(name, artifacts_dir), model) for name, model in models.items()}


def create_network(artifacts_dir=None) -> SandboxNetwork:
    return SandboxNetwork.with_models(sandbox_models(artifacts_dir))


__all__ = [
    "CUSTOMER_ROLE",
    "ENUM_CONVERSION_PANIC",
    "EVALUATION_PRICING",
    "PrivateReclothesShopModel",
    "RECYCLER_ROLE",
    "ReclothesShopModel",
    "ResellingCreditModel",
    "RegenerationCreditModel",
    "create_network",
    "sandbox_models",
]
