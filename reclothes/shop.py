"""ReClothes business flows on top of the private and public clients.

Confidential flows run a private action in a dealer/recycler channel and
settle its public side with the correlation token.  Public flows are the
plain customer marketplace.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from eth_utils import keccak

from .channel import CorrelationToken, PrivateAction
from .contracts import CLOTH_TYPES, PRIVATE_RECLOTHES_SHOP
from .context import ReclothesContext
from .errors import LedgerRejectedError
from .orchestrator import ConfidentialTransaction, Outcome, SettlementStep
from .receipts import Receipt


@dataclass(frozen=True)
class Box:
    id: int
    description: str
    clothes_types: Tuple[int, ...]
    quantities: Tuple[int, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "clothes_types", tuple(self.clothes_types))
        object.__setattr__(self, "quantities", tuple(self.quantities))

    @property
    def args(self) -> Tuple[Any, ...]:
        return self.id, self.description, list(self.clothes_types), list(self.quantities)


@dataclass(frozen=True)
class SaleableCloth:
    id: int
    price: int
    cloth_type: int
    size: int
    description: str
    ext_cloth_data_hash: bytes = b"\x00" * 32
    buyer: Optional[str] = None

    @classmethod
    def with_external_data(cls, id: int, price: int, cloth_type: int, size: int, description: str,
                           external_data: str) -> "SaleableCloth":
        """Commit to off-chain cloth data (photos, certificates) by its keccak hash."""

        return cls(id, price, cloth_type, size, description, keccak(text=external_data))

    @classmethod
    def from_view(cls, values: Sequence[Any]) -> "SaleableCloth":
        cloth_id, price, cloth_type, size, description, ext_hash, buyer = values
        return cls(cloth_id, price, cloth_type, size, description, bytes(ext_hash),
                   None if int(buyer, 16) == 0 else buyer)

    @property
    def args(self) -> Tuple[Any, ...]:
        return self.id, self.price, self.cloth_type, self.size, self.description, self.ext_cloth_data_hash


# a reasonless revert (or the 0.8 array-bounds panic) marks the end of a stored array
OUT_OF_RANGE_REASONS = frozenset({"transaction reverted", "Panic(0x32)"})


def _past_the_end(exc: LedgerRejectedError) -> bool:
    return type(exc) is LedgerRejectedError and exc.reason in OUT_OF_RANGE_REASONS


def _event_value(receipt: Receipt, interface, event: str, field_name: str) -> int:
    fields = interface.find_event(receipt, event)
    if fields is None:
        raise LedgerRejectedError(f"{event} not found in {interface.name} receipt", tx_hash=receipt.tx_hash)
    return fields[field_name]


class ReclothesShop:
    """Facade over the ReClothes contracts for one deployment."""

    def __init__(self, context: ReclothesContext) -> None:
        self.context = context

    # ------------------------------------------------------------------
    # Confidential flows
    # ------------------------------------------------------------------
    def _transaction(self, sender: str, recipient: str, method: str, args: Sequence[Any],
                     steps: Sequence[SettlementStep] = ()) -> ConfidentialTransaction:
        recycler = recipient if sender == "dealer" else sender
        ctx = self.context
        ctx.require_public()
        action = PrivateAction(ctx.private_shop(recycler), method, tuple(args))
        return ConfidentialTransaction(
            ctx.private_client(sender),
            ctx.public,
            action,
            ctx.channel(sender, recipient),
            steps,
        )

    async def send_confidential_box(self, recycler: str, box: Box) -> Outcome:
        """Dealer ships a box to *recycler* privately and removes its clothes from public stock."""

        ctx = self.context
        steps = [
            SettlementStep(ctx.shop, "decreaseStockForConfidentialBox",
                           (list(box.clothes_types), list(box.quantities)), ctx.dealer.account),
        ]
        return await self._transaction("dealer", recycler, "sendBoxForEvaluation", box.args, steps).execute()

    async def evaluate_confidential_box(self, recycler: str, box_id: int, extra_rgc: int) -> Outcome:
        """Recycler prices the box privately, then pays the dealer the disclosed RGC amount."""

        ctx = self.context
        account = ctx.participant(recycler).account
        private_interface = ctx.interfaces[PRIVATE_RECLOTHES_SHOP]

        def amount(receipt: Receipt) -> int:
            return _event_value(receipt, private_interface, "SecondHandBoxEvaluated", "rgcAmount")

        steps = [
            SettlementStep(ctx.rgc, "increaseAllowance", lambda receipt: (ctx.shop.address, amount(receipt)),
                           account, correlated=False),
            SettlementStep(ctx.shop, "transferRGCForConfidentialTx", lambda receipt: (amount(receipt),), account),
        ]
        return await self._transaction(recycler, "dealer", "evaluateBox", (box_id, extra_rgc), steps).execute()

    async def sell_upcycled_cloth(self, recycler: str, cloth: SaleableCloth) -> CorrelationToken:
        """Recycler offers an upcycled cloth to the dealer only; nothing is disclosed."""

        outcome = await self._transaction(recycler, "dealer", "sellUpcycledCloth", cloth.args).execute()
        return outcome.token

    async def buy_upcycled_cloth(self, recycler: str, cloth_id: int, resale_price: Optional[int] = None) -> Outcome:
        """Dealer buys an upcycled cloth, pays the recycler in RSC and lists it publicly."""

        ctx = self.context
        cloth = await self.upcycled_cloth(recycler, cloth_id)
        if cloth.id == 0:
            raise LedgerRejectedError("INVALID-CLOTH")
        dealer = ctx.dealer.account
        listing = (cloth.id, resale_price or cloth.price, cloth.cloth_type, cloth.size,
                   cloth.description, cloth.ext_cloth_data_hash)
        steps = [
            SettlementStep(ctx.rsc, "increaseAllowance", (ctx.shop.address, cloth.price), dealer, correlated=False),
            SettlementStep(ctx.shop, "transferRSCForConfidentialTx",
                           (ctx.participant(recycler).address, cloth.price), dealer),
            SettlementStep(ctx.shop, "sellUpcycledCloth", listing, dealer),
        ]
        return await self._transaction("dealer", recycler, "buyCloth", (cloth_id,), steps).execute()

    # ------------------------------------------------------------------
    # Private reads
    # ------------------------------------------------------------------
    async def private_box(self, recycler: str, box_id: int, *, as_member: str = "dealer") -> Box:
        ctx = self.context
        other = recycler if as_member == "dealer" else "dealer"
        contract = ctx.private_shop(recycler)
        channel = ctx.channel(as_member, other)
        client = ctx.private_client(as_member)
        found_id, description, _evaluation, _sender = await client.call_private(contract, "idToBox", (box_id,), channel)
        types, quantities = [], []
        if found_id:
            for index in range(CLOTH_TYPES):
                try:
                    cloth_type, quantity = await client.call_private(
                        contract, "boxToSecondHandClothes", (box_id, index), channel
                    )
                except LedgerRejectedError as exc:
                    if not _past_the_end(exc):
                        raise
                    break
                types.append(cloth_type)
                quantities.append(quantity)
        return Box(found_id, description, types, quantities)

    async def private_box_evaluation(self, recycler: str, box_id: int) -> int:
        ctx = self.context
        values = await ctx.private_client("dealer").call_private(
            ctx.private_shop(recycler), "idToBox", (box_id,), ctx.channel("dealer", recycler), as_dict=True
        )
        return values["evaluationInToken"]

    async def upcycled_cloth(self, recycler: str, cloth_id: int) -> SaleableCloth:
        ctx = self.context
        values = await ctx.private_client("dealer").call_private(
            ctx.private_shop(recycler), "idToSaleableCloth", (cloth_id,), ctx.channel("dealer", recycler)
        )
        return SaleableCloth.from_view(values)

    # ------------------------------------------------------------------
    # Public flows
    # ------------------------------------------------------------------
    async def register_customer(self, customer: str) -> Receipt:
        ctx = self.context
        return await ctx.public.transact(ctx.shop, "registerAsCustomer", (), ctx.participant(customer).account)

    async def grant_recycler_role(self, recycler: str) -> Receipt:
        ctx = self.context
        return await ctx.public.transact(
            ctx.shop, "grantRecyclerRole", (ctx.participant(recycler).address,), ctx.dealer.account
        )

    async def send_box(self, customer: str, box: Box) -> Receipt:
        ctx = self.context
        return await ctx.public.transact(ctx.shop, "sendBoxForEvaluation", box.args, ctx.participant(customer).account)

    async def box_clothes(self, box_id: int) -> List[Tuple[int, int]]:
        clothes = []
        for index in range(CLOTH_TYPES):
            try:
                clothes.append(await self.context.public.call(self.context.shop, "boxToSecondHandClothes", (box_id, index)))
            except LedgerRejectedError as exc:
                if not _past_the_end(exc):
                    raise
                break
        return clothes

    async def evaluation_quote(self, box_id: int, extra_rsc: int) -> int:
        """RSC the dealer will pay for *box_id* at the public evaluation prices."""

        total = extra_rsc
        for cloth_type, quantity in await self.box_clothes(box_id):
            total += await self.context.public.call(self.context.shop, "clothTypeToEvaluationPrice", (cloth_type,)) * quantity
        return total

    async def evaluate_box(self, box_id: int, extra_rsc: int) -> Receipt:
        """Dealer grants the shop the quoted RSC allowance and evaluates the box."""

        ctx = self.context
        dealer = ctx.dealer.account
        amount = await self.evaluation_quote(box_id, extra_rsc)
        await ctx.public.transact(ctx.rsc, "increaseAllowance", (ctx.shop.address, amount), dealer)
        return await ctx.public.transact(ctx.shop, "evaluateBox", (box_id, extra_rsc), dealer)

    async def sell_second_hand_cloth(self, cloth: SaleableCloth) -> Receipt:
        ctx = self.context
        return await ctx.public.transact(ctx.shop, "sellSecondHandCloth", cloth.args, ctx.dealer.account)

    async def saleable_cloth(self, cloth_id: int) -> SaleableCloth:
        return SaleableCloth.from_view(await self.context.public.call(self.context.shop, "idToSaleableCloth", (cloth_id,)))

    async def buy_cloth(self, customer: str, cloth_id: int) -> Receipt:
        ctx = self.context
        account = ctx.participant(customer).account
        cloth = await self.saleable_cloth(cloth_id)
        if cloth.id:
            await ctx.public.transact(ctx.rsc, "increaseAllowance", (ctx.shop.address, cloth.price), account)
        return await ctx.public.transact(ctx.shop, "buyCloth", (cloth_id,), account)

    # ------------------------------------------------------------------
    # Public reads
    # ------------------------------------------------------------------
    async def inventory(self, cloth_type: int) -> int:
        return await self.context.public.call(self.context.shop, "inventory", (cloth_type,))

    async def balance_of(self, token: str, address: str) -> int:
        contract = {"RSC": self.context.rsc, "RGC": self.context.rgc}.get(token.upper())
        if contract is None:
            raise ValueError(f"Unknown token {token!r}")
        return await self.context.public.call(contract, "balanceOf", (address,))


__all__ = ["Box", "ReclothesShop", "SaleableCloth"]
