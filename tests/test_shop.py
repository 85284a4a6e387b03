import asyncio

import pytest

from reclothes.deploy import DEALER_RSC_FUNDING, RECYCLER_RGC_FUNDING
from reclothes.errors import LedgerRejectedError, RoleRejectedError, TransportError, UniquenessError
from reclothes.scenarios import (
    CONFIDENTIAL_BOXES,
    UPCYCLED_CLOTHES,
    customers_scenario,
    recycler_scenario,
)
from reclothes.shop import Box, ReclothesShop, SaleableCloth


# seeded into public stock by the conftest fixture
WAREHOUSE_BOX_ID = 900


def test_recycler_scenario_moves_credits_and_stock(bare_context):
    context = bare_context
    shop = ReclothesShop(context)
    recycler = context.participant("recycler1")
    dealer = context.dealer

    asyncio.run(customers_scenario(shop))
    jackets, others = asyncio.run(shop.inventory(3)), asyncio.run(shop.inventory(0))
    dealer_rsc = asyncio.run(shop.balance_of("RSC", dealer.address))

    asyncio.run(recycler_scenario(shop, "recycler1"))

    # 16 * 1 jacket + 3 * 2 others + 15 extra at the confidential prices
    assert asyncio.run(shop.private_box_evaluation("recycler1", 101)) == 37
    assert asyncio.run(shop.balance_of("RGC", recycler.address)) == RECYCLER_RGC_FUNDING - 37
    assert asyncio.run(shop.balance_of("RGC", dealer.address)) == 37

    price = UPCYCLED_CLOTHES["recycler1"][0].price
    assert asyncio.run(shop.balance_of("RSC", recycler.address)) == price
    assert asyncio.run(shop.balance_of("RSC", dealer.address)) == dealer_rsc - price

    assert asyncio.run(shop.inventory(3)) == jackets - 1
    assert asyncio.run(shop.inventory(0)) == others - 2

    listed = asyncio.run(shop.saleable_cloth(201))
    assert listed.price == price
    assert listed.buyer is None
    sold = asyncio.run(shop.upcycled_cloth("recycler1", 201))
    assert sold.buyer == dealer.address
    assert asyncio.run(shop.upcycled_cloth("recycler1", 202)).buyer is None


def test_customers_scenario_pays_evaluations(bare_context):
    context = bare_context
    shop = ReclothesShop(context)
    asyncio.run(customers_scenario(shop))

    customer1 = context.participant("customer1").address
    customer2 = context.participant("customer2").address
    # box 1: 4 tshirts, 2 pants, 3 shirts + 50; box 2: 2 jackets, 3 dresses, 5 others + 25
    assert asyncio.run(shop.balance_of("RSC", customer1)) == 4 * 4 + 2 * 7 + 3 * 10 + 50
    assert asyncio.run(shop.balance_of("RSC", customer2)) == 2 * 15 + 3 * 8 + 5 * 2 + 25 - 35
    assert asyncio.run(shop.balance_of("RSC", context.dealer.address)) == DEALER_RSC_FUNDING - 110 - 89 + 35
    assert asyncio.run(shop.saleable_cloth(11)).buyer == customer2
    # box 3 is waiting for evaluation
    assert asyncio.run(shop.box_clothes(3)) == [(1, 2), (2, 1)]
    assert asyncio.run(shop.evaluation_quote(3, 5)) == 2 * 4 + 1 * 7 + 5


def test_confidential_box_outcome_carries_the_token(shop):
    box = CONFIDENTIAL_BOXES["recycler2"]
    outcome = asyncio.run(shop.send_confidential_box("recycler2", box))

    event = shop.context.shop.interface.find_event(outcome.receipts[0], "ConfidentialBoxSent")
    assert event["confidentialTxHash"] == outcome.token.value
    assert bytes(outcome.private_receipt.tx_hash) == outcome.token.value
    assert asyncio.run(shop.private_box("recycler2", box.id)) == box
    assert asyncio.run(shop.private_box("recycler2", box.id, as_member="recycler2")) == box


def test_evaluation_amount_comes_from_the_private_event(shop):
    box = CONFIDENTIAL_BOXES["recycler2"]
    asyncio.run(shop.send_confidential_box("recycler2", box))
    outcome = asyncio.run(shop.evaluate_confidential_box("recycler2", box.id, 15))

    transfer = shop.context.shop.interface.find_event(outcome.receipts[1], "ConfidentialTokenTransfer")
    assert transfer["amount"] == 9 + 11 + 15
    assert transfer["receiver"] == shop.context.dealer.address
    assert transfer["confidentialTxHash"] == outcome.token.value


def test_evaluating_twice_fails_privately(shop):
    box = CONFIDENTIAL_BOXES["recycler1"]
    asyncio.run(shop.send_confidential_box("recycler1", box))
    asyncio.run(shop.evaluate_confidential_box("recycler1", box.id, 0))
    rgc = asyncio.run(shop.balance_of("RGC", shop.context.dealer.address))

    with pytest.raises(UniquenessError, match="ALREADY-EVALUATED"):
        asyncio.run(shop.evaluate_confidential_box("recycler1", box.id, 0))
    assert asyncio.run(shop.balance_of("RGC", shop.context.dealer.address)) == rgc


def test_only_recyclers_sell_upcycled_clothes(shop):
    cloth = SaleableCloth(301, 10, 1, 1, "Patched jeans")
    # a recycler whose role was revoked cannot sell through its private shop
    context = shop.context
    asyncio.run(context.public.transact(
        context.shop, "revokeRecyclerRole", (context.participant("recycler2").address,), context.dealer.account
    ))
    with pytest.raises(RoleRejectedError, match="NOT-RECYCLER"):
        asyncio.run(shop.sell_upcycled_cloth("recycler2", cloth))
    token = asyncio.run(shop.sell_upcycled_cloth("recycler1", cloth))
    assert len(token.value) == 32


def test_buy_upcycled_cloth_relists_at_resale_price(shop):
    cloth = UPCYCLED_CLOTHES["recycler2"][0]
    asyncio.run(shop.sell_upcycled_cloth("recycler2", cloth))
    outcome = asyncio.run(shop.buy_upcycled_cloth("recycler2", cloth.id, resale_price=80))

    assert len(outcome.receipts) == 3
    listed = asyncio.run(shop.saleable_cloth(cloth.id))
    assert listed.price == 80
    assert listed.ext_cloth_data_hash == cloth.ext_cloth_data_hash
    assert asyncio.run(shop.balance_of("RSC", shop.context.participant("recycler2").address)) == cloth.price

    with pytest.raises(UniquenessError, match="ALREADY-SOLD"):
        asyncio.run(shop.buy_upcycled_cloth("recycler2", cloth.id))


def test_buying_an_unknown_cloth_is_rejected(shop):
    with pytest.raises(LedgerRejectedError, match="INVALID-CLOTH"):
        asyncio.run(shop.buy_upcycled_cloth("recycler1", 999))


def test_public_role_rules(shop):
    with pytest.raises(UniquenessError, match="ALREADY-CUSTOMER"):
        asyncio.run(shop.register_customer("customer1"))
    with pytest.raises(UniquenessError, match="ALREADY-RECYCLER"):
        asyncio.run(shop.register_customer("recycler1"))
    with pytest.raises(UniquenessError, match="ALREADY-DEALER"):
        asyncio.run(shop.register_customer("dealer"))
    with pytest.raises(UniquenessError, match="ALREADY-CUSTOMER"):
        asyncio.run(shop.grant_recycler_role("customer2"))


def test_customers_cannot_evaluate_boxes(shop):
    context = shop.context
    asyncio.run(shop.send_box("customer2", Box(5, "Shirts", [5], [1])))
    with pytest.raises(RoleRejectedError, match="NOT-DEALER"):
        asyncio.run(context.public.transact(
            context.shop, "evaluateBox", (5, 0), context.participant("customer1").account
        ))


def test_unknown_token_symbol(shop):
    with pytest.raises(ValueError, match="Unknown token"):
        asyncio.run(shop.balance_of("ETH", shop.context.dealer.address))


def _failing_on(monkeypatch, ledger, method, call_number):
    real = getattr(ledger, method)
    calls = []

    async def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == call_number:
            raise TransportError("node1 unreachable; outcome indeterminate")
        return await real(*args, **kwargs)

    monkeypatch.setattr(ledger, method, flaky)


def test_node_failure_while_reading_box_clothes_propagates(shop, monkeypatch):
    # the warehouse box holds six entries; the second read fails
    _failing_on(monkeypatch, shop.context.public.ledger, "call", 2)
    with pytest.raises(TransportError, match="indeterminate"):
        asyncio.run(shop.box_clothes(WAREHOUSE_BOX_ID))


def test_quote_is_not_computed_from_a_partial_box(shop, monkeypatch):
    _failing_on(monkeypatch, shop.context.public.ledger, "call", 3)
    with pytest.raises(TransportError):
        asyncio.run(shop.evaluation_quote(WAREHOUSE_BOX_ID, 0))


def test_node_failure_while_reading_a_private_box_propagates(shop, monkeypatch):
    box = CONFIDENTIAL_BOXES["recycler2"]
    asyncio.run(shop.send_confidential_box("recycler2", box))
    # idToBox, first cloth entry, then the failing second entry
    _failing_on(monkeypatch, shop.context.private_client("dealer").ledger, "call_private", 3)
    with pytest.raises(TransportError):
        asyncio.run(shop.private_box("recycler2", box.id))


def test_box_reads_stop_at_the_last_entry(shop):
    assert asyncio.run(shop.box_clothes(WAREHOUSE_BOX_ID)) == [(kind, 20) for kind in range(6)]
    assert asyncio.run(shop.box_clothes(4242)) == []
