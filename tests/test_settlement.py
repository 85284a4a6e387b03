import asyncio

import pytest

from reclothes.channel import CorrelationToken, PrivateAction
from reclothes.errors import AllowanceExceededError, EncodingError, RoleRejectedError, UniquenessError
from reclothes.shop import Box, ReclothesShop


BOX = Box(1, "Three categories", [0, 1, 3], [10, 5, 7])


def _private_send(context, box=BOX):
    action = PrivateAction(context.private_shop("recycler1"), "sendBoxForEvaluation", box.args)
    return asyncio.run(context.private_client("dealer").submit_private(action, context.channel("dealer", "recycler1")))


def _stock(shop, types):
    return [asyncio.run(shop.inventory(cloth_type)) for cloth_type in types]


def test_decrease_stock_with_token_removes_exact_quantities(context, shop):
    before = _stock(shop, BOX.clothes_types)
    token = _private_send(context)

    receipt = asyncio.run(context.public.submit_public_settlement(
        context.shop, "decreaseStockForConfidentialBox", (list(BOX.clothes_types), list(BOX.quantities)),
        token, context.dealer.account,
    ))

    after = _stock(shop, BOX.clothes_types)
    assert [b - a for b, a in zip(before, after)] == list(BOX.quantities)
    event = context.shop.interface.find_event(receipt, "ConfidentialBoxSent")
    assert event["confidentialTxHash"] == token.value
    assert tuple(event["quantities"]) == BOX.quantities


def test_same_box_cannot_be_settled_twice(context):
    token = _private_send(context)
    asyncio.run(context.public.submit_public_settlement(
        context.shop, "decreaseStockForConfidentialBox", (list(BOX.clothes_types), list(BOX.quantities)),
        token, context.dealer.account,
    ))

    # the ledger does not track tokens; a fresh box id is accepted with a used token
    asyncio.run(context.public.submit_public_settlement(
        context.shop, "decreaseStockForConfidentialBox", ([0], [1]), token, context.dealer.account,
    ))
    with pytest.raises(UniquenessError, match="ALREADY-USED-ID"):
        _private_send(context)


def test_reused_box_id_is_reported_even_without_stock(context, shop):
    _private_send(context)
    asyncio.run(context.public.submit_public_settlement(
        context.shop, "decreaseStockForConfidentialBox", ([0], [20]), CorrelationToken(b"\x02" * 32),
        context.dealer.account,
    ))
    assert asyncio.run(shop.inventory(0)) == 0

    with pytest.raises(UniquenessError, match="ALREADY-USED-ID"):
        _private_send(context)


def test_customer_cannot_settle_dealer_only_method(context, shop):
    token = CorrelationToken(b"\x01" * 32)
    before = _stock(shop, range(6))
    public_length = len(context.network.public.chain)

    with pytest.raises(RoleRejectedError) as excinfo:
        asyncio.run(context.public.submit_public_settlement(
            context.shop, "decreaseStockForConfidentialBox", ([0], [1]), token,
            context.participant("customer1").account,
        ))

    assert excinfo.value.reason == "NOT-DEALER"
    assert _stock(shop, range(6)) == before
    # the reverted transaction is mined with a failed status
    assert len(context.network.public.chain) == public_length + 1
    assert context.network.public.receipts[bytes(excinfo.value.tx_hash)].logs == []


def test_dealer_cannot_settle_recycler_transfer(context):
    with pytest.raises(RoleRejectedError, match="NOT-RECYCLER"):
        asyncio.run(context.public.submit_public_settlement(
            context.shop, "transferRGCForConfidentialTx", (10,), CorrelationToken(b"\x02" * 32),
            context.dealer.account,
        ))


def test_transfer_requires_prior_allowance(context):
    recycler = context.participant("recycler1")
    shop = ReclothesShop(context)
    token = CorrelationToken(b"\x03" * 32)
    rgc_before = asyncio.run(shop.balance_of("RGC", recycler.address))

    with pytest.raises(AllowanceExceededError):
        asyncio.run(context.public.submit_public_settlement(
            context.shop, "transferRGCForConfidentialTx", (37,), token, recycler.account,
        ))
    assert asyncio.run(shop.balance_of("RGC", recycler.address)) == rgc_before

    asyncio.run(context.public.transact(context.rgc, "increaseAllowance", (context.shop.address, 37), recycler.account))
    asyncio.run(context.public.submit_public_settlement(
        context.shop, "transferRGCForConfidentialTx", (37,), token, recycler.account,
    ))
    assert asyncio.run(shop.balance_of("RGC", recycler.address)) == rgc_before - 37
    assert asyncio.run(shop.balance_of("RGC", context.dealer.address)) == 37


def test_settlement_arguments_are_checked_locally(context):
    public_length = len(context.network.public.chain)
    with pytest.raises(EncodingError):
        asyncio.run(context.public.submit_public_settlement(
            context.shop, "transferRGCForConfidentialTx", (-1,), CorrelationToken(b"\x04" * 32),
            context.participant("recycler1").account,
        ))
    assert len(context.network.public.chain) == public_length


def test_public_views(context):
    assert asyncio.run(context.public.call(context.shop, "reclothesDealer")) == context.dealer.address
    assert asyncio.run(context.public.call(context.shop, "clothTypeToEvaluationPrice", (3,))) == 15
    assert asyncio.run(context.public.call(context.rsc, "symbol")) == "RSC"
