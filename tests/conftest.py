import asyncio

import pytest

from reclothes.deploy import deploy_sandbox
from reclothes.shop import Box, ReclothesShop


STOCK_BOX = Box(900, "Warehouse stock", [0, 1, 2, 3, 4, 5], [20, 20, 20, 20, 20, 20])


async def _stocked_sandbox(**kwargs):
    context = await deploy_sandbox(**kwargs)
    shop = ReclothesShop(context)
    await shop.send_box("customer1", STOCK_BOX)
    await shop.evaluate_box(STOCK_BOX.id, 0)
    return context


@pytest.fixture
def context():
    """Bootstrapped sandbox network with 20 clothes of every type in public stock."""
    return asyncio.run(_stocked_sandbox())


@pytest.fixture
def bare_context():
    return asyncio.run(deploy_sandbox())


@pytest.fixture
def shop(context):
    return ReclothesShop(context)
