"""Demo CLI replaying the ReClothes interaction scripts.

    reclothes-demo customers
    reclothes-demo deploy --backend besu
    reclothes-demo recycler1 --backend besu --env-file .env
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Dict, List, Optional, Sequence

from .context import ReclothesContext
from .deploy import bootstrap_reclothes, deploy_private_shop, deploy_reclothes, deploy_sandbox
from .errors import ReclothesError
from .shop import Box, ReclothesShop, SaleableCloth


PUBLIC_BOXES = [
    Box(1, "Summer wardrobe clear-out", [1, 2, 5], [4, 2, 3]),
    Box(2, "Winter jackets and dresses", [3, 4, 0], [2, 3, 5]),
    Box(3, "Mixed second-hand clothes", [1, 2], [2, 1]),
]

SECOND_HAND_CLOTHES = [
    SaleableCloth.with_external_data(11, 35, 1, 2, "Organic cotton t-shirt", "ipfs://reclothes/clothes/11"),
]

CONFIDENTIAL_BOXES: Dict[str, Box] = {
    "recycler1": Box(101, "Damaged jackets for upcycling", [3, 0], [1, 2]),
    "recycler2": Box(102, "Worn dresses and shirts", [4, 5], [1, 1]),
}

UPCYCLED_CLOTHES: Dict[str, List[SaleableCloth]] = {
    "recycler1": [
        SaleableCloth.with_external_data(201, 60, 3, 3, "Upcycled patchwork jacket", "ipfs://reclothes/upcycled/201"),
        SaleableCloth.with_external_data(202, 45, 0, 2, "Tote bag from denim scraps", "ipfs://reclothes/upcycled/202"),
    ],
    "recycler2": [
        SaleableCloth.with_external_data(203, 55, 4, 1, "Upcycled evening dress", "ipfs://reclothes/upcycled/203"),
        SaleableCloth.with_external_data(204, 40, 5, 2, "Shirt with embroidered patches", "ipfs://reclothes/upcycled/204"),
    ],
}

CONFIDENTIAL_EXTRA_RGC = 15
EXTRA_RSC = {1: 50, 2: 25}


def step(title: str) -> None:
    print(f"\n[demo] {title}")


async def customers_scenario(shop: ReclothesShop) -> None:
    first, second, third = PUBLIC_BOXES
    cloth = SECOND_HAND_CLOTHES[0]

    step("Send a box for evaluation (customer1)")
    await shop.send_box("customer1", first)
    step("Evaluate the box of customer1")
    await shop.evaluate_box(first.id, EXTRA_RSC[first.id])
    step("Sell second-hand cloth")
    await shop.sell_second_hand_cloth(cloth)
    step("Send a box for evaluation (customer2)")
    await shop.send_box("customer2", second)
    step("Evaluate the box of customer2")
    await shop.evaluate_box(second.id, EXTRA_RSC[second.id])
    step("Send a box for evaluation (customer1)")
    await shop.send_box("customer1", third)
    step("Buy the second-hand cloth (customer2)")
    await shop.buy_cloth("customer2", cloth.id)
    print("\n[demo] Done!")


async def recycler_scenario(shop: ReclothesShop, recycler: str) -> None:
    box = CONFIDENTIAL_BOXES[recycler]
    clothes = UPCYCLED_CLOTHES[recycler]

    step(f"Send confidential box {box.id} to {recycler}")
    outcome = await shop.send_confidential_box(recycler, box)
    print(f"  correlation token {outcome.token}")
    step("Evaluate confidential box and transfer RGC")
    outcome = await shop.evaluate_confidential_box(recycler, box.id, CONFIDENTIAL_EXTRA_RGC)
    print(f"  correlation token {outcome.token}")
    for cloth in clothes:
        step(f"Sell upcycled cloth {cloth.id}")
        token = await shop.sell_upcycled_cloth(recycler, cloth)
        print(f"  correlation token {token}")
    step(f"Buy upcycled cloth {clothes[0].id}, transfer RSC and list it for customers")
    outcome = await shop.buy_upcycled_cloth(recycler, clothes[0].id)
    print(f"  correlation token {outcome.token}")
    print("\n[demo] Done!")


def print_addresses(context: ReclothesContext) -> None:
    print(f"\nRESELLING_ADDRESS={context.rsc.address}")
    print(f"REGENERATION_ADDRESS={context.rgc.address}")
    print(f"RECLOTHES_SHOP_ADDRESS={context.shop.address}")


async def _context(args: argparse.Namespace) -> ReclothesContext:
    if args.backend == "besu":
        from .config import load_settings
        from .context import build_besu_context

        settings = load_settings(args.env_file)
        context = build_besu_context(settings)
        if args.scenario == "deploy":
            step("Deploy RSC, RGC and the ReClothes shop")
            await deploy_reclothes(context, settings.initial_supply)
            step("Fund the dealer and recyclers, register customers")
            await bootstrap_reclothes(context)
        elif args.scenario.startswith("recycler"):
            step(f"Deploy private shop for dealer - {args.scenario}")
            await deploy_private_shop(context, args.scenario)
        return context
    return await deploy_sandbox()


async def run(args: argparse.Namespace) -> None:
    context = await _context(args)
    shop = ReclothesShop(context)
    if args.scenario == "deploy":
        print_addresses(context)
        return
    if args.scenario == "customers":
        await customers_scenario(shop)
        return
    if args.backend == "sandbox":
        # a fresh sandbox has no public stock for the confidential box
        print("[demo] seeding public inventory with the customers scenario")
        await customers_scenario(shop)
    await recycler_scenario(shop, args.scenario)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reclothes-demo", description="Replay ReClothes interactions")
    parser.add_argument("scenario", choices=["deploy", "customers", "recycler1", "recycler2"])
    parser.add_argument("--backend", choices=["sandbox", "besu"], default="sandbox")
    parser.add_argument("--env-file", default=None, help="dotenv file with node URLs and keys")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(run(args))
    except (ReclothesError, ValueError) as exc:
        print(f"[demo] {type(exc).__name__}: {exc}")
        return 1
    return 0


__all__ = ["build_parser", "customers_scenario", "main", "print_addresses", "recycler_scenario", "run"]


if __name__ == "__main__":
    raise SystemExit(main())
