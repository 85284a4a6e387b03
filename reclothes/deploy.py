"""Deployment and initial funding of a ReClothes network."""

from __future__ import annotations

import base64
from typing import Dict, Optional, Sequence

from eth_account import Account
from eth_utils import keccak
from nacl.public import PrivateKey

from .channel import PrivateChannelClient, PrivateContract
from .config import DEFAULT_CONFIDENTIAL_PRICING, DEFAULT_INITIAL_SUPPLY
from .context import Participant, ReclothesContext
from .contracts import PRIVATE_RECLOTHES_SHOP, RECLOTHES_SHOP, REGENERATION_CREDIT, RESELLING_CREDIT
from .settlement import PublicSettlementClient


DEALER_RSC_FUNDING = 1_000_000
RECYCLER_RGC_FUNDING = 500_000


async def deploy_reclothes(context: ReclothesContext, initial_supply: int = DEFAULT_INITIAL_SUPPLY) -> ReclothesContext:
    """Deploy RSC and RGC from the token manager and the shop from the dealer."""

    public = context.public
    manager = context.token_manager.account
    context.rsc = await public.deploy(
        context.interfaces[RESELLING_CREDIT], (initial_supply,), manager, context.bytecodes.get(RESELLING_CREDIT)
    )
    context.rgc = await public.deploy(
        context.interfaces[REGENERATION_CREDIT], (initial_supply,), manager, context.bytecodes.get(REGENERATION_CREDIT)
    )
    context.shop = await public.deploy(
        context.interfaces[RECLOTHES_SHOP],
        (context.rsc.address, context.rgc.address),
        context.dealer.account,
        context.bytecodes.get(RECLOTHES_SHOP),
    )
    return context


async def deploy_private_shop(
    context: ReclothesContext,
    recycler: str,
    pricing: Optional[Sequence[int]] = None,
) -> PrivateContract:
    """Deploy a ``PrivateReclothesShop`` into the dealer/*recycler* privacy group."""

    context.require_public()
    pricing = list(pricing if pricing is not None else context.confidential_pricing)
    contract = await context.private_client("dealer").deploy_private(
        context.interfaces[PRIVATE_RECLOTHES_SHOP],
        context.channel("dealer", recycler),
        (context.rsc.address, context.rgc.address, context.shop.address, pricing),
        context.bytecodes.get(PRIVATE_RECLOTHES_SHOP),
    )
    context.private_shops[recycler] = contract
    return contract


async def bootstrap_reclothes(
    context: ReclothesContext,
    dealer_rsc: int = DEALER_RSC_FUNDING,
    recycler_rgc: int = RECYCLER_RGC_FUNDING,
) -> None:
    """Fund the dealer and recyclers, register customers and grant recycler roles."""

    context.require_public()
    public = context.public
    manager = context.token_manager.account
    dealer = context.dealer

    await public.transact(context.rsc, "transfer", (dealer.address, dealer_rsc), manager)
    print(f"[deploy] {dealer_rsc} RSC transferred to the dealer")
    for customer in context.members("customer"):
        await public.transact(context.shop, "registerAsCustomer", (), customer.account)
        print(f"[deploy] {customer.name} registered as customer")
    for recycler in context.members("recycler"):
        await public.transact(context.shop, "grantRecyclerRole", (recycler.address,), dealer.account)
        await public.transact(context.rgc, "transfer", (recycler.address, recycler_rgc), manager)
        print(f"[deploy] {recycler.name} granted RECYCLER_ROLE and {recycler_rgc} RGC")


def _sandbox_identity(name: str):
    seed = keccak(text=f"reclothes-sandbox:{name}")
    channel_key = base64.b64encode(bytes(PrivateKey(seed).public_key)).decode("ascii")
    return Account.from_key(seed), channel_key


async def deploy_sandbox(
    *,
    customers: int = 2,
    recyclers: int = 2,
    initial_supply: int = DEFAULT_INITIAL_SUPPLY,
    pricing: Sequence[int] = DEFAULT_CONFIDENTIAL_PRICING,
    pending_polls: int = 0,
    bootstrap: bool = True,
) -> ReclothesContext:
    """Deploy a complete ReClothes network on an in-memory sandbox.

    The dealer and every recycler get their own private node; one private
    shop is deployed per dealer/recycler pair.
    """

    from .ledgers.sandbox import SandboxNetwork, SandboxPrivateLedger, SandboxPublicLedger, sandbox_bytecode
    from .ledgers.sandbox_contracts import sandbox_models

    models = sandbox_models()
    network = SandboxNetwork.with_models(models)
    names = ["token_manager", "dealer"]
    names += [f"customer{i}" for i in range(1, customers + 1)]
    names += [f"recycler{i}" for i in range(1, recyclers + 1)]

    participants: Dict[str, Participant] = {}
    private: Dict[str, PrivateChannelClient] = {}
    for name in names:
        account, channel_key = _sandbox_identity(name)
        has_node = name == "dealer" or name.startswith("recycler")
        participants[name] = Participant(name, account, channel_key if has_node else None)
        if has_node:
            private[name] = PrivateChannelClient(
                SandboxPrivateLedger(network, channel_key, pending_polls=pending_polls),
                receipt_timeout=5.0,
                poll_interval=0.001,
            )

    context = ReclothesContext(
        public=PublicSettlementClient(SandboxPublicLedger(network)),
        participants=participants,
        interfaces={name: interface for name, (interface, _model) in models.items()},
        private=private,
        confidential_pricing=list(pricing),
        bytecodes={name: sandbox_bytecode(name) for name in models},
        network=network,
    )

    await deploy_reclothes(context, initial_supply)
    if bootstrap:
        await bootstrap_reclothes(context)
    for recycler in context.members("recycler"):
        await deploy_private_shop(context, recycler.name)
    return context


__all__ = ["bootstrap_reclothes", "deploy_private_shop", "deploy_reclothes", "deploy_sandbox"]
