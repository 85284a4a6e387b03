"""Explicit wiring of participants, ledger clients and contract handles."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .abi import ContractInterface
from .channel import PrivateChannel, PrivateChannelClient, PrivateContract
from .config import NODE_ROLES, Settings
from .contracts import RECLOTHES_SHOP, REGENERATION_CREDIT, RESELLING_CREDIT, load_interfaces
from .settlement import PublicContract, PublicSettlementClient


@dataclass
class Participant:
    """A signing account; dealer and recyclers also own a private node."""

    name: str
    account: LocalAccount = field(repr=False)
    channel_key: Optional[str] = None

    @property
    def address(self) -> str:
        return self.account.address


@dataclass
class ReclothesContext:
    public: PublicSettlementClient
    participants: Dict[str, Participant]
    interfaces: Dict[str, ContractInterface]
    private: Dict[str, PrivateChannelClient] = field(default_factory=dict)
    confidential_pricing: List[int] = field(default_factory=list)
    bytecodes: Dict[str, bytes] = field(default_factory=dict)
    rsc: Optional[PublicContract] = None
    rgc: Optional[PublicContract] = None
    shop: Optional[PublicContract] = None
    private_shops: Dict[str, PrivateContract] = field(default_factory=dict)
    network: Optional[Any] = None

    def participant(self, name: str) -> Participant:
        try:
            return self.participants[name]
        except KeyError as exc:
            raise ValueError(f"Unknown participant {name!r}") from exc

    @property
    def dealer(self) -> Participant:
        return self.participant("dealer")

    @property
    def token_manager(self) -> Participant:
        return self.participant("token_manager")

    def members(self, prefix: str) -> List[Participant]:
        """Participants named ``<prefix><n>`` (``customer1``, ``recycler2``...) in order."""

        found = [p for name, p in self.participants.items() if name.startswith(prefix) and name[len(prefix):].isdigit()]
        return sorted(found, key=lambda p: int(p.name[len(prefix):]))

    def private_client(self, name: str) -> PrivateChannelClient:
        try:
            return self.private[name]
        except KeyError as exc:
            raise ValueError(f"{name!r} has no private node") from exc

    def channel(self, sender: str, *recipients: str) -> PrivateChannel:
        """Channel from *sender*'s node to the nodes of *recipients*."""

        origin = self.participant(sender)
        keys = []
        for name in recipients:
            key = self.participant(name).channel_key
            if key is None:
                raise ValueError(f"{name!r} has no private node")
            keys.append(key)
        if origin.channel_key is None:
            raise ValueError(f"{sender!r} has no private node")
        return PrivateChannel(private_from=origin.channel_key, private_for=tuple(keys), signer=origin.account)

    def private_shop(self, recycler: str) -> PrivateContract:
        try:
            return self.private_shops[recycler]
        except KeyError as exc:
            raise ValueError(f"No private shop deployed for {recycler!r}") from exc

    def require_public(self) -> None:
        if self.rsc is None or self.rgc is None or self.shop is None:
            raise ValueError("Public ReClothes contracts are not deployed")


def build_besu_context(settings: Settings) -> ReclothesContext:
    """Connect to the Besu nodes named in *settings*.

    Node 1 carries the public traffic; each private participant signs through
    its own node.
    """

    from .ledgers.besu import BesuPrivateLedger, BesuPublicLedger

    interfaces = load_interfaces(settings.artifacts_dir)
    public = PublicSettlementClient(
        BesuPublicLedger(settings.node(1).url, settings.chain_id, receipt_timeout=settings.receipt_timeout)
    )

    participants: Dict[str, Participant] = {}
    private: Dict[str, PrivateChannelClient] = {}
    for role in ("token_manager", "dealer", "customer1", "customer2", "recycler1", "recycler2"):
        node_index = NODE_ROLES.get(role)
        if node_index is not None and node_index > len(settings.nodes):
            continue
        try:
            key = settings.account_key(role)
        except ValueError:
            print(f"[config] no key for {role}, participant skipped")
            continue
        channel_key = settings.node(node_index).channel_key if node_index else None
        participants[role] = Participant(role, Account.from_key(key), channel_key)
        if node_index:
            private[role] = PrivateChannelClient(
                BesuPrivateLedger(settings.node(node_index).url, settings.chain_id),
                receipt_timeout=settings.receipt_timeout,
                poll_interval=settings.poll_interval,
            )

    context = ReclothesContext(
        public=public,
        participants=participants,
        interfaces=interfaces,
        private=private,
        confidential_pricing=list(settings.confidential_pricing),
    )
    if settings.reselling_address:
        context.rsc = PublicContract(settings.reselling_address, interfaces[RESELLING_CREDIT])
    if settings.regeneration_address:
        context.rgc = PublicContract(settings.regeneration_address, interfaces[REGENERATION_CREDIT])
    if settings.reclothes_shop_address:
        context.shop = PublicContract(settings.reclothes_shop_address, interfaces[RECLOTHES_SHOP])
    return context


__all__ = ["Participant", "ReclothesContext", "build_besu_context"]
