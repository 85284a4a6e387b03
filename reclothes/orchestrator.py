"""Confidential transaction orchestrator.

One :class:`ConfidentialTransaction` drives a single business operation:

1. submit the private action and wait for its correlation token;
2. run the settlement steps in order, appending the token to correlated ones;
3. stop at the first failure and re-raise it.

Settled steps are never rolled back; the caller decides how to compensate.
"""

from __future__ import annotations

import asyncio
import enum
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Union

from eth_account.signers.local import LocalAccount

from .channel import CorrelationToken, PrivateAction, PrivateChannel, PrivateChannelClient
from .errors import TransportError
from .receipts import Receipt
from .settlement import PublicContract, PublicSettlementClient


class State(enum.Enum):
    IDLE = "idle"
    PRIVATE_SUBMITTED = "private_submitted"
    CORRELATED = "correlated"
    SETTLING = "settling"
    SETTLED = "settled"
    FAILED = "failed"


FINAL_STATES = frozenset({State.SETTLED, State.FAILED})

StepArgs = Union[Sequence[Any], Callable[[Receipt], Sequence[Any]]]


@dataclass(frozen=True)
class SettlementStep:
    """One public call of a settlement chain.

    ``args`` may be a callable; it then receives the private receipt so that
    disclosed values can be read from private events.  Uncorrelated steps
    (allowance grants) do not carry the token.
    """

    contract: PublicContract
    method: str
    args: StepArgs
    sender: LocalAccount = field(repr=False)
    correlated: bool = True
    label: Optional[str] = None

    @property
    def name(self) -> str:
        return self.label or f"{self.contract.interface.name}.{self.method}"


@dataclass(frozen=True)
class Transition:
    state: State
    at: float
    detail: str = ""


@dataclass
class Outcome:
    token: CorrelationToken
    private_receipt: Receipt
    receipts: List[Receipt]


class ConfidentialTransaction:
    """Private action followed by its dependent public settlement chain."""

    def __init__(
        self,
        private_client: PrivateChannelClient,
        public_client: PublicSettlementClient,
        action: PrivateAction,
        channel: PrivateChannel,
        steps: Sequence[SettlementStep] = (),
    ) -> None:
        self.private_client = private_client
        self.public_client = public_client
        self.action = action
        self.channel = channel
        self.steps = list(steps)
        self.state = State.IDLE
        self.history: List[Transition] = [Transition(State.IDLE, time.time())]
        self.token: Optional[CorrelationToken] = None
        self.receipts: List[Receipt] = []
        self.failed_step: Optional[SettlementStep] = None
        self.error: Optional[BaseException] = None

    def _advance(self, state: State, detail: str = "") -> None:
        self.state = state
        self.history.append(Transition(state, time.time(), detail))
        print(f"[orchestrator] {self.action.method} -> {state.value}{': ' + detail if detail else ''}")

    def _fail(self, exc: BaseException, step: Optional[SettlementStep] = None) -> None:
        self.error = exc
        self.failed_step = step
        where = f"{step.name}: " if step is not None else ""
        self._advance(State.FAILED, f"{where}{exc}")

    async def _settle(self, step: SettlementStep, private_receipt: Receipt) -> Receipt:
        args = step.args(private_receipt) if callable(step.args) else step.args
        if step.correlated:
            return await self.public_client.submit_public_settlement(
                step.contract, step.method, args, self.token, step.sender
            )
        return await self.public_client.transact(step.contract, step.method, args, step.sender)

    async def execute(self) -> Outcome:
        if self.state is not State.IDLE:
            raise RuntimeError(f"Confidential transaction already {self.state.value}")

        step: Optional[SettlementStep] = None
        try:
            self._advance(State.PRIVATE_SUBMITTED, self.action.method)
            self.token = await self.private_client.submit_private(self.action, self.channel)
            self._advance(State.CORRELATED, str(self.token))

            private_receipt = await self.private_client.fetch_receipt(self.token, self.channel)

            self._advance(State.SETTLING, f"{len(self.steps)} step(s)")
            for step in self.steps:
                self.receipts.append(await self._settle(step, private_receipt))
            step = None
            self._advance(State.SETTLED)
        except asyncio.CancelledError:
            self._fail(TransportError("cancelled; outcome indeterminate"), step)
            raise
        except Exception as exc:
            self._fail(exc, step)
            raise

        return Outcome(token=self.token, private_receipt=private_receipt, receipts=list(self.receipts))


__all__ = [
    "ConfidentialTransaction",
    "FINAL_STATES",
    "Outcome",
    "SettlementStep",
    "State",
    "Transition",
]
