"""FastAPI application exposing the ReClothes confidential flows over HTTP."""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Annotated, Dict, List, Optional

from eth_utils import is_address, to_checksum_address
from fastapi import FastAPI, HTTPException, Path, Request
from hexbytes import HexBytes
from pydantic import BaseModel, Field

from .contracts import CLOTH_TYPES
from .context import ReclothesContext
from .errors import (
    ChannelMismatchError,
    EncodingError,
    LedgerRejectedError,
    ReclothesError,
    ResourcePreconditionError,
    RoleRejectedError,
    TransportError,
    UniquenessError,
)
from .orchestrator import Outcome
from .shop import Box, ReclothesShop, SaleableCloth


BACKEND = os.getenv("RECLOTHES_BACKEND", "sandbox")
HOST = os.getenv("RECLOTHES_HOST", "127.0.0.1")
PORT = int(os.getenv("RECLOTHES_PORT", "8000"))

# Most specific first.
STATUS_CODES = (
    (RoleRejectedError, 403),
    (UniquenessError, 409),
    (ResourcePreconditionError, 409),
    (TransportError, 502),
    (EncodingError, 422),
    (ChannelMismatchError, 400),
    (LedgerRejectedError, 400),
)

ClothType = Annotated[int, Field(ge=0, lt=CLOTH_TYPES)]
Quantity = Annotated[int, Field(ge=0)]


class ConfidentialBoxRequest(BaseModel):
    recycler: str = Field(default="recycler1", min_length=1)
    box_id: int = Field(ge=0)
    description: str = Field(default="", max_length=280)
    clothes_types: List[ClothType] = Field(min_length=1, max_length=CLOTH_TYPES)
    quantities: List[Quantity] = Field(min_length=1, max_length=CLOTH_TYPES)


class EvaluationRequest(BaseModel):
    recycler: str = Field(default="recycler1", min_length=1)
    extra_rgc: int = Field(default=0, ge=0)


class UpcycledClothRequest(BaseModel):
    recycler: str = Field(default="recycler1", min_length=1)
    cloth_id: int = Field(ge=0)
    price: int = Field(ge=0)
    cloth_type: int = Field(ge=0, lt=CLOTH_TYPES)
    size: int = Field(ge=0, lt=256)
    description: str = Field(default="", max_length=280)
    ext_cloth_data_hash: Optional[str] = Field(default=None, description="0x-prefixed bytes32")


class PurchaseRequest(BaseModel):
    recycler: str = Field(default="recycler1", min_length=1)
    resale_price: Optional[int] = Field(default=None, gt=0)


class SettlementResponse(BaseModel):
    correlation_token: str
    settlement_tx_hashes: List[str]


class TokenResponse(BaseModel):
    correlation_token: str


class InventoryResponse(BaseModel):
    cloth_type: int
    quantity: int


class BalanceResponse(BaseModel):
    address: str
    rsc: int
    rgc: int


class PrivateBoxResponse(BaseModel):
    box_id: int
    description: str
    clothes_types: List[int]
    quantities: List[int]
    evaluation: int


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ReclothesError):
        for error_type, status in STATUS_CODES:
            if isinstance(exc, error_type):
                detail: Dict[str, object] = {"error": type(exc).__name__, "reason": str(exc)}
                if isinstance(exc, LedgerRejectedError) and exc.tx_hash is not None:
                    detail["tx_hash"] = "0x" + bytes(exc.tx_hash).hex()
                return HTTPException(status_code=status, detail=detail)
    return HTTPException(status_code=400, detail={"error": type(exc).__name__, "reason": str(exc)})


def _settlement(outcome: Outcome) -> SettlementResponse:
    return SettlementResponse(
        correlation_token=outcome.token.hex(),
        settlement_tx_hashes=["0x" + bytes(receipt.tx_hash).hex() for receipt in outcome.receipts],
    )


async def _default_context() -> ReclothesContext:
    if BACKEND == "besu":
        from .config import load_settings
        from .context import build_besu_context

        return build_besu_context(load_settings())
    from .deploy import deploy_sandbox

    return await deploy_sandbox()


def create_app(context: Optional[ReclothesContext] = None) -> FastAPI:
    """Build the HTTP application; without *context* one is created at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.context is None:
            app.state.context = await _default_context()
        yield

    app = FastAPI(title="ReClothes Confidential Settlement", version="1.0.0", lifespan=lifespan)
    app.state.context = context

    def shop_for(request: Request) -> ReclothesShop:
        return ReclothesShop(request.app.state.context)

    @app.post("/confidential/boxes", response_model=SettlementResponse)
    async def send_confidential_box(payload: ConfidentialBoxRequest, request: Request) -> SettlementResponse:
        """Send a box privately to a recycler and decrease the public stock."""

        box = Box(payload.box_id, payload.description, payload.clothes_types, payload.quantities)
        try:
            outcome = await shop_for(request).send_confidential_box(payload.recycler, box)
        except (ReclothesError, ValueError) as exc:
            raise _http_error(exc) from exc
        return _settlement(outcome)

    @app.post("/confidential/boxes/{box_id}/evaluation", response_model=SettlementResponse)
    async def evaluate_confidential_box(box_id: int, payload: EvaluationRequest, request: Request) -> SettlementResponse:
        """Evaluate a confidential box and pay the dealer the disclosed RGC amount."""

        try:
            outcome = await shop_for(request).evaluate_confidential_box(payload.recycler, box_id, payload.extra_rgc)
        except (ReclothesError, ValueError) as exc:
            raise _http_error(exc) from exc
        return _settlement(outcome)

    @app.post("/confidential/clothes", response_model=TokenResponse)
    async def sell_upcycled_cloth(payload: UpcycledClothRequest, request: Request) -> TokenResponse:
        try:
            ext_hash = bytes(HexBytes(payload.ext_cloth_data_hash)) if payload.ext_cloth_data_hash else b"\x00" * 32
            cloth = SaleableCloth(payload.cloth_id, payload.price, payload.cloth_type, payload.size,
                                  payload.description, ext_hash)
            token = await shop_for(request).sell_upcycled_cloth(payload.recycler, cloth)
        except (ReclothesError, ValueError) as exc:
            raise _http_error(exc) from exc
        return TokenResponse(correlation_token=token.hex())

    @app.post("/confidential/clothes/{cloth_id}/purchase", response_model=SettlementResponse)
    async def buy_upcycled_cloth(cloth_id: int, payload: PurchaseRequest, request: Request) -> SettlementResponse:
        """Buy an upcycled cloth privately, pay the recycler and list it publicly."""

        try:
            outcome = await shop_for(request).buy_upcycled_cloth(payload.recycler, cloth_id, payload.resale_price)
        except (ReclothesError, ValueError) as exc:
            raise _http_error(exc) from exc
        return _settlement(outcome)

    @app.get("/inventory/{cloth_type}", response_model=InventoryResponse)
    async def inventory(request: Request, cloth_type: int = Path(ge=0, lt=CLOTH_TYPES)) -> InventoryResponse:
        try:
            quantity = await shop_for(request).inventory(cloth_type)
        except ReclothesError as exc:
            raise _http_error(exc) from exc
        return InventoryResponse(cloth_type=cloth_type, quantity=quantity)

    @app.get("/balances/{address}", response_model=BalanceResponse)
    async def balances(address: str, request: Request) -> BalanceResponse:
        if not is_address(address):
            raise HTTPException(status_code=422, detail="Invalid address")
        address = to_checksum_address(address)
        shop = shop_for(request)
        try:
            rsc = await shop.balance_of("RSC", address)
            rgc = await shop.balance_of("RGC", address)
        except ReclothesError as exc:
            raise _http_error(exc) from exc
        return BalanceResponse(address=address, rsc=rsc, rgc=rgc)

    @app.get("/private/boxes/{box_id}", response_model=PrivateBoxResponse)
    async def private_box(box_id: int, request: Request, recycler: str = "recycler1") -> PrivateBoxResponse:
        """Read a confidential box from the dealer's node."""

        shop = shop_for(request)
        try:
            box = await shop.private_box(recycler, box_id)
            evaluation = await shop.private_box_evaluation(recycler, box_id)
        except (ReclothesError, ValueError) as exc:
            raise _http_error(exc) from exc
        if box.id == 0:
            raise HTTPException(status_code=404, detail="Box not found")
        return PrivateBoxResponse(
            box_id=box.id,
            description=box.description,
            clothes_types=list(box.clothes_types),
            quantities=list(box.quantities),
            evaluation=evaluation,
        )

    return app


app = create_app()


def main():
    import uvicorn

    uvicorn.run(app, host=HOST, port=PORT, log_level="info")


if __name__ == "__main__":
    main()


__all__ = ["app", "create_app", "main"]
