"""API endpoints for the settlement gateway."""

import asyncio

import structlog
from fastapi import APIRouter, Depends

from settler.chain.instructions import ComputeBudget
from settler.chain.pubkey import Pubkey
from settler.composer import ComposeRequest, SettlementComposer, get_default_composer
from settler.errors import MerchantNotFound
from settler.merchants import MerchantService, get_default_merchant_service
from settler.models.api import (
    BuildTxRequest,
    BuildTxResponse,
    QuoteRequest,
    QuoteResponse,
    RegisterMerchantRequest,
    RegisterMerchantResponse,
)
from settler.models.merchant import MerchantProfile, MerchantProfileUpdate
from settler.quotes import QuoteService, get_default_quote_service
from settler.store import MerchantStore, get_default_store

logger = structlog.get_logger()

router = APIRouter()


def get_composer() -> SettlementComposer:
    """Dependency provider for the settlement composer.

    Override this in tests to inject a composer wired to fakes:
        app.dependency_overrides[get_composer] = lambda: composer
    """
    return get_default_composer()


def get_quote_service() -> QuoteService:
    """Dependency provider for the quote service."""
    return get_default_quote_service()


def get_store() -> MerchantStore:
    """Dependency provider for the merchant store."""
    return get_default_store()


def get_merchant_service() -> MerchantService:
    """Dependency provider for merchant registration and updates."""
    return get_default_merchant_service()


def to_compose_request(body: BuildTxRequest) -> ComposeRequest:
    """Convert the validated request body into the composer's input."""
    return ComposeRequest(
        merchant_id=int(body.merchant_id),
        amount=int(body.amount),
        pay_token=body.pay_token,
        payer=Pubkey.from_string(body.payer),
        payout_bps=body.payout_bps,
        buyback_bps=body.buyback_bps,
        burn_bps=body.burn_bps,
        min_out=int(body.min_out) if body.min_out is not None else None,
        quoted_out=int(body.quoted_out) if body.quoted_out is not None else None,
        swap_transaction=body.swap_transaction,
        compute_budget=ComputeBudget(
            unit_limit=body.compute_unit_limit,
            unit_price_micro_lamports=body.compute_unit_price,
        ),
    )


@router.post("/quote", response_model_exclude_none=True)
async def quote(
    body: QuoteRequest,
    service: QuoteService = Depends(get_quote_service),
) -> QuoteResponse:
    """Price a payment and preview its split.

    Error Handling:
        - Invalid request schema: 422 (Pydantic)
        - Settlement errors: mapped to their HTTP status by the app handler
    """
    logger.info(
        "received_quote_request",
        merchant_id=body.merchant_id,
        merchant_wallet=body.merchant_wallet,
        pay_token=body.pay_token.value,
        price=str(body.price),
    )
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, service.quote, body)


@router.post("/build-tx")
async def build_tx(
    body: BuildTxRequest,
    composer: SettlementComposer = Depends(get_composer),
) -> BuildTxResponse:
    """Compose the unsigned settle transaction for the buyer to sign."""
    request = to_compose_request(body)
    logger.info(
        "received_build_tx_request",
        merchant_id=request.merchant_id,
        pay_token=request.pay_token.value,
        amount=request.amount,
        payer=body.payer,
    )
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, composer.compose, request)
    return BuildTxResponse(transaction=result.to_base64(), expires_at=result.expires_at)


@router.get("/merchant/{merchant_id}")
async def get_merchant(
    merchant_id: int,
    store: MerchantStore = Depends(get_store),
) -> MerchantProfile:
    """Return a stored merchant profile."""
    profile = store.get(merchant_id)
    if profile is None:
        raise MerchantNotFound(f"Merchant {merchant_id} not found")
    return profile


@router.post("/merchant/register")
async def register_merchant(
    body: RegisterMerchantRequest,
    service: MerchantService = Depends(get_merchant_service),
) -> RegisterMerchantResponse:
    """Create a merchant profile under a generated merchant id.

    Error Handling:
        - Invalid default split: 400
        - Owner already registered: 409
    """
    logger.info("received_register_request", owner=body.owner, buyback_mint=body.buyback_mint)
    return service.register(body)


@router.patch("/merchant/{merchant_id}")
async def update_merchant(
    merchant_id: int,
    body: MerchantProfileUpdate,
    service: MerchantService = Depends(get_merchant_service),
) -> MerchantProfile:
    """Apply a partial update to a merchant profile."""
    logger.info("received_update_request", merchant_id=merchant_id, fields=sorted(body.changes()))
    return service.update(merchant_id, body)
