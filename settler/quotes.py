"""Quote service: price previews ahead of settlement.

A quote converts the human price into smallest units, applies the
merchant's split and prices the buyback conversion. It never touches the
chain; the swap transaction it returns is built for the caller's payer, or
for a placeholder payer when the buyer is not known yet, and is re-planned
at compose time if the payer differs.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable
from decimal import ROUND_FLOOR, Decimal
from functools import lru_cache

import structlog

from settler.chain.pubkey import Pubkey
from settler.config import GatewayConfig
from settler.constants import (
    NATIVE_DECIMALS,
    PLACEHOLDER_PAYER,
    QUOTE_TTL_SECONDS,
    STABLE_DECIMALS,
)
from settler.errors import (
    AssetNotAccepted,
    InvalidAmount,
    InvalidRequest,
    MerchantFrozen,
    MerchantNotFound,
    RouteUnavailable,
)
from settler.fees import FeeSplit, apply_slippage, split
from settler.models.api import QuoteRequest, QuoteResponse, SplitPreview
from settler.models.merchant import MerchantProfile, PayToken
from settler.models.quote import NotTradable
from settler.routing.buyback import BuybackRoute, plan_buyback_route
from settler.routing.quoter import (
    DEFAULT_SWAP_OPTIONS,
    AggregatorQuoter,
    RouteQuoter,
    SwapOptions,
)
from settler.safe_int import checked_u64
from settler.store import MerchantStore, get_default_store

logger = structlog.get_logger()


def decimals_for(token: PayToken) -> int:
    return NATIVE_DECIMALS if token is PayToken.SOL else STABLE_DECIMALS


def to_base_units(price: Decimal, decimals: int) -> int:
    """Whole-unit price to smallest units, rounded down.

    Raises:
        InvalidAmount: If the price is not positive or rounds to zero
        AmountOverflow: If the result does not fit in u64
    """
    if not price.is_finite() or price <= 0:
        raise InvalidAmount(f"Price must be positive, got {price}")
    units = int((price * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_FLOOR))
    if units == 0:
        raise InvalidAmount(f"Price {price} is below the smallest unit")
    return checked_u64(units)


class QuoteService:
    """Prices payments for merchants.

    Args:
        store: Merchant profile store
        quoter: Route quoter for the buyback conversion
        stable_mint: Stable-asset mint of the cluster
        swap_options: Forwarded to the aggregator when building the swap
        quote_ttl_seconds: Validity window stamped as ``expiresAt``
        clock: Time source, seconds since the epoch
    """

    def __init__(
        self,
        store: MerchantStore,
        quoter: RouteQuoter,
        stable_mint: Pubkey,
        swap_options: SwapOptions = DEFAULT_SWAP_OPTIONS,
        quote_ttl_seconds: int = QUOTE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.quoter = quoter
        self.stable_mint = stable_mint
        self.swap_options = swap_options
        self.quote_ttl_seconds = quote_ttl_seconds
        self.clock = clock

    def _merchant(self, request: QuoteRequest) -> MerchantProfile:
        if request.merchant_id is not None:
            profile = self.store.get(int(request.merchant_id))
            key = request.merchant_id
        elif request.merchant_wallet is not None:
            profile = self.store.get_by_owner(request.merchant_wallet)
            key = request.merchant_wallet
        else:
            raise InvalidRequest("Either merchantId or merchantWallet is required")
        if profile is None:
            raise MerchantNotFound(f"Merchant {key} not found")
        if profile.frozen:
            raise MerchantFrozen(f"Merchant {profile.merchant_id} is frozen")
        if not profile.accepts(request.pay_token):
            raise AssetNotAccepted(
                f"Merchant {profile.merchant_id} does not accept {request.pay_token.value}"
            )
        return profile

    def quote(self, request: QuoteRequest) -> QuoteResponse:
        """Price a payment.

        Raises:
            InvalidRequest: If neither merchant id nor wallet is given
            MerchantNotFound, MerchantFrozen, AssetNotAccepted: Merchant state
            InvalidBasisPoints: If the split is invalid
            InvalidAmount: If the price rounds to nothing
            RouteUnavailable: If the buyback cannot be routed
        """
        profile = self._merchant(request)
        amount = to_base_units(request.price, decimals_for(request.pay_token))
        payout_bps = _pick(request.payout_bps, profile.default_payout_bps)
        buyback_bps = _pick(request.buyback_bps, profile.default_buyback_bps)
        burn_bps = _pick(request.burn_bps, profile.default_burn_bps)
        fee_split = split(
            amount,
            payout_bps,
            buyback_bps,
            protocol_fee_bps=request.protocol_fee_bps,
            burn_bps=burn_bps,
        )

        route: BuybackRoute | None = None
        estimated_out = 0
        min_out = 0
        if fee_split.has_buyback:
            payer = Pubkey.from_string(request.payer) if request.payer else PLACEHOLDER_PAYER
            planned = plan_buyback_route(
                self.quoter,
                request.pay_token,
                self.stable_mint,
                Pubkey.from_string(profile.buyback_mint),
                fee_split.buyback,
                profile.slippage_bps,
                payer,
                self.swap_options,
                require_swap=False,
            )
            if isinstance(planned, NotTradable):
                raise RouteUnavailable(f"No buyback route: {planned.reason}")
            route = planned
            estimated_out = route.estimated_out
            min_out = apply_slippage(estimated_out, profile.slippage_bps)
        else:
            logger.debug("quote_zero_buyback", merchant_id=profile.merchant_id)

        response = QuoteResponse(
            quote_id=str(uuid.uuid4()),
            merchant_id=profile.merchant_id,
            pay_token=request.pay_token,
            amount=amount,
            payout_bps=payout_bps,
            buyback_bps=buyback_bps,
            burn_bps=burn_bps,
            split=_preview(fee_split),
            buyback_mint=profile.buyback_mint,
            estimated_out=estimated_out,
            min_out=min_out,
            route=route.quote.to_dict() if route is not None else None,
            swap_transaction=route.swap.transaction_base64 if route and route.swap else None,
            expires_at=int(self.clock()) + self.quote_ttl_seconds,
        )
        logger.info(
            "quote_created",
            quote_id=response.quote_id,
            merchant_id=profile.merchant_id,
            amount=amount,
            buyback=fee_split.buyback,
            min_out=min_out,
        )
        return response


def _pick(requested: int | None, default: int) -> int:
    return default if requested is None else requested


def _preview(fee_split: FeeSplit) -> SplitPreview:
    return SplitPreview(
        amount=fee_split.amount,
        payout=fee_split.payout,
        buyback=fee_split.buyback,
        protocol_fee=fee_split.protocol_fee,
        burn=fee_split.burn,
    )


@lru_cache(maxsize=1)
def get_default_quote_service() -> QuoteService:
    """Quote service built from the environment."""
    config = GatewayConfig.from_env()
    quoter = AggregatorQuoter(
        config.aggregator_url,
        api_key=config.aggregator_api_key,
        timeout=config.aggregator_timeout,
        max_attempts=config.aggregator_max_attempts,
    )
    return QuoteService(
        store=get_default_store(),
        quoter=quoter,
        stable_mint=config.stable_mint,
        quote_ttl_seconds=config.quote_ttl_seconds,
    )


__all__ = ["QuoteService", "decimals_for", "to_base_units", "get_default_quote_service"]
