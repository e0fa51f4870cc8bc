"""Buyback route planning.

Native payments convert directly (native -> buyback token). Stable payments
go through the native asset (stable -> native -> buyback token) and only the
final hop gets a swap transaction, since that hop is the one the settle
instruction executes through the router.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from settler.chain.pubkey import Pubkey
from settler.constants import NATIVE_MINT
from settler.models.merchant import PayToken
from settler.models.quote import MultiHopQuote, NotTradable, Quote, SwapTransaction
from settler.routing.quoter import DEFAULT_SWAP_OPTIONS, RouteQuoter, SwapOptions

logger = structlog.get_logger()


@dataclass(frozen=True)
class BuybackRoute:
    """A priced buyback conversion and, when available, its swap transaction."""

    quote: Quote | MultiHopQuote
    swap: SwapTransaction | None

    @property
    def estimated_out(self) -> int:
        if isinstance(self.quote, MultiHopQuote):
            return self.quote.total_out
        return self.quote.out_amount

    @property
    def final_hop(self) -> Quote:
        if isinstance(self.quote, MultiHopQuote):
            return self.quote.final_hop
        return self.quote


def plan_buyback_route(
    quoter: RouteQuoter,
    pay_token: PayToken,
    stable_mint: Pubkey,
    buyback_mint: Pubkey,
    buyback_amount: int,
    slippage_bps: int,
    payer: Pubkey,
    options: SwapOptions = DEFAULT_SWAP_OPTIONS,
    require_swap: bool = True,
) -> BuybackRoute | NotTradable:
    """Quote the buyback conversion and build the final hop's swap transaction.

    Args:
        payer: Fee payer the swap transaction is built for; a placeholder
            address is acceptable for previews
        require_swap: If False, a failed swap build still returns the priced
            route (with ``swap=None``) instead of NotTradable
    """
    quote: Quote | MultiHopQuote | NotTradable
    if pay_token is PayToken.USDC:
        quote = quoter.multi_hop_quote(
            stable_mint, NATIVE_MINT, buyback_mint, buyback_amount, slippage_bps
        )
    else:
        quote = quoter.quote(NATIVE_MINT, buyback_mint, buyback_amount, slippage_bps)
    if isinstance(quote, NotTradable):
        logger.warning(
            "buyback_not_tradable",
            pay_token=pay_token.value,
            buyback_mint=str(buyback_mint),
            reason=quote.reason,
        )
        return quote

    route = BuybackRoute(quote=quote, swap=None)
    swap = quoter.build_swap_tx(route.final_hop, payer, options)
    if isinstance(swap, NotTradable):
        logger.warning("buyback_swap_unavailable", reason=swap.reason, required=require_swap)
        if require_swap:
            return swap
        return route
    return BuybackRoute(quote=quote, swap=swap)


__all__ = ["BuybackRoute", "plan_buyback_route"]
