"""Buyback routing: aggregator quotes, route planning, swap account extraction."""

from settler.routing.buyback import BuybackRoute, plan_buyback_route
from settler.routing.extractor import AccountSet, SwapAccountExtractor
from settler.routing.quoter import (
    AggregatorQuoter,
    MockRouteQuoter,
    RouteQuoter,
    SwapOptions,
)

__all__ = [
    "RouteQuoter",
    "AggregatorQuoter",
    "MockRouteQuoter",
    "SwapOptions",
    "BuybackRoute",
    "plan_buyback_route",
    "AccountSet",
    "SwapAccountExtractor",
]
