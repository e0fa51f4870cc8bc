"""Route quote value objects.

A Quote is produced by the route quoter and consumed once; nothing mutates
it after construction.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from settler.chain.pubkey import Pubkey


@dataclass(frozen=True)
class Quote:
    """A single-hop conversion quote.

    Attributes:
        input_mint: Asset sold
        output_mint: Asset bought
        in_amount: Exact input, smallest units
        out_amount: Expected output, smallest units
        route_plan: Opaque aggregator route description
        context_slot: Slot the aggregator priced against, if reported
        raw: The aggregator's quote document, echoed back when building the swap
    """

    input_mint: Pubkey
    output_mint: Pubkey
    in_amount: int
    out_amount: int
    route_plan: tuple[Any, ...] = field(default=(), hash=False)
    context_slot: int | None = None
    time_taken: float | None = None
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "raw", MappingProxyType(dict(self.raw)))

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> Quote:
        """Parse an aggregator quote response.

        Raises:
            KeyError, ValueError: If required fields are missing or invalid
        """
        context_slot = data.get("contextSlot")
        time_taken = data.get("timeTaken")
        return cls(
            input_mint=Pubkey.from_string(data["inputMint"]),
            output_mint=Pubkey.from_string(data["outputMint"]),
            in_amount=int(data["inAmount"]),
            out_amount=int(data["outAmount"]),
            route_plan=tuple(data.get("routePlan") or ()),
            context_slot=int(context_slot) if context_slot is not None else None,
            time_taken=float(time_taken) if time_taken is not None else None,
            raw=data,
        )

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return dict(self.raw)
        return {
            "inputMint": str(self.input_mint),
            "outputMint": str(self.output_mint),
            "inAmount": str(self.in_amount),
            "outAmount": str(self.out_amount),
            "routePlan": list(self.route_plan),
            "contextSlot": self.context_slot,
        }


@dataclass(frozen=True)
class MultiHopQuote:
    """Two chained quotes: the first hop's output is the second hop's exact input."""

    first: Quote
    second: Quote

    @property
    def total_out(self) -> int:
        return self.second.out_amount

    @property
    def final_hop(self) -> Quote:
        return self.second

    def to_dict(self) -> dict[str, Any]:
        return {
            "firstHop": self.first.to_dict(),
            "secondHop": self.second.to_dict(),
            "totalOutAmount": str(self.total_out),
        }


@dataclass(frozen=True)
class NotTradable:
    """The aggregator could not produce a route (or could not be reached)."""

    reason: str
    status_code: int | None = None
    attempts: int = 1


@dataclass(frozen=True)
class SwapTransaction:
    """A ready-to-merge swap transaction built by the aggregator."""

    transaction_base64: str
    payer: Pubkey
    last_valid_block_height: int | None = None
    prioritization_fee_lamports: int | None = None


__all__ = ["Quote", "MultiHopQuote", "NotTradable", "SwapTransaction"]
