"""Basis-point fee splitting and slippage floors.

Every product is computed through SafeInt: amounts are u64 and basis points
at most 10_000, so ``amount * bps`` stays below 2^64 * 10_001 < 2^78 and the
u128 intermediate bound can only trip on inputs already outside u64, which
raise AmountOverflow first. All divisions floor.
"""

from __future__ import annotations

from settler.constants import BPS_DENOMINATOR, MAX_PROTOCOL_FEE_BPS
from settler.errors import InvalidBasisPoints
from settler.fees.result import FeeSplit
from settler.safe_int import S, checked_u64


def _check_bps(name: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidBasisPoints(f"{name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= BPS_DENOMINATOR:
        raise InvalidBasisPoints(f"{name} must be within 0..{BPS_DENOMINATOR}, got {value}")


def validate_bps(payout_bps: int, buyback_bps: int, burn_bps: int = 0) -> None:
    """Validate a split.

    Payout and buyback together may not exceed 100%. Burn is a fraction of
    the buyback and is checked on its own.

    Raises:
        InvalidBasisPoints: If any value is out of range or the sum exceeds 10000
    """
    _check_bps("payout_bps", payout_bps)
    _check_bps("buyback_bps", buyback_bps)
    _check_bps("burn_bps", burn_bps)
    if payout_bps + buyback_bps > BPS_DENOMINATOR:
        raise InvalidBasisPoints(
            f"payout_bps + buyback_bps cannot exceed {BPS_DENOMINATOR}: "
            f"{payout_bps} + {buyback_bps} = {payout_bps + buyback_bps}"
        )


def bps_of(amount: int, bps: int) -> int:
    """floor(amount * bps / 10000).

    Raises:
        AmountOverflow: If amount is outside u64
    """
    checked_u64(amount)
    return (S(amount) * bps // BPS_DENOMINATOR).to_u64()


def split(
    amount: int,
    payout_bps: int,
    buyback_bps: int,
    protocol_fee_bps: int = 0,
    burn_bps: int = 0,
) -> FeeSplit:
    """Split a payment into payout, buyback and protocol fee.

    buyback = floor(amount * buyback_bps / 10000)
    protocol_fee = floor(amount * protocol_fee_bps / 10000)
    payout = min(floor(amount * payout_bps / 10000), amount - buyback - protocol_fee)

    The payout is capped so the three components never exceed the amount
    once the protocol fee is taken. Buyback and fee are never capped, so
    together they may not exceed 100%.

    Raises:
        InvalidBasisPoints: If the split is invalid, the fee exceeds 500 bps or
            buyback and fee together exceed 10000
        AmountOverflow: If amount is outside u64
    """
    validate_bps(payout_bps, buyback_bps, burn_bps)
    _check_bps("protocol_fee_bps", protocol_fee_bps)
    if protocol_fee_bps > MAX_PROTOCOL_FEE_BPS:
        raise InvalidBasisPoints(
            f"protocol_fee_bps cannot exceed {MAX_PROTOCOL_FEE_BPS}: {protocol_fee_bps}"
        )
    if buyback_bps + protocol_fee_bps > BPS_DENOMINATOR:
        raise InvalidBasisPoints(
            f"buyback_bps + protocol_fee_bps cannot exceed {BPS_DENOMINATOR}: "
            f"{buyback_bps} + {protocol_fee_bps} = {buyback_bps + protocol_fee_bps}"
        )
    checked_u64(amount)

    buyback = bps_of(amount, buyback_bps)
    protocol_fee = bps_of(amount, protocol_fee_bps)
    available = S(amount).saturating_sub(buyback).saturating_sub(protocol_fee)
    payout = available.min(bps_of(amount, payout_bps)).to_u64()

    return FeeSplit(
        amount=amount,
        payout=payout,
        buyback=buyback,
        protocol_fee=protocol_fee,
        burn=burn_portion(buyback, burn_bps),
    )


def apply_slippage(amount: int, max_slippage_bps: int) -> int:
    """Minimum acceptable output: floor(amount * (10000 - slippage) / 10000).

    Raises:
        InvalidBasisPoints: If slippage is outside 0..10000
        AmountOverflow: If amount is outside u64
    """
    _check_bps("slippage_bps", max_slippage_bps)
    return bps_of(amount, BPS_DENOMINATOR - max_slippage_bps)


def burn_portion(buyback_amount: int, burn_bps: int) -> int:
    """Part of the buyback to burn: floor(buyback * burn_bps / 10000)."""
    _check_bps("burn_bps", burn_bps)
    return bps_of(buyback_amount, burn_bps)


__all__ = ["validate_bps", "bps_of", "split", "apply_slippage", "burn_portion"]
