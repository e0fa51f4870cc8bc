"""Fee splitting for settlements.

Usage:
    from settler.fees import split, apply_slippage

    result = split(amount, payout_bps=7000, buyback_bps=3000, protocol_fee_bps=100)
    min_out = apply_slippage(quoted_out, slippage_bps)
"""

from settler.fees.result import FeeSplit
from settler.fees.splitter import apply_slippage, bps_of, burn_portion, split, validate_bps

__all__ = [
    "FeeSplit",
    "split",
    "apply_slippage",
    "burn_portion",
    "bps_of",
    "validate_bps",
]
