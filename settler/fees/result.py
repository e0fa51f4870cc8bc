"""Fee split result type."""

from dataclasses import dataclass


@dataclass(frozen=True)
class FeeSplit:
    """How a payment amount is divided.

    All components are floor-rounded, so they never sum above the amount.
    Whatever the floors leave over is reported as ``remainder``.

    Attributes:
        amount: The payment, smallest units
        payout: Merchant payout
        buyback: Portion converted into the merchant's buyback token
        protocol_fee: Protocol fee (mirrors what the chain program charges)
        burn: Portion of the buyback output to burn, in buyback-input units
        remainder: amount - payout - buyback - protocol_fee

    Examples:
        result = split(1_000_000, payout_bps=7000, buyback_bps=3000)
        assert result.buyback == 300_000
        assert result.payout + result.buyback <= result.amount
    """

    amount: int
    payout: int
    buyback: int
    protocol_fee: int = 0
    burn: int = 0

    @property
    def remainder(self) -> int:
        return self.amount - self.payout - self.buyback - self.protocol_fee

    @property
    def has_buyback(self) -> bool:
        return self.buyback > 0

    def to_dict(self) -> dict[str, str]:
        return {
            "amount": str(self.amount),
            "payout": str(self.payout),
            "buyback": str(self.buyback),
            "protocolFee": str(self.protocol_fee),
            "burn": str(self.burn),
        }
