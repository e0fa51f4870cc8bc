"""Tests for basis-point fee splitting."""

import pytest

from settler.errors import AmountOverflow, InvalidBasisPoints
from settler.fees import FeeSplit, apply_slippage, bps_of, burn_portion, split, validate_bps
from settler.safe_int import U64_MAX


class TestValidateBps:
    """Tests for split validation."""

    def test_full_split_is_valid(self):
        validate_bps(7000, 3000, 5000)

    def test_sum_above_denominator(self):
        with pytest.raises(InvalidBasisPoints):
            validate_bps(7000, 3001)

    @pytest.mark.parametrize("bps", [-1, 10_001])
    def test_single_value_out_of_range(self, bps):
        with pytest.raises(InvalidBasisPoints):
            validate_bps(0, 0, bps)

    def test_non_integer(self):
        with pytest.raises(InvalidBasisPoints):
            validate_bps(7000.0, 3000)  # type: ignore


class TestSplit:
    """Tests for the payment split."""

    def test_example_split(self):
        """7000/3000 of 1_000_000 with a 1% fee."""
        result = split(1_000_000, 7000, 3000, protocol_fee_bps=100, burn_bps=5000)
        assert result.buyback == 300_000
        assert result.protocol_fee == 10_000
        assert result.payout == 690_000
        assert result.burn == 150_000
        assert result.remainder == 0

    def test_without_fee_payout_is_uncapped(self):
        result = split(1_000_000, 7000, 3000)
        assert result == FeeSplit(amount=1_000_000, payout=700_000, buyback=300_000)

    def test_floors_leave_remainder(self):
        """Each component floors; the dust is left over."""
        result = split(999, 3333, 3333)
        assert result.payout == 332
        assert result.buyback == 332
        assert result.remainder == 335

    def test_zero_buyback(self):
        result = split(1_000_000, 10_000, 0)
        assert not result.has_buyback
        assert result.buyback == 0

    @pytest.mark.parametrize("amount", [0, 1, 7, 10_000, 123_456_789, U64_MAX])
    @pytest.mark.parametrize(
        ("payout_bps", "buyback_bps", "fee_bps"),
        [(7000, 3000, 500), (10_000, 0, 0), (0, 9750, 250), (500, 9500, 500), (4999, 4999, 1)],
    )
    def test_components_never_exceed_amount(self, amount, payout_bps, buyback_bps, fee_bps):
        result = split(amount, payout_bps, buyback_bps, protocol_fee_bps=fee_bps)
        assert result.payout + result.buyback + result.protocol_fee <= amount
        assert result.buyback == amount * buyback_bps // 10_000

    def test_fee_cap(self):
        with pytest.raises(InvalidBasisPoints):
            split(1_000, 7000, 3000, protocol_fee_bps=501)

    @pytest.mark.parametrize("amount", [0, 10_000, U64_MAX])
    def test_buyback_and_fee_above_amount(self, amount):
        with pytest.raises(InvalidBasisPoints, match=r"buyback_bps \+ protocol_fee_bps"):
            split(amount, 0, 10_000, protocol_fee_bps=250)

    def test_payout_absorbs_fee(self):
        result = split(10_000, 500, 9500, protocol_fee_bps=500)
        assert (result.payout, result.buyback, result.protocol_fee) == (0, 9500, 500)
        assert result.remainder == 0

    def test_amount_above_u64(self):
        with pytest.raises(AmountOverflow):
            split(U64_MAX + 1, 7000, 3000)

    def test_to_dict_uses_strings(self):
        data = split(1_000_000, 7000, 3000).to_dict()
        assert data["buyback"] == "300000"
        assert data["protocolFee"] == "0"


class TestSlippage:
    """Tests for minimum-output floors."""

    def test_one_percent(self):
        assert apply_slippage(1000, 100) == 990

    def test_floors(self):
        assert apply_slippage(999, 100) == 989

    def test_zero_slippage(self):
        assert apply_slippage(12_345, 0) == 12_345

    def test_full_slippage(self):
        assert apply_slippage(12_345, 10_000) == 0

    def test_out_of_range(self):
        with pytest.raises(InvalidBasisPoints):
            apply_slippage(1000, 10_001)


class TestHelpers:
    def test_bps_of(self):
        assert bps_of(U64_MAX, 10_000) == U64_MAX

    def test_burn_portion(self):
        assert burn_portion(300_000, 5000) == 150_000
