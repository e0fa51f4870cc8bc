"""Tests for SafeInt checked arithmetic."""

import pytest

from settler.errors import AmountOverflow, IntegrityError
from settler.safe_int import (
    U64_MAX,
    U128_MAX,
    DivisionByZero,
    S,
    SafeInt,
    SafeIntError,
    Underflow,
    checked_u64,
)


class TestSafeIntConstruction:
    """Tests for SafeInt construction."""

    def test_from_int(self):
        """SafeInt can be constructed from int."""
        assert SafeInt(42).value == 42

    def test_from_safeint(self):
        """SafeInt copies another SafeInt."""
        assert SafeInt(SafeInt(7)).value == 7

    def test_rejects_bool_and_float(self):
        """Booleans and floats are not amounts."""
        with pytest.raises(TypeError):
            SafeInt(True)  # type: ignore
        with pytest.raises(TypeError):
            SafeInt(1.5)  # type: ignore

    def test_u128_bound(self):
        """Values beyond u128 are rejected at construction."""
        assert SafeInt(U128_MAX).value == U128_MAX
        with pytest.raises(AmountOverflow):
            SafeInt(U128_MAX + 1)

    def test_alias(self):
        assert S is SafeInt


class TestSafeIntArithmetic:
    """Tests for checked operations."""

    def test_add_and_mul(self):
        assert (S(10) + 5).value == 15
        assert (3 * S(4)).value == 12

    def test_sub_underflow(self):
        """Subtracting past zero raises Underflow."""
        with pytest.raises(Underflow):
            S(3) - 4
        with pytest.raises(Underflow):
            2 - S(3)

    def test_floordiv(self):
        assert (S(10) // 3).value == 3

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZero):
            S(10) // 0

    def test_product_overflow(self):
        """An intermediate above u128 raises even before conversion."""
        with pytest.raises(AmountOverflow):
            S(U64_MAX) * U64_MAX * 2

    def test_saturating_sub(self):
        assert S(3).saturating_sub(10).value == 0
        assert S(10).saturating_sub(3).value == 7

    def test_min(self):
        assert S(5).min(3).value == 3
        assert S(5).min(S(9)).value == 5

    def test_errors_are_arithmetic_errors(self):
        assert issubclass(Underflow, SafeIntError)
        assert issubclass(SafeIntError, ArithmeticError)


class TestConversion:
    """Tests for u64 conversion."""

    def test_to_u64_in_range(self):
        assert S(U64_MAX).to_u64() == U64_MAX

    def test_to_u64_overflow(self):
        with pytest.raises(AmountOverflow):
            S(U64_MAX + 1).to_u64()

    def test_is_u64(self):
        assert S(0).is_u64()
        assert not S(U64_MAX + 1).is_u64()

    def test_comparisons_with_int(self):
        assert S(5) == 5
        assert S(5) < 6
        assert S(5) >= S(5)


class TestCheckedU64:
    """Tests for plain-int u64 validation."""

    @pytest.mark.parametrize("value", [0, 1, U64_MAX])
    def test_accepts_u64(self, value):
        assert checked_u64(value) == value

    @pytest.mark.parametrize("value", [-1, U64_MAX + 1])
    def test_rejects_out_of_range(self, value):
        with pytest.raises(AmountOverflow, match="amount"):
            checked_u64(value)

    def test_rejects_non_int(self):
        with pytest.raises(TypeError):
            checked_u64("5")  # type: ignore

    def test_overflow_is_integrity_error(self):
        """Overflow is classified as an integrity failure."""
        assert issubclass(AmountOverflow, IntegrityError)
