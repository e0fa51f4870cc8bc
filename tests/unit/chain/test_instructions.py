"""Tests for instruction encoders."""

import hashlib
import struct

import pytest

from settler.chain.instructions import (
    SETTLE_DISCRIMINATOR,
    AccountMeta,
    AssetKind,
    ComputeBudget,
    SettleArgs,
    set_compute_unit_limit,
    set_compute_unit_price,
    settle_instruction,
)
from settler.chain.pubkey import Pubkey
from settler.constants import COMPUTE_BUDGET_PROGRAM_ID, DEFAULT_PROGRAM_ID
from settler.errors import AmountOverflow, InvalidBasisPoints


def k(n: int) -> Pubkey:
    return Pubkey(bytes([n]) * 32)


class TestAccountMeta:
    """Tests for account requirement merging."""

    def test_merge_ors_flags(self):
        merged = AccountMeta.readonly(k(1)).merge(AccountMeta.writable(k(1)))
        assert merged == AccountMeta(k(1), is_signer=False, is_writable=True)

    def test_merge_keeps_signer(self):
        merged = AccountMeta(k(1), is_signer=True).merge(AccountMeta.readonly(k(1)))
        assert merged.is_signer

    def test_merge_rejects_different_addresses(self):
        with pytest.raises(ValueError):
            AccountMeta.readonly(k(1)).merge(AccountMeta.readonly(k(2)))


class TestComputeBudget:
    """Tests for compute-budget directives."""

    def test_unit_limit_encoding(self):
        ix = set_compute_unit_limit(400_000)
        assert ix.program_id == COMPUTE_BUDGET_PROGRAM_ID
        assert ix.accounts == ()
        assert ix.data == b"\x02" + struct.pack("<I", 400_000)

    def test_unit_price_encoding(self):
        ix = set_compute_unit_price(25_000)
        assert ix.data == b"\x03" + struct.pack("<Q", 25_000)

    def test_limit_outside_u32(self):
        with pytest.raises(ValueError):
            set_compute_unit_limit(2**32)

    def test_limit_comes_before_price(self):
        budget = ComputeBudget(unit_limit=200_000, unit_price_micro_lamports=1)
        assert [ix.data[0] for ix in budget.instructions()] == [2, 3]

    def test_empty_budget(self):
        assert ComputeBudget().is_empty
        assert ComputeBudget().instructions() == []


class TestSettleEncoding:
    """Tests for the settle instruction data layout."""

    def args(self, **overrides) -> SettleArgs:
        data = {
            "merchant_id": 42,
            "amount": 1_000_000,
            "pay_token": AssetKind.STABLE,
            "min_out": 594_000,
            "payout_bps": 7000,
            "buyback_bps": 3000,
            "burn_bps": 5000,
        }
        data.update(overrides)
        return SettleArgs(**data)

    def test_discriminator(self):
        assert SETTLE_DISCRIMINATOR == hashlib.sha256(b"global:settle").digest()[:8]

    def test_field_order_and_widths(self):
        data = self.args().encode()
        assert len(data) == 8 + 8 + 8 + 1 + 8 + 2 + 2 + 2
        assert data[:8] == SETTLE_DISCRIMINATOR
        assert struct.unpack("<QQBQHHH", data[8:]) == (42, 1_000_000, 1, 594_000, 7000, 3000, 5000)

    def test_native_tag_is_zero(self):
        data = self.args(pay_token=AssetKind.NATIVE).encode()
        assert data[24] == 0

    def test_bps_outside_u16(self):
        with pytest.raises(InvalidBasisPoints):
            self.args(burn_bps=70_000).encode()

    def test_amount_outside_u64(self):
        with pytest.raises(AmountOverflow):
            self.args(amount=2**64).encode()

    def test_remaining_accounts_follow_fixed(self):
        fixed = [AccountMeta.readonly(k(1)), AccountMeta.writable(k(2), signer=True)]
        remaining = [AccountMeta.writable(k(3))]
        ix = settle_instruction(DEFAULT_PROGRAM_ID, fixed, remaining, self.args())
        assert ix.accounts == (*fixed, *remaining)
        assert ix.program_id == DEFAULT_PROGRAM_ID


class TestAssetKind:
    """Tests for asset labels."""

    @pytest.mark.parametrize(
        ("label", "kind"),
        [("SOL", AssetKind.NATIVE), ("usdc", AssetKind.STABLE), (" native ", AssetKind.NATIVE)],
    )
    def test_from_label(self, label, kind):
        assert AssetKind.from_label(label) is kind

    def test_unknown_label(self):
        with pytest.raises(ValueError):
            AssetKind.from_label("BTC")

    def test_label_round_trip(self):
        assert AssetKind.from_label(AssetKind.STABLE.label) is AssetKind.STABLE
