"""Instruction building blocks and encoders.

AccountMeta is the (address, is_signer, is_writable) requirement of an
instruction. Two requirements for the same address merge by OR-ing both
flags, so an account needed writable anywhere ends up writable.
"""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Sequence
from dataclasses import dataclass
from enum import IntEnum

from settler.chain.pubkey import Pubkey
from settler.constants import COMPUTE_BUDGET_PROGRAM_ID
from settler.errors import InvalidBasisPoints
from settler.safe_int import checked_u64

U16_MAX = 2**16 - 1
U32_MAX = 2**32 - 1


@dataclass(frozen=True)
class AccountMeta:
    """An account an instruction reads or writes."""

    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = False

    def merge(self, other: AccountMeta) -> AccountMeta:
        """Combine two requirements for the same address (flags OR-ed)."""
        if other.pubkey != self.pubkey:
            raise ValueError(f"Cannot merge {self.pubkey} with {other.pubkey}")
        return AccountMeta(
            pubkey=self.pubkey,
            is_signer=self.is_signer or other.is_signer,
            is_writable=self.is_writable or other.is_writable,
        )

    @classmethod
    def readonly(cls, pubkey: Pubkey) -> AccountMeta:
        return cls(pubkey=pubkey)

    @classmethod
    def writable(cls, pubkey: Pubkey, signer: bool = False) -> AccountMeta:
        return cls(pubkey=pubkey, is_signer=signer, is_writable=True)


@dataclass(frozen=True)
class Instruction:
    """A program invocation: target program, ordered accounts, opaque data."""

    program_id: Pubkey
    accounts: tuple[AccountMeta, ...]
    data: bytes


# --- Compute budget ---

SET_COMPUTE_UNIT_LIMIT_TAG = 2
SET_COMPUTE_UNIT_PRICE_TAG = 3


def set_compute_unit_limit(units: int) -> Instruction:
    if not 0 <= units <= U32_MAX:
        raise ValueError(f"Compute unit limit outside u32: {units}")
    data = bytes([SET_COMPUTE_UNIT_LIMIT_TAG]) + struct.pack("<I", units)
    return Instruction(program_id=COMPUTE_BUDGET_PROGRAM_ID, accounts=(), data=data)


def set_compute_unit_price(micro_lamports: int) -> Instruction:
    """Priority fee, in micro-lamports per compute unit."""
    price = checked_u64(micro_lamports, "compute_unit_price")
    data = bytes([SET_COMPUTE_UNIT_PRICE_TAG]) + struct.pack("<Q", price)
    return Instruction(program_id=COMPUTE_BUDGET_PROGRAM_ID, accounts=(), data=data)


@dataclass(frozen=True)
class ComputeBudget:
    """Optional compute-budget directives prepended to a transaction."""

    unit_limit: int | None = None
    unit_price_micro_lamports: int | None = None

    def instructions(self) -> list[Instruction]:
        out: list[Instruction] = []
        if self.unit_limit is not None:
            out.append(set_compute_unit_limit(self.unit_limit))
        if self.unit_price_micro_lamports is not None:
            out.append(set_compute_unit_price(self.unit_price_micro_lamports))
        return out

    @property
    def is_empty(self) -> bool:
        return self.unit_limit is None and self.unit_price_micro_lamports is None


# --- Settle instruction ---


def anchor_discriminator(namespace: str, name: str) -> bytes:
    """First 8 bytes of sha256("<namespace>:<name>")."""
    return hashlib.sha256(f"{namespace}:{name}".encode()).digest()[:8]


SETTLE_DISCRIMINATOR = anchor_discriminator("global", "settle")


class AssetKind(IntEnum):
    """Payment asset, as tagged in the settle instruction."""

    NATIVE = 0
    STABLE = 1

    @property
    def label(self) -> str:
        return "SOL" if self is AssetKind.NATIVE else "USDC"

    @classmethod
    def from_label(cls, label: str) -> AssetKind:
        normalized = label.strip().upper()
        if normalized in ("SOL", "NATIVE"):
            return cls.NATIVE
        if normalized in ("USDC", "STABLE"):
            return cls.STABLE
        raise ValueError(f"Unknown payment asset: {label}")


@dataclass(frozen=True)
class SettleArgs:
    """Numeric arguments of the settle instruction, in wire order."""

    merchant_id: int
    amount: int
    pay_token: AssetKind
    min_out: int
    payout_bps: int
    buyback_bps: int
    burn_bps: int

    def encode(self, discriminator: bytes = SETTLE_DISCRIMINATOR) -> bytes:
        for name in ("payout_bps", "buyback_bps", "burn_bps"):
            value = getattr(self, name)
            if not 0 <= value <= U16_MAX:
                raise InvalidBasisPoints(f"{name} outside u16: {value}")
        return discriminator + struct.pack(
            "<QQBQHHH",
            checked_u64(self.merchant_id, "merchant_id"),
            checked_u64(self.amount, "amount"),
            int(self.pay_token),
            checked_u64(self.min_out, "min_out"),
            self.payout_bps,
            self.buyback_bps,
            self.burn_bps,
        )


def settle_instruction(
    program_id: Pubkey,
    fixed_accounts: Sequence[AccountMeta],
    remaining_accounts: Sequence[AccountMeta],
    args: SettleArgs,
    discriminator: bytes = SETTLE_DISCRIMINATOR,
) -> Instruction:
    """Build the settle instruction.

    Remaining accounts follow the fixed accounts; the program indexes them
    positionally from the end of the fixed list.
    """
    return Instruction(
        program_id=program_id,
        accounts=(*fixed_accounts, *remaining_accounts),
        data=args.encode(discriminator),
    )


__all__ = [
    "AccountMeta",
    "Instruction",
    "ComputeBudget",
    "set_compute_unit_limit",
    "set_compute_unit_price",
    "anchor_discriminator",
    "SETTLE_DISCRIMINATOR",
    "AssetKind",
    "SettleArgs",
    "settle_instruction",
]
