"""Program-derived address derivation.

A PDA is sha256(seeds || bump || program_id || "ProgramDerivedAddress"),
accepted only when the digest is NOT a valid ed25519 point. The canonical
bump is the highest value in 255..1 that yields an off-curve digest.

All functions here are pure: no network access, no caching.
"""

from __future__ import annotations

import hashlib
import struct
from collections.abc import Sequence
from dataclasses import dataclass

from settler.chain.pubkey import Pubkey
from settler.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    MERCHANT_SEED,
    PROTOCOL_SEED,
    TOKEN_PROGRAM_ID,
    VAULT_SEED,
    VAULT_SOL_SEED,
    VAULT_USDC_SEED,
)
from settler.errors import AddressDerivationExhausted, InvalidSeeds
from settler.safe_int import checked_u64

MAX_SEEDS = 16
MAX_SEED_LENGTH = 32
PDA_MARKER = b"ProgramDerivedAddress"


@dataclass(frozen=True)
class DerivedAddress:
    """A derived address together with its canonical bump."""

    address: Pubkey
    bump: int


def _check_seeds(seeds: Sequence[bytes], limit: int) -> None:
    if len(seeds) > limit:
        raise InvalidSeeds(f"Too many seeds: {len(seeds)} > {limit}")
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidSeeds(f"Seed longer than {MAX_SEED_LENGTH} bytes: {len(seed)}")


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey | None:
    """Hash seeds into an address, returning None if the result is on the curve.

    Raises:
        InvalidSeeds: If seed count or length limits are exceeded
    """
    _check_seeds(seeds, MAX_SEEDS)
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    candidate = Pubkey(hasher.digest())
    if candidate.is_on_curve():
        return None
    return candidate


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> DerivedAddress:
    """Derive the canonical address for a seed set.

    Tries bump seeds from 255 downward and returns the first off-curve result.

    Raises:
        InvalidSeeds: If seed count or length limits are exceeded
        AddressDerivationExhausted: If no bump in 255..1 yields a valid address
    """
    # one slot is reserved for the bump
    _check_seeds(seeds, MAX_SEEDS - 1)
    for bump in range(255, 0, -1):
        address = create_program_address([*seeds, bytes([bump])], program_id)
        if address is not None:
            return DerivedAddress(address=address, bump=bump)
    raise AddressDerivationExhausted(
        f"No valid bump for {len(seeds)} seeds under program {program_id}"
    )


def derive_protocol_config(program_id: Pubkey) -> DerivedAddress:
    return find_program_address([PROTOCOL_SEED], program_id)


def derive_vault_sol(program_id: Pubkey) -> DerivedAddress:
    """Native-asset vault, seeded with ("vault", "sol")."""
    return find_program_address([VAULT_SEED, VAULT_SOL_SEED], program_id)


def derive_vault_usdc(program_id: Pubkey, mint: Pubkey) -> DerivedAddress:
    """Stable-asset vault, seeded with the stable mint."""
    return find_program_address([VAULT_USDC_SEED, bytes(mint)], program_id)


def derive_merchant_registry(program_id: Pubkey, merchant_id: int) -> DerivedAddress:
    """Merchant registry entry, seeded with the u64 little-endian merchant id."""
    seed = struct.pack("<Q", checked_u64(merchant_id, "merchant_id"))
    return find_program_address([MERCHANT_SEED, seed], program_id)


def derive_associated_token_address(owner: Pubkey, mint: Pubkey) -> Pubkey:
    """The canonical token account of ``owner`` for ``mint``."""
    derived = find_program_address(
        [bytes(owner), bytes(TOKEN_PROGRAM_ID), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return derived.address


@dataclass(frozen=True)
class ProtocolAccounts:
    """Program-owned accounts that do not depend on the merchant."""

    protocol_config: Pubkey
    vault_sol: Pubkey
    vault_usdc: Pubkey

    @classmethod
    def derive(cls, program_id: Pubkey, stable_mint: Pubkey) -> ProtocolAccounts:
        return cls(
            protocol_config=derive_protocol_config(program_id).address,
            vault_sol=derive_vault_sol(program_id).address,
            vault_usdc=derive_vault_usdc(program_id, stable_mint).address,
        )


__all__ = [
    "MAX_SEEDS",
    "MAX_SEED_LENGTH",
    "DerivedAddress",
    "create_program_address",
    "find_program_address",
    "derive_protocol_config",
    "derive_vault_sol",
    "derive_vault_usdc",
    "derive_merchant_registry",
    "derive_associated_token_address",
    "ProtocolAccounts",
]
