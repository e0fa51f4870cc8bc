"""On-chain records owned by the settlement program.

Binary layout is Anchor/Borsh: an 8-byte discriminator followed by the
struct fields, little-endian, booleans as one byte. Decoding tolerates
trailing bytes (accounts may be allocated larger than the struct).
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from settler.chain.pubkey import Pubkey
from settler.chain.schema import MERCHANT_REGISTRY_ACCOUNT, PROTOCOL_CONFIG_ACCOUNT, ProgramSchema
from settler.errors import AccountDecodeError

DISCRIMINATOR_SIZE = 8


def _pubkey(data: bytes, offset: int) -> Pubkey:
    return Pubkey(data[offset : offset + 32])


def _bool(data: bytes, offset: int, name: str) -> bool:
    value = data[offset]
    if value not in (0, 1):
        raise AccountDecodeError(f"Invalid bool for {name}: {value}")
    return value == 1


def _check_header(data: bytes, expected: bytes, size: int, account_type: str) -> None:
    if len(data) < size:
        raise AccountDecodeError(f"{account_type} data too short: {len(data)} < {size}")
    if data[:DISCRIMINATOR_SIZE] != expected:
        raise AccountDecodeError(f"{account_type} discriminator mismatch")


@dataclass(frozen=True)
class ProtocolConfig:
    authority: Pubkey
    protocol_fee_bps: int  # u16
    protocol_wallet: Pubkey
    router: Pubkey
    paused: bool
    bump: int  # u8

    ACCOUNT_TYPE = PROTOCOL_CONFIG_ACCOUNT
    STRUCT_SIZE = DISCRIMINATOR_SIZE + 32 + 2 + 32 + 32 + 1 + 1

    @classmethod
    def from_bytes(cls, data: bytes, schema: ProgramSchema | None = None) -> ProtocolConfig:
        """Decode account data.

        Raises:
            AccountDecodeError: If the data is short, has the wrong
                discriminator, or holds an invalid bool
        """
        schema = schema or ProgramSchema()
        _check_header(
            data, schema.discriminator_for(cls.ACCOUNT_TYPE), cls.STRUCT_SIZE, "ProtocolConfig"
        )
        off = DISCRIMINATOR_SIZE
        authority = _pubkey(data, off)
        off += 32
        fee_bps = struct.unpack_from("<H", data, off)[0]
        off += 2
        protocol_wallet = _pubkey(data, off)
        off += 32
        router = _pubkey(data, off)
        off += 32
        paused = _bool(data, off, "paused")
        bump = data[off + 1]
        return cls(authority, fee_bps, protocol_wallet, router, paused, bump)

    def to_bytes(self, schema: ProgramSchema | None = None) -> bytes:
        schema = schema or ProgramSchema()
        return (
            schema.discriminator_for(self.ACCOUNT_TYPE)
            + bytes(self.authority)
            + struct.pack("<H", self.protocol_fee_bps)
            + bytes(self.protocol_wallet)
            + bytes(self.router)
            + struct.pack("<?B", self.paused, self.bump)
        )


@dataclass(frozen=True)
class MerchantRegistryEntry:
    merchant_id: int  # u64
    owner: Pubkey
    payout_wallet: Pubkey
    buyback_mint: Pubkey
    frozen: bool
    bump: int  # u8

    ACCOUNT_TYPE = MERCHANT_REGISTRY_ACCOUNT
    STRUCT_SIZE = DISCRIMINATOR_SIZE + 8 + 32 + 32 + 32 + 1 + 1

    @classmethod
    def from_bytes(cls, data: bytes, schema: ProgramSchema | None = None) -> MerchantRegistryEntry:
        schema = schema or ProgramSchema()
        _check_header(
            data, schema.discriminator_for(cls.ACCOUNT_TYPE), cls.STRUCT_SIZE, "MerchantRegistry"
        )
        off = DISCRIMINATOR_SIZE
        merchant_id = struct.unpack_from("<Q", data, off)[0]
        off += 8
        owner = _pubkey(data, off)
        off += 32
        payout_wallet = _pubkey(data, off)
        off += 32
        buyback_mint = _pubkey(data, off)
        off += 32
        frozen = _bool(data, off, "frozen")
        bump = data[off + 1]
        return cls(merchant_id, owner, payout_wallet, buyback_mint, frozen, bump)

    def to_bytes(self, schema: ProgramSchema | None = None) -> bytes:
        schema = schema or ProgramSchema()
        return (
            schema.discriminator_for(self.ACCOUNT_TYPE)
            + struct.pack("<Q", self.merchant_id)
            + bytes(self.owner)
            + bytes(self.payout_wallet)
            + bytes(self.buyback_mint)
            + struct.pack("<?B", self.frozen, self.bump)
        )


__all__ = ["DISCRIMINATOR_SIZE", "ProtocolConfig", "MerchantRegistryEntry"]
