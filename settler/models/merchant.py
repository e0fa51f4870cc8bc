"""Off-chain merchant profile."""

from __future__ import annotations

import hashlib
import os
import struct
import time
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from settler.chain.instructions import AssetKind
from settler.constants import (
    BPS_DENOMINATOR,
    DEFAULT_BURN_BPS,
    DEFAULT_BUYBACK_BPS,
    DEFAULT_PAYOUT_BPS,
    DEFAULT_SLIPPAGE_BPS,
)
from settler.models.types import Address, Bps


class PayToken(str, Enum):
    """Payment asset as named in requests."""

    SOL = "SOL"
    USDC = "USDC"

    @property
    def asset_kind(self) -> AssetKind:
        return AssetKind.NATIVE if self is PayToken.SOL else AssetKind.STABLE


def _now() -> datetime:
    return datetime.now(UTC)


# Profile fields that may be cleared by an update
_NULLABLE_PROFILE_FIELDS = frozenset({"webhook_url"})


class MerchantProfile(BaseModel):
    """Business configuration of a merchant.

    The on-chain registry entry is authoritative for payout wallet, buyback
    token and freeze state; the copies here are checked against it before
    every settlement.
    """

    merchant_id: int = Field(alias="merchantId", ge=0, le=2**64 - 1)
    owner: Address
    payout_wallet: Address = Field(alias="payoutWallet")
    buyback_mint: Address = Field(alias="buybackMint")
    vault_buyback_token: Address = Field(alias="vaultBuybackToken")
    default_payout_bps: Bps = Field(default=DEFAULT_PAYOUT_BPS, alias="defaultPayoutBps")
    default_buyback_bps: Bps = Field(default=DEFAULT_BUYBACK_BPS, alias="defaultBuybackBps")
    default_burn_bps: Bps = Field(default=DEFAULT_BURN_BPS, alias="defaultBurnBps")
    slippage_bps: Bps = Field(default=DEFAULT_SLIPPAGE_BPS, alias="slippageBps")
    allow_sol: bool = Field(default=True, alias="allowSol")
    allow_usdc: bool = Field(default=True, alias="allowUsdc")
    frozen: bool = False
    webhook_url: str | None = Field(default=None, alias="webhookUrl")
    created_at: datetime = Field(default_factory=_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=_now, alias="updatedAt")

    model_config = {"populate_by_name": True}

    @model_validator(mode="after")
    def _check_default_split(self) -> MerchantProfile:
        if self.default_payout_bps + self.default_buyback_bps > BPS_DENOMINATOR:
            raise ValueError("default payout + buyback bps cannot exceed 10000")
        return self

    @property
    def allowed_assets(self) -> frozenset[PayToken]:
        allowed = set()
        if self.allow_sol:
            allowed.add(PayToken.SOL)
        if self.allow_usdc:
            allowed.add(PayToken.USDC)
        return frozenset(allowed)

    def accepts(self, token: PayToken) -> bool:
        return token in self.allowed_assets


class MerchantProfileUpdate(BaseModel):
    """Partial update of a merchant profile. Unset fields are left unchanged."""

    payout_wallet: Address | None = Field(default=None, alias="payoutWallet")
    buyback_mint: Address | None = Field(default=None, alias="buybackMint")
    vault_buyback_token: Address | None = Field(default=None, alias="vaultBuybackToken")
    default_payout_bps: Bps | None = Field(default=None, alias="defaultPayoutBps")
    default_buyback_bps: Bps | None = Field(default=None, alias="defaultBuybackBps")
    default_burn_bps: Bps | None = Field(default=None, alias="defaultBurnBps")
    slippage_bps: Bps | None = Field(default=None, alias="slippageBps")
    allow_sol: bool | None = Field(default=None, alias="allowSol")
    allow_usdc: bool | None = Field(default=None, alias="allowUsdc")
    frozen: bool | None = None
    webhook_url: str | None = Field(default=None, alias="webhookUrl")

    model_config = {"populate_by_name": True}

    def changes(self) -> dict[str, object]:
        """Fields set on the update. An explicit null only clears nullable fields."""
        data = self.model_dump(exclude_unset=True, by_alias=False)
        return {
            name: value
            for name, value in data.items()
            if value is not None or name in _NULLABLE_PROFILE_FIELDS
        }


def generate_merchant_id(
    owner: str,
    timestamp_ms: int | None = None,
    entropy: bytes | None = None,
) -> int:
    """Derive a u64 merchant id from the owner, the time and random bytes.

    The id is the first 8 bytes (little-endian) of sha256(owner || time || random).
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    if entropy is None:
        entropy = os.urandom(16)
    digest = hashlib.sha256(owner.encode() + str(timestamp_ms).encode() + entropy).digest()
    return struct.unpack("<Q", digest[:8])[0]


__all__ = [
    "PayToken",
    "MerchantProfile",
    "MerchantProfileUpdate",
    "generate_merchant_id",
]
