"""Pydantic models for the HTTP request and response bodies.

Amounts travel as u64 decimal strings; field names are camelCase on the
wire and snake_case in Python.
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from settler.constants import (
    DEFAULT_BURN_BPS,
    DEFAULT_BUYBACK_BPS,
    DEFAULT_PAYOUT_BPS,
    DEFAULT_SLIPPAGE_BPS,
    MAX_PROTOCOL_FEE_BPS,
)
from settler.models.merchant import PayToken
from settler.models.types import U64, Address, Bps

U32_MAX = 2**32 - 1


class QuoteRequest(BaseModel):
    """Price preview for a payment.

    The merchant is identified by id or by owner wallet.
    """

    merchant_id: U64 | None = Field(default=None, alias="merchantId")
    merchant_wallet: Address | None = Field(default=None, alias="merchantWallet")
    price: Decimal = Field(gt=0, description="Price in whole units of the pay token")
    pay_token: PayToken = Field(alias="payToken")
    payout_bps: Bps | None = Field(default=None, alias="payoutBps")
    buyback_bps: Bps | None = Field(default=None, alias="buybackBps")
    burn_bps: Bps | None = Field(default=None, alias="burnBps")
    payer: Address | None = Field(
        default=None,
        description="Buyer wallet; a placeholder payer is used when omitted",
    )
    protocol_fee_bps: int = Field(
        default=0,
        ge=0,
        le=MAX_PROTOCOL_FEE_BPS,
        alias="protocolFeeBps",
        description="Protocol fee mirrored for display",
    )

    model_config = {"populate_by_name": True}


class SplitPreview(BaseModel):
    """How the amount will be divided."""

    amount: U64
    payout: U64
    buyback: U64
    protocol_fee: U64 = Field(alias="protocolFee")
    burn: U64

    model_config = {"populate_by_name": True}


class QuoteResponse(BaseModel):
    quote_id: str = Field(alias="quoteId")
    merchant_id: U64 = Field(alias="merchantId")
    pay_token: PayToken = Field(alias="payToken")
    amount: U64
    payout_bps: Bps = Field(alias="payoutBps")
    buyback_bps: Bps = Field(alias="buybackBps")
    burn_bps: Bps = Field(alias="burnBps")
    split: SplitPreview
    buyback_mint: Address = Field(alias="buybackMint")
    estimated_out: U64 = Field(alias="estimatedOut")
    min_out: U64 = Field(alias="minOut")
    route: dict[str, Any] | None = None
    swap_transaction: str | None = Field(default=None, alias="swapTransaction")
    expires_at: int = Field(alias="expiresAt")

    model_config = {"populate_by_name": True}


class BuildTxRequest(BaseModel):
    """Inputs for composing the settle transaction."""

    merchant_id: U64 = Field(alias="merchantId")
    payer: Address
    amount: U64
    pay_token: PayToken = Field(alias="payToken")
    payout_bps: Bps = Field(alias="payoutBps")
    buyback_bps: Bps = Field(alias="buybackBps")
    burn_bps: Bps = Field(default=0, alias="burnBps")
    min_out: U64 | None = Field(default=None, alias="minOut")
    quoted_out: U64 | None = Field(default=None, alias="quotedOut")
    swap_transaction: str | None = Field(default=None, alias="swapTransaction")
    compute_unit_limit: int | None = Field(
        default=None, ge=0, le=U32_MAX, alias="computeUnitLimit"
    )
    compute_unit_price: int | None = Field(
        default=None,
        ge=0,
        le=2**64 - 1,
        alias="computeUnitPriceMicroLamports",
    )

    model_config = {"populate_by_name": True}


class BuildTxResponse(BaseModel):
    transaction: str = Field(description="Base64 unsigned transaction")
    expires_at: int = Field(alias="expiresAt")

    model_config = {"populate_by_name": True}


class RegisterMerchantRequest(BaseModel):
    """Registration of a new merchant profile.

    Omitted basis points fall back to the registration defaults. Without an
    explicit buyback vault, the token account of the merchant registry entry
    for the buyback mint is used.
    """

    owner: Address = Field(alias="merchantOwner")
    payout_wallet: Address = Field(alias="payoutWallet")
    buyback_mint: Address = Field(alias="buybackMint")
    vault_buyback_token: Address | None = Field(default=None, alias="vaultBuybackToken")
    default_payout_bps: Bps = Field(default=DEFAULT_PAYOUT_BPS, alias="defaultPayoutBps")
    default_buyback_bps: Bps = Field(default=DEFAULT_BUYBACK_BPS, alias="defaultBuybackBps")
    default_burn_bps: Bps = Field(default=DEFAULT_BURN_BPS, alias="defaultBurnBps")
    slippage_bps: Bps = Field(default=DEFAULT_SLIPPAGE_BPS, alias="slippageBps")
    allow_sol: bool = Field(default=True, alias="allowSol")
    allow_usdc: bool = Field(default=True, alias="allowUsdc")
    webhook_url: str | None = Field(default=None, alias="webhookUrl")

    model_config = {"populate_by_name": True}


class RegisterMerchantResponse(BaseModel):
    merchant_id: U64 = Field(alias="merchantId")
    merchant_registry: Address = Field(alias="merchantRegistry")
    vault_buyback_token: Address = Field(alias="vaultBuybackToken")
    status: str = "registered"

    model_config = {"populate_by_name": True}


__all__ = [
    "QuoteRequest",
    "SplitPreview",
    "QuoteResponse",
    "BuildTxRequest",
    "BuildTxResponse",
    "RegisterMerchantRequest",
    "RegisterMerchantResponse",
]
