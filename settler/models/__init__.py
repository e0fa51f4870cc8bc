"""Data models: API payloads, merchant profiles, on-chain records, quotes."""

from settler.models.accounts import MerchantRegistryEntry, ProtocolConfig
from settler.models.api import (
    BuildTxRequest,
    BuildTxResponse,
    QuoteRequest,
    QuoteResponse,
    RegisterMerchantRequest,
    RegisterMerchantResponse,
    SplitPreview,
)
from settler.models.merchant import (
    MerchantProfile,
    MerchantProfileUpdate,
    PayToken,
    generate_merchant_id,
)
from settler.models.quote import MultiHopQuote, NotTradable, Quote, SwapTransaction
from settler.models.types import U64, Address, Bps

__all__ = [
    "Address",
    "U64",
    "Bps",
    "QuoteRequest",
    "QuoteResponse",
    "SplitPreview",
    "BuildTxRequest",
    "BuildTxResponse",
    "RegisterMerchantRequest",
    "RegisterMerchantResponse",
    "ProtocolConfig",
    "MerchantRegistryEntry",
    "PayToken",
    "MerchantProfile",
    "MerchantProfileUpdate",
    "generate_merchant_id",
    "Quote",
    "MultiHopQuote",
    "NotTradable",
    "SwapTransaction",
]
