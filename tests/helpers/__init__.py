"""Test helpers module for shared test utilities.

- constants: deterministic addresses and identifiers
- factories: record/profile factories, a fake chain reader, swap transaction builders
"""

from tests.helpers.constants import (
    BUYBACK_MINT,
    MERCHANT_ID,
    NOW,
    OWNER,
    PAYER,
    PAYOUT_WALLET,
    POOL_A,
    POOL_B,
    POOL_C,
    PROGRAM_ID,
    PROTOCOL_WALLET,
    ROUTER,
    STABLE_MINT,
    VAULT_BUYBACK,
    key,
)
from tests.helpers.factories import (
    FakeChain,
    PayerAwareQuoter,
    make_composer,
    make_profile,
    make_protocol,
    make_registry,
    make_swap_tx,
    router_instruction,
    seed_chain,
    standard_swap_tx,
    token_transfer,
)

__all__ = [
    # Constants
    "PROGRAM_ID",
    "STABLE_MINT",
    "ROUTER",
    "MERCHANT_ID",
    "PAYER",
    "OWNER",
    "PAYOUT_WALLET",
    "BUYBACK_MINT",
    "VAULT_BUYBACK",
    "PROTOCOL_WALLET",
    "POOL_A",
    "POOL_B",
    "POOL_C",
    "NOW",
    "key",
    # Factories
    "FakeChain",
    "PayerAwareQuoter",
    "seed_chain",
    "make_composer",
    "make_profile",
    "make_registry",
    "make_protocol",
    "make_swap_tx",
    "router_instruction",
    "standard_swap_tx",
    "token_transfer",
]
