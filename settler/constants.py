"""Protocol constants for the settlement gateway.

Centralizes well-known program ids, mints, PDA seeds and protocol parameters.
"""

from settler.chain.pubkey import Pubkey, is_valid_address


def _validate_address(name: str, address: str) -> Pubkey:
    """Validate and return a well-known address.

    Raises:
        ValueError: If the address is not base58 for 32 bytes
    """
    if not is_valid_address(address):
        raise ValueError(f"Invalid {name} address: {address} (must be base58, 32 bytes)")
    return Pubkey.from_string(address)


# Basis-point denominator (10_000 bps = 100%)
BPS_DENOMINATOR = 10_000

# Upper bound the chain program enforces on the protocol fee
MAX_PROTOCOL_FEE_BPS = 500

# Window after composition during which a transaction may be signed
QUOTE_TTL_SECONDS = 30

# Decimals of the two payment assets
NATIVE_DECIMALS = 9
STABLE_DECIMALS = 6

# Merchant registration defaults
DEFAULT_PAYOUT_BPS = 7_000
DEFAULT_BUYBACK_BPS = 3_000
DEFAULT_BURN_BPS = 5_000
DEFAULT_SLIPPAGE_BPS = 100

# PDA seed literals
PROTOCOL_SEED = b"protocol"
VAULT_SEED = b"vault"
VAULT_SOL_SEED = b"sol"
VAULT_USDC_SEED = b"vault_usdc"
MERCHANT_SEED = b"merchant"

# Well-known programs
# All addresses are validated at import time to catch typos early
SYSTEM_PROGRAM_ID = _validate_address("system program", "11111111111111111111111111111111")
TOKEN_PROGRAM_ID = _validate_address(
    "token program", "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
)
ASSOCIATED_TOKEN_PROGRAM_ID = _validate_address(
    "associated token program", "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"
)
COMPUTE_BUDGET_PROGRAM_ID = _validate_address(
    "compute budget program", "ComputeBudget111111111111111111111111111111"
)
JUPITER_ROUTER_ID = _validate_address(
    "jupiter router", "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
)

# Settlement program deployment
DEFAULT_PROGRAM_ID = _validate_address(
    "settlement program", "JCjXHcUy7LzJsLBoafjem9wRffRyuyGYsiTz35Yyr9AH"
)

# Mints
NATIVE_MINT = _validate_address("wrapped SOL", "So11111111111111111111111111111111111111112")
USDC_MINT_DEVNET = _validate_address("USDC devnet", "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU")
USDC_MINT_MAINNET = _validate_address(
    "USDC mainnet", "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
)

# Syntactically valid address used to preview swap routes before the payer is known
PLACEHOLDER_PAYER = SYSTEM_PROGRAM_ID

DEFAULT_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_AGGREGATOR_URL = "https://lite-api.jup.ag"
