"""Gateway configuration read from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

import structlog

from settler.chain.pubkey import Pubkey
from settler.constants import (
    DEFAULT_AGGREGATOR_URL,
    DEFAULT_PROGRAM_ID,
    DEFAULT_RPC_URL,
    QUOTE_TTL_SECONDS,
    USDC_MINT_DEVNET,
    USDC_MINT_MAINNET,
)
from settler.errors import InvalidAddress

logger = structlog.get_logger()

_TRUE_VALUES = ("true", "1", "yes")


def detect_cluster(rpc_url: str) -> str:
    """Infer the cluster from the RPC URL ("mainnet" or "devnet")."""
    lowered = rpc_url.lower()
    if "mainnet" in lowered:
        return "mainnet"
    if "devnet" not in lowered:
        logger.warning("cluster_not_detected", rpc_url=rpc_url, default="devnet")
    return "devnet"


def stable_mint_for(cluster: str) -> Pubkey:
    return USDC_MINT_MAINNET if cluster == "mainnet" else USDC_MINT_DEVNET


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be a number, got '{raw}'") from err
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _int(env: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from err
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class GatewayConfig:
    """Service configuration.

    Attributes:
        rpc_url: Chain JSON-RPC endpoint
        program_id: Settlement program id
        aggregator_url: Swap aggregator base URL
        aggregator_api_key: Optional API key sent as ``x-api-key``
        idl_path: Optional program interface file; built-in schema when unset
        rpc_timeout: Per-call chain RPC timeout, seconds
        aggregator_timeout: Per-call aggregator timeout, seconds
        aggregator_max_attempts: Attempts per aggregator call (1 = no retry)
        quote_ttl_seconds: Validity window of composed transactions and quotes
        cluster: "devnet" or "mainnet", inferred from rpc_url
    """

    rpc_url: str = DEFAULT_RPC_URL
    program_id: Pubkey = DEFAULT_PROGRAM_ID
    aggregator_url: str = DEFAULT_AGGREGATOR_URL
    aggregator_api_key: str | None = None
    idl_path: str | None = None
    rpc_timeout: float = 5.0
    aggregator_timeout: float = 5.0
    aggregator_max_attempts: int = 1
    quote_ttl_seconds: int = QUOTE_TTL_SECONDS
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    log_level: str = "info"

    @property
    def cluster(self) -> str:
        return detect_cluster(self.rpc_url)

    @property
    def stable_mint(self) -> Pubkey:
        return stable_mint_for(self.cluster)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> GatewayConfig:
        """Build configuration from environment variables.

        Raises:
            ValueError: If a numeric setting or the program id is malformed
        """
        env = os.environ if env is None else env
        program_id_raw = env.get("SETTLER_PROGRAM_ID")
        program_id = DEFAULT_PROGRAM_ID
        try:
            if program_id_raw:
                program_id = Pubkey.from_string(program_id_raw)
        except InvalidAddress as err:
            raise ValueError(f"SETTLER_PROGRAM_ID is not an address: {program_id_raw}") from err

        return cls(
            rpc_url=env.get("RPC_URL", DEFAULT_RPC_URL),
            program_id=program_id,
            aggregator_url=env.get("JUPITER_API_URL", DEFAULT_AGGREGATOR_URL).rstrip("/"),
            aggregator_api_key=env.get("JUPITER_API_KEY") or None,
            idl_path=env.get("IDL_PATH") or None,
            rpc_timeout=_float(env, "RPC_TIMEOUT_SECONDS", 5.0),
            aggregator_timeout=_float(env, "AGGREGATOR_TIMEOUT_SECONDS", 5.0),
            aggregator_max_attempts=_int(env, "AGGREGATOR_MAX_ATTEMPTS", 1, minimum=1),
            quote_ttl_seconds=_int(env, "QUOTE_TTL_SECONDS", QUOTE_TTL_SECONDS, minimum=1),
            host=env.get("SETTLER_HOST", "0.0.0.0"),
            port=_int(env, "SETTLER_PORT", 8000, minimum=1),
            debug=env.get("SETTLER_DEBUG", "false").lower() in _TRUE_VALUES,
            log_level=env.get("LOG_LEVEL", "info").lower(),
        )


__all__ = ["GatewayConfig", "detect_cluster", "stable_mint_for"]
