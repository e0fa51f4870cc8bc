"""Merchant registration and profile updates.

Registration only records the off-chain profile. The merchant still signs
the on-chain registration for the returned registry address; settlement
refuses to run until that entry exists.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

import structlog

from settler.chain.pda import derive_associated_token_address, derive_merchant_registry
from settler.chain.pubkey import Pubkey
from settler.config import GatewayConfig
from settler.errors import MerchantAlreadyRegistered
from settler.fees import validate_bps
from settler.models.api import RegisterMerchantRequest, RegisterMerchantResponse
from settler.models.merchant import MerchantProfile, MerchantProfileUpdate, generate_merchant_id
from settler.store import MerchantStore, get_default_store

logger = structlog.get_logger()


class MerchantService:
    """Creates and updates merchant profiles.

    Args:
        store: Merchant profile store
        program_id: Settlement program id, used to derive registry addresses
        id_factory: Merchant id generator, called with the owner wallet
    """

    def __init__(
        self,
        store: MerchantStore,
        program_id: Pubkey,
        id_factory: Callable[[str], int] = generate_merchant_id,
    ) -> None:
        self.store = store
        self.program_id = program_id
        self.id_factory = id_factory

    def register(self, request: RegisterMerchantRequest) -> RegisterMerchantResponse:
        """Register a merchant under a freshly generated id.

        Raises:
            InvalidBasisPoints: If the default split is invalid
            MerchantAlreadyRegistered: If the owner already has a profile
        """
        validate_bps(
            request.default_payout_bps, request.default_buyback_bps, request.default_burn_bps
        )
        existing = self.store.get_by_owner(request.owner)
        if existing is not None:
            raise MerchantAlreadyRegistered(
                f"Owner {request.owner} is already merchant {existing.merchant_id}"
            )

        merchant_id = self.id_factory(request.owner)
        registry = derive_merchant_registry(self.program_id, merchant_id).address
        vault = request.vault_buyback_token or str(
            derive_associated_token_address(registry, Pubkey.from_string(request.buyback_mint))
        )
        profile = MerchantProfile(
            merchant_id=merchant_id,
            owner=request.owner,
            payout_wallet=request.payout_wallet,
            buyback_mint=request.buyback_mint,
            vault_buyback_token=vault,
            default_payout_bps=request.default_payout_bps,
            default_buyback_bps=request.default_buyback_bps,
            default_burn_bps=request.default_burn_bps,
            slippage_bps=request.slippage_bps,
            allow_sol=request.allow_sol,
            allow_usdc=request.allow_usdc,
            webhook_url=request.webhook_url,
        )
        self.store.create(profile)
        logger.info(
            "merchant_registry_pending",
            merchant_id=merchant_id,
            registry=str(registry),
            vault_buyback_token=vault,
        )
        return RegisterMerchantResponse(
            merchant_id=merchant_id,
            merchant_registry=str(registry),
            vault_buyback_token=vault,
        )

    def update(self, merchant_id: int, changes: MerchantProfileUpdate) -> MerchantProfile:
        """Apply a partial profile update.

        Raises:
            MerchantNotFound: If no profile has this id
            InvalidBasisPoints: If the resulting default split is invalid
        """
        return self.store.update(merchant_id, changes)


@lru_cache(maxsize=1)
def get_default_merchant_service() -> MerchantService:
    """Merchant service over the process-wide store."""
    config = GatewayConfig.from_env()
    return MerchantService(store=get_default_store(), program_id=config.program_id)


__all__ = ["MerchantService", "get_default_merchant_service"]
