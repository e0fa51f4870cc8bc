"""Settlement composer.

Builds the unsigned settle transaction for one payment:

1. Validate the requested split (no network needed)
2. Fetch the merchant registry entry and protocol config
3. Reject frozen merchants, a paused protocol and unaccepted assets
4. Resolve the fixed accounts of the settle instruction
5. Split the amount and settle on a minimum buyback output
6. Extract router accounts from the buyback swap transaction
7. Assemble compute-budget + settle instructions into a v0 message
8. Stamp a finalized blockhash and an expiry

Every compose is request-scoped. The only shared state is the injected
ProgramCache, which is read-only after its first load.
"""

from __future__ import annotations

import base64
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

import structlog

from settler.chain.instructions import (
    AccountMeta,
    ComputeBudget,
    SettleArgs,
    settle_instruction,
)
from settler.chain.pda import (
    ProtocolAccounts,
    derive_associated_token_address,
    derive_merchant_registry,
)
from settler.chain.pubkey import Pubkey
from settler.chain.rpc import ChainClient, ChainReader, fetch_lookup_table, fetch_record
from settler.chain.schema import ProgramCache, ProgramSchema
from settler.chain.wire import (
    PACKET_DATA_SIZE,
    Decoded,
    Transaction,
    compile_message_v0,
    decode_transaction_base64,
    encode_transaction,
    unsigned_transaction,
)
from settler.config import GatewayConfig
from settler.constants import QUOTE_TTL_SECONDS, SYSTEM_PROGRAM_ID, TOKEN_PROGRAM_ID
from settler.errors import (
    AssetNotAccepted,
    IntegrityError,
    InvalidAmount,
    InvalidMinOut,
    MalformedSwapTransaction,
    MerchantFrozen,
    MerchantNotFound,
    MerchantStateMismatch,
    ProtocolNotInitialized,
    ProtocolPaused,
    RouteUnavailable,
)
from settler.fees import FeeSplit, apply_slippage, split, validate_bps
from settler.models.accounts import MerchantRegistryEntry, ProtocolConfig
from settler.models.merchant import MerchantProfile, PayToken
from settler.models.quote import NotTradable
from settler.routing.buyback import BuybackRoute, plan_buyback_route
from settler.routing.extractor import SwapAccountExtractor, referenced_tables
from settler.routing.quoter import (
    DEFAULT_SWAP_OPTIONS,
    AggregatorQuoter,
    RouteQuoter,
    SwapOptions,
)
from settler.safe_int import checked_u64
from settler.store import MerchantStore, get_default_store

logger = structlog.get_logger()


@dataclass(frozen=True)
class ComposeRequest:
    """Inputs of one settlement.

    Attributes:
        merchant_id: Registry id of the merchant being paid
        amount: Payment in smallest units of the pay token
        pay_token: Asset the buyer pays with
        payer: Buyer wallet; fee payer and sole signer
        payout_bps: Share of the amount paid out to the merchant
        buyback_bps: Share of the amount converted into the buyback token
        burn_bps: Share of the buyback to burn
        min_out: Explicit minimum buyback output
        quoted_out: Output of an earlier quote; slippage is applied to it
        swap_transaction: Base64 aggregator swap transaction for the buyback
        compute_budget: Optional compute-budget directives
    """

    merchant_id: int
    amount: int
    pay_token: PayToken
    payer: Pubkey
    payout_bps: int
    buyback_bps: int
    burn_bps: int = 0
    min_out: int | None = None
    quoted_out: int | None = None
    swap_transaction: str | None = None
    compute_budget: ComputeBudget = field(default_factory=ComputeBudget)


@dataclass(frozen=True)
class SettlementPlan:
    """Everything the composer resolved for one request."""

    merchant_id: int
    fixed_accounts: tuple[AccountMeta, ...]
    remaining_accounts: tuple[AccountMeta, ...]
    split: FeeSplit
    min_out: int
    args: SettleArgs
    compute_budget: ComputeBudget
    lookup_tables: tuple[Pubkey, ...] = ()
    route: BuybackRoute | None = None

    @property
    def accounts(self) -> tuple[AccountMeta, ...]:
        """Settle instruction accounts in positional order."""
        return (*self.fixed_accounts, *self.remaining_accounts)


@dataclass(frozen=True)
class UnsignedTransaction:
    """A composed, unsigned transaction and what it was built from."""

    transaction: Transaction
    blockhash: bytes
    last_valid_block_height: int
    expires_at: int
    plan: SettlementPlan

    def serialize(self) -> bytes:
        return encode_transaction(self.transaction)

    def to_base64(self) -> str:
        return base64.b64encode(self.serialize()).decode("ascii")

    def to_response(self) -> dict[str, Any]:
        return {"transaction": self.to_base64(), "expiresAt": self.expires_at}


def _swap_fee_payer(swap_tx_base64: str) -> Pubkey:
    result = decode_transaction_base64(swap_tx_base64)
    if not isinstance(result, Decoded):
        raise MalformedSwapTransaction(f"Cannot decode swap transaction: {result.reason}")
    return result.transaction.message.payer


class SettlementComposer:
    """Composes unsigned settle transactions.

    Args:
        cache: Shared program schema and chain reader
        program_id: Settlement program id
        stable_mint: Stable-asset mint of the cluster
        store: Merchant profile store
        quoter: Route quoter. Without one, buyback routes must be supplied
            with the request.
        extractor_factory: Builds the swap account extractor from resolved
            lookup tables
        swap_options: Forwarded to the aggregator when the composer plans
            the buyback route itself
        quote_ttl_seconds: Validity window stamped as ``expiresAt``
        clock: Time source, seconds since the epoch
    """

    def __init__(
        self,
        cache: ProgramCache[ChainReader],
        program_id: Pubkey,
        stable_mint: Pubkey,
        store: MerchantStore,
        quoter: RouteQuoter | None = None,
        extractor_factory: Callable[
            [Mapping[Pubkey, Sequence[Pubkey]]], SwapAccountExtractor
        ] = SwapAccountExtractor,
        swap_options: SwapOptions = DEFAULT_SWAP_OPTIONS,
        quote_ttl_seconds: int = QUOTE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.cache = cache
        self.program_id = program_id
        self.stable_mint = stable_mint
        self.store = store
        self.quoter = quoter
        self.extractor_factory = extractor_factory
        self.swap_options = swap_options
        self.quote_ttl_seconds = quote_ttl_seconds
        self.clock = clock
        self.protocol_accounts = ProtocolAccounts.derive(program_id, stable_mint)

    def compose(self, request: ComposeRequest) -> UnsignedTransaction:
        """Compose the unsigned settle transaction for ``request``.

        Raises:
            InvalidBasisPoints: Before any network call, for an invalid split
            MerchantNotFound, ProtocolNotInitialized: If a record is missing
            MerchantFrozen, ProtocolPaused: If settlement is disabled
            AssetNotAccepted: If the merchant does not take the pay token
            MerchantStateMismatch: If the profile disagrees with the registry
            InvalidMinOut: If a nonzero buyback has no usable minimum output
            RouteUnavailable: If the composer's own route planning failed
            MalformedSwapTransaction: If the swap transaction cannot be used
            NetworkUnavailable: If a chain read fails; safe to retry
        """
        try:
            return self._compose(request)
        except IntegrityError as err:
            logger.error(
                "settlement_integrity_anomaly",
                code=err.code,
                merchant_id=request.merchant_id,
                payer=str(request.payer),
                error=err.message,
            )
            raise

    def _compose(self, request: ComposeRequest) -> UnsignedTransaction:
        validate_bps(request.payout_bps, request.buyback_bps, request.burn_bps)
        checked_u64(request.amount)
        if request.amount == 0:
            raise InvalidAmount("Amount must be positive")
        logger.info(
            "compose_started",
            merchant_id=request.merchant_id,
            asset=request.pay_token.value,
            amount=request.amount,
        )

        schema = self.cache.schema
        reader = self.cache.client
        registry, protocol = self._fetch_state(reader, schema, request.merchant_id)
        profile = self._load_profile(request, registry)
        fixed = self._fixed_accounts(schema, request, registry, protocol, profile)

        fee_split = split(
            request.amount,
            request.payout_bps,
            request.buyback_bps,
            protocol_fee_bps=protocol.protocol_fee_bps,
            burn_bps=request.burn_bps,
        )

        min_out = 0
        remaining: list[AccountMeta] = []
        tables: dict[Pubkey, tuple[Pubkey, ...]] = {}
        route: BuybackRoute | None = None
        if fee_split.has_buyback:
            swap_tx, route = self._buyback_swap(request, registry, profile, fee_split)
            min_out = self._min_out(request, profile, route)
            if swap_tx is not None:
                tables = self._lookup_tables(reader, swap_tx)
                extractor = self.extractor_factory(tables)
                candidates = extractor.extract(swap_tx, protocol.router)
                remaining = extractor.filter_against_fixed(
                    candidates, [meta.pubkey for meta in fixed]
                )
            else:
                logger.warning("settle_without_swap_accounts", merchant_id=request.merchant_id)

        args = SettleArgs(
            merchant_id=request.merchant_id,
            amount=request.amount,
            pay_token=request.pay_token.asset_kind,
            min_out=min_out,
            payout_bps=request.payout_bps,
            buyback_bps=request.buyback_bps,
            burn_bps=request.burn_bps,
        )
        plan = SettlementPlan(
            merchant_id=request.merchant_id,
            fixed_accounts=tuple(fixed),
            remaining_accounts=tuple(remaining),
            split=fee_split,
            min_out=min_out,
            args=args,
            compute_budget=request.compute_budget,
            lookup_tables=tuple(tables),
            route=route,
        )
        return self._finalize(reader, schema, request.payer, plan, tables)

    def _fetch_state(
        self,
        reader: ChainReader,
        schema: ProgramSchema,
        merchant_id: int,
    ) -> tuple[MerchantRegistryEntry, ProtocolConfig]:
        registry_address = derive_merchant_registry(self.program_id, merchant_id).address
        registry = fetch_record(
            reader, registry_address, MerchantRegistryEntry, schema, self.program_id
        )
        if registry is None:
            raise MerchantNotFound(f"Merchant {merchant_id} is not registered on chain")
        protocol = fetch_record(
            reader,
            self.protocol_accounts.protocol_config,
            ProtocolConfig,
            schema,
            self.program_id,
        )
        if protocol is None:
            raise ProtocolNotInitialized("Protocol config account does not exist")
        if registry.merchant_id != merchant_id:
            raise MerchantStateMismatch(
                f"Registry entry holds merchant {registry.merchant_id}, expected {merchant_id}"
            )
        if registry.frozen:
            raise MerchantFrozen(f"Merchant {merchant_id} is frozen")
        if protocol.paused:
            raise ProtocolPaused("Protocol is paused")
        return registry, protocol

    def _load_profile(
        self,
        request: ComposeRequest,
        registry: MerchantRegistryEntry,
    ) -> MerchantProfile:
        profile = self.store.get(request.merchant_id)
        if profile is None:
            raise MerchantNotFound(f"Merchant {request.merchant_id} has no profile")
        if not profile.accepts(request.pay_token):
            raise AssetNotAccepted(
                f"Merchant {request.merchant_id} does not accept {request.pay_token.value}"
            )
        if profile.payout_wallet != str(registry.payout_wallet):
            raise MerchantStateMismatch("Profile payout wallet differs from the registry")
        if profile.buyback_mint != str(registry.buyback_mint):
            raise MerchantStateMismatch("Profile buyback token differs from the registry")
        return profile

    def _fixed_accounts(
        self,
        schema: ProgramSchema,
        request: ComposeRequest,
        registry: MerchantRegistryEntry,
        protocol: ProtocolConfig,
        profile: MerchantProfile,
    ) -> list[AccountMeta]:
        stable = self.stable_mint
        if request.pay_token is PayToken.USDC:
            payer_stable = derive_associated_token_address(request.payer, stable)
        else:
            payer_stable = request.payer
        addresses = {
            "protocol_config": self.protocol_accounts.protocol_config,
            "merchant_registry": derive_merchant_registry(
                self.program_id, request.merchant_id
            ).address,
            "payer": request.payer,
            "vault_sol": self.protocol_accounts.vault_sol,
            "vault_usdc": self.protocol_accounts.vault_usdc,
            "usdc_mint": stable,
            "vault_buyback_token": Pubkey.from_string(profile.vault_buyback_token),
            "buyback_mint": registry.buyback_mint,
            "protocol_wallet": protocol.protocol_wallet,
            "protocol_wallet_usdc": derive_associated_token_address(
                protocol.protocol_wallet, stable
            ),
            "merchant_payout_wallet": registry.payout_wallet,
            "merchant_payout_usdc": derive_associated_token_address(
                registry.payout_wallet, stable
            ),
            "payer_usdc_account": payer_stable,
            "jupiter_router": protocol.router,
            "token_program": TOKEN_PROGRAM_ID,
            "system_program": SYSTEM_PROGRAM_ID,
        }
        return schema.bind_settle_accounts(addresses)

    def _buyback_swap(
        self,
        request: ComposeRequest,
        registry: MerchantRegistryEntry,
        profile: MerchantProfile,
        fee_split: FeeSplit,
    ) -> tuple[str | None, BuybackRoute | None]:
        """Swap transaction to extract router accounts from.

        A supplied transaction built for another fee payer (such as the
        quote-time placeholder) is re-planned with the real payer when a
        quoter is available.
        """
        quoter = self.quoter
        swap_tx = request.swap_transaction
        if swap_tx is not None:
            fee_payer = _swap_fee_payer(swap_tx)
            if fee_payer == request.payer:
                return swap_tx, None
            if quoter is None:
                logger.warning(
                    "swap_transaction_payer_mismatch",
                    merchant_id=request.merchant_id,
                    swap_payer=str(fee_payer),
                    payer=str(request.payer),
                )
                return swap_tx, None
            logger.info("buyback_requote", merchant_id=request.merchant_id, reason="payer")
        elif quoter is None:
            return None, None

        route = plan_buyback_route(
            quoter,
            request.pay_token,
            self.stable_mint,
            registry.buyback_mint,
            fee_split.buyback,
            profile.slippage_bps,
            request.payer,
            self.swap_options,
        )
        if isinstance(route, NotTradable):
            raise RouteUnavailable(f"No buyback route: {route.reason}")
        if route.swap is None:
            raise RouteUnavailable("Aggregator returned no swap transaction")
        return route.swap.transaction_base64, route

    @staticmethod
    def _min_out(
        request: ComposeRequest,
        profile: MerchantProfile,
        route: BuybackRoute | None,
    ) -> int:
        if request.min_out is not None:
            min_out = checked_u64(request.min_out, "min_out")
        elif request.quoted_out is not None:
            min_out = apply_slippage(request.quoted_out, profile.slippage_bps)
        elif route is not None:
            min_out = apply_slippage(route.estimated_out, profile.slippage_bps)
        else:
            raise InvalidMinOut("Nonzero buyback needs minOut, a quoted output or a route")
        if min_out == 0:
            raise InvalidMinOut("minOut must be positive when the buyback is nonzero")
        return min_out

    @staticmethod
    def _lookup_tables(reader: ChainReader, swap_tx: str) -> dict[Pubkey, tuple[Pubkey, ...]]:
        tables: dict[Pubkey, tuple[Pubkey, ...]] = {}
        for address in referenced_tables(swap_tx):
            entries = fetch_lookup_table(reader, address)
            if entries is None:
                raise MalformedSwapTransaction(f"Lookup table {address} does not exist")
            tables[address] = entries
        return tables

    def _finalize(
        self,
        reader: ChainReader,
        schema: ProgramSchema,
        payer: Pubkey,
        plan: SettlementPlan,
        tables: Mapping[Pubkey, Sequence[Pubkey]],
    ) -> UnsignedTransaction:
        settle = settle_instruction(
            self.program_id,
            plan.fixed_accounts,
            plan.remaining_accounts,
            plan.args,
            schema.settle_discriminator,
        )
        instructions = [*plan.compute_budget.instructions(), settle]

        latest = reader.get_latest_blockhash()
        message = compile_message_v0(payer, instructions, latest.blockhash, tables)
        transaction = unsigned_transaction(message)
        expires_at = int(self.clock()) + self.quote_ttl_seconds

        result = UnsignedTransaction(
            transaction=transaction,
            blockhash=latest.blockhash,
            last_valid_block_height=latest.last_valid_block_height,
            expires_at=expires_at,
            plan=plan,
        )
        size = len(result.serialize())
        if size > PACKET_DATA_SIZE:
            logger.warning("transaction_exceeds_packet_size", size=size, limit=PACKET_DATA_SIZE)
        logger.info(
            "compose_finished",
            merchant_id=plan.merchant_id,
            buyback=plan.split.buyback,
            min_out=plan.min_out,
            remaining_accounts=len(plan.remaining_accounts),
            expires_at=expires_at,
        )
        return result


def create_composer(
    config: GatewayConfig,
    store: MerchantStore,
    quoter: RouteQuoter | None = None,
) -> SettlementComposer:
    """Wire a composer from configuration."""
    cache: ProgramCache[ChainReader] = ProgramCache(
        lambda: ProgramSchema.load(config.idl_path),
        lambda: ChainClient(config.rpc_url, timeout=config.rpc_timeout),
    )
    if quoter is None:
        quoter = AggregatorQuoter(
            config.aggregator_url,
            api_key=config.aggregator_api_key,
            timeout=config.aggregator_timeout,
            max_attempts=config.aggregator_max_attempts,
        )
    return SettlementComposer(
        cache=cache,
        program_id=config.program_id,
        stable_mint=config.stable_mint,
        store=store,
        quoter=quoter,
        quote_ttl_seconds=config.quote_ttl_seconds,
    )


@lru_cache(maxsize=1)
def get_default_composer() -> SettlementComposer:
    """Composer built from the environment, with an in-memory merchant store."""
    config = GatewayConfig.from_env()
    logger.info(
        "composer_configured",
        cluster=config.cluster,
        program_id=str(config.program_id),
        rpc_url=config.rpc_url[:50],
    )
    return create_composer(config, get_default_store())


__all__ = [
    "ComposeRequest",
    "SettlementPlan",
    "UnsignedTransaction",
    "SettlementComposer",
    "create_composer",
    "get_default_composer",
]
