"""Factories and in-memory fakes for composer and quote tests."""

from __future__ import annotations

import base64
from collections.abc import Mapping, Sequence
from typing import Any

from settler.chain.instructions import AccountMeta, Instruction
from settler.chain.pda import derive_merchant_registry, derive_protocol_config
from settler.chain.pubkey import Pubkey
from settler.chain.rpc import LOOKUP_TABLE_META_SIZE, AccountInfo, LatestBlockhash
from settler.chain.schema import ProgramCache, ProgramSchema
from settler.chain.wire import compile_message_v0, encode_transaction, unsigned_transaction
from settler.composer import SettlementComposer
from settler.constants import TOKEN_PROGRAM_ID
from settler.errors import NetworkUnavailable
from settler.models.accounts import MerchantRegistryEntry, ProtocolConfig
from settler.models.merchant import MerchantProfile
from settler.models.quote import NotTradable, Quote, SwapTransaction
from settler.routing.quoter import (
    DEFAULT_SWAP_OPTIONS,
    MockRouteQuoter,
    RouteQuoter,
    SwapOptions,
)
from settler.store import InMemoryMerchantStore
from tests.helpers.constants import (
    AUTHORITY,
    BLOCKHASH,
    BUYBACK_MINT,
    MERCHANT_ID,
    NOW,
    OWNER,
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


def make_profile(**overrides: Any) -> MerchantProfile:
    """Merchant profile matching make_registry() unless overridden."""
    data: dict[str, Any] = {
        "merchant_id": MERCHANT_ID,
        "owner": str(OWNER),
        "payout_wallet": str(PAYOUT_WALLET),
        "buyback_mint": str(BUYBACK_MINT),
        "vault_buyback_token": str(VAULT_BUYBACK),
        "default_payout_bps": 7000,
        "default_buyback_bps": 3000,
        "default_burn_bps": 5000,
    }
    data.update(overrides)
    return MerchantProfile(**data)


def make_registry(**overrides: Any) -> MerchantRegistryEntry:
    data: dict[str, Any] = {
        "merchant_id": MERCHANT_ID,
        "owner": OWNER,
        "payout_wallet": PAYOUT_WALLET,
        "buyback_mint": BUYBACK_MINT,
        "frozen": False,
        "bump": 254,
    }
    data.update(overrides)
    return MerchantRegistryEntry(**data)


def make_protocol(**overrides: Any) -> ProtocolConfig:
    data: dict[str, Any] = {
        "authority": AUTHORITY,
        "protocol_fee_bps": 100,
        "protocol_wallet": PROTOCOL_WALLET,
        "router": ROUTER,
        "paused": False,
        "bump": 255,
    }
    data.update(overrides)
    return ProtocolConfig(**data)


class FakeChain:
    """In-memory ChainReader that records every call."""

    def __init__(
        self,
        blockhash: bytes = BLOCKHASH,
        last_valid_block_height: int = 1_000,
    ) -> None:
        self.accounts: dict[Pubkey, AccountInfo] = {}
        self.blockhash = blockhash
        self.last_valid_block_height = last_valid_block_height
        self.blockhash_error: Exception | None = None
        self.calls: list[tuple[str, str]] = []

    def get_account(self, address: Pubkey) -> AccountInfo | None:
        self.calls.append(("get_account", str(address)))
        return self.accounts.get(address)

    def get_latest_blockhash(self) -> LatestBlockhash:
        self.calls.append(("get_latest_blockhash", ""))
        if self.blockhash_error is not None:
            raise self.blockhash_error
        return LatestBlockhash(self.blockhash, self.last_valid_block_height)

    def put_record(
        self,
        address: Pubkey,
        record: MerchantRegistryEntry | ProtocolConfig,
        owner: Pubkey = PROGRAM_ID,
    ) -> None:
        self.accounts[address] = AccountInfo(data=record.to_bytes(), owner=owner)

    def put_lookup_table(self, address: Pubkey, entries: Sequence[Pubkey]) -> None:
        data = bytes(LOOKUP_TABLE_META_SIZE) + b"".join(bytes(e) for e in entries)
        self.accounts[address] = AccountInfo(data=data, owner=key(99))

    def fail_blockhash(self) -> None:
        self.blockhash_error = NetworkUnavailable("node unreachable")


def seed_chain(
    chain: FakeChain,
    registry: MerchantRegistryEntry | None = None,
    protocol: ProtocolConfig | None = None,
) -> FakeChain:
    """Store the registry entry and protocol config at their derived addresses."""
    registry = registry or make_registry()
    chain.put_record(derive_merchant_registry(PROGRAM_ID, registry.merchant_id).address, registry)
    chain.put_record(derive_protocol_config(PROGRAM_ID).address, protocol or make_protocol())
    return chain


def make_composer(
    chain: FakeChain,
    profiles: Sequence[MerchantProfile] | None = None,
    quoter: RouteQuoter | None = None,
    now: float = NOW,
    **kwargs: Any,
) -> SettlementComposer:
    store = InMemoryMerchantStore(list(profiles) if profiles is not None else [make_profile()])
    return SettlementComposer(
        cache=ProgramCache.preloaded(ProgramSchema(), chain),
        program_id=PROGRAM_ID,
        stable_mint=STABLE_MINT,
        store=store,
        quoter=quoter,
        clock=lambda: now,
        **kwargs,
    )


def router_instruction(accounts: Sequence[AccountMeta], router: Pubkey = ROUTER) -> Instruction:
    return Instruction(program_id=router, accounts=tuple(accounts), data=b"\xe5\x17\xcb\x97")


def make_swap_tx(
    payer: Pubkey,
    instructions: Sequence[Instruction],
    lookup_tables: Mapping[Pubkey, Sequence[Pubkey]] | None = None,
) -> str:
    """Base64 v0 swap transaction built with the package's own encoder."""
    message = compile_message_v0(payer, instructions, bytes([7]) * 32, lookup_tables)
    return base64.b64encode(encode_transaction(unsigned_transaction(message))).decode()


def token_transfer(source: Pubkey, destination: Pubkey, owner: Pubkey) -> Instruction:
    """A non-router helper instruction."""
    return Instruction(
        program_id=TOKEN_PROGRAM_ID,
        accounts=(
            AccountMeta.writable(source),
            AccountMeta.writable(destination),
            AccountMeta(owner, is_signer=True),
        ),
        data=b"\x03" + bytes(8),
    )


def standard_swap_tx(payer: Pubkey) -> str:
    """A swap with one router instruction and one helper instruction.

    The router instruction references the payer and the buyback mint
    (both fixed settle accounts) plus three pool accounts.
    """
    return make_swap_tx(
        payer,
        [
            token_transfer(key(30), key(31), payer),
            router_instruction(
                [
                    AccountMeta.writable(payer, signer=True),
                    AccountMeta.writable(POOL_A),
                    AccountMeta.readonly(POOL_B),
                    AccountMeta.readonly(BUYBACK_MINT),
                    AccountMeta.writable(POOL_C),
                ]
            ),
        ],
    )


class PayerAwareQuoter(MockRouteQuoter):
    """Mock quoter whose swap transactions are built for the requested user."""

    def build_swap_tx(
        self,
        quote: Quote,
        user: Pubkey,
        options: SwapOptions = DEFAULT_SWAP_OPTIONS,
    ) -> SwapTransaction | NotTradable:
        self.calls.append(("build_swap_tx", str(quote.output_mint), str(user)))
        return SwapTransaction(transaction_base64=standard_swap_tx(user), payer=user)
