"""Settlement program interface: account layouts and the settle account schema.

The interface can be the built-in default or loaded from an Anchor IDL file.
``ProgramCache`` holds the loaded schema and the network client; both are
loaded at most once and then shared read-only by every request.
"""

from __future__ import annotations

import json
import re
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, TypeVar

import structlog

from settler.chain.instructions import SETTLE_DISCRIMINATOR, AccountMeta, anchor_discriminator
from settler.chain.pubkey import Pubkey

logger = structlog.get_logger()

T = TypeVar("T")

PROTOCOL_CONFIG_ACCOUNT = "ProtocolConfig"
MERCHANT_REGISTRY_ACCOUNT = "MerchantRegistry"


@dataclass(frozen=True)
class AccountSlot:
    """A named, positional account of an instruction."""

    name: str
    is_signer: bool = False
    is_writable: bool = False

    def bind(self, pubkey: Pubkey) -> AccountMeta:
        return AccountMeta(pubkey=pubkey, is_signer=self.is_signer, is_writable=self.is_writable)


DEFAULT_SETTLE_ACCOUNTS: tuple[AccountSlot, ...] = (
    AccountSlot("protocol_config"),
    AccountSlot("merchant_registry"),
    AccountSlot("payer", is_signer=True, is_writable=True),
    AccountSlot("vault_sol", is_writable=True),
    AccountSlot("vault_usdc", is_writable=True),
    AccountSlot("usdc_mint"),
    AccountSlot("vault_buyback_token", is_writable=True),
    AccountSlot("buyback_mint", is_writable=True),
    AccountSlot("protocol_wallet", is_writable=True),
    AccountSlot("protocol_wallet_usdc", is_writable=True),
    AccountSlot("merchant_payout_wallet", is_writable=True),
    AccountSlot("merchant_payout_usdc", is_writable=True),
    AccountSlot("payer_usdc_account"),
    AccountSlot("jupiter_router"),
    AccountSlot("token_program"),
    AccountSlot("system_program"),
)

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(name: str) -> str:
    """Normalize IDL names (``vaultBuybackToken`` -> ``vault_buyback_token``)."""
    return _CAMEL_BOUNDARY.sub("_", name).lower()


@dataclass(frozen=True)
class ProgramSchema:
    """What this service needs to know about the settlement program.

    Attributes:
        settle_accounts: Fixed accounts of the settle instruction, in order
        settle_discriminator: 8-byte prefix of the settle instruction data
        account_discriminators: 8-byte prefix of each account type, by type name
    """

    settle_accounts: tuple[AccountSlot, ...] = DEFAULT_SETTLE_ACCOUNTS
    settle_discriminator: bytes = SETTLE_DISCRIMINATOR
    account_discriminators: Mapping[str, bytes] = field(
        default_factory=lambda: {
            PROTOCOL_CONFIG_ACCOUNT: anchor_discriminator("account", PROTOCOL_CONFIG_ACCOUNT),
            MERCHANT_REGISTRY_ACCOUNT: anchor_discriminator("account", MERCHANT_REGISTRY_ACCOUNT),
        }
    )

    @property
    def settle_account_names(self) -> tuple[str, ...]:
        return tuple(slot.name for slot in self.settle_accounts)

    def discriminator_for(self, account_type: str) -> bytes:
        try:
            return self.account_discriminators[account_type]
        except KeyError:
            return anchor_discriminator("account", account_type)

    def bind_settle_accounts(self, addresses: Mapping[str, Pubkey]) -> list[AccountMeta]:
        """Map named addresses onto the settle account order.

        Raises:
            KeyError: If an account the schema requires is missing
        """
        missing = [slot.name for slot in self.settle_accounts if slot.name not in addresses]
        if missing:
            raise KeyError(f"Missing settle accounts: {', '.join(missing)}")
        return [slot.bind(addresses[slot.name]) for slot in self.settle_accounts]

    @classmethod
    def from_idl(cls, idl: Mapping[str, Any]) -> ProgramSchema:
        """Build a schema from an Anchor IDL document (legacy or 0.30+ format).

        Raises:
            ValueError: If the IDL has no settle instruction
        """
        settle = None
        for ix in idl.get("instructions", []):
            if to_snake_case(ix.get("name", "")) == "settle":
                settle = ix
                break
        if settle is None:
            raise ValueError("IDL does not define a settle instruction")

        slots = tuple(
            AccountSlot(
                name=to_snake_case(account["name"]),
                is_signer=bool(account.get("signer", account.get("isSigner", False))),
                is_writable=bool(account.get("writable", account.get("isMut", False))),
            )
            for account in settle.get("accounts", [])
        )

        discriminator = bytes(settle["discriminator"]) if "discriminator" in settle else None
        account_discriminators = {
            PROTOCOL_CONFIG_ACCOUNT: anchor_discriminator("account", PROTOCOL_CONFIG_ACCOUNT),
            MERCHANT_REGISTRY_ACCOUNT: anchor_discriminator("account", MERCHANT_REGISTRY_ACCOUNT),
        }
        for account in idl.get("accounts", []):
            if "discriminator" in account:
                account_discriminators[account["name"]] = bytes(account["discriminator"])

        return cls(
            settle_accounts=slots or DEFAULT_SETTLE_ACCOUNTS,
            settle_discriminator=discriminator or SETTLE_DISCRIMINATOR,
            account_discriminators=account_discriminators,
        )

    @classmethod
    def load(cls, path: str | Path | None) -> ProgramSchema:
        """Load from an IDL file, or return the built-in schema when path is None."""
        if path is None:
            return cls()
        with open(path) as f:
            idl = json.load(f)
        schema = cls.from_idl(idl)
        logger.info("program_schema_loaded", path=str(path), accounts=len(schema.settle_accounts))
        return schema


class _OnceCell(Generic[T]):
    """A value computed on first access, exactly once, under a lock."""

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._lock = threading.Lock()
        self._value: T | None = None
        self._loaded = False
        self.load_count = 0

    def get(self) -> T:
        if self._loaded:
            return self._value  # type: ignore[return-value]
        with self._lock:
            if not self._loaded:
                self.load_count += 1
                self._value = self._factory()
                self._loaded = True
        return self._value  # type: ignore[return-value]

    @property
    def is_loaded(self) -> bool:
        return self._loaded


class ProgramCache(Generic[T]):
    """Lazily loaded, shared, read-only program schema and network client.

    Concurrent first callers block on a single load; a failed load is not
    cached, so the next caller retries it. Construct one at startup and pass
    it to the components that need it.
    """

    def __init__(
        self,
        schema_factory: Callable[[], ProgramSchema],
        client_factory: Callable[[], T],
    ) -> None:
        self._schema = _OnceCell(schema_factory)
        self._client = _OnceCell(client_factory)

    @classmethod
    def preloaded(cls, schema: ProgramSchema, client: T) -> ProgramCache[T]:
        return cls(lambda: schema, lambda: client)

    @property
    def schema(self) -> ProgramSchema:
        return self._schema.get()

    @property
    def client(self) -> T:
        return self._client.get()

    @property
    def schema_load_count(self) -> int:
        return self._schema.load_count

    @property
    def client_load_count(self) -> int:
        return self._client.load_count


__all__ = [
    "AccountSlot",
    "DEFAULT_SETTLE_ACCOUNTS",
    "PROTOCOL_CONFIG_ACCOUNT",
    "MERCHANT_REGISTRY_ACCOUNT",
    "ProgramSchema",
    "ProgramCache",
    "to_snake_case",
]
