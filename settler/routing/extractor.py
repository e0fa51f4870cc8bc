"""Swap account extraction.

Turns an aggregator-built swap transaction into the account list the settle
instruction forwards to the router program. Only accounts of instructions
addressed to the trusted router are collected; helper instructions in the
same transaction (compute budget, token-account setup, wrap/unwrap) are
ignored.

Accounts are deduplicated by address bytes in first-seen order. Repeated
addresses merge by OR-ing their signer and writable flags.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence

import structlog

from settler.chain.instructions import AccountMeta
from settler.chain.pubkey import Pubkey
from settler.chain.wire import Decoded, Message, decode_transaction_base64
from settler.errors import MalformedSwapTransaction

logger = structlog.get_logger()

LookupTables = Mapping[Pubkey, Sequence[Pubkey]]


class AccountSet:
    """Ordered account requirements keyed by address bytes."""

    def __init__(self, accounts: Iterable[AccountMeta] = ()) -> None:
        self._entries: dict[bytes, AccountMeta] = {}
        for account in accounts:
            self.add(account)

    def add(self, account: AccountMeta) -> None:
        key = bytes(account.pubkey)
        existing = self._entries.get(key)
        self._entries[key] = account if existing is None else existing.merge(account)

    def __contains__(self, pubkey: Pubkey) -> bool:
        return bytes(pubkey) in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def to_list(self) -> list[AccountMeta]:
        return list(self._entries.values())


def referenced_tables(swap_tx_base64: str) -> list[Pubkey]:
    """Lookup tables a swap transaction loads accounts from (empty for legacy)."""
    result = decode_transaction_base64(swap_tx_base64)
    if not isinstance(result, Decoded):
        raise MalformedSwapTransaction(f"Cannot decode swap transaction: {result.reason}")
    return [ref.table for ref in result.transaction.message.lookups]


class SwapAccountExtractor:
    """Extracts router accounts from swap transactions.

    Args:
        lookup_tables: Contents of the address lookup tables the transactions
            reference, by table address. Messages that load accounts from a
            table missing here are rejected.
    """

    def __init__(self, lookup_tables: LookupTables | None = None) -> None:
        self.lookup_tables: LookupTables = lookup_tables or {}

    def _message(self, swap_tx_base64: str) -> Message:
        result = decode_transaction_base64(swap_tx_base64)
        if not isinstance(result, Decoded):
            logger.error("swap_transaction_malformed", reason=result.reason)
            raise MalformedSwapTransaction(f"Cannot decode swap transaction: {result.reason}")
        return result.transaction.message

    def _resolve(self, message: Message) -> tuple[Pubkey, ...]:
        try:
            return message.resolve_keys(self.lookup_tables)
        except KeyError as err:
            raise MalformedSwapTransaction(f"Unresolved lookup table {err.args[0]}") from err
        except IndexError as err:
            raise MalformedSwapTransaction("Lookup index past end of table") from err

    def _collect(self, swap_tx_base64: str, router: Pubkey, into: AccountSet) -> int:
        message = self._message(swap_tx_base64)
        keys = self._resolve(message)
        router_instructions = 0
        for ix in message.instructions:
            if keys[ix.program_id_index] != router:
                continue
            router_instructions += 1
            for index in ix.account_indexes:
                into.add(
                    AccountMeta(
                        pubkey=keys[index],
                        is_signer=message.is_signer(index),
                        is_writable=message.is_writable(index),
                    )
                )
        return router_instructions

    def extract(self, swap_tx_base64: str, router: Pubkey) -> list[AccountMeta]:
        """Deduplicated accounts of every router instruction in one transaction.

        Raises:
            MalformedSwapTransaction: If the transaction cannot be decoded or
                references unresolved lookup tables
        """
        return self.extract_multi_hop([swap_tx_base64], router)

    def extract_multi_hop(
        self,
        swap_txs_base64: Sequence[str],
        router: Pubkey,
    ) -> list[AccountMeta]:
        """Same as extract, merged across several transactions."""
        accounts = AccountSet()
        router_instructions = 0
        for swap_tx in swap_txs_base64:
            router_instructions += self._collect(swap_tx, router, accounts)
        logger.debug(
            "swap_accounts_extracted",
            transactions=len(swap_txs_base64),
            router_instructions=router_instructions,
            accounts=len(accounts),
        )
        return accounts.to_list()

    @staticmethod
    def filter_against_fixed(
        candidates: Sequence[AccountMeta],
        fixed: Iterable[Pubkey],
    ) -> list[AccountMeta]:
        """Drop candidates whose address is already a fixed account of the instruction.

        Order is preserved, so applying the filter twice changes nothing.
        """
        fixed_keys = {bytes(pubkey) for pubkey in fixed}
        return [c for c in candidates if bytes(c.pubkey) not in fixed_keys]


__all__ = ["AccountSet", "LookupTables", "SwapAccountExtractor", "referenced_tables"]
