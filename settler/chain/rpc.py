"""Chain reads over JSON-RPC.

Every call has its own timeout. Transport failures, timeouts, non-2xx
responses and JSON-RPC errors all surface as ``NetworkUnavailable`` so a
slow or failing node never hangs a request.
"""

from __future__ import annotations

import base64
import itertools
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import httpx
import structlog

from settler.chain.pubkey import PUBKEY_LENGTH, Pubkey
from settler.chain.schema import ProgramSchema
from settler.chain.wire import blockhash_from_string
from settler.errors import AccountDecodeError, InvalidAddress, NetworkUnavailable

logger = structlog.get_logger()

# Address lookup table accounts start with a 56-byte metadata header
LOOKUP_TABLE_META_SIZE = 56

DEFAULT_RPC_TIMEOUT = 5.0


@dataclass(frozen=True)
class AccountInfo:
    data: bytes
    owner: Pubkey


@dataclass(frozen=True)
class LatestBlockhash:
    blockhash: bytes
    last_valid_block_height: int


class ChainReader(Protocol):
    """Read-only access to chain state.

    Implemented by ChainClient for a real node and by in-memory fakes in tests.
    """

    def get_account(self, address: Pubkey) -> AccountInfo | None:
        """Raw account, or None if it does not exist."""
        ...

    def get_latest_blockhash(self) -> LatestBlockhash:
        """Most recent blockhash at finalized commitment."""
        ...


class ChainClient:
    """JSON-RPC client for a chain node."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = DEFAULT_RPC_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)
        self._ids = itertools.count(1)

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self._client.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as err:
            logger.warning("rpc_request_failed", method=method, error=str(err))
            raise NetworkUnavailable(f"{method} failed: {err}") from err
        except ValueError as err:
            logger.warning("rpc_invalid_response", method=method, error=str(err))
            raise NetworkUnavailable(f"{method} returned invalid JSON") from err

        if body.get("error") is not None:
            error = body["error"]
            logger.warning("rpc_error", method=method, error=error)
            raise NetworkUnavailable(f"{method} returned error: {error}")
        return body.get("result")

    def get_account(self, address: Pubkey) -> AccountInfo | None:
        result = self._call(
            "getAccountInfo",
            [str(address), {"encoding": "base64", "commitment": "confirmed"}],
        )
        if result is not None and not isinstance(result, dict):
            raise NetworkUnavailable(f"Malformed getAccountInfo response: {result}")
        value = (result or {}).get("value")
        if value is None:
            return None
        try:
            encoded, encoding = value["data"]
            if encoding != "base64":
                raise NetworkUnavailable(f"Unexpected account encoding: {encoding}")
            return AccountInfo(
                data=base64.b64decode(encoded, validate=True),
                owner=Pubkey.from_string(value["owner"]),
            )
        except (KeyError, TypeError, ValueError, InvalidAddress) as err:
            raise NetworkUnavailable(f"Malformed getAccountInfo response: {value}") from err

    def get_latest_blockhash(self) -> LatestBlockhash:
        result = self._call("getLatestBlockhash", [{"commitment": "finalized"}])
        try:
            value = result["value"]
            return LatestBlockhash(
                blockhash=blockhash_from_string(value["blockhash"]),
                last_valid_block_height=int(value["lastValidBlockHeight"]),
            )
        except (KeyError, TypeError, ValueError) as err:
            raise NetworkUnavailable(f"Malformed getLatestBlockhash response: {result}") from err


R = TypeVar("R")


def fetch_record(
    reader: ChainReader,
    address: Pubkey,
    record_type: type[R],
    schema: ProgramSchema,
    program_id: Pubkey,
) -> R | None:
    """Fetch and decode a program-owned record, or None if the account is absent.

    Raises:
        NetworkUnavailable: If the read fails
        AccountDecodeError: If the account is not owned by the program or
            its data does not match the record layout
    """
    info = reader.get_account(address)
    if info is None:
        return None
    if info.owner != program_id:
        raise AccountDecodeError(
            f"{record_type.__name__} at {address} owned by {info.owner}, expected {program_id}"
        )
    return record_type.from_bytes(info.data, schema)  # type: ignore[attr-defined]


def fetch_lookup_table(reader: ChainReader, address: Pubkey) -> tuple[Pubkey, ...] | None:
    """Addresses stored in an address lookup table, or None if absent."""
    info = reader.get_account(address)
    if info is None:
        return None
    body = info.data[LOOKUP_TABLE_META_SIZE:]
    if len(info.data) < LOOKUP_TABLE_META_SIZE or len(body) % PUBKEY_LENGTH:
        raise AccountDecodeError(f"Lookup table {address} has invalid length {len(info.data)}")
    return tuple(
        Pubkey(body[i : i + PUBKEY_LENGTH]) for i in range(0, len(body), PUBKEY_LENGTH)
    )


__all__ = [
    "LOOKUP_TABLE_META_SIZE",
    "AccountInfo",
    "LatestBlockhash",
    "ChainReader",
    "ChainClient",
    "fetch_record",
    "fetch_lookup_table",
]
