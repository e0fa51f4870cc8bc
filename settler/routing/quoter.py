"""Route quoter implementations for buyback conversions."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Protocol

import httpx
import structlog

from settler.chain.pubkey import Pubkey
from settler.models.quote import MultiHopQuote, NotTradable, Quote, SwapTransaction
from settler.safe_int import checked_u64

logger = structlog.get_logger()

QUOTE_PATH = "/swap/v1/quote"
SWAP_PATH = "/swap/v1/swap"


@dataclass(frozen=True)
class SwapOptions:
    """Options forwarded to the aggregator when building a swap transaction."""

    wrap_and_unwrap_sol: bool = True
    dynamic_compute_unit_limit: bool = True
    prioritization_fee_lamports: int | None = None


DEFAULT_SWAP_OPTIONS = SwapOptions()


class RouteQuoter(Protocol):
    """Protocol for route quoters.

    Failures are returned as NotTradable, never raised.
    """

    def quote(
        self,
        input_mint: Pubkey,
        output_mint: Pubkey,
        amount: int,
        slippage_bps: int,
    ) -> Quote | NotTradable:
        """Quote an exact-input conversion."""
        ...

    def multi_hop_quote(
        self,
        input_mint: Pubkey,
        via_mint: Pubkey,
        output_mint: Pubkey,
        amount: int,
        slippage_bps: int,
    ) -> MultiHopQuote | NotTradable:
        """Quote input -> via -> output by chaining two single-hop quotes."""
        ...

    def build_swap_tx(
        self,
        quote: Quote,
        user: Pubkey,
        options: SwapOptions = DEFAULT_SWAP_OPTIONS,
    ) -> SwapTransaction | NotTradable:
        """Ask the aggregator for a swap transaction executing ``quote`` for ``user``."""
        ...


def chain_quotes(
    quoter: RouteQuoter,
    input_mint: Pubkey,
    via_mint: Pubkey,
    output_mint: Pubkey,
    amount: int,
    slippage_bps: int,
) -> MultiHopQuote | NotTradable:
    """Chain two quotes: the first hop's output is the second hop's exact input."""
    first = quoter.quote(input_mint, via_mint, amount, slippage_bps)
    if isinstance(first, NotTradable):
        return first
    if first.out_amount == 0:
        return NotTradable(reason=f"first hop {input_mint} -> {via_mint} yields nothing")
    second = quoter.quote(via_mint, output_mint, first.out_amount, slippage_bps)
    if isinstance(second, NotTradable):
        return second
    return MultiHopQuote(first=first, second=second)


def slippage_percent(slippage_bps: int) -> str:
    """The aggregator takes slippage as a percentage: 100 bps -> "1", 50 bps -> "0.5"."""
    value = Decimal(slippage_bps) / Decimal(100)
    return format(value.normalize(), "f")


class AggregatorQuoter:
    """Quoter backed by the swap aggregator's HTTP API.

    Each call has its own timeout. Timeouts, transport errors and 5xx
    responses are retried up to ``max_attempts`` in total; 4xx responses are
    final. Every failure is reported as NotTradable.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 5.0,
        max_attempts: int = 1,
        client: httpx.Client | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_attempts = max_attempts
        headers = {"x-api-key": api_key} if api_key else {}
        self._client = client or httpx.Client(timeout=timeout)
        self._headers = headers

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any] | NotTradable:
        url = f"{self.base_url}{path}"
        failure = NotTradable(reason="aggregator not attempted")
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._client.request(
                    method, url, headers=self._headers, timeout=self.timeout, **kwargs
                )
            except httpx.TimeoutException as err:
                failure = NotTradable(reason=f"aggregator timeout: {err}", attempts=attempt)
                logger.warning("aggregator_timeout", path=path, attempt=attempt)
                continue
            except httpx.TransportError as err:
                failure = NotTradable(reason=f"aggregator unreachable: {err}", attempts=attempt)
                logger.warning(
                    "aggregator_transport_error", path=path, attempt=attempt, error=str(err)
                )
                continue

            if response.status_code >= 500:
                failure = NotTradable(
                    reason=f"aggregator error {response.status_code}",
                    status_code=response.status_code,
                    attempts=attempt,
                )
                logger.warning(
                    "aggregator_server_error",
                    path=path,
                    attempt=attempt,
                    status=response.status_code,
                )
                continue
            if response.status_code >= 400:
                logger.warning(
                    "aggregator_rejected",
                    path=path,
                    status=response.status_code,
                    body=response.text[:200],
                )
                return NotTradable(
                    reason=f"aggregator rejected request: {response.text[:200]}",
                    status_code=response.status_code,
                    attempts=attempt,
                )
            try:
                body = response.json()
            except ValueError:
                return NotTradable(reason="aggregator returned invalid JSON", attempts=attempt)
            if not isinstance(body, dict):
                return NotTradable(
                    reason="aggregator returned unexpected payload", attempts=attempt
                )
            return body
        return failure

    def quote(
        self,
        input_mint: Pubkey,
        output_mint: Pubkey,
        amount: int,
        slippage_bps: int,
    ) -> Quote | NotTradable:
        params = {
            "inputMint": str(input_mint),
            "outputMint": str(output_mint),
            "amount": str(checked_u64(amount)),
            "slippageBps": slippage_percent(slippage_bps),
            "onlyDirectRoutes": "false",
            "asLegacyTransaction": "false",
        }
        body = self._request("GET", QUOTE_PATH, params=params)
        if isinstance(body, NotTradable):
            return body
        try:
            quote = Quote.from_response(body)
        except (KeyError, TypeError, ValueError) as err:
            logger.warning("aggregator_quote_unparseable", error=str(err))
            return NotTradable(reason=f"unparseable quote: {err}")
        logger.debug(
            "aggregator_quote",
            input_mint=str(input_mint),
            output_mint=str(output_mint),
            in_amount=quote.in_amount,
            out_amount=quote.out_amount,
        )
        return quote

    def multi_hop_quote(
        self,
        input_mint: Pubkey,
        via_mint: Pubkey,
        output_mint: Pubkey,
        amount: int,
        slippage_bps: int,
    ) -> MultiHopQuote | NotTradable:
        return chain_quotes(self, input_mint, via_mint, output_mint, amount, slippage_bps)

    def build_swap_tx(
        self,
        quote: Quote,
        user: Pubkey,
        options: SwapOptions = DEFAULT_SWAP_OPTIONS,
    ) -> SwapTransaction | NotTradable:
        payload: dict[str, Any] = {
            "quoteResponse": quote.to_dict(),
            "userPublicKey": str(user),
            "wrapAndUnwrapSol": options.wrap_and_unwrap_sol,
            "dynamicComputeUnitLimit": options.dynamic_compute_unit_limit,
        }
        if options.prioritization_fee_lamports is not None:
            payload["prioritizationFeeLamports"] = options.prioritization_fee_lamports
        body = self._request("POST", SWAP_PATH, json=payload)
        if isinstance(body, NotTradable):
            return body
        transaction = body.get("swapTransaction")
        if not isinstance(transaction, str) or not transaction:
            return NotTradable(reason="aggregator returned no swap transaction")
        return SwapTransaction(
            transaction_base64=transaction,
            payer=user,
            last_valid_block_height=body.get("lastValidBlockHeight"),
            prioritization_fee_lamports=body.get("prioritizationFeeLamports"),
        )


class MockRouteQuoter:
    """Mock quoter for testing without HTTP calls.

    Quotes at a fixed rate and records every call for assertions.
    """

    def __init__(
        self,
        rate: tuple[int, int] = (1, 1),
        swap_transaction: str | None = None,
        unroutable: set[tuple[str, str]] | None = None,
    ) -> None:
        """Initialize mock quoter.

        Args:
            rate: (numerator, denominator); out_amount = amount * num // denom
            swap_transaction: Base64 transaction returned by build_swap_tx
            unroutable: (input, output) mint pairs that return NotTradable
        """
        self.rate = rate
        self.swap_transaction = swap_transaction
        self.unroutable = unroutable or set()
        self.calls: list[tuple[str, ...]] = []

    def quote(
        self,
        input_mint: Pubkey,
        output_mint: Pubkey,
        amount: int,
        slippage_bps: int,
    ) -> Quote | NotTradable:
        self.calls.append(("quote", str(input_mint), str(output_mint), str(amount)))
        if (str(input_mint), str(output_mint)) in self.unroutable:
            return NotTradable(reason="no route")
        num, denom = self.rate
        return Quote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=amount * num // denom,
        )

    def multi_hop_quote(
        self,
        input_mint: Pubkey,
        via_mint: Pubkey,
        output_mint: Pubkey,
        amount: int,
        slippage_bps: int,
    ) -> MultiHopQuote | NotTradable:
        return chain_quotes(self, input_mint, via_mint, output_mint, amount, slippage_bps)

    def build_swap_tx(
        self,
        quote: Quote,
        user: Pubkey,
        options: SwapOptions = DEFAULT_SWAP_OPTIONS,
    ) -> SwapTransaction | NotTradable:
        self.calls.append(("build_swap_tx", str(quote.output_mint), str(user)))
        if self.swap_transaction is None:
            return NotTradable(reason="no swap transaction configured")
        return SwapTransaction(transaction_base64=self.swap_transaction, payer=user)


__all__ = [
    "SwapOptions",
    "DEFAULT_SWAP_OPTIONS",
    "RouteQuoter",
    "chain_quotes",
    "slippage_percent",
    "AggregatorQuoter",
    "MockRouteQuoter",
]
