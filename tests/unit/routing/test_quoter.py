"""Tests for the aggregator route quoter."""

import json

import httpx
import pytest

from settler.constants import NATIVE_MINT
from settler.models.quote import MultiHopQuote, NotTradable, Quote
from settler.routing.quoter import (
    QUOTE_PATH,
    SWAP_PATH,
    AggregatorQuoter,
    MockRouteQuoter,
    SwapOptions,
    slippage_percent,
)
from tests.helpers import BUYBACK_MINT, PAYER, STABLE_MINT

BASE_URL = "https://aggregator.test"


def quote_body(in_amount: int = 1_000, out_amount: int = 2_000) -> dict:
    return {
        "inputMint": str(NATIVE_MINT),
        "outputMint": str(BUYBACK_MINT),
        "inAmount": str(in_amount),
        "outAmount": str(out_amount),
        "routePlan": [{"percent": 100}],
        "contextSlot": 12,
    }


class Recorder:
    """MockTransport handler that replays a list of responses."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def make_quoter(recorder: Recorder, **kwargs) -> AggregatorQuoter:
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    return AggregatorQuoter(BASE_URL, client=client, **kwargs)


class TestSlippagePercent:
    @pytest.mark.parametrize(
        ("bps", "expected"), [(100, "1"), (50, "0.5"), (1, "0.01"), (0, "0"), (250, "2.5")]
    )
    def test_conversion(self, bps, expected):
        assert slippage_percent(bps) == expected


class TestQuote:
    """Tests for AggregatorQuoter.quote."""

    def test_parses_quote(self):
        recorder = Recorder(httpx.Response(200, json=quote_body()))
        result = make_quoter(recorder).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)

        assert isinstance(result, Quote)
        assert result.out_amount == 2_000
        assert result.context_slot == 12
        request = recorder.requests[0]
        assert request.url.path == QUOTE_PATH
        assert request.url.params["amount"] == "1000"
        assert request.url.params["slippageBps"] == "1"
        assert request.url.params["inputMint"] == str(NATIVE_MINT)

    def test_api_key_header(self):
        recorder = Recorder(httpx.Response(200, json=quote_body()))
        make_quoter(recorder, api_key="secret").quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert recorder.requests[0].headers["x-api-key"] == "secret"

    def test_no_api_key_header_by_default(self):
        recorder = Recorder(httpx.Response(200, json=quote_body()))
        make_quoter(recorder).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert "x-api-key" not in recorder.requests[0].headers

    def test_retries_server_errors(self):
        recorder = Recorder(httpx.Response(502), httpx.Response(200, json=quote_body()))
        result = make_quoter(recorder, max_attempts=2).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, Quote)
        assert len(recorder.requests) == 2

    def test_retries_timeouts(self):
        recorder = Recorder(httpx.ReadTimeout("slow"), httpx.Response(200, json=quote_body()))
        result = make_quoter(recorder, max_attempts=2).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, Quote)

    def test_client_errors_are_final(self):
        """A 4xx response is not retried."""
        recorder = Recorder(httpx.Response(400, text="no route"), httpx.Response(200))
        result = make_quoter(recorder, max_attempts=3).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, NotTradable)
        assert result.status_code == 400
        assert len(recorder.requests) == 1

    def test_exhausted_attempts(self):
        recorder = Recorder(httpx.Response(500), httpx.ConnectError("refused"))
        result = make_quoter(recorder, max_attempts=2).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, NotTradable)
        assert result.attempts == 2
        assert "unreachable" in result.reason

    def test_unparseable_quote(self):
        recorder = Recorder(httpx.Response(200, json={"outAmount": "5"}))
        result = make_quoter(recorder).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, NotTradable)

    def test_invalid_json(self):
        recorder = Recorder(httpx.Response(200, content=b"<html>"))
        result = make_quoter(recorder).quote(NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, NotTradable)

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            AggregatorQuoter(BASE_URL, max_attempts=0)


class TestBuildSwap:
    """Tests for AggregatorQuoter.build_swap_tx."""

    def test_payload(self):
        recorder = Recorder(
            httpx.Response(200, json={"swapTransaction": "AQID", "lastValidBlockHeight": 77})
        )
        quote = Quote.from_response(quote_body())
        options = SwapOptions(prioritization_fee_lamports=5_000)
        swap = make_quoter(recorder).build_swap_tx(quote, PAYER, options)

        payload = json.loads(recorder.requests[0].content)
        assert recorder.requests[0].url.path == SWAP_PATH
        assert payload["quoteResponse"] == quote_body()
        assert payload["userPublicKey"] == str(PAYER)
        assert payload["wrapAndUnwrapSol"] is True
        assert payload["prioritizationFeeLamports"] == 5_000
        assert swap.transaction_base64 == "AQID"
        assert swap.payer == PAYER
        assert swap.last_valid_block_height == 77

    def test_missing_transaction(self):
        recorder = Recorder(httpx.Response(200, json={}))
        quote = Quote.from_response(quote_body())
        assert isinstance(make_quoter(recorder).build_swap_tx(quote, PAYER), NotTradable)


class TestMultiHop:
    """Tests for chained quotes."""

    def test_second_hop_takes_first_output(self):
        quoter = MockRouteQuoter(rate=(3, 2))
        result = quoter.multi_hop_quote(STABLE_MINT, NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, MultiHopQuote)
        assert result.first.out_amount == 1_500
        assert result.second.in_amount == 1_500
        assert result.total_out == 2_250

    def test_first_hop_failure(self):
        quoter = MockRouteQuoter(unroutable={(str(STABLE_MINT), str(NATIVE_MINT))})
        result = quoter.multi_hop_quote(STABLE_MINT, NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, NotTradable)
        assert len(quoter.calls) == 1

    def test_zero_first_hop_output(self):
        quoter = MockRouteQuoter(rate=(0, 1))
        result = quoter.multi_hop_quote(STABLE_MINT, NATIVE_MINT, BUYBACK_MINT, 1_000, 100)
        assert isinstance(result, NotTradable)
