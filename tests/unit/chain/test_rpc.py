"""Tests for JSON-RPC chain reads."""

import base64
import json

import base58
import httpx
import pytest

from settler.chain.pubkey import Pubkey
from settler.chain.rpc import (
    LOOKUP_TABLE_META_SIZE,
    AccountInfo,
    ChainClient,
    fetch_lookup_table,
    fetch_record,
)
from settler.chain.schema import ProgramSchema
from settler.errors import AccountDecodeError, NetworkUnavailable
from settler.models.accounts import ProtocolConfig
from tests.helpers import FakeChain, key, make_protocol
from tests.helpers.constants import PROGRAM_ID

RPC_URL = "http://rpc.test"


def client_for(handler) -> ChainClient:
    return ChainClient(RPC_URL, client=httpx.Client(transport=httpx.MockTransport(handler)))


def rpc_result(result):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    return handler


class TestGetAccount:
    """Tests for getAccountInfo."""

    def test_decodes_base64_account(self):
        seen = []
        owner = key(8)

        def handler(request):
            seen.append(json.loads(request.content))
            return rpc_result(
                {
                    "value": {
                        "data": [base64.b64encode(b"\x01\x02").decode(), "base64"],
                        "owner": str(owner),
                    }
                }
            )(request)

        info = client_for(handler).get_account(key(1))

        assert info == AccountInfo(data=b"\x01\x02", owner=owner)
        assert seen[0]["method"] == "getAccountInfo"
        assert seen[0]["params"][0] == str(key(1))
        assert seen[0]["params"][1]["encoding"] == "base64"

    def test_missing_account(self):
        assert client_for(rpc_result({"value": None})).get_account(key(1)) is None

    def test_request_ids_increase(self):
        ids = []

        def handler(request):
            ids.append(json.loads(request.content)["id"])
            return rpc_result({"value": None})(request)

        client = client_for(handler)
        client.get_account(key(1))
        client.get_account(key(2))
        assert ids == [1, 2]


class TestFailures:
    """Every failure mode surfaces as NetworkUnavailable."""

    def test_http_error_status(self):
        client = client_for(lambda request: httpx.Response(503))
        with pytest.raises(NetworkUnavailable):
            client.get_account(key(1))

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(NetworkUnavailable):
            client_for(handler).get_latest_blockhash()

    def test_rpc_error_object(self):
        def handler(request):
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "busy"}}
            )

        with pytest.raises(NetworkUnavailable, match="busy"):
            client_for(handler).get_account(key(1))

    def test_invalid_json(self):
        client = client_for(lambda request: httpx.Response(200, content=b"not json"))
        with pytest.raises(NetworkUnavailable):
            client.get_account(key(1))

    def test_malformed_blockhash_result(self):
        with pytest.raises(NetworkUnavailable):
            client_for(rpc_result({"value": {}})).get_latest_blockhash()

    @pytest.mark.parametrize(
        "value",
        [
            {"owner": str(key(8))},
            {"data": "AQI=", "owner": str(key(8))},
            {"data": ["not base64!", "base64"], "owner": str(key(8))},
            {"data": ["AQI=", "base64"], "owner": "not-an-address"},
            {"data": ["AQI=", "base64"]},
            "garbage",
        ],
    )
    def test_malformed_account_payload(self, value):
        with pytest.raises(NetworkUnavailable, match="Malformed getAccountInfo"):
            client_for(rpc_result({"value": value})).get_account(key(1))

    def test_unexpected_account_encoding(self):
        value = {"data": ["AQI=", "base58"], "owner": str(key(8))}
        with pytest.raises(NetworkUnavailable, match="Unexpected account encoding"):
            client_for(rpc_result({"value": value})).get_account(key(1))

    def test_non_object_account_result(self):
        with pytest.raises(NetworkUnavailable):
            client_for(rpc_result(["unexpected"])).get_account(key(1))

    def test_network_unavailable_is_retryable(self):
        assert NetworkUnavailable.retryable


class TestLatestBlockhash:
    """Tests for getLatestBlockhash."""

    def test_decodes_blockhash(self):
        raw = bytes(range(32))
        result = {
            "context": {"slot": 1},
            "value": {"blockhash": base58.b58encode(raw).decode(), "lastValidBlockHeight": 321},
        }
        latest = client_for(rpc_result(result)).get_latest_blockhash()
        assert latest.blockhash == raw
        assert latest.last_valid_block_height == 321


class TestFetchRecord:
    """Tests for program-owned record reads."""

    def test_decodes_record(self):
        chain = FakeChain()
        protocol = make_protocol()
        chain.put_record(key(50), protocol)
        record = fetch_record(chain, key(50), ProtocolConfig, ProgramSchema(), PROGRAM_ID)
        assert record == protocol

    def test_absent_record(self):
        record = fetch_record(FakeChain(), key(50), ProtocolConfig, ProgramSchema(), PROGRAM_ID)
        assert record is None

    def test_wrong_owner(self):
        chain = FakeChain()
        chain.put_record(key(50), make_protocol(), owner=key(77))
        with pytest.raises(AccountDecodeError):
            fetch_record(chain, key(50), ProtocolConfig, ProgramSchema(), PROGRAM_ID)


class TestFetchLookupTable:
    """Tests for address lookup table reads."""

    def test_entries_follow_header(self):
        chain = FakeChain()
        chain.put_lookup_table(key(60), [key(61), key(62)])
        assert fetch_lookup_table(chain, key(60)) == (key(61), key(62))

    def test_absent_table(self):
        assert fetch_lookup_table(FakeChain(), key(60)) is None

    def test_ragged_length(self):
        chain = FakeChain()
        chain.accounts[key(60)] = AccountInfo(
            data=bytes(LOOKUP_TABLE_META_SIZE + 5), owner=Pubkey.default()
        )
        with pytest.raises(AccountDecodeError):
            fetch_lookup_table(chain, key(60))
