"""Unit tests for mapping settlement errors to HTTP responses."""

import pytest
from fastapi.testclient import TestClient

from settler.api.endpoints import get_composer
from settler.api.main import app
from settler.errors import (
    AmountOverflow,
    InvalidBasisPoints,
    MalformedSwapTransaction,
    MerchantFrozen,
    MerchantNotFound,
    NetworkUnavailable,
    ProtocolPaused,
    RouteUnavailable,
)
from tests.helpers import MERCHANT_ID, PAYER


def build_body(**overrides) -> dict:
    body = {
        "merchantId": str(MERCHANT_ID),
        "payer": str(PAYER),
        "amount": "1000000",
        "payToken": "USDC",
        "payoutBps": 7000,
        "buybackBps": 3000,
        "burnBps": 5000,
        "minOut": "1",
    }
    body.update(overrides)
    return body


class ExplodingComposer:
    """Composer stand-in that raises a fixed error."""

    def __init__(self, error: Exception) -> None:
        self.error = error

    def compose(self, request):
        raise self.error


@pytest.fixture
def client():
    """Create a test client for the API."""
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


class TestSettlementErrors:
    """Typed errors become {"error", "detail"} bodies with their status."""

    @pytest.mark.parametrize(
        ("error", "status", "code"),
        [
            (InvalidBasisPoints("too much"), 400, "invalid_basis_points"),
            (MerchantNotFound("gone"), 404, "merchant_not_found"),
            (MerchantFrozen("frozen"), 403, "merchant_frozen"),
            (ProtocolPaused("paused"), 503, "protocol_paused"),
            (NetworkUnavailable("rpc down"), 503, "network_unavailable"),
            (RouteUnavailable("no route"), 502, "route_unavailable"),
            (MalformedSwapTransaction("bad tx"), 422, "malformed_swap_transaction"),
            (AmountOverflow("too big"), 422, "amount_overflow"),
        ],
    )
    def test_error_mapping(self, client, error, status, code):
        app.dependency_overrides[get_composer] = lambda: ExplodingComposer(error)

        response = client.post("/build-tx", json=build_body())

        assert response.status_code == status
        assert response.json() == {"error": code, "detail": error.message}

    def test_unexpected_exception(self, client):
        """Anything else is a generic 500 without internals."""
        app.dependency_overrides[get_composer] = lambda: ExplodingComposer(RuntimeError("boom"))

        response = client.post("/build-tx", json=build_body())

        assert response.status_code == 500
        assert response.json() == {"error": "internal_error", "detail": "Internal server error"}


class TestInvalidJsonSchema:
    """Tests for request validation before the composer runs."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"amount": "-5"},
            {"amount": "18446744073709551616"},
            {"payer": "not-an-address"},
            {"payToken": "BTC"},
            {"payoutBps": 10_001},
            {"computeUnitLimit": 2**32},
        ],
    )
    def test_rejected_with_422(self, client, overrides):
        app.dependency_overrides[get_composer] = lambda: ExplodingComposer(RuntimeError("unused"))
        response = client.post("/build-tx", json=build_body(**overrides))
        assert response.status_code == 422

    def test_missing_fields(self, client):
        app.dependency_overrides[get_composer] = lambda: ExplodingComposer(RuntimeError("unused"))
        response = client.post("/build-tx", json={"payer": str(PAYER)})
        assert response.status_code == 422
