"""
Tests for the settlement API client (httpx.MockTransport, no network)
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from core.services.bridge.errors import SettlementAPIError
from core.services.bridge.intents_client import IntentsAPIError, IntentsClient, format_deadline, parse_deadline
from core.services.bridge.outcomes import Fulfilled, Pending
from tests.fixtures.mocks import REFUND_ADDRESS, UNIFIED_ADDRESS, success_payload

DEADLINE = datetime(2030, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)


def make_client(handler, **kwargs) -> IntentsClient:
    kwargs.setdefault("retry_delay", 0)
    kwargs.setdefault("max_retries", 3)
    return IntentsClient(
        api_url="https://settlement.test",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def quote_response(**overrides):
    quote = {
        "amountIn": "1000000000",
        "amountOut": "4200000",
        "depositAddress": "DepositAddr0001",
        "timeEstimate": 240,
        "deadline": "2030-01-02T03:04:05.678Z",
    }
    quote.update(overrides)
    return {"quote": quote, "quoteRequest": {}, "signature": "sig", "timestamp": "2030-01-01T00:00:00Z"}


def test_format_deadline():
    assert format_deadline(DEADLINE) == "2030-01-02T03:04:05.678Z"


def test_parse_deadline_round_trips_z_suffix():
    assert parse_deadline("2030-01-02T03:04:05.678Z") == DEADLINE
    assert parse_deadline(None) is None
    assert parse_deadline("tomorrow") is None


async def test_request_quote_sends_expected_body():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["body"] = json.loads(request.content)
        captured["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=quote_response())

    client = make_client(handler, jwt="secret-token")
    quote = await client.request_quote(1_000_000_000, UNIFIED_ADDRESS, REFUND_ADDRESS, DEADLINE)
    await client.close()

    assert captured["path"] == "/v0/quote"
    assert captured["auth"] == "Bearer secret-token"
    body = captured["body"]
    assert body["dry"] is False
    assert body["swapType"] == "EXACT_INPUT"
    assert body["originAsset"] == "nep141:sol.omft.near"
    assert body["destinationAsset"] == "nep141:zec.omft.near"
    assert body["depositType"] == "ORIGIN_CHAIN"
    assert body["refundType"] == "ORIGIN_CHAIN"
    assert body["recipientType"] == "DESTINATION_CHAIN"
    assert body["amount"] == "1000000000"
    assert body["recipient"] == UNIFIED_ADDRESS
    assert body["refundTo"] == REFUND_ADDRESS
    assert body["deadline"] == "2030-01-02T03:04:05.678Z"
    assert quote["depositAddress"] == "DepositAddr0001"


async def test_dry_quote_without_refund_address_omits_refund_to():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json=quote_response(depositAddress=None))

    client = make_client(handler, jwt="")
    await client.request_quote(5_000, UNIFIED_ADDRESS, None, DEADLINE, dry=True)
    await client.close()

    assert captured["body"]["dry"] is True
    assert "refundTo" not in captured["body"]


async def test_no_authorization_header_without_jwt():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=quote_response())

    client = make_client(handler, jwt="")
    await client.request_quote(5_000, UNIFIED_ADDRESS, REFUND_ADDRESS, DEADLINE)
    await client.close()

    assert seen["auth"] is None


async def test_retries_on_server_error_then_succeeds():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, text="busy")
        return httpx.Response(200, json=quote_response())

    client = make_client(handler)
    quote = await client.request_quote(5_000, UNIFIED_ADDRESS, REFUND_ADDRESS, DEADLINE)
    await client.close()

    assert len(calls) == 3
    assert quote["amountOut"] == "4200000"


async def test_client_error_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"message": "Amount is too low for bridge"})

    client = make_client(handler)
    with pytest.raises(IntentsAPIError) as exc_info:
        await client.request_quote(1, UNIFIED_ADDRESS, REFUND_ADDRESS, DEADLINE)
    await client.close()

    assert len(calls) == 1
    assert exc_info.value.status_code == 400
    assert "too low" in exc_info.value.body


async def test_transport_errors_exhaust_retries():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler, max_retries=2)
    with pytest.raises(SettlementAPIError):
        await client.request_quote(5_000, UNIFIED_ADDRESS, REFUND_ADDRESS, DEADLINE)
    await client.close()

    assert len(calls) == 2


async def test_quote_response_without_quote_object():
    client = make_client(lambda request: httpx.Response(200, json={"error": "nope"}))
    with pytest.raises(IntentsAPIError):
        await client.request_quote(5_000, UNIFIED_ADDRESS, REFUND_ADDRESS, DEADLINE)
    await client.close()


async def test_get_status_maps_payload():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["deposit"] = request.url.params.get("depositAddress")
        return httpx.Response(200, json=success_payload(dest_hash="zec-1"))

    client = make_client(handler)
    snapshot = await client.get_status("DepositAddr0001")
    await client.close()

    assert captured == {"path": "/v0/status", "deposit": "DepositAddr0001"}
    assert isinstance(snapshot.outcome, Fulfilled)
    assert snapshot.outcome.destination_tx_hashes == ("zec-1",)


async def test_get_status_in_flight():
    client = make_client(lambda request: httpx.Response(200, json={"status": "KNOWN_DEPOSIT_TX"}))
    snapshot = await client.get_status("DepositAddr0001")
    await client.close()

    assert isinstance(snapshot.outcome, Pending)
