"""Tests for the ledger HTTP client (transport mocked with httpx.MockTransport)."""
import json

import httpx
import pytest

from file_market.core.errors import PaymentFailureReason
from file_market.core.ledger import CARD_INFO_PATH, TRANSFER_PATH, LedgerClient

BASE = "https://ledger.test"


def make_client(handler):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    client = LedgerClient(
        BASE + "/",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        sleep=fake_sleep,
    )
    return client, sleeps


@pytest.mark.asyncio
async def test_pay_success_sends_coin_amount():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"success": True, "txId": "tx-9", "date": "2026-01-01T00:00:00Z"})

    client, sleeps = make_client(handler)
    result = await client.pay("CARD-1", "42", 250_000_000)
    await client.aclose()

    assert result.success
    assert result.tx_id == "tx-9"
    assert result.date == "2026-01-01T00:00:00Z"
    assert sleeps == []

    assert str(seen[0].url) == BASE + TRANSFER_PATH
    assert json.loads(seen[0].content) == {"cardCode": "CARD-1", "toId": "42", "amount": 2.5}


@pytest.mark.asyncio
async def test_pay_retries_network_errors_with_linear_backoff():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"success": True, "txId": "tx-3"})

    client, sleeps = make_client(handler)
    result = await client.pay("CARD-1", "42", 1)

    assert result.success
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_pay_gives_up_after_retries():
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    client, sleeps = make_client(handler)
    result = await client.pay("CARD-1", "42", 1)

    assert not result.success
    assert result.reason == PaymentFailureReason.NETWORK
    assert len(calls) == 3
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_pay_404_is_endpoint_missing_and_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="not found")

    client, sleeps = make_client(handler)
    result = await client.pay("CARD-1", "42", 1)

    assert result.reason == PaymentFailureReason.ENDPOINT_MISSING
    assert result.status == 404
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_pay_rejection_keeps_ledger_error_text():
    def handler(request):
        return httpx.Response(400, json={"success": False, "error": "Insufficient balance"})

    client, sleeps = make_client(handler)
    result = await client.pay("CARD-1", "42", 1)

    assert not result.success
    assert result.reason == PaymentFailureReason.LEDGER_REJECTED
    assert result.error == "Insufficient balance"
    assert sleeps == []


@pytest.mark.asyncio
async def test_pay_success_false_on_200_is_a_rejection():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "Card blocked"})

    client, _ = make_client(handler)
    result = await client.pay("CARD-1", "42", 1)

    assert not result.success
    assert result.error == "Card blocked"
    assert result.status == 200


@pytest.mark.asyncio
async def test_resolve_destination_account():
    def handler(request):
        assert request.url.path == CARD_INFO_PATH
        body = json.loads(request.content)
        if body["cardCode"] == "KNOWN":
            return httpx.Response(200, json={"success": True, "userId": "coin-7"})
        return httpx.Response(200, json={"success": False})

    client, _ = make_client(handler)

    assert await client.resolve_destination_account("42", "KNOWN") == "coin-7"
    assert await client.resolve_destination_account("42", "UNKNOWN") == "42"
    assert await client.resolve_destination_account("42", None) == "42"
