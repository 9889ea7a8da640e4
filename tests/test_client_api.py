"""Tests for the async API client."""

import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from propertyledger.client.api import ApiError, ReceiptApiClient


def make_client(handler, base_url="https://api.test/"):
    return ReceiptApiClient(base_url, "token-123", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_sends_bearer_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"items": [], "total_count": 0})

    async with make_client(handler) as client:
        assert await client.get_unprocessed_receipts() == []

    assert seen[0].headers["Authorization"] == "Bearer token-123"
    assert seen[0].url.path == "/api/v1/receipts/unprocessed"


@pytest.mark.asyncio
async def test_error_response_raises_api_error_with_detail():
    def handler(request):
        return httpx.Response(409, json={"detail": "Receipt is already processed"})

    async with make_client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.process_receipt("r1", 7, Decimal("150.00"), date(2024, 3, 15), 3)

    assert exc_info.value.status_code == 409
    assert exc_info.value.detail == "Receipt is already processed"


@pytest.mark.asyncio
async def test_non_json_error_body():
    def handler(request):
        return httpx.Response(502, text="Bad Gateway")

    async with make_client(handler) as client:
        with pytest.raises(ApiError) as exc_info:
            await client.get_receipt("r1")

    assert exc_info.value.status_code == 502
    assert exc_info.value.detail == "Bad Gateway"


@pytest.mark.asyncio
async def test_process_receipt_payload():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(201, json={"expense_id": "e1"})

    async with make_client(handler) as client:
        expense_id = await client.process_receipt(
            "r1", 7, Decimal("150.00"), date(2024, 3, 15), 3, description="Plumber"
        )

    assert expense_id == "e1"
    assert seen[0] == {
        "property_id": 7,
        "amount": "150.00",
        "date": "2024-03-15",
        "category_id": 3,
        "description": "Plumber",
        "work_order_id": None,
    }


@pytest.mark.asyncio
async def test_check_duplicate_query():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "is_duplicate": True,
                "existing_expense": {
                    "id": "e1",
                    "date": "2024-03-15",
                    "amount": "150.00",
                    "description": None,
                },
            },
        )

    async with make_client(handler) as client:
        result = await client.check_duplicate_expense(7, Decimal("150.00"), date(2024, 3, 15))

    assert result.is_duplicate
    assert result.existing_expense.amount == Decimal("150.00")
    assert dict(seen[0].url.params) == {
        "property_id": "7",
        "amount": "150.00",
        "date": "2024-03-15",
    }


@pytest.mark.asyncio
async def test_delete_receipt():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(204)

    async with make_client(handler) as client:
        await client.delete_receipt("r1")

    assert seen[0].method == "DELETE"
    assert seen[0].url.path == "/api/v1/receipts/r1"


def test_websocket_url():
    client = ReceiptApiClient("https://api.test/", "abc")
    assert client.websocket_url == "wss://api.test/api/v1/ws/receipts?token=abc"
