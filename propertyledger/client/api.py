"""Async HTTP client for the receipt pipeline endpoints."""

import logging
from datetime import date
from decimal import Decimal
from typing import Any

import httpx

from propertyledger.schemas.expense import DuplicateCheckResponse
from propertyledger.schemas.photo import PhotoRecordResponse, UploadUrlResponse
from propertyledger.schemas.receipt import (
    ReceiptResponse,
    UnprocessedReceiptResponse,
    UnprocessedReceiptsResponse,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """A non-2xx response from the API."""

    def __init__(self, status_code: int, detail: str | None = None) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"API request failed with status {status_code}: {detail}")


class ReceiptApiClient:
    """Thin wrapper around httpx.AsyncClient with bearer authentication.

    Pass ``transport`` to route requests somewhere other than the network,
    e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "ReceiptApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def websocket_url(self) -> str:
        """URL of the account's receipt event stream, token included."""
        ws_base = self.base_url.replace("https://", "wss://", 1).replace("http://", "ws://", 1)
        return f"{ws_base}/api/v1/ws/receipts?token={self.token}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        if response.is_success:
            return response

        detail: str | None = None
        try:
            body = response.json()
            if isinstance(body, dict):
                detail = str(body.get("detail")) if body.get("detail") is not None else None
        except ValueError:
            detail = response.text or None
        logger.debug(f"{method} {path} failed: {response.status_code} {detail}")
        raise ApiError(response.status_code, detail)

    async def request_upload_grant(
        self,
        entity_type: str,
        entity_id: str,
        content_type: str,
        file_size_bytes: int,
        file_name: str,
    ) -> UploadUrlResponse:
        """Ask for a presigned upload URL for an entity photo."""
        response = await self._request(
            "POST",
            "/api/v1/photos/upload-url",
            json={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "content_type": content_type,
                "file_size_bytes": file_size_bytes,
                "original_file_name": file_name,
            },
        )
        return UploadUrlResponse.model_validate(response.json())

    async def request_receipt_upload_grant(
        self,
        content_type: str,
        file_size_bytes: int,
        file_name: str | None = None,
        property_id: int | None = None,
    ) -> UploadUrlResponse:
        """Ask for a presigned upload URL for a receipt image."""
        response = await self._request(
            "POST",
            "/api/v1/receipts/upload-url",
            json={
                "content_type": content_type,
                "file_size_bytes": file_size_bytes,
                "original_file_name": file_name,
                "property_id": property_id,
            },
        )
        return UploadUrlResponse.model_validate(response.json())

    async def confirm_upload(
        self,
        storage_key: str,
        thumbnail_storage_key: str,
        content_type: str,
        file_size_bytes: int,
    ) -> PhotoRecordResponse:
        response = await self._request(
            "POST",
            "/api/v1/photos/confirm",
            json={
                "storage_key": storage_key,
                "thumbnail_storage_key": thumbnail_storage_key,
                "content_type": content_type,
                "file_size_bytes": file_size_bytes,
            },
        )
        return PhotoRecordResponse.model_validate(response.json())

    async def create_receipt(
        self,
        storage_key: str,
        original_file_name: str,
        content_type: str,
        file_size_bytes: int,
        property_id: int | None = None,
        thumbnail_storage_key: str | None = None,
    ) -> str:
        """Confirm a receipt upload; returns the new receipt id."""
        response = await self._request(
            "POST",
            "/api/v1/receipts",
            json={
                "storage_key": storage_key,
                "thumbnail_storage_key": thumbnail_storage_key,
                "original_file_name": original_file_name,
                "content_type": content_type,
                "file_size_bytes": file_size_bytes,
                "property_id": property_id,
            },
        )
        return response.json()["id"]

    async def get_unprocessed_receipts(self) -> list[UnprocessedReceiptResponse]:
        """Fetch the account's unprocessed queue, newest first."""
        response = await self._request("GET", "/api/v1/receipts/unprocessed")
        return UnprocessedReceiptsResponse.model_validate(response.json()).items

    async def get_receipt(self, receipt_id: str) -> ReceiptResponse:
        response = await self._request("GET", f"/api/v1/receipts/{receipt_id}")
        return ReceiptResponse.model_validate(response.json())

    async def delete_receipt(self, receipt_id: str) -> None:
        await self._request("DELETE", f"/api/v1/receipts/{receipt_id}")

    async def process_receipt(
        self,
        receipt_id: str,
        property_id: int,
        amount: Decimal,
        expense_date: date,
        category_id: int,
        description: str | None = None,
        work_order_id: str | None = None,
    ) -> str:
        """Turn a receipt into an expense; returns the new expense id."""
        response = await self._request(
            "POST",
            f"/api/v1/receipts/{receipt_id}/process",
            json={
                "property_id": property_id,
                "amount": str(amount),
                "date": expense_date.isoformat(),
                "category_id": category_id,
                "description": description,
                "work_order_id": work_order_id,
            },
        )
        return response.json()["expense_id"]

    async def check_duplicate_expense(
        self, property_id: int, amount: Decimal, expense_date: date
    ) -> DuplicateCheckResponse:
        response = await self._request(
            "GET",
            "/api/v1/expenses/check-duplicate",
            params={
                "property_id": property_id,
                "amount": str(amount),
                "date": expense_date.isoformat(),
            },
        )
        return DuplicateCheckResponse.model_validate(response.json())
