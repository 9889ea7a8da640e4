"""Tests for the client upload coordinator."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import httpx
import pytest

from propertyledger.client.api import ApiError, ReceiptApiClient
from propertyledger.client.queue import ReceiptQueueStore
from propertyledger.client.upload import TransferError, UploadCoordinator
from propertyledger.services.upload_validation import UploadValidationError


class FakeBackend:
    """Plays both the API server and the object store behind MockTransports."""

    def __init__(self):
        self.api_requests: list[httpx.Request] = []
        self.storage_requests: list[httpx.Request] = []
        self.storage_statuses: list[int] = []
        self.grant_expires_at = datetime.now(UTC) + timedelta(minutes=15)
        self.grants_issued = 0

    def _grant(self, entity_type):
        self.grants_issued += 1
        key = f"1/{entity_type}/2026/file-{self.grants_issued}"
        return {
            "upload_url": f"https://storage.test/{key}.jpg?X-Amz-Signature=s{self.grants_issued}",
            "storage_key": f"{key}.jpg",
            "thumbnail_storage_key": f"{key}_thumb.jpg",
            "expires_at": self.grant_expires_at.isoformat(),
        }

    def api(self, request: httpx.Request) -> httpx.Response:
        self.api_requests.append(request)
        path = request.url.path
        if path == "/api/v1/photos/upload-url":
            body = json.loads(request.content)
            return httpx.Response(200, json=self._grant(body["entity_type"]))
        if path == "/api/v1/receipts/upload-url":
            return httpx.Response(200, json=self._grant("receipts"))
        if path == "/api/v1/photos/confirm":
            body = json.loads(request.content)
            return httpx.Response(200, json={**body})
        if path == "/api/v1/receipts":
            return httpx.Response(201, json={"id": "receipt-1"})
        return httpx.Response(404, json={"detail": "Not Found"})

    def storage(self, request: httpx.Request) -> httpx.Response:
        self.storage_requests.append(request)
        status = self.storage_statuses.pop(0) if self.storage_statuses else 200
        return httpx.Response(status)

    def api_paths(self):
        return [request.url.path for request in self.api_requests]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def api(backend):
    return ReceiptApiClient(
        "https://api.test", "token-123", transport=httpx.MockTransport(backend.api)
    )


def coordinator(api, backend, **kwargs):
    return UploadCoordinator(api, transport=httpx.MockTransport(backend.storage), **kwargs)


class TestValidation:
    """Client-side validation happens before any network call."""

    @pytest.mark.asyncio
    async def test_fifteen_megabyte_grant_rejected_locally(self, api, backend):
        with pytest.raises(UploadValidationError):
            await coordinator(api, backend).request_grant(
                "receipts", "r", "image/jpeg", 15 * 1024 * 1024, "big.jpg"
            )

        assert backend.api_requests == []

    @pytest.mark.asyncio
    async def test_disallowed_type_rejected_locally(self, api, backend):
        with pytest.raises(UploadValidationError):
            await coordinator(api, backend).upload_receipt(b"%PDF", "r.pdf", "application/pdf")

        assert backend.api_requests == []
        assert backend.storage_requests == []


class TestTransfer:
    """Tests for the direct-to-storage PUT."""

    @pytest.mark.asyncio
    async def test_put_with_headers_and_progress(self, api, backend):
        data = b"x" * (200 * 1024)
        progress = []

        await coordinator(api, backend).transfer(
            "https://storage.test/1/receipts/a.jpg?sig", data, "image/jpeg", progress.append
        )

        request = backend.storage_requests[0]
        assert request.method == "PUT"
        assert request.headers["Content-Type"] == "image/jpeg"
        assert request.headers["Content-Length"] == str(len(data))
        assert "Authorization" not in request.headers
        assert request.content == data
        assert progress[0] == 0
        assert progress[-1] == 100
        assert progress == sorted(progress)

    @pytest.mark.asyncio
    async def test_non_2xx_raises_transfer_error(self, api, backend):
        backend.storage_statuses = [403]

        with pytest.raises(TransferError) as exc_info:
            await coordinator(api, backend).transfer("https://storage.test/a", b"abc", "image/png")

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_transport_failure_raises_transfer_error(self, api):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        upload = UploadCoordinator(api, transport=httpx.MockTransport(refuse))

        with pytest.raises(TransferError):
            await upload.transfer("https://storage.test/a", b"abc", "image/png")


class TestUploadPhoto:
    """Tests for the full grant, transfer, confirm flow."""

    @pytest.mark.asyncio
    async def test_runs_three_steps_with_progress(self, api, backend):
        progress = []

        record = await coordinator(api, backend).upload_photo(
            "vendors", "17", b"y" * 100_000, "logo.jpg", "image/jpeg", progress.append
        )

        assert backend.api_paths() == ["/api/v1/photos/upload-url", "/api/v1/photos/confirm"]
        assert record.storage_key == "1/vendors/2026/file-1.jpg"
        assert progress[:2] == [0, 10]
        assert progress[-2:] == [80, 100]
        assert all(10 <= value <= 80 for value in progress[1:-1])
        assert progress == sorted(progress)

    @pytest.mark.asyncio
    async def test_failed_transfer_never_confirms(self, api, backend):
        backend.storage_statuses = [500]

        with pytest.raises(TransferError):
            await coordinator(api, backend).upload_photo(
                "vendors", "17", b"y" * 10, "logo.jpg", "image/jpeg"
            )

        assert "/api/v1/photos/confirm" not in backend.api_paths()


class TestUploadReceipt:
    """Tests for the receipt upload variant."""

    @pytest.mark.asyncio
    async def test_returns_receipt_id_and_adds_optimistically(self, api, backend):
        store = ReceiptQueueStore(api, scheduler=lambda delay, callback: MagicMock())
        upload = coordinator(api, backend, store=store)

        receipt_id = await upload.upload_receipt(b"z" * 5000, "receipt.jpg", "image/jpeg", 7)

        assert receipt_id == "receipt-1"
        assert backend.api_paths() == ["/api/v1/receipts/upload-url", "/api/v1/receipts"]
        create_body = json.loads(backend.api_requests[-1].content)
        assert create_body["storage_key"] == "1/receipts/2026/file-1.jpg"
        assert create_body["property_id"] == 7
        assert store.head.id == "receipt-1"
        assert not store.is_new("receipt-1")

    @pytest.mark.asyncio
    async def test_progress_reaches_100_only_after_create(self, api, backend):
        progress = []
        create_seen = []

        def on_progress(value):
            progress.append(value)
            create_seen.append("/api/v1/receipts" in backend.api_paths())

        await coordinator(api, backend).upload_receipt(
            b"z" * 200_000, "receipt.jpg", "image/jpeg", on_progress=on_progress
        )

        assert progress[:2] == [0, 10]
        assert progress[-2:] == [80, 100]
        assert all(10 <= value <= 80 for value in progress[1:-1])
        assert progress == sorted(progress)
        assert create_seen[-1] is True
        assert not any(create_seen[:-1])

    @pytest.mark.asyncio
    async def test_failed_transfer_leaves_no_receipt(self, api, backend):
        backend.storage_statuses = [500]

        with pytest.raises(TransferError):
            await coordinator(api, backend).upload_receipt(b"z", "receipt.jpg", "image/jpeg")

        assert "/api/v1/receipts" not in backend.api_paths()

    @pytest.mark.asyncio
    async def test_retry_reuses_live_grant(self, api, backend):
        backend.storage_statuses = [503, 200]

        await coordinator(api, backend, transfer_attempts=2).upload_receipt(
            b"z", "receipt.jpg", "image/jpeg"
        )

        assert backend.grants_issued == 1
        assert len(backend.storage_requests) == 2

    @pytest.mark.asyncio
    async def test_retry_requests_fresh_grant_when_expired(self, api, backend):
        backend.storage_statuses = [403, 200]
        backend.grant_expires_at = datetime.now(UTC) - timedelta(seconds=1)

        await coordinator(api, backend, transfer_attempts=2).upload_receipt(
            b"z", "receipt.jpg", "image/jpeg"
        )

        assert backend.grants_issued == 2
        assert backend.storage_requests[1].url.params["X-Amz-Signature"] == "s2"
        create_body = json.loads(backend.api_requests[-1].content)
        assert create_body["storage_key"] == "1/receipts/2026/file-2.jpg"
