"""Three-step upload: request a grant, transfer to storage, confirm."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import UTC, datetime, timedelta

import httpx

from propertyledger.client.api import ReceiptApiClient
from propertyledger.client.queue import ReceiptQueueStore
from propertyledger.schemas.photo import PhotoRecordResponse, UploadUrlResponse
from propertyledger.schemas.receipt import UnprocessedReceiptResponse
from propertyledger.services.upload_validation import validate_upload

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]

CHUNK_SIZE = 64 * 1024
# A grant this close to expiry is replaced before a retry
GRANT_EXPIRY_MARGIN = timedelta(seconds=30)


class TransferError(Exception):
    """The bytes did not reach object storage."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class UploadCoordinator:
    """Moves file bytes straight to object storage under a short-lived grant.

    The API server never sees the bytes. Confirm is only called after a
    successful transfer, so a failed or abandoned upload leaves no record.
    """

    def __init__(
        self,
        api: ReceiptApiClient,
        *,
        store: ReceiptQueueStore | None = None,
        transfer_attempts: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 120.0,
    ) -> None:
        self.api = api
        self.store = store
        self.transfer_attempts = max(1, transfer_attempts)
        self._transport = transport
        self._timeout = timeout

    async def request_grant(
        self,
        entity_type: str,
        entity_id: str,
        content_type: str,
        file_size_bytes: int,
        file_name: str,
    ) -> UploadUrlResponse:
        """Validate locally, then ask the API for an upload grant.

        Raises:
            UploadValidationError: before any network call when the file is
                rejected.
        """
        validate_upload(content_type, file_size_bytes, file_name, require_file_name=True)
        return await self.api.request_upload_grant(
            entity_type, entity_id, content_type, file_size_bytes, file_name
        )

    async def transfer(
        self,
        upload_url: str,
        data: bytes,
        content_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """PUT the bytes to the presigned URL, reporting 0-100 progress.

        Raises:
            TransferError: on any non-2xx response or transport failure.
        """
        total = len(data)

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            if on_progress:
                on_progress(0)
            for start in range(0, total, CHUNK_SIZE):
                chunk = data[start : start + CHUNK_SIZE]
                yield chunk
                sent += len(chunk)
                if on_progress:
                    on_progress(sent * 100 // total if total else 100)

        headers = {"Content-Type": content_type, "Content-Length": str(total)}
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._timeout
            ) as client:
                response = await client.put(upload_url, content=body(), headers=headers)
        except httpx.HTTPError as e:
            raise TransferError(f"Upload transfer failed: {e}") from e

        if not response.is_success:
            raise TransferError(
                f"Storage rejected upload with status {response.status_code}",
                status_code=response.status_code,
            )

    async def _transfer_with_retry(
        self,
        grant: UploadUrlResponse,
        renew_grant: Callable[[], Awaitable[UploadUrlResponse]],
        data: bytes,
        content_type: str,
        on_progress: ProgressCallback | None,
    ) -> UploadUrlResponse:
        """Transfer, retrying with a fresh grant once the old one is stale.

        Returns the grant the bytes were finally stored under.
        """
        for attempt in range(1, self.transfer_attempts + 1):
            try:
                await self.transfer(grant.upload_url, data, content_type, on_progress)
                return grant
            except TransferError as e:
                if attempt >= self.transfer_attempts:
                    raise
                logger.warning(f"Transfer attempt {attempt} failed, retrying: {e}")
                if grant.expires_at <= datetime.now(UTC) + GRANT_EXPIRY_MARGIN:
                    grant = await renew_grant()
        return grant

    async def upload_photo(
        self,
        entity_type: str,
        entity_id: str,
        data: bytes,
        file_name: str,
        content_type: str,
        on_progress: ProgressCallback | None = None,
    ) -> PhotoRecordResponse:
        """Grant, transfer and confirm an entity photo.

        Overall progress: 0 at start, 10 once granted, 10-80 while
        transferring, 80 before confirm and 100 when done.
        """

        def report(value: int) -> None:
            if on_progress:
                on_progress(value)

        report(0)
        grant = await self.request_grant(entity_type, entity_id, content_type, len(data), file_name)
        report(10)

        async def renew() -> UploadUrlResponse:
            return await self.api.request_upload_grant(
                entity_type, entity_id, content_type, len(data), file_name
            )

        grant = await self._transfer_with_retry(
            grant,
            renew,
            data,
            content_type,
            lambda percent: report(10 + percent * 70 // 100),
        )
        report(80)

        record = await self.api.confirm_upload(
            grant.storage_key, grant.thumbnail_storage_key, content_type, len(data)
        )
        report(100)
        return record

    async def upload_receipt(
        self,
        data: bytes,
        file_name: str,
        content_type: str,
        property_id: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Upload a receipt image and create its record; returns the receipt id.

        Progress follows ``upload_photo``, with creating the receipt as the
        confirm step.
        """
        validate_upload(content_type, len(data), file_name, require_file_name=True)

        def report(value: int) -> None:
            if on_progress:
                on_progress(value)

        async def request() -> UploadUrlResponse:
            return await self.api.request_receipt_upload_grant(
                content_type, len(data), file_name, property_id
            )

        report(0)
        grant = await request()
        report(10)

        grant = await self._transfer_with_retry(
            grant,
            request,
            data,
            content_type,
            lambda percent: report(10 + percent * 70 // 100),
        )
        report(80)

        receipt_id = await self.api.create_receipt(
            grant.storage_key,
            file_name,
            content_type,
            len(data),
            property_id=property_id,
            thumbnail_storage_key=grant.thumbnail_storage_key,
        )
        report(100)
        logger.info(f"Receipt uploaded: {receipt_id}")

        if self.store is not None:
            self.store.add_optimistic(
                UnprocessedReceiptResponse(
                    id=receipt_id,
                    created_at=datetime.now(UTC),
                    property_id=property_id,
                    content_type=content_type,
                )
            )
        return receipt_id
