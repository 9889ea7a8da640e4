"""Upload grants and upload confirmation for photos of any entity type."""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from propertyledger.services.storage import (
    StorageService,
    belongs_to_account,
    build_storage_keys,
    mask_storage_key,
)
from propertyledger.services.thumbnails import ThumbnailService
from propertyledger.services.upload_validation import validate_upload

logger = logging.getLogger(__name__)


class PhotoEntityType(StrEnum):
    """Entity types that can own uploaded photos; used as a storage key segment."""

    RECEIPTS = "receipts"
    PROPERTIES = "properties"
    VENDORS = "vendors"
    USERS = "users"


class UploadNotFoundError(Exception):
    """Raised when confirm is called for an object that was never uploaded."""


class ForeignStorageKeyError(Exception):
    """Raised when a storage key does not belong to the caller's account."""


@dataclass
class UploadGrant:
    """Short-lived permission to PUT one object directly into storage."""

    upload_url: str
    storage_key: str
    thumbnail_storage_key: str
    expires_at: datetime


@dataclass
class PhotoRecord:
    """A confirmed upload; thumbnail_storage_key is None if rendering failed."""

    storage_key: str
    thumbnail_storage_key: str | None
    content_type: str
    file_size_bytes: int


class PhotoService:
    """Issues upload grants and confirms finished uploads."""

    def __init__(self, storage: StorageService, thumbnails: ThumbnailService | None = None) -> None:
        self.storage = storage
        self.thumbnails = thumbnails or ThumbnailService(storage)

    def generate_upload_grant(
        self,
        account_id: int,
        entity_type: PhotoEntityType,
        content_type: str,
        file_size_bytes: int,
        file_name: str | None,
        require_file_name: bool = True,
    ) -> UploadGrant:
        """Validate the request and issue a presigned PUT URL.

        Storage keys are chosen here, never by the client.

        Raises:
            UploadValidationError: If content type, size or file name are invalid
        """
        validate_upload(
            content_type, file_size_bytes, file_name, require_file_name=require_file_name
        )
        storage_key, thumbnail_key = build_storage_keys(account_id, entity_type, content_type)

        logger.info(
            f"Generating upload URL for {entity_type} photo: {mask_storage_key(storage_key)}"
        )
        upload_url, expires_at = self.storage.generate_presigned_upload_url(
            storage_key, content_type
        )
        return UploadGrant(
            upload_url=upload_url,
            storage_key=storage_key,
            thumbnail_storage_key=thumbnail_key,
            expires_at=expires_at,
        )

    def verify_upload(self, account_id: int, storage_key: str) -> None:
        """Make sure the key is the caller's and the object actually landed.

        Raises:
            ForeignStorageKeyError: If the key is outside the account prefix
            UploadNotFoundError: If nothing was uploaded under the key
        """
        if not belongs_to_account(storage_key, account_id):
            raise ForeignStorageKeyError(storage_key)
        if not self.storage.object_exists(storage_key):
            raise UploadNotFoundError(storage_key)

    def confirm_upload(
        self,
        account_id: int,
        storage_key: str,
        thumbnail_storage_key: str,
        content_type: str,
        file_size_bytes: int,
    ) -> PhotoRecord:
        """Confirm an upload and render its thumbnail (best-effort)."""
        validate_upload(content_type, file_size_bytes)
        if not belongs_to_account(thumbnail_storage_key, account_id):
            raise ForeignStorageKeyError(thumbnail_storage_key)
        self.verify_upload(account_id, storage_key)

        logger.info(
            f"Confirming upload and generating thumbnail for {mask_storage_key(storage_key)}"
        )
        confirmed_thumbnail = self.thumbnails.generate_for(storage_key, thumbnail_storage_key)

        return PhotoRecord(
            storage_key=storage_key,
            thumbnail_storage_key=confirmed_thumbnail,
            content_type=content_type,
            file_size_bytes=file_size_bytes,
        )

