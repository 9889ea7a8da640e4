"""Object storage access (S3 or S3-compatible) with presigned URLs."""

import logging
import uuid
from datetime import UTC, datetime, timedelta

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from propertyledger.config import get_settings
from propertyledger.services.upload_validation import extension_for_content_type

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


class StorageError(Exception):
    """Raised when the object store rejects or fails a request."""


def sanitize_for_log(value: str | None) -> str:
    """Strip control characters so user-supplied values can't forge log lines."""
    if not value:
        return ""
    return value.replace("\r", "").replace("\n", "").replace("\t", " ")


def mask_storage_key(storage_key: str | None) -> str:
    """Mask the tenant segment of a storage key for logging.

    "42/receipts/2026/abc.jpg" -> "***/receipts/2026/abc.jpg"
    """
    sanitized = sanitize_for_log(storage_key)
    first_slash = sanitized.find("/")
    if first_slash > 0:
        return "***" + sanitized[first_slash:]
    return sanitized


def build_storage_keys(
    account_id: int, entity_type: str, content_type: str, now: datetime | None = None
) -> tuple[str, str]:
    """Generate the storage key and thumbnail key for a new upload.

    Pattern: {account_id}/{entity_type}/{year}/{uuid}{ext} and
    {account_id}/{entity_type}/{year}/{uuid}_thumb.jpg
    """
    extension = extension_for_content_type(content_type)
    year = (now or datetime.now(UTC)).year
    file_id = uuid.uuid4()
    prefix = f"{account_id}/{entity_type.lower()}/{year}/{file_id}"
    return f"{prefix}{extension}", f"{prefix}_thumb.jpg"


def derive_thumbnail_key(storage_key: str) -> str:
    """Derive a thumbnail key from an original storage key."""
    stem, dot, _ = storage_key.rpartition(".")
    if not dot or "/" in storage_key[len(stem) :]:
        return f"{storage_key}_thumb.jpg"
    return f"{stem}_thumb.jpg"


def belongs_to_account(storage_key: str, account_id: int) -> bool:
    """Check that a client-supplied key lives under the caller's tenant prefix."""
    return storage_key.startswith(f"{account_id}/") and ".." not in storage_key


class StorageService:
    """Thin wrapper around a boto3 S3 client scoped to one bucket."""

    def __init__(self, client=None, bucket_name: str | None = None) -> None:
        settings = get_settings()
        self.settings = settings
        self.bucket_name = bucket_name or settings.s3_bucket_name
        self.expiry_minutes = settings.presigned_url_expiry_minutes
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.settings.s3_region,
                endpoint_url=self.settings.s3_endpoint_url,
                aws_access_key_id=self.settings.aws_access_key_id,
                aws_secret_access_key=self.settings.aws_secret_access_key,
                config=Config(signature_version="s3v4"),
            )
        return self._client

    def generate_presigned_upload_url(
        self, storage_key: str, content_type: str
    ) -> tuple[str, datetime]:
        """Generate a time-boxed PUT URL bound to the given content type.

        Returns:
            Tuple of (url, expires_at)
        """
        expires_at = datetime.now(UTC) + timedelta(minutes=self.expiry_minutes)
        try:
            url = self.client.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": self.bucket_name,
                    "Key": storage_key,
                    "ContentType": content_type,
                },
                ExpiresIn=self.expiry_minutes * 60,
                HttpMethod="PUT",
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                f"Failed to generate presigned upload URL for {mask_storage_key(storage_key)}: {e}"
            )
            raise StorageError(f"Failed to generate upload URL: {e}") from e

        logger.info(
            f"Generated presigned upload URL for {mask_storage_key(storage_key)}, "
            f"expires at {expires_at.isoformat()}"
        )
        return url, expires_at

    def generate_presigned_download_url(self, storage_key: str) -> str:
        """Generate a time-boxed GET URL for viewing a stored object."""
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket_name, "Key": storage_key},
                ExpiresIn=self.expiry_minutes * 60,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                f"Failed to generate presigned download URL for "
                f"{mask_storage_key(storage_key)}: {e}"
            )
            raise StorageError(f"Failed to generate download URL: {e}") from e

    def object_exists(self, storage_key: str) -> bool:
        """Check whether an object has been uploaded under the key."""
        try:
            self.client.head_object(Bucket=self.bucket_name, Key=storage_key)
            return True
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_OBJECT_CODES:
                return False
            raise StorageError(f"Failed to check object: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to check object: {e}") from e

    def get_object_bytes(self, storage_key: str) -> bytes:
        """Download an object's content."""
        try:
            response = self.client.get_object(Bucket=self.bucket_name, Key=storage_key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to download object: {e}") from e

    def put_object_bytes(self, storage_key: str, data: bytes, content_type: str) -> None:
        """Upload content server-side (used for generated thumbnails)."""
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=storage_key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload object: {e}") from e

    def delete_object(self, storage_key: str) -> None:
        """Delete an object from the bucket."""
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=storage_key)
            logger.info(f"Deleted object {mask_storage_key(storage_key)}")
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Failed to delete object {mask_storage_key(storage_key)}: {e}")
            raise StorageError(f"Failed to delete object: {e}") from e


_storage_service: StorageService | None = None


def get_storage_service() -> StorageService:
    """Get the shared storage service (FastAPI dependency)."""
    global _storage_service
    if _storage_service is None:
        _storage_service = StorageService()
    return _storage_service
