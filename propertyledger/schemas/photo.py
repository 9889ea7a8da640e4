"""Photo upload schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from propertyledger.services.photo_service import PhotoEntityType


class PhotoUploadUrlRequest(BaseModel):
    """Request a presigned upload URL for a photo."""

    entity_type: PhotoEntityType
    entity_id: str = Field(..., min_length=1, max_length=64)
    content_type: str = Field(..., max_length=100)
    file_size_bytes: int
    original_file_name: str = Field(..., max_length=255)


class UploadUrlResponse(BaseModel):
    """Presigned upload grant."""

    model_config = ConfigDict(from_attributes=True)

    upload_url: str
    storage_key: str
    thumbnail_storage_key: str
    expires_at: datetime


class PhotoConfirmRequest(BaseModel):
    """Confirm that a photo was uploaded to its grant URL."""

    storage_key: str = Field(..., min_length=1, max_length=512)
    thumbnail_storage_key: str = Field(..., min_length=1, max_length=512)
    content_type: str = Field(..., max_length=100)
    file_size_bytes: int


class PhotoRecordResponse(BaseModel):
    """Confirmed photo; thumbnail_storage_key is null when no thumbnail exists."""

    model_config = ConfigDict(from_attributes=True)

    storage_key: str
    thumbnail_storage_key: str | None = None
    content_type: str
    file_size_bytes: int
