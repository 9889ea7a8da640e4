"""Generic photo upload endpoints (presigned grant + confirm)."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from propertyledger.api.dependencies import (
    get_account_property,
    get_current_user,
    get_photo_service,
)
from propertyledger.database import get_db
from propertyledger.models.user import User
from propertyledger.schemas.photo import (
    PhotoConfirmRequest,
    PhotoRecordResponse,
    PhotoUploadUrlRequest,
    UploadUrlResponse,
)
from propertyledger.services.photo_service import (
    ForeignStorageKeyError,
    PhotoEntityType,
    PhotoService,
    UploadNotFoundError,
)
from propertyledger.services.storage import StorageError
from propertyledger.services.upload_validation import UploadValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/photos", tags=["photos"])


@router.post("/upload-url", response_model=UploadUrlResponse)
def generate_photo_upload_url(
    request: PhotoUploadUrlRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    photo_service: Annotated[PhotoService, Depends(get_photo_service)],
):
    """Issue a presigned upload URL for a photo of any supported entity."""
    if request.entity_type == PhotoEntityType.PROPERTIES:
        try:
            property_id = int(request.entity_id)
        except ValueError as e:
            raise HTTPException(status_code=404, detail="Property not found") from e
        get_account_property(db, property_id, current_user)

    try:
        grant = photo_service.generate_upload_grant(
            current_user.account_id,
            request.entity_type,
            request.content_type,
            request.file_size_bytes,
            request.original_file_name,
        )
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Storage service unavailable"
        ) from e

    return grant


@router.post("/confirm", response_model=PhotoRecordResponse)
def confirm_photo_upload(
    request: PhotoConfirmRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    photo_service: Annotated[PhotoService, Depends(get_photo_service)],
):
    """Confirm a finished upload and render its thumbnail.

    A missing thumbnail in the response is not an error; it means rendering
    failed and the photo should be shown without one.
    """
    try:
        record = photo_service.confirm_upload(
            current_user.account_id,
            request.storage_key,
            request.thumbnail_storage_key,
            request.content_type,
            request.file_size_bytes,
        )
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except ForeignStorageKeyError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not authorized") from e
    except UploadNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Uploaded object not found"
        ) from e
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Storage service unavailable"
        ) from e

    return record
