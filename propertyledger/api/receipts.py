"""Receipt endpoints: presigned upload, unprocessed queue, and processing."""

import logging
import uuid
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from propertyledger.api.dependencies import (
    get_account_property,
    get_current_user,
    get_photo_service,
)
from propertyledger.database import get_db
from propertyledger.models.expense import Expense, ExpenseCategory
from propertyledger.models.receipt import Receipt
from propertyledger.models.user import User
from propertyledger.schemas.photo import UploadUrlResponse
from propertyledger.schemas.receipt import (
    ProcessReceiptRequest,
    ProcessReceiptResponse,
    ReceiptCreate,
    ReceiptCreateResponse,
    ReceiptResponse,
    ReceiptUploadUrlRequest,
    UnprocessedReceiptResponse,
    UnprocessedReceiptsResponse,
)
from propertyledger.services.photo_service import (
    ForeignStorageKeyError,
    PhotoEntityType,
    PhotoService,
    UploadNotFoundError,
)
from propertyledger.services.realtime import (
    ReceiptEventType,
    ReceiptRemovalReason,
    publish_account_event,
)
from propertyledger.services.storage import (
    StorageError,
    StorageService,
    belongs_to_account,
    derive_thumbnail_key,
    get_storage_service,
    mask_storage_key,
    sanitize_for_log,
)
from propertyledger.services.upload_validation import UploadValidationError, validate_upload
from propertyledger.tasks.thumbnails import generate_receipt_thumbnail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/receipts", tags=["receipts"])


def get_account_receipt(db: Session, receipt_id: str, user: User) -> Receipt:
    """Get a receipt that belongs to the user's account."""
    receipt = (
        db.query(Receipt)
        .filter(
            Receipt.id == receipt_id,
            Receipt.account_id == user.account_id,
        )
        .first()
    )
    if not receipt:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Receipt not found")
    return receipt


def _presigned_url(storage: StorageService, storage_key: str | None) -> str | None:
    """Presign a view URL; a storage hiccup degrades to no URL instead of failing."""
    if not storage_key:
        return None
    try:
        return storage.generate_presigned_download_url(storage_key)
    except StorageError as e:
        logger.warning(f"Could not presign {mask_storage_key(storage_key)}: {e}")
        return None


def build_queue_item(receipt: Receipt, storage: StorageService) -> UnprocessedReceiptResponse:
    """Build the queue view of a receipt with fresh view URLs."""
    return UnprocessedReceiptResponse(
        id=receipt.id,
        created_at=receipt.created_at,
        property_id=receipt.property_id,
        property_name=receipt.property.name if receipt.property else None,
        content_type=receipt.content_type or "application/octet-stream",
        view_url=_presigned_url(storage, receipt.storage_key),
        thumbnail_url=_presigned_url(storage, receipt.thumbnail_storage_key),
    )


@router.post("/upload-url", response_model=UploadUrlResponse)
def generate_receipt_upload_url(
    request: ReceiptUploadUrlRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    photo_service: Annotated[PhotoService, Depends(get_photo_service)],
):
    """Issue a presigned URL the device uploads the receipt image to."""
    if request.property_id is not None:
        get_account_property(db, request.property_id, current_user)

    try:
        grant = photo_service.generate_upload_grant(
            current_user.account_id,
            PhotoEntityType.RECEIPTS,
            request.content_type,
            request.file_size_bytes,
            request.original_file_name,
            require_file_name=False,
        )
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY, detail="Storage service unavailable"
        ) from e

    logger.info(
        f"Generated receipt upload URL: {mask_storage_key(grant.storage_key)}, "
        f"expires at {grant.expires_at.isoformat()}"
    )
    return grant


@router.post("", response_model=ReceiptCreateResponse, status_code=status.HTTP_201_CREATED)
def create_receipt(
    receipt_data: ReceiptCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    photo_service: Annotated[PhotoService, Depends(get_photo_service)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
):
    """Confirm an upload and put the receipt into the unprocessed queue.

    The thumbnail is rendered in the background; every session of the account
    is told about the new receipt over the real-time channel.
    """
    try:
        validate_upload(
            receipt_data.content_type,
            receipt_data.file_size_bytes,
            receipt_data.original_file_name,
            require_file_name=True,
        )
    except UploadValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if receipt_data.property_id is not None:
        get_account_property(db, receipt_data.property_id, current_user)

    try:
        photo_service.verify_upload(current_user.account_id, receipt_data.storage_key)
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

    receipt = Receipt(
        account_id=current_user.account_id,
        storage_key=receipt_data.storage_key,
        original_file_name=receipt_data.original_file_name,
        content_type=receipt_data.content_type,
        file_size_bytes=receipt_data.file_size_bytes,
        property_id=receipt_data.property_id,
        created_by_user_id=current_user.id,
    )
    db.add(receipt)
    db.commit()
    db.refresh(receipt)

    logger.info(
        f"Receipt created: {receipt.id} for "
        f"{mask_storage_key(sanitize_for_log(receipt_data.storage_key))}"
    )

    thumbnail_key = receipt_data.thumbnail_storage_key
    if not thumbnail_key or not belongs_to_account(thumbnail_key, current_user.account_id):
        thumbnail_key = derive_thumbnail_key(receipt.storage_key)
    try:
        generate_receipt_thumbnail.delay(receipt.id, thumbnail_key)
    except Exception as e:
        # Thumbnails are best-effort; the receipt is already saved
        logger.warning(f"Could not queue thumbnail for receipt {receipt.id}: {e}")

    publish_account_event(
        current_user.account_id,
        ReceiptEventType.RECEIPT_ADDED,
        build_queue_item(receipt, storage).model_dump(mode="json"),
    )

    return ReceiptCreateResponse(id=receipt.id)


@router.get("/unprocessed", response_model=UnprocessedReceiptsResponse)
def list_unprocessed_receipts(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
):
    """List the account's unprocessed receipts, newest first."""
    receipts = (
        db.query(Receipt)
        .filter(
            Receipt.account_id == current_user.account_id,
            Receipt.processed_at.is_(None),
        )
        .order_by(Receipt.created_at.desc(), Receipt.id)
        .all()
    )
    items = [build_queue_item(receipt, storage) for receipt in receipts]

    logger.info(
        f"Retrieved {len(items)} unprocessed receipts for account {current_user.account_id}"
    )
    return UnprocessedReceiptsResponse(items=items, total_count=len(items))


@router.get("/{receipt_id}", response_model=ReceiptResponse)
def get_receipt(
    receipt_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
):
    """Get a receipt with time-boxed view URLs for the image and thumbnail."""
    receipt = get_account_receipt(db, receipt_id, current_user)

    return ReceiptResponse(
        id=receipt.id,
        original_file_name=receipt.original_file_name,
        content_type=receipt.content_type,
        file_size_bytes=receipt.file_size_bytes,
        storage_key=receipt.storage_key,
        thumbnail_storage_key=receipt.thumbnail_storage_key,
        property_id=receipt.property_id,
        property_name=receipt.property.name if receipt.property else None,
        expense_id=receipt.expense_id,
        created_at=receipt.created_at,
        processed_at=receipt.processed_at,
        view_url=_presigned_url(storage, receipt.storage_key),
        thumbnail_url=_presigned_url(storage, receipt.thumbnail_storage_key),
    )


@router.delete("/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_receipt(
    receipt_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
    storage: Annotated[StorageService, Depends(get_storage_service)],
):
    """Hard-delete a receipt; no expense is created."""
    receipt = get_account_receipt(db, receipt_id, current_user)
    storage_keys = [receipt.storage_key, receipt.thumbnail_storage_key]

    db.query(Expense).filter(Expense.receipt_id == receipt.id).update(
        {Expense.receipt_id: None}, synchronize_session=False
    )
    db.delete(receipt)
    db.commit()

    for key in storage_keys:
        if not key:
            continue
        try:
            storage.delete_object(key)
        except StorageError:
            # Orphaned objects are tolerated; the row is gone either way
            logger.warning(f"Left orphaned object {mask_storage_key(key)} after receipt delete")

    logger.info(f"Receipt deleted: {receipt_id}")

    publish_account_event(
        current_user.account_id,
        ReceiptEventType.RECEIPT_REMOVED,
        {"receipt_id": receipt_id, "reason": ReceiptRemovalReason.DELETED},
    )


@router.post(
    "/{receipt_id}/process",
    response_model=ProcessReceiptResponse,
    status_code=status.HTTP_201_CREATED,
)
def process_receipt(
    receipt_id: str,
    request: ProcessReceiptRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Create an expense from a receipt and take the receipt out of the queue."""
    receipt = get_account_receipt(db, receipt_id, current_user)
    if receipt.processed_at is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Receipt is already processed"
        )

    get_account_property(db, request.property_id, current_user)

    category = db.query(ExpenseCategory).filter(ExpenseCategory.id == request.category_id).first()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")

    expense_id = str(uuid.uuid4())

    # Conditional stamp: a second session racing on the same receipt updates nothing
    claimed = (
        db.query(Receipt)
        .filter(Receipt.id == receipt.id, Receipt.processed_at.is_(None))
        .update(
            {
                Receipt.processed_at: datetime.now(UTC),
                Receipt.expense_id: expense_id,
                Receipt.property_id: request.property_id,
            },
            synchronize_session=False,
        )
    )
    if not claimed:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Receipt is already processed"
        )

    expense = Expense(
        id=expense_id,
        account_id=current_user.account_id,
        property_id=request.property_id,
        category_id=request.category_id,
        amount=request.amount,
        date=request.date,
        description=request.description.strip() if request.description else None,
        receipt_id=receipt.id,
        work_order_id=request.work_order_id,
        created_by_user_id=current_user.id,
    )
    db.add(expense)
    db.commit()

    logger.info(f"Receipt processed: receipt={receipt_id} expense={expense_id}")

    publish_account_event(
        current_user.account_id,
        ReceiptEventType.RECEIPT_REMOVED,
        {
            "receipt_id": receipt_id,
            "reason": ReceiptRemovalReason.PROCESSED,
            "expense_id": expense_id,
        },
    )

    return ProcessReceiptResponse(expense_id=expense_id)
