"""Receipt schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ReceiptUploadUrlRequest(BaseModel):
    """Request a presigned upload URL for a receipt."""

    content_type: str = Field(..., max_length=100)
    file_size_bytes: int
    original_file_name: str | None = Field(None, max_length=255)
    property_id: int | None = None


class ReceiptCreate(BaseModel):
    """Confirm a receipt upload and create the receipt record."""

    storage_key: str = Field(..., min_length=1, max_length=512)
    thumbnail_storage_key: str | None = Field(None, max_length=512)
    original_file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., max_length=100)
    file_size_bytes: int
    property_id: int | None = None


class ReceiptCreateResponse(BaseModel):
    """Response when a receipt has been created."""

    id: str


class UnprocessedReceiptResponse(BaseModel):
    """A receipt as shown in the unprocessed queue."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    created_at: datetime
    property_id: int | None = None
    property_name: str | None = None
    content_type: str | None = None
    view_url: str | None = None
    thumbnail_url: str | None = None


class UnprocessedReceiptsResponse(BaseModel):
    """Unprocessed queue snapshot, newest first."""

    items: list[UnprocessedReceiptResponse]
    total_count: int


class ReceiptResponse(BaseModel):
    """Full receipt details including time-boxed view URLs."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    original_file_name: str
    content_type: str
    file_size_bytes: int
    storage_key: str
    thumbnail_storage_key: str | None = None
    property_id: int | None = None
    property_name: str | None = None
    expense_id: str | None = None
    created_at: datetime
    processed_at: datetime | None = None
    view_url: str | None = None
    thumbnail_url: str | None = None


class ProcessReceiptRequest(BaseModel):
    """Expense details used to process a receipt."""

    property_id: int
    amount: Decimal = Field(..., gt=0, le=Decimal("9999999.99"), decimal_places=2)
    date: date
    category_id: int
    description: str | None = Field(None, max_length=500)
    work_order_id: str | None = Field(None, max_length=36)


class ProcessReceiptResponse(BaseModel):
    """Response when a receipt has been processed into an expense."""

    expense_id: str
