"""Pydantic schemas for API requests and responses."""

from propertyledger.schemas.auth import AuthResponse, UserLogin, UserRegister, UserResponse
from propertyledger.schemas.expense import DuplicateCheckResponse, ExistingExpenseResponse
from propertyledger.schemas.photo import (
    PhotoConfirmRequest,
    PhotoRecordResponse,
    PhotoUploadUrlRequest,
    UploadUrlResponse,
)
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

__all__ = [
    "UserRegister",
    "UserLogin",
    "AuthResponse",
    "UserResponse",
    "DuplicateCheckResponse",
    "ExistingExpenseResponse",
    "PhotoUploadUrlRequest",
    "UploadUrlResponse",
    "PhotoConfirmRequest",
    "PhotoRecordResponse",
    "ReceiptUploadUrlRequest",
    "ReceiptCreate",
    "ReceiptCreateResponse",
    "UnprocessedReceiptResponse",
    "UnprocessedReceiptsResponse",
    "ReceiptResponse",
    "ProcessReceiptRequest",
    "ProcessReceiptResponse",
]
