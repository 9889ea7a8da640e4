"""Client library for the receipt capture pipeline."""

from propertyledger.client.api import ApiError, ReceiptApiClient
from propertyledger.client.assembly_line import (
    AssemblyLineController,
    AssemblyLineState,
    ExpenseDraft,
)
from propertyledger.client.queue import NEW_RECEIPT_MARKER_SECONDS, ReceiptQueueStore
from propertyledger.client.sync import ConnectionState, ReceiptSyncChannel
from propertyledger.client.upload import TransferError, UploadCoordinator

__all__ = [
    "ApiError",
    "ReceiptApiClient",
    "AssemblyLineController",
    "AssemblyLineState",
    "ExpenseDraft",
    "NEW_RECEIPT_MARKER_SECONDS",
    "ReceiptQueueStore",
    "ConnectionState",
    "ReceiptSyncChannel",
    "TransferError",
    "UploadCoordinator",
]
