"""Assembly-line processing: one receipt at a time, then on to the next."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Protocol

import httpx

from propertyledger.client.api import ApiError, ReceiptApiClient
from propertyledger.client.queue import ReceiptQueueStore
from propertyledger.schemas.expense import DuplicateCheckResponse
from propertyledger.schemas.receipt import ReceiptResponse

logger = logging.getLogger(__name__)

SAVE_ERROR_MESSAGES = {
    404: "Receipt or property not found.",
    409: "Receipt has already been processed.",
    400: "Invalid expense data. Please check your input.",
}
DEFAULT_SAVE_ERROR = "Failed to save expense. Please try again."


class AssemblyLineState(StrEnum):
    LOADING = "loading"
    READY = "ready"
    ALREADY_PROCESSED = "already_processed"
    ERROR = "error"


class Navigator(Protocol):
    def to_queue(self) -> None: ...

    def to_receipt(self, receipt_id: str) -> None: ...


class Notifier(Protocol):
    def notify(self, message: str) -> None: ...


DuplicateConfirmation = Callable[[DuplicateCheckResponse], bool | Awaitable[bool]]


@dataclass
class ExpenseDraft:
    """Expense form values for the receipt being processed."""

    date: date
    property_id: int | None = None
    amount: Decimal | None = None
    category_id: int | None = None
    description: str | None = None
    work_order_id: str | None = None

    @property
    def is_complete(self) -> bool:
        return (
            self.property_id is not None
            and self.category_id is not None
            and self.amount is not None
            and self.amount > 0
        )


class AssemblyLineController:
    """Drives the process-receipt screen.

    After a successful save the receipt leaves the queue store and the
    controller moves straight on to the new queue head, or back to the
    queue once nothing is left.
    """

    def __init__(
        self,
        api: ReceiptApiClient,
        store: ReceiptQueueStore,
        navigator: Navigator,
        notifier: Notifier,
    ) -> None:
        self.api = api
        self.store = store
        self.navigator = navigator
        self.notifier = notifier

        self.state = AssemblyLineState.LOADING
        self.receipt: ReceiptResponse | None = None
        self.error: str | None = None
        self.is_saving = False

    async def load(self, receipt_id: str) -> None:
        self.state = AssemblyLineState.LOADING
        self.receipt = None
        self.error = None

        try:
            receipt = await self.api.get_receipt(receipt_id)
        except ApiError as e:
            self.state = AssemblyLineState.ERROR
            self.error = "Receipt not found" if e.status_code == 404 else "Failed to load receipt"
            logger.warning(f"Could not load receipt {receipt_id}: {e}")
            return
        except httpx.HTTPError as e:
            self.state = AssemblyLineState.ERROR
            self.error = "Failed to load receipt"
            logger.warning(f"Could not load receipt {receipt_id}: {e}")
            return

        if receipt.processed_at is not None:
            self.state = AssemblyLineState.ALREADY_PROCESSED
            self.store.remove(receipt.id)
            self.notifier.notify("Receipt already processed")
            self.navigator.to_queue()
            return

        self.receipt = receipt
        self.state = AssemblyLineState.READY

    @property
    def form_defaults(self) -> ExpenseDraft:
        """Draft seeded with the capture date and the property chosen at capture."""
        if self.receipt is None:
            return ExpenseDraft(date=date.today())
        return ExpenseDraft(
            date=self.receipt.created_at.date(),
            property_id=self.receipt.property_id,
        )

    async def _check_duplicate(self, draft: ExpenseDraft) -> DuplicateCheckResponse | None:
        try:
            result = await self.api.check_duplicate_expense(
                draft.property_id, draft.amount, draft.date
            )
        except (ApiError, httpx.HTTPError) as e:
            # The check is advisory; saving goes ahead without it
            logger.warning(f"Duplicate check failed, proceeding with save: {e}")
            return None
        return result if result.is_duplicate else None

    async def save(
        self,
        draft: ExpenseDraft,
        confirm_duplicate: DuplicateConfirmation | None = None,
    ) -> str | None:
        """Create the expense for the loaded receipt.

        Args:
            draft: The completed expense form
            confirm_duplicate: Asked whether to save anyway when a matching
                expense exists; a missing callback counts as "no".

        Returns:
            The new expense id, or None when nothing was saved.
        """
        if self.state != AssemblyLineState.READY or self.receipt is None or self.is_saving:
            return None
        if not draft.is_complete:
            self.notifier.notify(SAVE_ERROR_MESSAGES[400])
            return None

        self.is_saving = True
        try:
            duplicate = await self._check_duplicate(draft)
            if duplicate is not None:
                if confirm_duplicate is None:
                    return None
                confirmed = confirm_duplicate(duplicate)
                if inspect.isawaitable(confirmed):
                    confirmed = await confirmed
                if not confirmed:
                    return None

            receipt_id = self.receipt.id
            try:
                expense_id = await self.api.process_receipt(
                    receipt_id,
                    draft.property_id,
                    draft.amount,
                    draft.date,
                    draft.category_id,
                    description=draft.description,
                    work_order_id=draft.work_order_id,
                )
            except ApiError as e:
                logger.warning(f"Failed to process receipt {receipt_id}: {e}")
                self.notifier.notify(SAVE_ERROR_MESSAGES.get(e.status_code, DEFAULT_SAVE_ERROR))
                return None
            except httpx.HTTPError as e:
                logger.warning(f"Failed to process receipt {receipt_id}: {e}")
                self.notifier.notify(DEFAULT_SAVE_ERROR)
                return None
        finally:
            self.is_saving = False

        self.notifier.notify("Expense saved with receipt")
        await self._advance(receipt_id)
        return expense_id

    async def _advance(self, processed_id: str) -> None:
        self.store.remove(processed_id)

        next_receipt = self.store.head
        if next_receipt is None:
            self.receipt = None
            self.notifier.notify("All caught up!")
            self.navigator.to_queue()
            return

        self.navigator.to_receipt(next_receipt.id)
        await self.load(next_receipt.id)

    def cancel(self) -> None:
        """Leave the receipt untouched and go back to the queue."""
        self.navigator.to_queue()
