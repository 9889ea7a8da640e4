"""Tests for the assembly-line controller."""

from datetime import UTC, date, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import httpx
import pytest

from propertyledger.client.api import ApiError
from propertyledger.client.assembly_line import (
    AssemblyLineController,
    AssemblyLineState,
    ExpenseDraft,
)
from propertyledger.client.queue import ReceiptQueueStore
from propertyledger.schemas.expense import DuplicateCheckResponse, ExistingExpenseResponse
from propertyledger.schemas.receipt import ReceiptResponse, UnprocessedReceiptResponse

CAPTURED_AT = datetime(2024, 3, 15, 9, 30, tzinfo=UTC)


def make_receipt(receipt_id: str, processed: bool = False) -> ReceiptResponse:
    return ReceiptResponse(
        id=receipt_id,
        original_file_name=f"{receipt_id}.jpg",
        content_type="image/jpeg",
        file_size_bytes=2048,
        storage_key=f"1/receipts/2024/{receipt_id}.jpg",
        property_id=7,
        property_name="Maple Street Duplex",
        created_at=CAPTURED_AT,
        processed_at=CAPTURED_AT if processed else None,
    )


class FakeApi:
    def __init__(self, receipts):
        self.receipts = {receipt.id: receipt for receipt in receipts}
        self.processed: list[str] = []
        self.duplicate: DuplicateCheckResponse | None = None
        self.duplicate_error: Exception | None = None
        self.process_error: Exception | None = None
        self.load_error: Exception | None = None

    async def get_receipt(self, receipt_id):
        if self.load_error:
            raise self.load_error
        if receipt_id not in self.receipts:
            raise ApiError(404, "Receipt not found")
        return self.receipts[receipt_id]

    async def check_duplicate_expense(self, property_id, amount, expense_date):
        if self.duplicate_error:
            raise self.duplicate_error
        return self.duplicate or DuplicateCheckResponse(is_duplicate=False)

    async def process_receipt(
        self,
        receipt_id,
        property_id,
        amount,
        expense_date,
        category_id,
        description=None,
        work_order_id=None,
    ):
        if self.process_error:
            raise self.process_error
        self.processed.append(receipt_id)
        return f"expense-{receipt_id}"


class RecordingNavigator:
    def __init__(self):
        self.history = []

    def to_queue(self):
        self.history.append("queue")

    def to_receipt(self, receipt_id):
        self.history.append(receipt_id)


class RecordingNotifier:
    def __init__(self):
        self.messages = []

    def notify(self, message):
        self.messages.append(message)


def queue_item(receipt_id: str) -> UnprocessedReceiptResponse:
    return UnprocessedReceiptResponse(id=receipt_id, created_at=CAPTURED_AT)


@pytest.fixture
def setup():
    """Queue [R1, R2, R3] newest-first, with a controller wired to fakes."""
    ids = ["R1", "R2", "R3"]
    api = FakeApi([make_receipt(receipt_id) for receipt_id in ids])
    store = ReceiptQueueStore(api, scheduler=lambda delay, callback: MagicMock())
    for receipt_id in reversed(ids):
        store.add_optimistic(queue_item(receipt_id))
    navigator = RecordingNavigator()
    notifier = RecordingNotifier()
    controller = AssemblyLineController(api, store, navigator, notifier)
    return api, store, navigator, notifier, controller


def draft(**overrides) -> ExpenseDraft:
    fields = {
        "date": date(2024, 3, 15),
        "property_id": 7,
        "amount": Decimal("150.00"),
        "category_id": 3,
    }
    fields.update(overrides)
    return ExpenseDraft(**fields)


class TestLoad:
    """Tests for loading a receipt."""

    @pytest.mark.asyncio
    async def test_ready_with_form_defaults(self, setup):
        _, _, _, _, controller = setup

        await controller.load("R1")

        assert controller.state == AssemblyLineState.READY
        defaults = controller.form_defaults
        assert defaults.date == date(2024, 3, 15)
        assert defaults.property_id == 7
        assert defaults.amount is None

    @pytest.mark.asyncio
    async def test_processed_receipt_redirects_to_queue(self, setup):
        api, store, navigator, notifier, controller = setup
        api.receipts["R1"] = make_receipt("R1", processed=True)

        await controller.load("R1")

        assert controller.state == AssemblyLineState.ALREADY_PROCESSED
        assert controller.receipt is None
        assert notifier.messages == ["Receipt already processed"]
        assert navigator.history == ["queue"]
        assert not store.contains("R1")

    @pytest.mark.asyncio
    async def test_missing_receipt(self, setup):
        _, _, _, _, controller = setup

        await controller.load("nope")

        assert controller.state == AssemblyLineState.ERROR
        assert controller.error == "Receipt not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [ApiError(500, "boom"), httpx.ConnectError("offline")]
    )
    async def test_other_load_failures(self, setup, error):
        api, _, _, _, controller = setup
        api.load_error = error

        await controller.load("R1")

        assert controller.state == AssemblyLineState.ERROR
        assert controller.error == "Failed to load receipt"


class TestSave:
    """Tests for saving and advancing."""

    @pytest.mark.asyncio
    async def test_save_advances_to_next_receipt(self, setup):
        api, store, navigator, notifier, controller = setup
        await controller.load("R1")

        expense_id = await controller.save(draft())

        assert expense_id == "expense-R1"
        assert [entry.id for entry in store.entries] == ["R2", "R3"]
        assert controller.receipt.id == "R2"
        assert controller.state == AssemblyLineState.READY
        assert navigator.history == ["R2"]
        assert notifier.messages == ["Expense saved with receipt"]

    @pytest.mark.asyncio
    async def test_saving_n_of_k(self, setup):
        api, store, _, _, controller = setup
        await controller.load("R1")

        await controller.save(draft())
        await controller.save(draft())

        assert store.unprocessed_count == 1
        assert api.processed == ["R1", "R2"]
        assert not any(store.contains(receipt_id) for receipt_id in api.processed)

    @pytest.mark.asyncio
    async def test_last_receipt_returns_to_queue(self, setup):
        _, store, navigator, notifier, controller = setup
        await controller.load("R1")

        for _ in range(3):
            await controller.save(draft())

        assert store.is_empty
        assert notifier.messages[-2:] == ["Expense saved with receipt", "All caught up!"]
        assert navigator.history[-1] == "queue"
        assert controller.receipt is None

    @pytest.mark.asyncio
    async def test_duplicate_without_confirmation_saves_nothing(self, setup):
        api, store, _, _, controller = setup
        api.duplicate = DuplicateCheckResponse(
            is_duplicate=True,
            existing_expense=ExistingExpenseResponse(
                id="e1", date=date(2024, 3, 15), amount=Decimal("150.00")
            ),
        )
        await controller.load("R1")

        assert await controller.save(draft()) is None

        assert api.processed == []
        assert controller.state == AssemblyLineState.READY
        assert store.unprocessed_count == 3

    @pytest.mark.asyncio
    async def test_duplicate_declined(self, setup):
        api, _, _, _, controller = setup
        api.duplicate = DuplicateCheckResponse(is_duplicate=True)
        await controller.load("R1")

        result = await controller.save(draft(), confirm_duplicate=lambda duplicate: False)

        assert result is None
        assert api.processed == []

    @pytest.mark.asyncio
    async def test_duplicate_confirmed_async(self, setup):
        api, _, _, _, controller = setup
        api.duplicate = DuplicateCheckResponse(is_duplicate=True)
        seen = []

        async def confirm(duplicate):
            seen.append(duplicate)
            return True

        await controller.load("R1")
        result = await controller.save(draft(), confirm_duplicate=confirm)

        assert result == "expense-R1"
        assert seen == [api.duplicate]

    @pytest.mark.asyncio
    async def test_duplicate_check_failure_proceeds(self, setup):
        api, _, _, _, controller = setup
        api.duplicate_error = ApiError(500)
        await controller.load("R1")

        assert await controller.save(draft()) == "expense-R1"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("status_code", "message"),
        [
            (404, "Receipt or property not found."),
            (409, "Receipt has already been processed."),
            (400, "Invalid expense data. Please check your input."),
            (500, "Failed to save expense. Please try again."),
        ],
    )
    async def test_process_failure_messages(self, setup, status_code, message):
        api, store, navigator, notifier, controller = setup
        api.process_error = ApiError(status_code)
        await controller.load("R1")

        assert await controller.save(draft()) is None

        assert notifier.messages == [message]
        assert controller.state == AssemblyLineState.READY
        assert controller.receipt.id == "R1"
        assert store.unprocessed_count == 3
        assert navigator.history == []

    @pytest.mark.asyncio
    async def test_incomplete_draft_not_sent(self, setup):
        api, _, _, notifier, controller = setup
        await controller.load("R1")

        assert await controller.save(draft(category_id=None)) is None

        assert api.processed == []
        assert notifier.messages == ["Invalid expense data. Please check your input."]

    @pytest.mark.asyncio
    async def test_save_before_load_is_ignored(self, setup):
        api, _, _, _, controller = setup

        assert await controller.save(draft()) is None
        assert api.processed == []


def test_cancel_returns_to_queue(setup):
    _, store, navigator, _, controller = setup

    controller.cancel()

    assert navigator.history == ["queue"]
    assert store.unprocessed_count == 3
