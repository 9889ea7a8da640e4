"""Client-side state for the account's unprocessed receipt queue."""

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from propertyledger.client.api import ApiError
from propertyledger.schemas.receipt import UnprocessedReceiptResponse

logger = logging.getLogger(__name__)

# How long a receipt pushed from another session is highlighted as new
NEW_RECEIPT_MARKER_SECONDS = 2.3

LOAD_ERROR_MESSAGE = "Failed to load receipts"

QueueEntry = UnprocessedReceiptResponse
Listener = Callable[[], None]


class ReceiptSource(Protocol):
    async def get_unprocessed_receipts(self) -> list[QueueEntry]: ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]


def _loop_scheduler(delay: float, callback: Callable[[], None]) -> TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


@dataclass
class _PendingLoad:
    """Local writes made while a snapshot request is in flight."""

    added: list[QueueEntry] = field(default_factory=list)
    removed: set[str] = field(default_factory=set)


class ReceiptQueueStore:
    """Ordered (newest-first) list of unprocessed receipts shared by a session.

    Entries arrive from a server snapshot, from real-time pushes and from
    optimistic local inserts; all paths are idempotent on receipt id. Listeners
    registered with ``subscribe`` are called after every state change.
    """

    def __init__(
        self,
        source: ReceiptSource,
        *,
        scheduler: Scheduler | None = None,
        marker_seconds: float = NEW_RECEIPT_MARKER_SECONDS,
    ) -> None:
        self._source = source
        self._schedule = scheduler or _loop_scheduler
        self._marker_seconds = marker_seconds
        self._tokens = itertools.count(1)
        self._listeners: list[Listener] = []

        self.entries: list[QueueEntry] = []
        self.is_loading = False
        self.error: str | None = None
        # receipt id -> (marker token, pending expiry)
        self._new: dict[str, tuple[int, TimerHandle]] = {}
        self._pending_loads: list[_PendingLoad] = []

    # -- listeners --------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception as e:
                logger.error(f"Receipt queue listener failed: {e}", exc_info=True)

    # -- derived state ----------------------------------------------------

    @property
    def unprocessed_count(self) -> int:
        return len(self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def has_receipts(self) -> bool:
        return not self.is_loading and bool(self.entries)

    @property
    def head(self) -> QueueEntry | None:
        """The receipt the assembly line works on next."""
        return self.entries[0] if self.entries else None

    def is_new(self, receipt_id: str) -> bool:
        return receipt_id in self._new

    def contains(self, receipt_id: str) -> bool:
        return any(entry.id == receipt_id for entry in self.entries)

    # -- mutations --------------------------------------------------------

    async def load(self) -> None:
        """Replace the entries with the server snapshot, keeping its order.

        Receipts removed while the request was in flight stay removed, and
        receipts added meanwhile are kept ahead of the snapshot. On failure
        the current entries are left as they were.
        """
        self.is_loading = True
        self.error = None
        pending = _PendingLoad()
        self._pending_loads.append(pending)
        self._notify()

        try:
            entries = await self._source.get_unprocessed_receipts()
        except (ApiError, httpx.HTTPError) as e:
            logger.warning(f"Failed to load unprocessed receipts: {e}")
            self.error = LOAD_ERROR_MESSAGE
        else:
            self.entries = self._merge_snapshot(entries, pending)
            live_ids = {entry.id for entry in self.entries}
            for receipt_id in [rid for rid in self._new if rid not in live_ids]:
                self._clear_marker(receipt_id)
        finally:
            self._pending_loads.remove(pending)
            self.is_loading = bool(self._pending_loads)
            self._notify()

    def add_from_realtime(self, receipt: QueueEntry | dict[str, Any]) -> bool:
        """Prepend a receipt pushed by another session and mark it as new.

        Returns False when the receipt is already in the queue.
        """
        entry = self._coerce(receipt)
        if not self._prepend(entry):
            return False

        token = next(self._tokens)
        handle = self._schedule(
            self._marker_seconds, lambda: self._expire_marker(entry.id, token)
        )
        self._new[entry.id] = (token, handle)
        self._notify()
        return True

    def add_optimistic(self, receipt: QueueEntry | dict[str, Any]) -> bool:
        """Prepend a receipt this session just uploaded, without the new marker."""
        if not self._prepend(self._coerce(receipt)):
            return False
        self._notify()
        return True

    def remove(self, receipt_id: str) -> bool:
        """Drop a receipt from the queue; an absent id is a no-op.

        The id is still recorded against any load in flight, so a stale
        snapshot cannot bring the receipt back.
        """
        for pending in self._pending_loads:
            pending.removed.add(receipt_id)

        remaining = [entry for entry in self.entries if entry.id != receipt_id]
        if len(remaining) == len(self.entries):
            return False

        self.entries = remaining
        self._clear_marker(receipt_id)
        self._notify()
        return True

    def clear_error(self) -> None:
        self.error = None
        self._notify()

    def reset(self) -> None:
        """Return to the initial empty state, cancelling pending markers."""
        for receipt_id in list(self._new):
            self._clear_marker(receipt_id)
        self.entries = []
        self.is_loading = False
        self.error = None
        self._notify()

    # -- internals --------------------------------------------------------

    @staticmethod
    def _coerce(receipt: QueueEntry | dict[str, Any]) -> QueueEntry:
        if isinstance(receipt, UnprocessedReceiptResponse):
            return receipt
        return UnprocessedReceiptResponse.model_validate(receipt)

    def _prepend(self, entry: QueueEntry) -> bool:
        if self.contains(entry.id):
            return False
        self.entries.insert(0, entry)
        for pending in self._pending_loads:
            pending.removed.discard(entry.id)
            pending.added.append(entry)
        return True

    @staticmethod
    def _merge_snapshot(entries: list[QueueEntry], pending: _PendingLoad) -> list[QueueEntry]:
        merged = [entry for entry in entries if entry.id not in pending.removed]
        seen = {entry.id for entry in merged}
        # Newest local insert first, ahead of the server order
        for entry in pending.added:
            if entry.id not in seen and entry.id not in pending.removed:
                merged.insert(0, entry)
                seen.add(entry.id)
        return merged

    def _clear_marker(self, receipt_id: str) -> None:
        marker = self._new.pop(receipt_id, None)
        if marker is not None:
            marker[1].cancel()

    def _expire_marker(self, receipt_id: str, token: int) -> None:
        # A removal, reset or re-add since scheduling owns the marker now
        marker = self._new.get(receipt_id)
        if marker is None or marker[0] != token:
            return
        del self._new[receipt_id]
        self._notify()
